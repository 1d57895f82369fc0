from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, constr

from casebook.models.enums import CasePriorityEnum, CaseStatusEnum, CaseTypeEnum
from casebook.schemas.pagination import PageMetaRead

TitleStr = constr(min_length=1, max_length=300, strip_whitespace=True)


class CaseCreate(BaseModel):
    client_id: int
    title: TitleStr
    case_number: Optional[str] = None
    description: Optional[str] = None
    case_type: CaseTypeEnum = CaseTypeEnum.CIVIL
    status: CaseStatusEnum = CaseStatusEnum.ACTIVE
    priority: CasePriorityEnum = CasePriorityEnum.MEDIUM
    court: Optional[str] = None
    responsible_lawyer_id: Optional[int] = None
    filed_at: Optional[date] = None


class CaseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: str
    client_id: int
    title: str
    case_number: Optional[str] = None
    description: Optional[str] = None
    case_type: CaseTypeEnum
    status: CaseStatusEnum
    priority: CasePriorityEnum
    court: Optional[str] = None
    responsible_lawyer_id: Optional[int] = None
    filed_at: Optional[date] = None
    open_deadlines_count: Optional[int] = None
    created_at: datetime


class CasePage(BaseModel):
    data: list[CaseRead]
    meta: PageMetaRead

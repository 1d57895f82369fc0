from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, constr

from casebook.models.enums import DeadlineStatusEnum
from casebook.schemas.pagination import PageMetaRead


class DeadlineCreate(BaseModel):
    case_id: int
    title: constr(min_length=1, max_length=300, strip_whitespace=True)
    deadline_date: datetime
    description: Optional[str] = None
    is_fatal: bool = False
    responsible_id: Optional[int] = None


class DeadlineUpdate(BaseModel):
    title: Optional[constr(min_length=1, max_length=300, strip_whitespace=True)] = None
    deadline_date: Optional[datetime] = None
    description: Optional[str] = None
    is_fatal: Optional[bool] = None
    responsible_id: Optional[int] = None
    status: Optional[DeadlineStatusEnum] = None


class DeadlineComplete(BaseModel):
    completed_by: Optional[int] = None
    completion_notes: Optional[str] = None


class DeadlineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: str
    case_id: int
    title: str
    description: Optional[str] = None
    deadline_date: datetime
    is_fatal: bool
    status: DeadlineStatusEnum
    responsible_id: Optional[int] = None
    completed_at: Optional[datetime] = None
    completed_by: Optional[int] = None
    completion_notes: Optional[str] = None


class DeadlinePage(BaseModel):
    data: list[DeadlineRead]
    meta: PageMetaRead


class UpcomingDeadline(BaseModel):
    id: int
    title: str
    deadline_date: datetime
    status: DeadlineStatusEnum
    is_fatal: bool
    case_id: int
    responsible_id: Optional[int] = None
    tenant_id: str

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, constr, field_validator

from casebook.models.enums import ClientTypeEnum
from casebook.schemas.pagination import PageMetaRead

NameStr = constr(min_length=1, max_length=200, strip_whitespace=True)


class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None


class ClientCreate(BaseModel):
    client_type: ClientTypeEnum = ClientTypeEnum.INDIVIDUAL
    full_name: Optional[NameStr] = None
    company_name: Optional[NameStr] = None
    document_number: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[Address] = None
    tags: list[str] = []
    is_active: bool = True
    notes: Optional[str] = None

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: list[str]) -> list[str]:
        return sorted({tag.strip().lower() for tag in value if tag and tag.strip()})


class ClientUpdate(BaseModel):
    client_type: Optional[ClientTypeEnum] = None
    full_name: Optional[NameStr] = None
    company_name: Optional[NameStr] = None
    document_number: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    address: Optional[Address] = None
    tags: Optional[list[str]] = None
    is_active: Optional[bool] = None
    notes: Optional[str] = None


class ClientRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: str
    client_type: ClientTypeEnum
    full_name: Optional[str] = None
    company_name: Optional[str] = None
    display_name: str
    document_number: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[dict] = None
    tags: Optional[list[str]] = None
    is_active: bool
    notes: Optional[str] = None
    cases_count: Optional[int] = None
    created_at: datetime
    updated_at: datetime


class ClientPage(BaseModel):
    data: list[ClientRead]
    meta: PageMetaRead

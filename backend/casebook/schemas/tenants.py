from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, constr

SubdomainStr = constr(min_length=1, max_length=63, strip_whitespace=True, to_lower=True, pattern=r"^[a-z0-9-]+$")


class TenantCreate(BaseModel):
    name: constr(min_length=1, max_length=200, strip_whitespace=True)
    subdomain: Optional[SubdomainStr] = None
    limits: Optional[dict] = None


class TenantUpdate(BaseModel):
    name: Optional[constr(min_length=1, max_length=200, strip_whitespace=True)] = None
    subdomain: Optional[SubdomainStr] = None
    is_active: Optional[bool] = None
    limits: Optional[dict] = None


class TenantRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    subdomain: Optional[str] = None
    is_active: bool
    limits: Optional[dict] = None
    created_at: datetime

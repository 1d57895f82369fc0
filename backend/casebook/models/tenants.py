from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, String
from sqlalchemy.orm import relationship

from casebook.core.db import Base
from casebook.models.mixins import TimestampMixin


def _new_tenant_id() -> str:
    return str(uuid4())


class Tenant(TimestampMixin, Base):
    """Tenant registry row. Not tenant-scoped: it is the tenant."""

    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=_new_tenant_id)
    name = Column(String, nullable=False)
    subdomain = Column(String, unique=True, nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    limits = Column(JSON, nullable=True)

    memberships = relationship("TenantUser", back_populates="tenant", lazy="selectin")

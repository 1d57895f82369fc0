from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from casebook.core.db import Base
from casebook.models.enums import TenantRoleEnum
from casebook.models.mixins import TimestampMixin


class TenantUser(TimestampMixin, Base):
    """
    Membership of a user in a tenant.

    Resolved at the request boundary before any tenant scope exists, so it is
    registry data and always queried with an explicit tenant_id.
    """

    __tablename__ = "tenant_users"
    __table_args__ = (UniqueConstraint("tenant_id", "user_id", name="uq_tenant_users_tenant_user"),)

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(String(36), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String, nullable=False, default=TenantRoleEnum.VIEWER.value)
    is_active = Column(Boolean, nullable=False, default=True)

    tenant = relationship("Tenant", back_populates="memberships", lazy="selectin")
    user = relationship("User", back_populates="memberships", lazy="selectin")

from sqlalchemy import Column, DateTime, ForeignKey, String, event
from sqlalchemy.orm import declared_attr

from casebook.core.time import utcnow


class TimestampMixin:
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @staticmethod
    def _touch_updated_at(mapper, connection, target) -> None:
        target.updated_at = utcnow()

    @classmethod
    def __declare_last__(cls) -> None:
        event.listen(cls, "before_update", cls._touch_updated_at)


class TenantScopedMixin:
    """
    Marks a model as tenant-owned.

    The session hooks in casebook.tenancy.hooks inject tenant_id on insert and
    filter every ORM read, bulk update and bulk delete by the ambient tenant.
    """

    @declared_attr
    def tenant_id(cls):
        return Column(
            String(36),
            ForeignKey("tenants.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )

    def belongs_to_tenant(self, tenant_id: str) -> bool:
        return self.tenant_id is not None and str(self.tenant_id) == str(tenant_id)


def is_tenant_scoped(model) -> bool:
    cls = model if isinstance(model, type) else type(model)
    return issubclass(cls, TenantScopedMixin)

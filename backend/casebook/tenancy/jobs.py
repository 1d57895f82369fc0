"""
Per-tenant fan-out for background jobs.

Jobs never run with an ambient tenant of their own: each tenant's share of
the work runs inside its own tenant_scope(), so the session hooks keep every
query of one iteration inside that tenant.
"""

import logging
from typing import Callable, Iterable, Optional, TypeVar

from sqlalchemy.orm import Session

from casebook.crud.tenants import list_active_tenant_ids
from casebook.models.mixins import is_tenant_scoped
from casebook.tenancy.context import TenantContext, tenant_scope

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _forget_tenant_rows(db: Session) -> None:
    # Rows a previous tenant loaded must not be served from the identity map.
    for instance in list(db.identity_map.values()):
        # Expunging a parent cascades to loaded children.
        if is_tenant_scoped(instance) and instance in db:
            db.expunge(instance)


def run_for_tenant(db: Session, tenant_id: str, operation: Callable[[Session, str], T]) -> T:
    _forget_tenant_rows(db)
    with tenant_scope(TenantContext(tenant_id=tenant_id)):
        try:
            result = operation(db, tenant_id)
            db.commit()
            return result
        except Exception:
            db.rollback()
            logger.exception("tenant_job.failed", extra={"tenant_id": tenant_id})
            raise


def run_for_each_tenant(
    db: Session,
    operation: Callable[[Session, str], T],
    *,
    tenant_ids: Optional[Iterable[str]] = None,
) -> dict[str, T]:
    """
    Call operation(db, tenant_id) once per active tenant, each call inside
    that tenant's scope. Returns the results keyed by tenant id.
    """
    ids = list(tenant_ids) if tenant_ids is not None else list_active_tenant_ids(db)
    results: dict[str, T] = {}
    for tenant_id in ids:
        results[tenant_id] = run_for_tenant(db, tenant_id, operation)
    logger.info("tenant_job.completed", extra={"tenants": len(results)})
    return results

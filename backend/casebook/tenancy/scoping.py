"""
Helpers to ensure database access stays tenant-scoped.

The session hooks already filter every ORM statement by the ambient tenant;
the helpers here make the intent explicit at call sites and provide the one
sanctioned way around the filter.
"""

from contextlib import contextmanager
from functools import wraps
import inspect
import logging
from typing import Iterable

from sqlalchemy.orm import Session

from casebook.core.metrics import record_missing_tenant_context, record_scope_bypass
from casebook.models.mixins import is_tenant_scoped
from casebook.tenancy.constants import SKIP_TENANT_SCOPE
from casebook.tenancy.context import get_current_tenant_id, has_context, require_tenant_id
from casebook.tenancy.errors import MissingTenantContext, NotFound

logger = logging.getLogger(__name__)


def _ensure_model_has_tenant_id(model) -> None:
    if not is_tenant_scoped(model):
        name = getattr(model, "__name__", str(model))
        raise ValueError(f"{name} does not define tenant_id and cannot be tenant-scoped.")


def scoped_query(db: Session, model):
    """
    Return a query constrained to the ambient tenant.

    Example:
        scoped_query(db, Client).filter(Client.is_active.is_(True)).all()
    """
    _ensure_model_has_tenant_id(model)
    tenant_id = require_tenant_id()
    return db.query(model).filter(model.tenant_id == tenant_id)


def without_tenant_scope(db: Session, model, *entities, reason: str | None = None):
    """
    Return a query over `model` that the session hooks leave unfiltered.

    For seeders, system jobs and platform reports. Works with or without an
    ambient tenant, and every call is logged and counted.
    """
    model_name = getattr(model, "__name__", str(model))
    record_scope_bypass(model_name)
    logger.info(
        "tenancy.scope_bypass",
        extra={
            "model": model_name,
            "reason": reason,
            "tenant_id": get_current_tenant_id(),
        },
    )
    return db.query(model, *entities).execution_options(**{SKIP_TENANT_SCOPE: True})


@contextmanager
def unscoped_session(db: Session, *, reason: str | None = None):
    """
    Turn off tenant filtering for every statement issued on `db` in the block,
    relationship loads included.
    """
    previous = db.info.get(SKIP_TENANT_SCOPE, False)
    record_scope_bypass("session")
    logger.info("tenancy.scope_bypass", extra={"model": "session", "reason": reason})
    db.info[SKIP_TENANT_SCOPE] = True
    try:
        yield db
    finally:
        db.info[SKIP_TENANT_SCOPE] = previous


def for_tenant(db: Session, model, tenant_id: str):
    """Explicit single-tenant query, independent of the ambient tenant."""
    _ensure_model_has_tenant_id(model)
    return without_tenant_scope(db, model, reason="for_tenant").filter(
        model.tenant_id == str(tenant_id)
    )


def for_tenants(db: Session, model, tenant_ids: Iterable[str]):
    """Explicit multi-tenant query for admin reports."""
    _ensure_model_has_tenant_id(model)
    ids = [str(tenant_id) for tenant_id in tenant_ids]
    return without_tenant_scope(db, model, reason="for_tenants").filter(model.tenant_id.in_(ids))


def get_tenant_owned(db: Session, model, object_id):
    """
    Fetch by id within the ambient tenant, or None.

    Always runs a query: Session.get() could answer from the identity map
    without going through the tenant filter.
    """
    return scoped_query(db, model).filter(model.id == object_id).first()


def get_tenant_owned_or_404(db: Session, model, object_id):
    """
    Fetch by id within the ambient tenant or raise NotFound (404 style).
    """
    resource = get_tenant_owned(db, model, object_id)
    if resource is None:
        raise NotFound(f"{model.__name__} not found")
    return resource


def assert_belongs_to_tenant(resource, tenant_id: str | None = None, *, not_found_ok: bool = False):
    """
    Guard that a loaded resource matches the given (or ambient) tenant.
    """
    if resource is None:
        if not_found_ok:
            return None
        raise NotFound("Resource not found")

    expected = str(tenant_id) if tenant_id is not None else require_tenant_id()
    resource_tenant = getattr(resource, "tenant_id", None)
    if resource_tenant is None or str(resource_tenant) != expected:
        raise NotFound("Resource not found")
    return resource


def create_scoped(db: Session, model, **values):
    """
    Build and add a tenant-owned row stamped with the ambient tenant.

    Raises MissingTenantContext before anything reaches the session when no
    scope is active. An explicit tenant_id in `values` wins.
    """
    _ensure_model_has_tenant_id(model)
    if not values.get("tenant_id"):
        values["tenant_id"] = require_tenant_id()
    instance = model(**values)
    db.add(instance)
    return instance


def _ensure_scope(handler) -> None:
    if not has_context():
        record_missing_tenant_context(handler.__name__)
        raise MissingTenantContext(f"{handler.__name__} requires a tenant context")


def tenant_scoped(handler):
    """
    Decorator that refuses to run `handler` outside a tenant scope.

    Example:
        @tenant_scoped
        def rebuild_client_index(db):
            ...
    """
    if inspect.iscoroutinefunction(handler):
        @wraps(handler)
        async def async_wrapper(*args, **kwargs):
            _ensure_scope(handler)
            return await handler(*args, **kwargs)

        return async_wrapper

    @wraps(handler)
    def sync_wrapper(*args, **kwargs):
        _ensure_scope(handler)
        return handler(*args, **kwargs)

    return sync_wrapper

"""
Ambient tenant context for the current logical operation.

The active TenantContext lives in a ContextVar, so it follows the asyncio task
(or the copied context of a worker thread) that entered the scope and is never
shared between concurrently running requests or jobs.

Example:
    with tenant_scope(TenantContext(tenant_id=tenant.id)):
        create_client(db, full_name="Ada")

    await run_async(ctx, handler, request)
"""

from __future__ import annotations

import inspect
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from functools import wraps
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Iterator, Optional, TypeVar

from casebook.tenancy.errors import MissingTenantContext

if TYPE_CHECKING:
    from casebook.models.tenant_users import TenantUser
    from casebook.models.tenants import Tenant

T = TypeVar("T")


@dataclass(frozen=True)
class TenantContext:
    """
    Identifies the tenant and acting principal for one unit of work.

    `tenant` and `tenant_membership` are detached snapshots when the request
    middleware builds the context. Read them; write through a session.
    """

    tenant_id: str
    tenant: Optional["Tenant"] = None
    user_id: Optional[int] = None
    tenant_membership: Optional["TenantUser"] = None

    def __post_init__(self) -> None:
        if self.tenant_id is None or not str(self.tenant_id).strip():
            raise ValueError("TenantContext requires a non-empty tenant_id")
        object.__setattr__(self, "tenant_id", str(self.tenant_id).strip())

    def for_tenant(self, tenant_id: str, **overrides: Any) -> "TenantContext":
        """Derive a context for another tenant; the current one stays untouched."""
        return TenantContext(
            tenant_id=tenant_id,
            tenant=overrides.get("tenant"),
            user_id=overrides.get("user_id", self.user_id),
            tenant_membership=overrides.get("tenant_membership"),
        )


_current: ContextVar[Optional[TenantContext]] = ContextVar("tenant_context", default=None)


@contextmanager
def tenant_scope(context: TenantContext) -> Iterator[TenantContext]:
    """
    Make `context` ambient for the body of the with-block.

    Scopes nest: leaving an inner scope restores whatever was active before it.
    """
    if not isinstance(context, TenantContext):
        raise TypeError("tenant_scope expects a TenantContext")
    token = _current.set(context)
    try:
        yield context
    finally:
        _current.reset(token)


async def run_async(
    context: TenantContext,
    operation: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> T:
    with tenant_scope(context):
        return await operation(*args, **kwargs)


def run(context: TenantContext, operation: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """
    Execute `operation` with `context` as the ambient tenant context.

    Coroutine functions get an awaitable back, which keeps the context active
    across every suspension point once awaited.
    """
    if inspect.iscoroutinefunction(operation):
        return run_async(context, operation, *args, **kwargs)
    with tenant_scope(context):
        return operation(*args, **kwargs)


def get_context() -> Optional[TenantContext]:
    return _current.get()


def has_context() -> bool:
    return _current.get() is not None


def require_context() -> TenantContext:
    context = _current.get()
    if context is None:
        raise MissingTenantContext("No tenant context available")
    return context


def get_current_tenant_id() -> Optional[str]:
    context = _current.get()
    return context.tenant_id if context else None


def require_tenant_id() -> str:
    """Return the ambient tenant id or raise MissingTenantContext."""
    tenant_id = get_current_tenant_id()
    if not tenant_id:
        raise MissingTenantContext("No tenant ID in current context")
    return tenant_id


def get_current_user_id() -> Optional[int]:
    context = _current.get()
    return context.user_id if context else None


def get_current_tenant():
    context = _current.get()
    return context.tenant if context else None


def get_current_membership():
    context = _current.get()
    return context.tenant_membership if context else None


def with_tenant_context(context: TenantContext):
    """
    Decorator form of `run`, for job entry points bound to one tenant.
    """

    def decorator(func):
        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                return await run_async(context, func, *args, **kwargs)

            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            return run(context, func, *args, **kwargs)

        return sync_wrapper

    return decorator

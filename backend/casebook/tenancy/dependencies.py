"""
FastAPI dependency helpers for the ambient tenant context.
"""

from fastapi import Request

from casebook.tenancy.context import TenantContext, require_context


def get_tenant_context(request: Request) -> TenantContext:
    """
    The context TenantContextMiddleware established for this request.

    Raises MissingTenantContext (400) on routes the middleware leaves unscoped.
    """
    context = require_context()
    request.state.tenant_id = context.tenant_id
    return context

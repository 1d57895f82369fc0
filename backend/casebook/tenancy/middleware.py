"""
Middleware that establishes the tenant context for each request.

Resolution order: tenant header, then subdomain of the Host header. The tenant
must exist and be active; when an upstream auth layer has put `user_id` on
request.state, the user must also hold an active membership. The downstream app
then runs inside tenant_scope(), so every query it issues is tenant-filtered.
"""

import logging
from typing import Callable, Iterable, Optional
from uuid import uuid4

from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

import casebook.core.db as db_module
from casebook.core.config import settings
from casebook.crud.tenant_users import get_active_membership
from casebook.crud.tenants import get_tenant_by_id, get_tenant_by_subdomain
from casebook.tenancy.constants import TENANT_HEADER
from casebook.tenancy.context import TenantContext, tenant_scope
from casebook.tenancy.errors import NotFound, TenancyError, TenantForbidden, TenantNotSelected

logger = logging.getLogger(__name__)


def _default_user_resolver(request: Request) -> Optional[int]:
    return getattr(request.state, "user_id", None)


def extract_subdomain(host: Optional[str], base_domain: Optional[str]) -> Optional[str]:
    """
    "acme.example.com" with base domain "example.com" -> "acme".

    Returns None for the bare base domain, for hosts outside it and for
    nested subdomains.
    """
    if not host or not base_domain:
        return None
    hostname = host.split(":", 1)[0].strip().lower().rstrip(".")
    base = base_domain.strip().lower().strip(".")
    suffix = f".{base}"
    if not hostname.endswith(suffix):
        return None
    label = hostname[: -len(suffix)]
    if not label or "." in label:
        return None
    return label


def error_response(exc: TenancyError, request_id: Optional[str] = None) -> JSONResponse:
    response = JSONResponse(status_code=exc.status_code, content=exc.to_payload())
    response.headers["X-Error-Code"] = exc.code
    if request_id:
        response.headers["X-Request-Id"] = request_id
    return response


class TenantContextMiddleware(BaseHTTPMiddleware):
    """
    Attaches a request_id and the resolved tenant to request.state and runs the
    rest of the request inside the tenant scope.
    """

    def __init__(
        self,
        app,
        *,
        exempt_paths: Optional[Iterable[str]] = None,
        user_resolver: Optional[Callable[[Request], Optional[int]]] = None,
    ) -> None:
        super().__init__(app)
        paths = settings.TENANT_EXEMPT_PATHS if exempt_paths is None else exempt_paths
        self._exempt_paths = tuple(path.rstrip("/") or "/" for path in paths)
        self._user_resolver = user_resolver or _default_user_resolver

    def _is_exempt(self, path: str) -> bool:
        normalized = path.rstrip("/") or "/"
        for exempt in self._exempt_paths:
            if normalized == exempt or normalized.startswith(f"{exempt}/"):
                return True
        return False

    def _selector(self, request: Request) -> tuple[Optional[str], Optional[str]]:
        header_name = settings.TENANT_HEADER_NAME or TENANT_HEADER
        tenant_id = (request.headers.get(header_name) or "").strip() or None
        subdomain = None
        if tenant_id is None:
            subdomain = extract_subdomain(
                request.headers.get("host"), settings.TENANT_SUBDOMAIN_BASE_DOMAIN
            )
        return tenant_id, subdomain

    def _resolve_context(self, tenant_id: Optional[str], subdomain: Optional[str], user_id) -> TenantContext:
        with db_module.SessionLocal() as db:
            if tenant_id is not None:
                tenant = get_tenant_by_id(db, tenant_id)
            else:
                tenant = get_tenant_by_subdomain(db, subdomain)
            if tenant is None or not tenant.is_active:
                raise NotFound("Tenant not found")

            membership = None
            if user_id is not None:
                membership = get_active_membership(db, tenant.id, user_id)
                if membership is None:
                    if settings.TENANT_STRICT_404:
                        raise NotFound("Tenant membership not found")
                    raise TenantForbidden("Tenant membership not found")
            # The context outlives this session. Tenant and membership are
            # handed out as detached snapshots; their relationships load eagerly
            # and nothing in them lazy-loads afterwards.
            db.expunge_all()
        return TenantContext(
            tenant_id=tenant.id,
            tenant=tenant,
            user_id=user_id,
            tenant_membership=membership,
        )

    async def dispatch(self, request, call_next):
        request_id = (
            getattr(request.state, "request_id", None)
            or request.headers.get("X-Request-ID")
            or request.headers.get("X-Request-Id")
            or str(uuid4())
        )
        request.state.request_id = request_id
        request.state.tenant_id = None

        if self._is_exempt(request.url.path):
            response = await call_next(request)
            response.headers["X-Request-Id"] = request_id
            return response

        tenant_id, subdomain = self._selector(request)
        user_id = self._user_resolver(request)
        try:
            if tenant_id is None and subdomain is None:
                raise TenantNotSelected("Tenant must be provided via header or subdomain")
            context = await run_in_threadpool(self._resolve_context, tenant_id, subdomain, user_id)
        except TenancyError as exc:
            logger.info(
                "tenancy.resolution_failed",
                extra={
                    "request_id": request_id,
                    "path": request.url.path,
                    "error_code": exc.code,
                    "tenant_selector": tenant_id or subdomain,
                },
            )
            return error_response(exc, request_id)

        request.state.tenant_id = context.tenant_id
        request.state.user_id = user_id
        with tenant_scope(context):
            response = await call_next(request)
        response.headers["X-Request-Id"] = request_id
        return response

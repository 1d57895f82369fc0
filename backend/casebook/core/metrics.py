# Prometheus metrics for the API and the tenancy layer. Escape-hatch usage
# and fail-closed rejections are counted so reviews can spot unexpected spikes.

from time import monotonic

from fastapi import Request
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

_CACHE_PAYLOAD_BUCKETS = (256, 1024, 4096, 16384, 65536, 262144, 1048576, 4194304)

HTTP_REQUEST_SECONDS = Histogram(
    "casebook_http_request_seconds",
    "Time spent serving HTTP requests",
    ["method", "route"],
)
HTTP_RESPONSES_TOTAL = Counter(
    "casebook_http_responses_total",
    "HTTP responses by route and status",
    ["method", "route", "status_code"],
)

# Every query built through without_tenant_scope(), by model. Should stay
# flat outside of seeders, registry admin and platform reports.
TENANT_SCOPE_BYPASS_TOTAL = Counter(
    "casebook_tenant_scope_bypass_total",
    "Queries explicitly built without tenant scope",
    ["model"],
)
MISSING_TENANT_CONTEXT_TOTAL = Counter(
    "casebook_missing_tenant_context_total",
    "Operations rejected because no tenant context was active",
    ["operation"],
)
PAGINATION_COUNT_MISMATCH_TOTAL = Counter(
    "casebook_pagination_count_mismatch_total",
    "Paginated pages whose rows disagreed with the computed total",
    ["entity"],
)

CACHE_HIT_TOTAL = Counter("casebook_cache_hits_total", "Tenant cache hits", ["cache"])
CACHE_MISS_TOTAL = Counter("casebook_cache_misses_total", "Tenant cache misses", ["cache"])
CACHE_SET_TOTAL = Counter("casebook_cache_writes_total", "Tenant cache writes", ["cache"])
CACHE_ERROR_TOTAL = Counter(
    "casebook_cache_errors_total",
    "Cache backend failures absorbed by the fail-open cache",
    ["cache", "operation"],
)
CACHE_PAYLOAD_BYTES = Histogram(
    "casebook_cache_payload_bytes",
    "Size of serialized cache payloads",
    ["cache"],
    buckets=_CACHE_PAYLOAD_BUCKETS,
)


def _label(value: object | None, default: str = "unknown") -> str:
    text = "" if value is None else str(value).strip()
    return text or default


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started = monotonic()
        response = await call_next(request)
        # Route templates keep label cardinality bounded; raw paths are a fallback.
        route = getattr(request.scope.get("route"), "path", None) or request.url.path
        HTTP_REQUEST_SECONDS.labels(request.method, route).observe(monotonic() - started)
        HTTP_RESPONSES_TOTAL.labels(request.method, route, str(response.status_code)).inc()
        return response


def record_scope_bypass(model_name: str) -> None:
    TENANT_SCOPE_BYPASS_TOTAL.labels(model=_label(model_name)).inc()


def record_missing_tenant_context(operation: str) -> None:
    MISSING_TENANT_CONTEXT_TOTAL.labels(operation=_label(operation)).inc()


def record_count_mismatch(entity: str) -> None:
    PAGINATION_COUNT_MISMATCH_TOTAL.labels(entity=_label(entity)).inc()


def record_cache_hit(cache_name: str) -> None:
    CACHE_HIT_TOTAL.labels(cache=_label(cache_name, "default")).inc()


def record_cache_miss(cache_name: str) -> None:
    CACHE_MISS_TOTAL.labels(cache=_label(cache_name, "default")).inc()


def record_cache_error(cache_name: str, operation: str) -> None:
    CACHE_ERROR_TOTAL.labels(cache=_label(cache_name, "default"), operation=_label(operation)).inc()


def record_cache_set(cache_name: str, payload_bytes: int | None = None) -> None:
    cache = _label(cache_name, "default")
    CACHE_SET_TOTAL.labels(cache=cache).inc()
    if payload_bytes is not None:
        CACHE_PAYLOAD_BYTES.labels(cache=cache).observe(payload_bytes)

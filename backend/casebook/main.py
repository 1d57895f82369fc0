# This file bootstraps the FastAPI app, wires up the logging, metrics and
# tenancy middlewares, maps tenancy errors to HTTP responses and includes
# the routers.

import logging
import os

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from casebook.core.db import Base, engine
from casebook.core.logging import APILoggingMiddleware
from casebook.core.metrics import MetricsMiddleware
from casebook.tenancy.errors import CountMismatchDefect, TenancyError
from casebook.tenancy.middleware import TenantContextMiddleware, error_response

import casebook.models  # noqa: F401

from casebook.api.cases import router as cases_router
from casebook.api.clients import router as clients_router
from casebook.api.deadlines import router as deadlines_router
from casebook.api.tenants import router as tenants_router

logger = logging.getLogger(__name__)

# Create DB tables right away for local runs; deployments migrate with Alembic.
if os.getenv("SKIP_MIGRATIONS") != "1":
    Base.metadata.create_all(bind=engine)

app = FastAPI(title="Casebook")


@app.exception_handler(TenancyError)
def handle_tenancy_error(request, exc: TenancyError):
    if isinstance(exc, CountMismatchDefect):
        logger.error(
            "pagination.count_mismatch",
            exc_info=exc,
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
    return error_response(exc, getattr(request.state, "request_id", None))


# Innermost first: the tenant scope wraps the routers, metrics and the
# request log wrap everything, rejected tenant selections included.
app.add_middleware(TenantContextMiddleware)
app.add_middleware(MetricsMiddleware)
app.add_middleware(APILoggingMiddleware)

for router in (clients_router, cases_router, deadlines_router, tenants_router):
    app.include_router(router)


# /metrics endpoint (Prometheus scraping)
@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/ping")
def ping():
    return {"message": "pong"}

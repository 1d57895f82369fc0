import json
import logging
import os

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["SKIP_MIGRATIONS"] = "1"

from casebook.main import app  # noqa: E402
import casebook.core.db as db_module  # noqa: E402
from casebook.core.db import Base, TenantSession  # noqa: E402
from casebook.core.logging import JsonLogFormatter, TenantContextFilter  # noqa: E402
from casebook.tenancy.context import TenantContext, tenant_scope  # noqa: E402

from tests.factories import make_tenant  # noqa: E402


def _records(caplog, message):
    return [record for record in caplog.records if record.getMessage() == message]


def test_logging_includes_request_id_and_status(caplog):
    logger = logging.getLogger("api_logger")
    logger.addHandler(caplog.handler)
    logger.setLevel(logging.INFO)
    try:
        client = TestClient(app)
        response = client.get("/ping", headers={"X-Request-ID": "req-123"})
        assert response.status_code == 200
        assert response.headers.get("X-Request-ID") == "req-123"

        records = _records(caplog, "request.completed")
        assert records, "Expected a structured request log entry"
        entry = records[-1]
        assert getattr(entry, "request_id", None) == "req-123"
        assert getattr(entry, "tenant_id", "missing") is None
        assert getattr(entry, "status_code", None) == 200
        assert getattr(entry, "route", None) == "/ping"
    finally:
        logger.removeHandler(caplog.handler)


def test_logging_records_resolved_tenant_and_error_code(caplog, tmp_path):
    db_url = f"sqlite:///{tmp_path}/logging.db"
    engine = create_engine(db_url, connect_args={"check_same_thread": False}, future=True)
    SessionLocal = sessionmaker(bind=engine, class_=TenantSession, autoflush=False, autocommit=False, future=True)
    original_engine, original_session = db_module.engine, db_module.SessionLocal
    db_module.engine = engine
    db_module.SessionLocal = SessionLocal
    Base.metadata.create_all(bind=engine)

    logger = logging.getLogger("api_logger")
    logger.addHandler(caplog.handler)
    logger.setLevel(logging.INFO)
    try:
        with SessionLocal() as db:
            tenant_id = make_tenant(db).id
        client = TestClient(app)
        assert client.get("/clients", headers={"X-Tenant-ID": tenant_id}).status_code == 200
        assert client.get("/clients").status_code == 400

        ok, rejected = _records(caplog, "request.completed")[-2:]
        assert ok.tenant_id == tenant_id
        assert ok.error_code is None
        assert rejected.tenant_id is None
        assert rejected.status_code == 400
        assert rejected.error_code == "E_TENANT_NOT_SELECTED"
    finally:
        logger.removeHandler(caplog.handler)
        db_module.engine, db_module.SessionLocal = original_engine, original_session
        engine.dispose()


def test_json_formatter_stamps_ambient_tenant():
    record = logging.LogRecord("casebook.test", logging.INFO, __file__, 1, "client.created", None, None)
    record.client_id = 7
    with tenant_scope(TenantContext(tenant_id="tenant-a", user_id=3)):
        TenantContextFilter().filter(record)
    payload = json.loads(JsonLogFormatter().format(record))

    assert payload["message"] == "client.created"
    assert payload["tenant_id"] == "tenant-a"
    assert payload["user_id"] == 3
    assert payload["client_id"] == 7
    assert payload["level"] == "INFO"


def test_filter_keeps_explicit_tenant_and_defaults_to_none():
    explicit = logging.LogRecord("casebook.test", logging.INFO, __file__, 1, "x", None, None)
    explicit.tenant_id = "from-extra"
    bare = logging.LogRecord("casebook.test", logging.INFO, __file__, 1, "x", None, None)
    with tenant_scope(TenantContext(tenant_id="tenant-a")):
        TenantContextFilter().filter(explicit)
    TenantContextFilter().filter(bare)

    assert explicit.tenant_id == "from-extra"
    assert bare.tenant_id is None
    assert json.loads(JsonLogFormatter().format(bare))["tenant_id"] is None

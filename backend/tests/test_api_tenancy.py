import os
from datetime import timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["SKIP_MIGRATIONS"] = "1"

from casebook.main import app
import casebook.core.db as db_module
from casebook.core.config import settings
from casebook.core.db import Base, TenantSession
from casebook.core.time import utcnow
from casebook.tenancy.context import (
    get_current_membership,
    get_current_tenant,
    get_current_tenant_id,
    get_current_user_id,
)
from casebook.tenancy.middleware import TenantContextMiddleware, extract_subdomain

from tests.factories import (
    make_case,
    make_client,
    make_deadline,
    make_membership,
    make_tenant,
    make_user,
)


client = TestClient(app)


@pytest.fixture
def SessionLocal(tmp_path):
    db_url = f"sqlite:///{tmp_path}/api.db"
    engine = create_engine(db_url, connect_args={"check_same_thread": False}, future=True)
    TestingSessionLocal = sessionmaker(bind=engine, class_=TenantSession, autoflush=False, autocommit=False, future=True)
    original_engine, original_session = db_module.engine, db_module.SessionLocal
    db_module.engine = engine
    db_module.SessionLocal = TestingSessionLocal
    Base.metadata.create_all(bind=engine)
    yield TestingSessionLocal
    db_module.engine, db_module.SessionLocal = original_engine, original_session
    engine.dispose()


@pytest.fixture
def firms(SessionLocal):
    with SessionLocal() as db:
        acme = make_tenant(db, name="Acme Legal", subdomain="acme")
        globex = make_tenant(db, name="Globex Attorneys", subdomain="globex")
        return acme.id, globex.id


def _headers(tenant_id):
    return {"X-Tenant-ID": tenant_id}


def test_exempt_paths_need_no_tenant(SessionLocal):
    resp = client.get("/ping", headers={"X-Request-ID": "req-ping"})
    assert resp.status_code == 200
    assert resp.json() == {"message": "pong"}
    assert resp.headers["X-Request-Id"] == "req-ping"
    assert client.get("/metrics").status_code == 200


def test_missing_selector_is_rejected(SessionLocal):
    resp = client.get("/clients")
    assert resp.status_code == 400
    assert resp.json()["code"] == "E_TENANT_NOT_SELECTED"
    assert resp.headers["X-Error-Code"] == "E_TENANT_NOT_SELECTED"
    assert resp.headers.get("X-Request-Id")


def test_unknown_and_inactive_tenants_are_not_found(SessionLocal):
    with SessionLocal() as db:
        dormant = make_tenant(db, is_active=False).id

    for tenant_id in ("does-not-exist", dormant):
        resp = client.get("/clients", headers=_headers(tenant_id))
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Resource not found", "code": "E_NOT_FOUND"}


def test_clients_created_through_the_api_stay_in_their_tenant(firms):
    acme_id, globex_id = firms
    resp = client.post(
        "/clients",
        json={"full_name": "Ada Lovelace", "email": "ada@example.com", "tags": ["VIP", "vip "]},
        headers=_headers(acme_id),
    )
    assert resp.status_code == 201
    body = resp.json()
    assert body["tenant_id"] == acme_id
    assert body["display_name"] == "Ada Lovelace"
    assert body["tags"] == ["vip"]

    same_name = client.post("/clients", json={"full_name": "Ada Lovelace"}, headers=_headers(globex_id))
    assert same_name.status_code == 201

    acme_list = client.get("/clients", headers=_headers(acme_id)).json()
    globex_list = client.get("/clients", headers=_headers(globex_id)).json()
    assert [row["id"] for row in acme_list["data"]] == [body["id"]]
    assert [row["id"] for row in globex_list["data"]] == [same_name.json()["id"]]
    assert acme_list["meta"]["total"] == globex_list["meta"]["total"] == 1


def test_cross_tenant_lookup_looks_like_a_missing_row(firms):
    acme_id, globex_id = firms
    created = client.post("/clients", json={"full_name": "Secret"}, headers=_headers(acme_id)).json()

    foreign = client.get(f"/clients/{created['id']}", headers=_headers(globex_id))
    missing = client.get("/clients/999999", headers=_headers(globex_id))
    assert foreign.status_code == missing.status_code == 404
    assert foreign.json() == missing.json()

    patched = client.patch(f"/clients/{created['id']}", json={"notes": "x"}, headers=_headers(globex_id))
    deleted = client.delete(f"/clients/{created['id']}", headers=_headers(globex_id))
    assert patched.status_code == deleted.status_code == 404

    own = client.get(f"/clients/{created['id']}", headers=_headers(acme_id))
    assert own.status_code == 200
    assert own.json()["notes"] is None


def test_subdomain_selects_the_tenant(firms, monkeypatch):
    acme_id, _ = firms
    monkeypatch.setattr(settings, "TENANT_SUBDOMAIN_BASE_DOMAIN", "casebook.io")
    resp = client.post("http://acme.casebook.io/clients", json={"full_name": "Via subdomain"})
    assert resp.status_code == 201
    assert resp.json()["tenant_id"] == acme_id

    unknown = client.get("http://nobody.casebook.io/clients")
    assert unknown.status_code == 404


def test_header_wins_over_subdomain(firms, monkeypatch):
    acme_id, globex_id = firms
    monkeypatch.setattr(settings, "TENANT_SUBDOMAIN_BASE_DOMAIN", "casebook.io")
    resp = client.post(
        "http://acme.casebook.io/clients",
        json={"full_name": "Header wins"},
        headers=_headers(globex_id),
    )
    assert resp.json()["tenant_id"] == globex_id


def test_listing_meta_counts_distinct_clients(firms, SessionLocal):
    acme_id, _ = firms
    with SessionLocal() as db:
        from casebook.crud.tenants import get_tenant_by_id

        acme = get_tenant_by_id(db, acme_id)
        busy = make_client(db, tenant=acme, full_name="Busy")
        make_client(db, tenant=acme, full_name="Idle")
        make_client(db, tenant=acme, full_name="Gone", is_active=False)
        for _ in range(3):
            make_case(db, tenant=acme, client=busy)
        busy_id = busy.id

    resp = client.get(
        "/clients",
        params={"with_cases_count": True, "is_active": True, "per_page": 1},
        headers=_headers(acme_id),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["meta"] == {"total": 2, "per_page": 1, "current_page": 1, "last_page": 2}
    assert body["data"][0]["id"] == busy_id
    assert body["data"][0]["cases_count"] == 3


def test_unknown_sort_is_a_bad_request(firms):
    acme_id, _ = firms
    resp = client.get("/clients", params={"sort": "random"}, headers=_headers(acme_id))
    assert resp.status_code == 400


def test_case_creation_rejects_foreign_client(firms):
    acme_id, globex_id = firms
    foreign = client.post("/clients", json={"full_name": "Other firm"}, headers=_headers(globex_id)).json()
    resp = client.post(
        "/cases",
        json={"client_id": foreign["id"], "title": "Borrowed client"},
        headers=_headers(acme_id),
    )
    assert resp.status_code == 404


def test_deadline_flow(firms, SessionLocal):
    acme_id, globex_id = firms
    owner = client.post("/clients", json={"full_name": "Ada"}, headers=_headers(acme_id)).json()
    case = client.post(
        "/cases",
        json={"client_id": owner["id"], "title": "Contract dispute", "priority": "urgent"},
        headers=_headers(acme_id),
    )
    assert case.status_code == 201
    deadline = client.post(
        "/deadlines",
        json={
            "case_id": case.json()["id"],
            "title": "File reply",
            "deadline_date": (utcnow() + timedelta(days=2)).isoformat(),
            "is_fatal": True,
        },
        headers=_headers(acme_id),
    )
    assert deadline.status_code == 201

    upcoming = client.get("/deadlines/upcoming", params={"fatal_only": True}, headers=_headers(acme_id))
    assert upcoming.status_code == 200
    assert [item["title"] for item in upcoming.json()] == ["File reply"]

    listed = client.get("/deadlines", params={"is_fatal": True}, headers=_headers(acme_id)).json()
    assert listed["meta"]["total"] == 1

    deadline_url = f"/deadlines/{deadline.json()['id']}"
    fetched = client.get(deadline_url, headers=_headers(acme_id))
    assert fetched.status_code == 200
    assert fetched.json()["title"] == "File reply"
    assert client.get(deadline_url, headers=_headers(globex_id)).status_code == 404
    assert client.patch(deadline_url, json={"title": "Taken"}, headers=_headers(globex_id)).status_code == 404

    patched = client.patch(deadline_url, json={"title": "File amended reply", "is_fatal": False}, headers=_headers(acme_id))
    assert patched.status_code == 200
    assert patched.json()["title"] == "File amended reply"
    assert patched.json()["is_fatal"] is False
    upcoming = client.get("/deadlines/upcoming", params={"fatal_only": True}, headers=_headers(acme_id))
    assert upcoming.json() == []
    assert client.patch(deadline_url, json={"status": "completed"}, headers=_headers(acme_id)).status_code == 400

    done = client.post(f"/deadlines/{deadline.json()['id']}/complete", headers=_headers(acme_id))
    assert done.status_code == 200
    assert done.json()["status"] == "completed"
    again = client.post(f"/deadlines/{deadline.json()['id']}/complete", headers=_headers(acme_id))
    assert again.status_code == 409


def test_cases_listing_with_open_deadline_counts(firms, SessionLocal):
    acme_id, _ = firms
    with SessionLocal() as db:
        from casebook.crud.tenants import get_tenant_by_id

        acme = get_tenant_by_id(db, acme_id)
        owner = make_client(db, tenant=acme)
        case = make_case(db, tenant=acme, client=owner)
        make_deadline(db, tenant=acme, case=case)
        make_deadline(db, tenant=acme, case=case, completed_at=utcnow(), status="completed")

    body = client.get("/cases", params={"with_deadlines_count": True}, headers=_headers(acme_id)).json()
    assert body["meta"]["total"] == 1
    assert body["data"][0]["open_deadlines_count"] == 1


def test_admin_registry_is_served_without_tenant(SessionLocal):
    created = client.post("/admin/tenants", json={"name": "Initech", "subdomain": "initech"})
    assert created.status_code == 201
    tenant_id = created.json()["id"]

    assert client.post("/admin/tenants", json={"name": "Dup", "subdomain": "initech"}).status_code == 409
    assert [t["id"] for t in client.get("/admin/tenants").json()] == [tenant_id]

    updated = client.patch(f"/admin/tenants/{tenant_id}", json={"is_active": False})
    assert updated.json()["is_active"] is False
    assert client.get("/clients", headers=_headers(tenant_id)).status_code == 404


def _membership_app(**middleware_kwargs):
    boundary_app = FastAPI()

    @boundary_app.get("/whoami")
    def whoami():
        membership = get_current_membership()
        return {
            "tenant_id": get_current_tenant_id(),
            "user_id": get_current_user_id(),
            "tenant_name": get_current_tenant().name,
            "role": membership.role if membership is not None else None,
            "member_of": membership.tenant.name if membership is not None else None,
        }

    def resolve_user(request):
        value = request.headers.get("X-User-ID")
        return int(value) if value else None

    boundary_app.add_middleware(TenantContextMiddleware, user_resolver=resolve_user, **middleware_kwargs)
    return TestClient(boundary_app)


def test_membership_is_required_when_a_user_is_known(SessionLocal, monkeypatch):
    with SessionLocal() as db:
        tenant = make_tenant(db, name="Acme")
        other = make_tenant(db, name="Globex")
        member = make_user(db)
        make_membership(db, tenant=tenant, user=member)
        tenant_id, other_id, member_id = tenant.id, other.id, member.id

    whoami_client = _membership_app()
    ok = whoami_client.get("/whoami", headers={"X-Tenant-ID": tenant_id, "X-User-ID": str(member_id)})
    assert ok.json() == {
        "tenant_id": tenant_id,
        "user_id": member_id,
        "tenant_name": "Acme",
        "role": "lawyer",
        "member_of": "Acme",
    }

    strict = whoami_client.get("/whoami", headers={"X-Tenant-ID": other_id, "X-User-ID": str(member_id)})
    assert strict.status_code == 404

    monkeypatch.setattr(settings, "TENANT_STRICT_404", False)
    lenient = whoami_client.get("/whoami", headers={"X-Tenant-ID": other_id, "X-User-ID": str(member_id)})
    assert lenient.status_code == 403
    assert lenient.json()["code"] == "E_TENANT_FORBIDDEN"


def test_context_never_leaks_between_requests(firms):
    acme_id, globex_id = firms
    whoami_client = _membership_app(exempt_paths=[])
    for _ in range(3):
        assert whoami_client.get("/whoami", headers=_headers(acme_id)).json()["tenant_id"] == acme_id
        assert whoami_client.get("/whoami", headers=_headers(globex_id)).json()["tenant_id"] == globex_id


@pytest.mark.parametrize(
    "host,expected",
    [
        ("acme.casebook.io", "acme"),
        ("ACME.casebook.io:8443", "acme"),
        ("casebook.io", None),
        ("a.b.casebook.io", None),
        ("acme.elsewhere.io", None),
        (None, None),
    ],
)
def test_extract_subdomain(host, expected):
    assert extract_subdomain(host, "casebook.io") == expected

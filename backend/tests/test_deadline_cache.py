import os
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SKIP_MIGRATIONS", "1")

from casebook.core.cache import InMemoryCache, reset_cache_backend, set_cache_backend
from casebook.core.db import Base, TenantSession
from casebook.core.time import utcnow
from casebook.crud.deadlines import complete_deadline, create_deadline, update_deadline
from casebook.services.deadline_cache import (
    fatal_upcoming_key,
    get_deadline_cache_service,
    invalidate_deadline_cache,
    upcoming_key,
)
from casebook.tenancy.context import TenantContext, tenant_scope

from tests.factories import make_case, make_client, make_deadline, make_tenant


@pytest.fixture
def db_session(tmp_path):
    db_url = f"sqlite:///{tmp_path}/deadline_cache.db"
    engine = create_engine(db_url, future=True)
    TestingSessionLocal = sessionmaker(bind=engine, class_=TenantSession, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)
    with TestingSessionLocal() as session:
        yield session
    engine.dispose()


@pytest.fixture
def backend():
    backend = InMemoryCache()
    set_cache_backend(backend)
    yield backend
    reset_cache_backend()


@pytest.fixture
def firm_case(db_session):
    tenant = make_tenant(db_session, name="Acme Legal")
    client = make_client(db_session, tenant=tenant)
    case = make_case(db_session, tenant=tenant, client=client)
    return tenant, case


def test_upcoming_is_cached_until_a_write_invalidates_it(db_session, backend, firm_case):
    tenant, case = firm_case
    make_deadline(db_session, tenant=tenant, case=case, title="Reply", days=2)
    service = get_deadline_cache_service()

    with tenant_scope(TenantContext(tenant_id=tenant.id)):
        first = service.upcoming(db_session, 7)
        assert [item["title"] for item in first] == ["Reply"]
        assert upcoming_key(tenant.id, 7) in backend.keys()

        # Written behind the service's back: still served from cache.
        make_deadline(db_session, tenant=tenant, case=case, title="Appeal", days=1)
        assert [item["title"] for item in service.upcoming(db_session, 7)] == ["Reply"]

        create_deadline(
            db_session,
            case_id=case.id,
            title="Hearing",
            deadline_date=utcnow() + timedelta(days=5),
        )
        assert upcoming_key(tenant.id, 7) not in backend.keys()
        titles = [item["title"] for item in service.upcoming(db_session, 7)]
    assert titles == ["Appeal", "Reply", "Hearing"]


def test_fatal_only_uses_its_own_key(db_session, backend, firm_case):
    tenant, case = firm_case
    make_deadline(db_session, tenant=tenant, case=case, title="Fatal", days=2, is_fatal=True)
    make_deadline(db_session, tenant=tenant, case=case, title="Routine", days=2)
    service = get_deadline_cache_service()

    with tenant_scope(TenantContext(tenant_id=tenant.id)):
        fatal = service.upcoming(db_session, 7, fatal_only=True)
        everything = service.upcoming(db_session, 7)

    assert [item["title"] for item in fatal] == ["Fatal"]
    assert len(everything) == 2
    assert fatal_upcoming_key(tenant.id, 7) in backend.keys()
    assert upcoming_key(tenant.id, 7) in backend.keys()


def test_tenants_never_share_cached_deadlines(db_session, backend, firm_case):
    acme, acme_case = firm_case
    globex = make_tenant(db_session, name="Globex")
    globex_case = make_case(db_session, tenant=globex, client=make_client(db_session, tenant=globex))
    make_deadline(db_session, tenant=acme, case=acme_case, title="Acme filing")
    make_deadline(db_session, tenant=globex, case=globex_case, title="Globex filing")
    service = get_deadline_cache_service()

    with tenant_scope(TenantContext(tenant_id=acme.id)):
        acme_items = service.upcoming(db_session)
    with tenant_scope(TenantContext(tenant_id=globex.id)):
        globex_items = service.upcoming(db_session)

    assert [item["title"] for item in acme_items] == ["Acme filing"]
    assert [item["title"] for item in globex_items] == ["Globex filing"]

    assert invalidate_deadline_cache(acme.id) == 1
    assert upcoming_key(acme.id, 7) not in backend.keys()
    assert upcoming_key(globex.id, 7) in backend.keys()


def test_unexpected_payload_is_discarded(db_session, backend, firm_case):
    tenant, _ = firm_case
    backend.set(upcoming_key(tenant.id, 7), '{"not": "a list"}')
    service = get_deadline_cache_service()

    assert service.get_cached_upcoming(tenant.id, 7) is None
    assert upcoming_key(tenant.id, 7) not in backend.keys()


def test_complete_deadline_records_actor_and_invalidates(db_session, backend, firm_case):
    tenant, case = firm_case
    deadline = make_deadline(db_session, tenant=tenant, case=case, title="Reply")
    service = get_deadline_cache_service()

    with tenant_scope(TenantContext(tenant_id=tenant.id, user_id=42)):
        assert len(service.upcoming(db_session, 7)) == 1
        done = complete_deadline(db_session, deadline.id, completion_notes="Filed")
        assert done.status == "completed"
        assert done.completed_by == 42
        assert done.completed_at is not None
        assert service.upcoming(db_session, 7) == []
        with pytest.raises(ValueError):
            complete_deadline(db_session, deadline.id)


def test_update_deadline_invalidates_and_guards_fields(db_session, backend, firm_case):
    tenant, case = firm_case
    deadline = make_deadline(db_session, tenant=tenant, case=case, title="Reply", days=2)
    service = get_deadline_cache_service()

    with tenant_scope(TenantContext(tenant_id=tenant.id)):
        assert [item["title"] for item in service.upcoming(db_session, 7)] == ["Reply"]
        updated = update_deadline(db_session, deadline.id, title="Amended reply", status="cancelled")
        assert updated.title == "Amended reply"
        assert updated.status == "cancelled"
        assert upcoming_key(tenant.id, 7) not in backend.keys()
        assert service.upcoming(db_session, 7) == []

        with pytest.raises(ValueError):
            update_deadline(db_session, deadline.id, tenant_id="elsewhere")
        with pytest.raises(ValueError):
            update_deadline(db_session, deadline.id, status="someday")
        with pytest.raises(ValueError):
            update_deadline(db_session, deadline.id, status="completed")


def test_cache_outage_falls_back_to_the_database(db_session, firm_case):
    class DownBackend(InMemoryCache):
        def get(self, key):
            raise ConnectionError("down")

        def set(self, key, value, ttl=None):
            raise ConnectionError("down")

    tenant, case = firm_case
    make_deadline(db_session, tenant=tenant, case=case, title="Reply")
    set_cache_backend(DownBackend())
    try:
        with tenant_scope(TenantContext(tenant_id=tenant.id)):
            items = get_deadline_cache_service().upcoming(db_session, 7)
    finally:
        reset_cache_backend()
    assert [item["title"] for item in items] == ["Reply"]

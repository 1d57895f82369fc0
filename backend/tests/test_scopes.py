import os
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SKIP_MIGRATIONS", "1")

from casebook.core.db import Base, TenantSession
from casebook.core.time import utcnow
from casebook.crud.clients import client_scopes_for
from casebook.models.cases import Case
from casebook.models.clients import Client
from casebook.models.deadlines import Deadline
from casebook.scopes import FilterScope, compose, identity, named, scope_names
from casebook.scopes import cases as case_scopes
from casebook.scopes import clients as client_scopes
from casebook.scopes import deadlines as deadline_scopes
from casebook.tenancy.context import TenantContext, tenant_scope
from casebook.tenancy.scoping import scoped_query

from tests.factories import make_case, make_client, make_deadline, make_tenant


@pytest.fixture
def db_session(tmp_path):
    db_url = f"sqlite:///{tmp_path}/scopes.db"
    engine = create_engine(db_url, future=True)
    TestingSessionLocal = sessionmaker(bind=engine, class_=TenantSession, autoflush=False, autocommit=False, future=True)
    Base.metadata.create_all(bind=engine)
    with TestingSessionLocal() as session:
        yield session
    engine.dispose()


@pytest.fixture
def firm(db_session):
    return make_tenant(db_session, name="Acme Legal")


def _names(rows):
    return sorted(row.display_name for row in rows)


def _clients(db, *scopes):
    return compose(*scopes)(scoped_query(db, Client)).all()


def test_compose_applies_left_to_right_and_names_itself():
    calls = []

    @named("first")
    def first(query):
        calls.append("first")
        return query

    second = FilterScope("second", lambda query: calls.append("second") or query)
    combined = compose(first, second)

    assert combined("query") == "query"
    assert calls == ["first", "second"]
    assert combined.name == "first+second"
    assert compose().name == "identity"
    assert identity()("query") == "query"
    assert scope_names([first, second]) == ["first", "second"]


def test_client_search_matches_names_email_and_document(db_session, firm):
    make_client(db_session, tenant=firm, full_name="Ada Lovelace", email="ada@example.com")
    make_client(db_session, tenant=firm, full_name="Grace Hopper", document_number="12345678900")
    make_client(
        db_session,
        tenant=firm,
        full_name=None,
        client_type="company",
        company_name="Analytical Engines Ltd",
    )

    with tenant_scope(TenantContext(tenant_id=firm.id)):
        assert _names(_clients(db_session, client_scopes.search("lovelace"))) == ["Ada Lovelace"]
        assert _names(_clients(db_session, client_scopes.search("ENGINES"))) == ["Analytical Engines Ltd"]
        assert _names(_clients(db_session, client_scopes.search("123.456.789-00"))) == ["Grace Hopper"]
        assert len(_clients(db_session, client_scopes.search("   "))) == 3


def test_client_type_activity_address_and_tags(db_session, firm):
    make_client(
        db_session,
        tenant=firm,
        full_name="Ada",
        address={"city": "London", "state": "LDN"},
        tags=["vip", "tech"],
    )
    make_client(db_session, tenant=firm, full_name="Grace", is_active=False, tags=["navy"])
    make_client(db_session, tenant=firm, full_name=None, client_type="company", company_name="Engines")

    with tenant_scope(TenantContext(tenant_id=firm.id)):
        assert _names(_clients(db_session, client_scopes.of_type("company"))) == ["Engines"]
        assert _names(_clients(db_session, client_scopes.active())) == ["Ada", "Engines"]
        assert _names(_clients(db_session, client_scopes.inactive())) == ["Grace"]
        assert _names(_clients(db_session, client_scopes.by_state("LDN"))) == ["Ada"]
        assert _names(_clients(db_session, client_scopes.by_city("London"))) == ["Ada"]
        assert _names(_clients(db_session, client_scopes.has_tag("vip"))) == ["Ada"]
        assert _names(_clients(db_session, client_scopes.has_tag("navy"), client_scopes.active())) == []


def test_client_case_scopes(db_session, firm):
    with_open = make_client(db_session, tenant=firm, full_name="Open")
    with_closed = make_client(db_session, tenant=firm, full_name="Closed")
    make_client(db_session, tenant=firm, full_name="Empty")
    make_case(db_session, tenant=firm, client=with_open, status="active")
    make_case(db_session, tenant=firm, client=with_closed, status="closed")

    with tenant_scope(TenantContext(tenant_id=firm.id)):
        assert _names(_clients(db_session, client_scopes.with_active_cases())) == ["Open"]
        assert _names(_clients(db_session, client_scopes.without_cases())) == ["Empty"]
        rows = compose(client_scopes.with_cases_count())(scoped_query(db_session, Client)).all()
    assert sorted((client.display_name, count) for client, count in rows) == [
        ("Closed", 1),
        ("Empty", 0),
        ("Open", 1),
    ]


def test_alphabetical_uses_display_name(db_session, firm):
    make_client(db_session, tenant=firm, full_name="Zed")
    make_client(db_session, tenant=firm, full_name=None, client_type="company", company_name="Acme Co")
    make_client(db_session, tenant=firm, full_name="Mia")

    with tenant_scope(TenantContext(tenant_id=firm.id)):
        rows = _clients(db_session, client_scopes.alphabetical())
    assert [row.display_name for row in rows] == ["Acme Co", "Mia", "Zed"]


def test_client_scopes_for_rejects_unknown_sort():
    with pytest.raises(ValueError):
        client_scopes_for(sort="random")
    assert [scope.name for scope in client_scopes_for(search="x", is_active=False)] == [
        "clients.search",
        "clients.inactive",
    ]


def test_case_scopes(db_session, firm):
    client = make_client(db_session, tenant=firm)
    urgent = make_case(db_session, tenant=firm, client=client, title="Urgent", priority="urgent")
    overdue = make_case(db_session, tenant=firm, client=client, title="Overdue", priority="low")
    make_case(db_session, tenant=firm, client=client, title="Closed", status="closed", priority="high")
    make_deadline(db_session, tenant=firm, case=overdue, days=-2)
    make_deadline(db_session, tenant=firm, case=urgent, days=3)

    with tenant_scope(TenantContext(tenant_id=firm.id)):
        def titles(*scopes):
            return sorted(case.title for case in compose(*scopes)(scoped_query(db_session, Case)).all())

        assert titles(case_scopes.by_status("closed")) == ["Closed"]
        assert titles(case_scopes.by_status(["active", "closed"])) == ["Closed", "Overdue", "Urgent"]
        assert titles(case_scopes.active()) == ["Overdue", "Urgent"]
        assert titles(case_scopes.urgent()) == ["Urgent"]
        assert titles(case_scopes.search("overd")) == ["Overdue"]
        assert titles(case_scopes.requires_attention()) == ["Overdue", "Urgent"]
        assert titles(case_scopes.with_upcoming_deadlines(7)) == ["Overdue", "Urgent"]
        assert titles(case_scopes.unassigned()) == ["Closed", "Overdue", "Urgent"]

        ordered = compose(case_scopes.by_priority_order())(scoped_query(db_session, Case)).all()
        assert [case.title for case in ordered] == ["Urgent", "Closed", "Overdue"]

        counted = compose(case_scopes.with_deadlines_count())(scoped_query(db_session, Case)).all()
        assert {case.title: count for case, count in counted} == {"Urgent": 1, "Overdue": 1, "Closed": 0}


def test_deadline_scopes(db_session, firm):
    client = make_client(db_session, tenant=firm)
    case = make_case(db_session, tenant=firm, client=client)
    make_deadline(db_session, tenant=firm, case=case, title="Past", days=-1)
    make_deadline(db_session, tenant=firm, case=case, title="Soon", days=2, is_fatal=True)
    make_deadline(db_session, tenant=firm, case=case, title="Later", days=30)
    make_deadline(db_session, tenant=firm, case=case, title="Done", days=1, status="completed")

    with tenant_scope(TenantContext(tenant_id=firm.id)):
        def titles(*scopes):
            return [d.title for d in compose(*scopes)(scoped_query(db_session, Deadline)).all()]

        assert titles(deadline_scopes.overdue()) == ["Past"]
        assert titles(deadline_scopes.upcoming(7)) == ["Soon"]
        assert titles(deadline_scopes.fatal()) == ["Soon"]
        assert titles(deadline_scopes.completed()) == ["Done"]
        assert titles(deadline_scopes.pending(), deadline_scopes.soonest()) == ["Past", "Soon", "Later"]
        assert titles(deadline_scopes.non_fatal(), deadline_scopes.by_status("pending"), deadline_scopes.soonest()) == [
            "Past",
            "Later",
        ]
        now = utcnow()
        window = deadline_scopes.due_between(now, now + timedelta(days=3))
        assert sorted(titles(window)) == ["Done", "Soon"]

from datetime import datetime

from sqlalchemy import String, case as sql_case, func, or_

from casebook.models.cases import Case
from casebook.models.clients import Client
from casebook.models.enums import CaseStatusEnum, ClientTypeEnum
from casebook.scopes import FilterScope, named

ACTIVE_CASE_STATUSES = (CaseStatusEnum.ACTIVE.value, CaseStatusEnum.SUSPENDED.value)


def search(term: str | None) -> FilterScope:
    @named("clients.search")
    def _apply(query):
        if not term or not term.strip():
            return query
        pattern = f"%{term.strip()}%"
        conditions = [
            Client.full_name.ilike(pattern),
            Client.company_name.ilike(pattern),
            Client.email.ilike(pattern),
        ]
        digits = "".join(ch for ch in term if ch.isdigit())
        if digits:
            conditions.append(Client.document_number == digits)
        return query.filter(or_(*conditions))

    return _apply


def of_type(client_type: ClientTypeEnum | str) -> FilterScope:
    value = ClientTypeEnum(client_type).value
    return FilterScope("clients.of_type", lambda query: query.filter(Client.client_type == value))


def active() -> FilterScope:
    return FilterScope("clients.active", lambda query: query.filter(Client.is_active.is_(True)))


def inactive() -> FilterScope:
    return FilterScope("clients.inactive", lambda query: query.filter(Client.is_active.is_(False)))


def by_state(state: str) -> FilterScope:
    return FilterScope(
        "clients.by_state",
        lambda query: query.filter(Client.address["state"].as_string() == state),
    )


def by_city(city: str) -> FilterScope:
    return FilterScope(
        "clients.by_city",
        lambda query: query.filter(Client.address["city"].as_string() == city),
    )


def has_tag(tag: str) -> FilterScope:
    # JSON arrays are stored serialized; match the quoted element.
    pattern = f'%"{tag}"%'
    return FilterScope(
        "clients.has_tag",
        lambda query: query.filter(Client.tags.cast(String).like(pattern)),
    )


def with_active_cases() -> FilterScope:
    return FilterScope(
        "clients.with_active_cases",
        lambda query: query.filter(Client.cases.any(Case.status.in_(ACTIVE_CASE_STATUSES))),
    )


def without_cases() -> FilterScope:
    return FilterScope("clients.without_cases", lambda query: query.filter(~Client.cases.any()))


def with_cases_count() -> FilterScope:
    """
    Adds a `cases_count` column through an outer join and GROUP BY.

    Rows come back as (Client, cases_count) tuples.
    """

    @named("clients.with_cases_count")
    def _apply(query):
        return (
            query.outerjoin(Client.cases)
            .group_by(Client.id)
            .add_columns(func.count(Case.id).label("cases_count"))
        )

    return _apply


def created_between(start: datetime, end: datetime) -> FilterScope:
    return FilterScope(
        "clients.created_between",
        lambda query: query.filter(Client.created_at.between(start, end)),
    )


def newest() -> FilterScope:
    return FilterScope("clients.newest", lambda query: query.order_by(Client.created_at.desc()))


def alphabetical() -> FilterScope:
    display = sql_case(
        (Client.client_type == ClientTypeEnum.INDIVIDUAL.value, func.coalesce(Client.full_name, "")),
        else_=func.coalesce(Client.company_name, ""),
    )
    return FilterScope("clients.alphabetical", lambda query: query.order_by(display.asc()))

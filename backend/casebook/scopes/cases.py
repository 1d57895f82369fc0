from datetime import timedelta

from sqlalchemy import and_, case as sql_case, func, or_

from casebook.core.time import utcnow
from casebook.models.cases import Case
from casebook.models.deadlines import Deadline
from casebook.models.enums import CasePriorityEnum, CaseStatusEnum, CaseTypeEnum, DeadlineStatusEnum
from casebook.scopes import FilterScope, named

_OPEN_DEADLINE = Deadline.completed_at.is_(None)
_PRIORITY_RANK = {
    CasePriorityEnum.URGENT.value: 1,
    CasePriorityEnum.HIGH.value: 2,
    CasePriorityEnum.MEDIUM.value: 3,
    CasePriorityEnum.LOW.value: 4,
}


def search(term: str | None) -> FilterScope:
    @named("cases.search")
    def _apply(query):
        if not term or not term.strip():
            return query
        pattern = f"%{term.strip()}%"
        return query.filter(
            or_(
                Case.case_number.ilike(pattern),
                Case.title.ilike(pattern),
                Case.description.ilike(pattern),
            )
        )

    return _apply


def by_status(status: str | list[str]) -> FilterScope:
    values = [status] if isinstance(status, str) else list(status)
    values = [CaseStatusEnum(value).value for value in values]
    return FilterScope("cases.by_status", lambda query: query.filter(Case.status.in_(values)))


def active() -> FilterScope:
    statuses = (CaseStatusEnum.ACTIVE.value, CaseStatusEnum.SUSPENDED.value)
    return FilterScope("cases.active", lambda query: query.filter(Case.status.in_(statuses)))


def urgent() -> FilterScope:
    return FilterScope(
        "cases.urgent",
        lambda query: query.filter(Case.priority == CasePriorityEnum.URGENT.value),
    )


def by_priority(priority: str) -> FilterScope:
    value = CasePriorityEnum(priority).value
    return FilterScope("cases.by_priority", lambda query: query.filter(Case.priority == value))


def by_type(case_type: str) -> FilterScope:
    value = CaseTypeEnum(case_type).value
    return FilterScope("cases.by_type", lambda query: query.filter(Case.case_type == value))


def by_court(court: str) -> FilterScope:
    return FilterScope("cases.by_court", lambda query: query.filter(Case.court == court))


def for_client(client_id: int) -> FilterScope:
    return FilterScope("cases.for_client", lambda query: query.filter(Case.client_id == client_id))


def assigned_to(user_id: int) -> FilterScope:
    return FilterScope(
        "cases.assigned_to",
        lambda query: query.filter(Case.responsible_lawyer_id == user_id),
    )


def unassigned() -> FilterScope:
    return FilterScope(
        "cases.unassigned",
        lambda query: query.filter(Case.responsible_lawyer_id.is_(None)),
    )


def with_upcoming_deadlines(days: int = 7) -> FilterScope:
    @named("cases.with_upcoming_deadlines")
    def _apply(query):
        horizon = utcnow() + timedelta(days=days)
        return query.filter(
            Case.deadlines.any(and_(Deadline.deadline_date <= horizon, _OPEN_DEADLINE))
        )

    return _apply


def requires_attention() -> FilterScope:
    """Urgent cases, or cases with an open deadline already past due."""

    @named("cases.requires_attention")
    def _apply(query):
        now = utcnow()
        return query.filter(
            or_(
                Case.priority == CasePriorityEnum.URGENT.value,
                Case.deadlines.any(
                    and_(
                        Deadline.deadline_date < now,
                        _OPEN_DEADLINE,
                        Deadline.status == DeadlineStatusEnum.PENDING.value,
                    )
                ),
            )
        )

    return _apply


def with_deadlines_count() -> FilterScope:
    """
    Adds an `open_deadlines_count` column (open deadlines only).

    Rows come back as (Case, open_deadlines_count) tuples.
    """

    @named("cases.with_deadlines_count")
    def _apply(query):
        return (
            query.outerjoin(Deadline, and_(Deadline.case_id == Case.id, _OPEN_DEADLINE))
            .group_by(Case.id)
            .add_columns(func.count(Deadline.id).label("open_deadlines_count"))
        )

    return _apply


def by_priority_order() -> FilterScope:
    rank = sql_case(_PRIORITY_RANK, value=Case.priority, else_=5)
    return FilterScope("cases.by_priority_order", lambda query: query.order_by(rank.asc()))


def newest() -> FilterScope:
    return FilterScope("cases.newest", lambda query: query.order_by(Case.created_at.desc()))

from datetime import datetime, timedelta

from sqlalchemy import or_

from casebook.core.time import utcnow
from casebook.models.deadlines import Deadline
from casebook.models.enums import DeadlineStatusEnum
from casebook.scopes import FilterScope, named

_PENDING = DeadlineStatusEnum.PENDING.value


def search(term: str | None) -> FilterScope:
    @named("deadlines.search")
    def _apply(query):
        if not term or not term.strip():
            return query
        pattern = f"%{term.strip()}%"
        return query.filter(or_(Deadline.title.ilike(pattern), Deadline.description.ilike(pattern)))

    return _apply


def by_status(status: str) -> FilterScope:
    value = DeadlineStatusEnum(status).value
    return FilterScope("deadlines.by_status", lambda query: query.filter(Deadline.status == value))


def pending() -> FilterScope:
    return FilterScope("deadlines.pending", lambda query: query.filter(Deadline.status == _PENDING))


def completed() -> FilterScope:
    return FilterScope(
        "deadlines.completed",
        lambda query: query.filter(Deadline.status == DeadlineStatusEnum.COMPLETED.value),
    )


def overdue() -> FilterScope:
    @named("deadlines.overdue")
    def _apply(query):
        return query.filter(Deadline.status == _PENDING, Deadline.deadline_date < utcnow())

    return _apply


def upcoming(days: int = 7) -> FilterScope:
    @named("deadlines.upcoming")
    def _apply(query):
        now = utcnow()
        return query.filter(
            Deadline.status == _PENDING,
            Deadline.deadline_date >= now,
            Deadline.deadline_date <= now + timedelta(days=days),
        )

    return _apply


def fatal() -> FilterScope:
    return FilterScope("deadlines.fatal", lambda query: query.filter(Deadline.is_fatal.is_(True)))


def for_case(case_id: int) -> FilterScope:
    return FilterScope("deadlines.for_case", lambda query: query.filter(Deadline.case_id == case_id))


def assigned_to(user_id: int) -> FilterScope:
    return FilterScope(
        "deadlines.assigned_to",
        lambda query: query.filter(Deadline.responsible_id == user_id),
    )


def due_between(start: datetime, end: datetime) -> FilterScope:
    return FilterScope(
        "deadlines.due_between",
        lambda query: query.filter(Deadline.deadline_date.between(start, end)),
    )


def soonest() -> FilterScope:
    return FilterScope("deadlines.soonest", lambda query: query.order_by(Deadline.deadline_date.asc()))


def non_fatal() -> FilterScope:
    return FilterScope("deadlines.non_fatal", lambda query: query.filter(Deadline.is_fatal.is_(False)))

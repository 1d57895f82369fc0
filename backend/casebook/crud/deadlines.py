from datetime import datetime

from sqlalchemy.orm import Session

from casebook.core.pagination import Page, paginate
from casebook.core.time import utcnow
from casebook.models.cases import Case
from casebook.models.deadlines import Deadline
from casebook.models.enums import DeadlineStatusEnum
from casebook.scopes import deadlines as deadline_scopes
from casebook.services.deadline_cache import invalidate_deadline_cache
from casebook.tenancy.context import get_current_user_id
from casebook.tenancy.scoping import create_scoped, get_tenant_owned_or_404, scoped_query

_UPDATABLE_FIELDS = {
    "title",
    "description",
    "deadline_date",
    "is_fatal",
    "responsible_id",
    "status",
}


def create_deadline(
    db: Session,
    *,
    case_id: int,
    title: str,
    deadline_date: datetime,
    description: str | None = None,
    is_fatal: bool = False,
    responsible_id: int | None = None,
) -> Deadline:
    case = get_tenant_owned_or_404(db, Case, case_id)
    deadline = create_scoped(
        db,
        Deadline,
        case_id=case.id,
        title=title,
        description=description,
        deadline_date=deadline_date,
        is_fatal=is_fatal,
        responsible_id=responsible_id,
        status=DeadlineStatusEnum.PENDING.value,
    )
    db.commit()
    db.refresh(deadline)
    invalidate_deadline_cache(deadline.tenant_id)
    return deadline


def get_deadline(db: Session, deadline_id: int) -> Deadline:
    return get_tenant_owned_or_404(db, Deadline, deadline_id)


def update_deadline(db: Session, deadline_id: int, **changes) -> Deadline:
    unknown = set(changes) - _UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update deadline fields: {', '.join(sorted(unknown))}")
    deadline = get_deadline(db, deadline_id)
    if "status" in changes:
        try:
            status = DeadlineStatusEnum(changes["status"]).value
        except ValueError as exc:
            raise ValueError("Invalid deadline status.") from exc
        # Completion records who and when; it goes through complete_deadline.
        if status == DeadlineStatusEnum.COMPLETED.value and deadline.status != status:
            raise ValueError("Use complete_deadline to complete a deadline.")
        changes["status"] = status
    for field, value in changes.items():
        setattr(deadline, field, value)
    db.commit()
    db.refresh(deadline)
    invalidate_deadline_cache(deadline.tenant_id)
    return deadline


def complete_deadline(
    db: Session,
    deadline_id: int,
    *,
    completed_by: int | None = None,
    completion_notes: str | None = None,
) -> Deadline:
    deadline = get_deadline(db, deadline_id)
    if deadline.status == DeadlineStatusEnum.COMPLETED.value:
        raise ValueError("Deadline already completed.")
    deadline.status = DeadlineStatusEnum.COMPLETED.value
    deadline.completed_at = utcnow()
    deadline.completed_by = completed_by if completed_by is not None else get_current_user_id()
    deadline.completion_notes = completion_notes
    db.commit()
    db.refresh(deadline)
    invalidate_deadline_cache(deadline.tenant_id)
    return deadline


def delete_deadline(db: Session, deadline_id: int) -> None:
    deadline = get_deadline(db, deadline_id)
    tenant_id = deadline.tenant_id
    db.delete(deadline)
    db.commit()
    invalidate_deadline_cache(tenant_id)


def deadline_scopes_for(
    *,
    search: str | None = None,
    case_id: int | None = None,
    status: str | None = None,
    responsible_id: int | None = None,
    is_fatal: bool | None = None,
    overdue: bool = False,
    upcoming_days: int | None = None,
    due_from: datetime | None = None,
    due_to: datetime | None = None,
) -> list:
    scopes = []
    if search:
        scopes.append(deadline_scopes.search(search))
    if case_id is not None:
        scopes.append(deadline_scopes.for_case(case_id))
    if status:
        scopes.append(deadline_scopes.by_status(status))
    if responsible_id is not None:
        scopes.append(deadline_scopes.assigned_to(responsible_id))
    if is_fatal is True:
        scopes.append(deadline_scopes.fatal())
    elif is_fatal is False:
        scopes.append(deadline_scopes.non_fatal())
    if overdue:
        scopes.append(deadline_scopes.overdue())
    if upcoming_days:
        scopes.append(deadline_scopes.upcoming(upcoming_days))
    if due_from and due_to:
        scopes.append(deadline_scopes.due_between(due_from, due_to))
    scopes.append(deadline_scopes.soonest())
    return scopes


def paginate_deadlines(
    db: Session,
    *,
    page: int = 1,
    per_page: int | None = None,
    **filters,
) -> Page:
    return paginate(
        scoped_query(db, Deadline),
        page=page,
        per_page=per_page,
        scopes=deadline_scopes_for(**filters),
    )

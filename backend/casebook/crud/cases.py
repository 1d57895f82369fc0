from datetime import date

from sqlalchemy.orm import Session

from casebook.core.pagination import Page, paginate
from casebook.models.cases import Case
from casebook.models.clients import Client
from casebook.models.enums import CasePriorityEnum, CaseStatusEnum, CaseTypeEnum
from casebook.scopes import cases as case_scopes
from casebook.services.deadline_cache import invalidate_deadline_cache
from casebook.tenancy.scoping import create_scoped, get_tenant_owned_or_404, scoped_query

_UPDATABLE_FIELDS = {
    "case_number",
    "title",
    "description",
    "case_type",
    "status",
    "priority",
    "court",
    "responsible_lawyer_id",
    "filed_at",
}

SORTS = {
    "newest": case_scopes.newest,
    "priority": case_scopes.by_priority_order,
}


def _normalize(enum_cls, value, label: str) -> str:
    try:
        return enum_cls(value).value
    except ValueError as exc:
        raise ValueError(f"Invalid {label}.") from exc


def create_case(
    db: Session,
    *,
    client_id: int,
    title: str,
    case_number: str | None = None,
    description: str | None = None,
    case_type: CaseTypeEnum | str = CaseTypeEnum.CIVIL,
    status: CaseStatusEnum | str = CaseStatusEnum.ACTIVE,
    priority: CasePriorityEnum | str = CasePriorityEnum.MEDIUM,
    court: str | None = None,
    responsible_lawyer_id: int | None = None,
    filed_at: date | None = None,
) -> Case:
    # A client id from another tenant is indistinguishable from a missing one.
    client = get_tenant_owned_or_404(db, Client, client_id)
    case = create_scoped(
        db,
        Case,
        client_id=client.id,
        title=title,
        case_number=case_number,
        description=description,
        case_type=_normalize(CaseTypeEnum, case_type, "case type"),
        status=_normalize(CaseStatusEnum, status, "case status"),
        priority=_normalize(CasePriorityEnum, priority, "case priority"),
        court=court,
        responsible_lawyer_id=responsible_lawyer_id,
        filed_at=filed_at,
    )
    db.commit()
    db.refresh(case)
    invalidate_deadline_cache(case.tenant_id)
    return case


def get_case(db: Session, case_id: int) -> Case:
    return get_tenant_owned_or_404(db, Case, case_id)


def update_case(db: Session, case_id: int, **changes) -> Case:
    unknown = set(changes) - _UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update case fields: {', '.join(sorted(unknown))}")
    case = get_case(db, case_id)
    normalizers = {
        "case_type": (CaseTypeEnum, "case type"),
        "status": (CaseStatusEnum, "case status"),
        "priority": (CasePriorityEnum, "case priority"),
    }
    for field, value in changes.items():
        if field in normalizers and value is not None:
            enum_cls, label = normalizers[field]
            value = _normalize(enum_cls, value, label)
        setattr(case, field, value)
    db.commit()
    db.refresh(case)
    invalidate_deadline_cache(case.tenant_id)
    return case


def delete_case(db: Session, case_id: int) -> None:
    case = get_case(db, case_id)
    tenant_id = case.tenant_id
    db.delete(case)
    db.commit()
    invalidate_deadline_cache(tenant_id)


def case_scopes_for(
    *,
    search: str | None = None,
    status: str | list[str] | None = None,
    active: bool = False,
    priority: str | None = None,
    case_type: str | None = None,
    court: str | None = None,
    client_id: int | None = None,
    responsible_lawyer_id: int | None = None,
    unassigned: bool = False,
    upcoming_deadline_days: int | None = None,
    requires_attention: bool = False,
    with_deadlines_count: bool = False,
    sort: str | None = None,
) -> list:
    scopes = []
    if search:
        scopes.append(case_scopes.search(search))
    if status:
        scopes.append(case_scopes.by_status(status))
    if active:
        scopes.append(case_scopes.active())
    if priority:
        scopes.append(case_scopes.by_priority(priority))
    if case_type:
        scopes.append(case_scopes.by_type(case_type))
    if court:
        scopes.append(case_scopes.by_court(court))
    if client_id is not None:
        scopes.append(case_scopes.for_client(client_id))
    if responsible_lawyer_id is not None:
        scopes.append(case_scopes.assigned_to(responsible_lawyer_id))
    if unassigned:
        scopes.append(case_scopes.unassigned())
    if upcoming_deadline_days:
        scopes.append(case_scopes.with_upcoming_deadlines(upcoming_deadline_days))
    if requires_attention:
        scopes.append(case_scopes.requires_attention())
    if with_deadlines_count:
        scopes.append(case_scopes.with_deadlines_count())
    if sort:
        if sort not in SORTS:
            raise ValueError(f"Unknown sort: {sort}")
        scopes.append(SORTS[sort]())
    return scopes


def paginate_cases(
    db: Session,
    *,
    page: int = 1,
    per_page: int | None = None,
    **filters,
) -> Page:
    return paginate(
        scoped_query(db, Case),
        page=page,
        per_page=per_page,
        scopes=case_scopes_for(**filters),
    )

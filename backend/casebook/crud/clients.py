from datetime import datetime

from sqlalchemy.orm import Session

from casebook.core.pagination import Page, paginate
from casebook.models.clients import Client
from casebook.models.enums import ClientTypeEnum
from casebook.scopes import clients as client_scopes
from casebook.services.deadline_cache import invalidate_deadline_cache
from casebook.tenancy.scoping import create_scoped, get_tenant_owned_or_404, scoped_query

_UPDATABLE_FIELDS = {
    "client_type",
    "full_name",
    "company_name",
    "document_number",
    "email",
    "phone",
    "address",
    "tags",
    "is_active",
    "notes",
}

SORTS = {
    "newest": client_scopes.newest,
    "alphabetical": client_scopes.alphabetical,
}


def _normalize_client_type(client_type: ClientTypeEnum | str) -> str:
    try:
        return ClientTypeEnum(client_type).value
    except ValueError as exc:
        raise ValueError("Invalid client type.") from exc


def _normalize_document(value: str | None) -> str | None:
    if value is None:
        return None
    digits = "".join(ch for ch in value if ch.isdigit())
    return digits or None


def create_client(
    db: Session,
    *,
    client_type: ClientTypeEnum | str = ClientTypeEnum.INDIVIDUAL,
    full_name: str | None = None,
    company_name: str | None = None,
    document_number: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    address: dict | None = None,
    tags: list[str] | None = None,
    is_active: bool = True,
    notes: str | None = None,
    tenant_id: str | None = None,
) -> Client:
    """
    Create a client for the ambient tenant.

    `tenant_id` is the audited admin override and is honored verbatim.
    """
    normalized_type = _normalize_client_type(client_type)
    if normalized_type == ClientTypeEnum.INDIVIDUAL.value and not full_name:
        raise ValueError("Individual clients require full_name.")
    if normalized_type == ClientTypeEnum.COMPANY.value and not company_name:
        raise ValueError("Company clients require company_name.")
    client = create_scoped(
        db,
        Client,
        tenant_id=tenant_id,
        client_type=normalized_type,
        full_name=full_name,
        company_name=company_name,
        document_number=_normalize_document(document_number),
        email=email,
        phone=phone,
        address=address,
        tags=tags or [],
        is_active=is_active,
        notes=notes,
    )
    db.commit()
    db.refresh(client)
    return client


def get_client(db: Session, client_id: int) -> Client:
    return get_tenant_owned_or_404(db, Client, client_id)


def list_clients(db: Session, *, active_only: bool = False) -> list[Client]:
    query = scoped_query(db, Client)
    if active_only:
        query = client_scopes.active()(query)
    return query.order_by(Client.id).all()


def update_client(db: Session, client_id: int, **changes) -> Client:
    unknown = set(changes) - _UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Cannot update client fields: {', '.join(sorted(unknown))}")
    client = get_client(db, client_id)
    for field, value in changes.items():
        if field == "client_type" and value is not None:
            value = _normalize_client_type(value)
        if field == "document_number":
            value = _normalize_document(value)
        setattr(client, field, value)
    db.commit()
    db.refresh(client)
    return client


def delete_client(db: Session, client_id: int) -> None:
    client = get_client(db, client_id)
    tenant_id = client.tenant_id
    db.delete(client)
    db.commit()
    # Cases and their deadlines go with the client.
    invalidate_deadline_cache(tenant_id)


def client_scopes_for(
    *,
    search: str | None = None,
    client_type: str | None = None,
    is_active: bool | None = None,
    state: str | None = None,
    city: str | None = None,
    tag: str | None = None,
    with_active_cases: bool = False,
    without_cases: bool = False,
    with_cases_count: bool = False,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    sort: str | None = None,
) -> list:
    """Translate listing filters into client scopes, one scope per filter."""
    scopes = []
    if search:
        scopes.append(client_scopes.search(search))
    if client_type:
        scopes.append(client_scopes.of_type(client_type))
    if is_active is True:
        scopes.append(client_scopes.active())
    elif is_active is False:
        scopes.append(client_scopes.inactive())
    if state:
        scopes.append(client_scopes.by_state(state))
    if city:
        scopes.append(client_scopes.by_city(city))
    if tag:
        scopes.append(client_scopes.has_tag(tag))
    if with_active_cases:
        scopes.append(client_scopes.with_active_cases())
    if without_cases:
        scopes.append(client_scopes.without_cases())
    if created_from and created_to:
        scopes.append(client_scopes.created_between(created_from, created_to))
    if with_cases_count:
        scopes.append(client_scopes.with_cases_count())
    if sort:
        if sort not in SORTS:
            raise ValueError(f"Unknown sort: {sort}")
        scopes.append(SORTS[sort]())
    return scopes


def paginate_clients(
    db: Session,
    *,
    page: int = 1,
    per_page: int | None = None,
    **filters,
) -> Page:
    return paginate(
        scoped_query(db, Client),
        page=page,
        per_page=per_page,
        scopes=client_scopes_for(**filters),
    )

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from casebook.models.tenants import Tenant
from casebook.tenancy.errors import NotFound


def _normalize_subdomain(subdomain: str | None) -> str | None:
    if subdomain is None:
        return None
    value = subdomain.strip().lower()
    if not value:
        return None
    if not all(ch.isalnum() or ch == "-" for ch in value):
        raise ValueError("Subdomain may only contain letters, digits and hyphens.")
    return value


def create_tenant(
    db: Session,
    name: str,
    subdomain: str | None = None,
    *,
    limits: dict | None = None,
    is_active: bool = True,
) -> Tenant:
    tenant = Tenant(
        name=name.strip(),
        subdomain=_normalize_subdomain(subdomain),
        limits=limits,
        is_active=is_active,
    )
    db.add(tenant)
    try:
        db.commit()
        db.refresh(tenant)
        return tenant
    except IntegrityError as exc:
        db.rollback()
        raise ValueError("Tenant subdomain already exists.") from exc


def get_tenant_by_id(db: Session, tenant_id: str) -> Tenant | None:
    return db.query(Tenant).filter(Tenant.id == str(tenant_id)).first()


def get_tenant_by_subdomain(db: Session, subdomain: str) -> Tenant | None:
    normalized = subdomain.strip().lower()
    if not normalized:
        return None
    return db.query(Tenant).filter(Tenant.subdomain == normalized).first()


def get_tenant_or_404(db: Session, tenant_id: str) -> Tenant:
    tenant = get_tenant_by_id(db, tenant_id)
    if not tenant:
        raise NotFound("Tenant not found")
    return tenant


def list_tenants(db: Session, *, active_only: bool = False) -> list[Tenant]:
    query = db.query(Tenant)
    if active_only:
        query = query.filter(Tenant.is_active.is_(True))
    return query.order_by(Tenant.created_at, Tenant.id).all()


def list_active_tenant_ids(db: Session) -> list[str]:
    rows = db.query(Tenant.id).filter(Tenant.is_active.is_(True)).order_by(Tenant.created_at).all()
    return [row[0] for row in rows]


def update_tenant(
    db: Session,
    tenant_id: str,
    *,
    name: str | None = None,
    subdomain: str | None = None,
    is_active: bool | None = None,
    limits: dict | None = None,
) -> Tenant:
    tenant = get_tenant_or_404(db, tenant_id)
    if name is not None:
        tenant.name = name.strip()
    if subdomain is not None:
        tenant.subdomain = _normalize_subdomain(subdomain)
    if is_active is not None:
        tenant.is_active = is_active
    if limits is not None:
        tenant.limits = limits
    try:
        db.commit()
        db.refresh(tenant)
        return tenant
    except IntegrityError as exc:
        db.rollback()
        raise ValueError("Tenant subdomain already exists.") from exc

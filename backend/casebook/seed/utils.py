from datetime import timedelta

from sqlalchemy.orm import Session

from casebook.core.time import utcnow
from casebook.crud.cases import create_case
from casebook.crud.clients import create_client
from casebook.crud.deadlines import create_deadline
from casebook.crud.tenant_users import add_tenant_user, get_active_membership
from casebook.crud.tenants import create_tenant, get_tenant_by_subdomain
from casebook.crud.users import create_user, get_user_by_email
from casebook.models.clients import Client
from casebook.models.tenant_users import TenantUser
from casebook.models.tenants import Tenant
from casebook.models.users import User
from casebook.tenancy.context import TenantContext, tenant_scope
from casebook.tenancy.scoping import for_tenant


def get_or_create_tenant(db: Session, subdomain: str, name: str) -> Tenant:
    tenant = get_tenant_by_subdomain(db, subdomain)
    if tenant:
        return tenant
    return create_tenant(db, name=name, subdomain=subdomain)


def get_or_create_user(db: Session, email: str, full_name: str) -> User:
    user = get_user_by_email(db, email)
    if user:
        return user
    return create_user(db, full_name=full_name, email=email)


def get_or_create_membership(db: Session, user: User, tenant: Tenant, role: str) -> TenantUser:
    membership = get_active_membership(db, tenant.id, user.id)
    if membership:
        return membership
    return add_tenant_user(db, tenant.id, user.id, role=role)


def get_or_create_client(db: Session, tenant: Tenant, full_name: str, **values) -> Client:
    """
    Seeders run without an ambient tenant, so the lookup goes through the
    explicit single-tenant query and the insert through the tenant override.
    """
    client = for_tenant(db, Client, tenant.id).filter(Client.full_name == full_name).first()
    if client:
        return client
    return create_client(db, full_name=full_name, tenant_id=tenant.id, **values)


def seed_demo_data(db: Session) -> dict[str, Tenant]:
    """
    Two firms with overlapping client names, so isolation is visible at a
    glance. Returns the tenants by subdomain.
    """
    owner = get_or_create_user(db, "owner@casebook.test", "Demo Owner")
    tenants = {
        "acme": get_or_create_tenant(db, "acme", "Acme Legal"),
        "globex": get_or_create_tenant(db, "globex", "Globex Attorneys"),
    }
    for tenant in tenants.values():
        get_or_create_membership(db, owner, tenant, role="owner")
        get_or_create_client(db, tenant, "Ada Lovelace", email="ada@example.com", tags=["vip"])

        with tenant_scope(TenantContext(tenant_id=tenant.id, tenant=tenant, user_id=owner.id)):
            client = create_client(
                db,
                client_type="company",
                company_name=f"{tenant.name} Holdings",
                address={"city": "Springfield", "state": "SP"},
            )
            case = create_case(db, client_id=client.id, title="Contract review", priority="high")
            create_deadline(
                db,
                case_id=case.id,
                title="File response",
                deadline_date=utcnow() + timedelta(days=3),
                is_fatal=True,
                responsible_id=owner.id,
            )
    return tenants

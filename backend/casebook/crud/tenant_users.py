from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from casebook.models.enums import TenantRoleEnum
from casebook.models.tenant_users import TenantUser


def _normalize_role(role: TenantRoleEnum | str) -> str:
    try:
        return TenantRoleEnum(role).value
    except ValueError as exc:
        raise ValueError("Invalid role.") from exc


def add_tenant_user(
    db: Session,
    tenant_id: str,
    user_id: int,
    role: TenantRoleEnum | str = TenantRoleEnum.VIEWER,
) -> TenantUser:
    membership = TenantUser(tenant_id=str(tenant_id), user_id=user_id, role=_normalize_role(role))
    db.add(membership)
    try:
        db.commit()
        db.refresh(membership)
        return membership
    except IntegrityError as exc:
        db.rollback()
        raise ValueError("User already belongs to tenant.") from exc


def get_active_membership(db: Session, tenant_id: str, user_id: int) -> TenantUser | None:
    """
    Memberships are resolved before a tenant scope exists, so the tenant is
    always passed in explicitly.
    """
    return (
        db.query(TenantUser)
        .filter(
            TenantUser.tenant_id == str(tenant_id),
            TenantUser.user_id == user_id,
            TenantUser.is_active.is_(True),
        )
        .first()
    )


def list_user_tenant_ids(db: Session, user_id: int) -> list[str]:
    rows = (
        db.query(TenantUser.tenant_id)
        .filter(TenantUser.user_id == user_id, TenantUser.is_active.is_(True))
        .all()
    )
    return [row[0] for row in rows]

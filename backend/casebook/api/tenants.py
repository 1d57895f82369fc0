from fastapi import APIRouter, Depends, HTTPException, status

from casebook.core.db import get_db
from casebook.crud.tenants import create_tenant, get_tenant_or_404, list_tenants, update_tenant
from casebook.schemas.tenants import TenantCreate, TenantRead, TenantUpdate


# Registry administration. Served outside any tenant scope (see
# TENANT_EXEMPT_PATHS); authentication is left to the deployment.
router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/tenants", response_model=list[TenantRead])
def list_tenants_endpoint(active_only: bool = False, db=Depends(get_db)):
    return list_tenants(db, active_only=active_only)


@router.post("/tenants", response_model=TenantRead, status_code=status.HTTP_201_CREATED)
def create_tenant_endpoint(payload: TenantCreate, db=Depends(get_db)):
    try:
        return create_tenant(db, payload.name, payload.subdomain, limits=payload.limits)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.get("/tenants/{tenant_id}", response_model=TenantRead)
def get_tenant_endpoint(tenant_id: str, db=Depends(get_db)):
    return get_tenant_or_404(db, tenant_id)


@router.patch("/tenants/{tenant_id}", response_model=TenantRead)
def update_tenant_endpoint(tenant_id: str, payload: TenantUpdate, db=Depends(get_db)):
    try:
        return update_tenant(db, tenant_id, **payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

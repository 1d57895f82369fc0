from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from casebook.core.db import get_db
from casebook.crud.clients import (
    create_client,
    delete_client,
    get_client,
    paginate_clients,
    update_client,
)
from casebook.models.enums import ClientTypeEnum
from casebook.schemas.clients import ClientCreate, ClientPage, ClientRead, ClientUpdate
from casebook.tenancy.dependencies import get_tenant_context


router = APIRouter(tags=["clients"])


def _client_row(row) -> ClientRead:
    # Rows are (Client, cases_count) when the count scope is applied.
    if isinstance(row, tuple) or hasattr(row, "_mapping"):
        client, cases_count = row[0], row[1]
        return ClientRead.model_validate(client).model_copy(update={"cases_count": cases_count})
    return ClientRead.model_validate(row)


@router.get("/clients", response_model=ClientPage)
def list_clients_endpoint(
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1),
    search: Optional[str] = None,
    client_type: Optional[ClientTypeEnum] = None,
    is_active: Optional[bool] = None,
    state: Optional[str] = None,
    city: Optional[str] = None,
    tag: Optional[str] = None,
    with_active_cases: bool = False,
    without_cases: bool = False,
    with_cases_count: bool = False,
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
    sort: Optional[str] = None,
    db=Depends(get_db),
    ctx=Depends(get_tenant_context),
):
    try:
        result = paginate_clients(
            db,
            page=page,
            per_page=per_page,
            search=search,
            client_type=client_type.value if client_type else None,
            is_active=is_active,
            state=state,
            city=city,
            tag=tag,
            with_active_cases=with_active_cases,
            without_cases=without_cases,
            with_cases_count=with_cases_count,
            created_from=created_from,
            created_to=created_to,
            sort=sort,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return result.map(_client_row).to_dict()


@router.post("/clients", response_model=ClientRead, status_code=status.HTTP_201_CREATED)
def create_client_endpoint(
    payload: ClientCreate,
    db=Depends(get_db),
    ctx=Depends(get_tenant_context),
):
    values = payload.model_dump()
    values["address"] = payload.address.model_dump() if payload.address else None
    try:
        return create_client(db, **values)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/clients/{client_id}", response_model=ClientRead)
def get_client_endpoint(client_id: int, db=Depends(get_db), ctx=Depends(get_tenant_context)):
    return get_client(db, client_id)


@router.patch("/clients/{client_id}", response_model=ClientRead)
def update_client_endpoint(
    client_id: int,
    payload: ClientUpdate,
    db=Depends(get_db),
    ctx=Depends(get_tenant_context),
):
    changes = payload.model_dump(exclude_unset=True)
    if "address" in changes and payload.address is not None:
        changes["address"] = payload.address.model_dump()
    try:
        return update_client(db, client_id, **changes)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.delete("/clients/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_client_endpoint(client_id: int, db=Depends(get_db), ctx=Depends(get_tenant_context)):
    delete_client(db, client_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

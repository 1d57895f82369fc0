from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from casebook.core.db import get_db
from casebook.crud.deadlines import (
    complete_deadline,
    create_deadline,
    get_deadline,
    paginate_deadlines,
    update_deadline,
)
from casebook.models.enums import DeadlineStatusEnum
from casebook.schemas.deadlines import (
    DeadlineComplete,
    DeadlineCreate,
    DeadlinePage,
    DeadlineRead,
    DeadlineUpdate,
    UpcomingDeadline,
)
from casebook.services.deadline_cache import get_deadline_cache_service
from casebook.tenancy.dependencies import get_tenant_context


router = APIRouter(tags=["deadlines"])


@router.get("/deadlines", response_model=DeadlinePage)
def list_deadlines_endpoint(
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1),
    search: Optional[str] = None,
    case_id: Optional[int] = None,
    status_filter: Optional[DeadlineStatusEnum] = Query(None, alias="status"),
    responsible_id: Optional[int] = None,
    is_fatal: Optional[bool] = None,
    overdue: bool = False,
    upcoming_days: Optional[int] = Query(None, ge=1, le=365),
    due_from: Optional[datetime] = None,
    due_to: Optional[datetime] = None,
    db=Depends(get_db),
    ctx=Depends(get_tenant_context),
):
    result = paginate_deadlines(
        db,
        page=page,
        per_page=per_page,
        search=search,
        case_id=case_id,
        status=status_filter.value if status_filter else None,
        responsible_id=responsible_id,
        is_fatal=is_fatal,
        overdue=overdue,
        upcoming_days=upcoming_days,
        due_from=due_from,
        due_to=due_to,
    )
    return result.map(DeadlineRead.model_validate).to_dict()


@router.get("/deadlines/upcoming", response_model=list[UpcomingDeadline])
def upcoming_deadlines_endpoint(
    days: int = Query(7, ge=1, le=90),
    fatal_only: bool = False,
    db=Depends(get_db),
    ctx=Depends(get_tenant_context),
):
    return get_deadline_cache_service().upcoming(db, days, fatal_only=fatal_only)


@router.post("/deadlines", response_model=DeadlineRead, status_code=status.HTTP_201_CREATED)
def create_deadline_endpoint(
    payload: DeadlineCreate,
    db=Depends(get_db),
    ctx=Depends(get_tenant_context),
):
    return create_deadline(db, **payload.model_dump())


@router.get("/deadlines/{deadline_id}", response_model=DeadlineRead)
def get_deadline_endpoint(deadline_id: int, db=Depends(get_db), ctx=Depends(get_tenant_context)):
    return get_deadline(db, deadline_id)


@router.patch("/deadlines/{deadline_id}", response_model=DeadlineRead)
def update_deadline_endpoint(
    deadline_id: int,
    payload: DeadlineUpdate,
    db=Depends(get_db),
    ctx=Depends(get_tenant_context),
):
    try:
        return update_deadline(db, deadline_id, **payload.model_dump(exclude_unset=True))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.post("/deadlines/{deadline_id}/complete", response_model=DeadlineRead)
def complete_deadline_endpoint(
    deadline_id: int,
    payload: Optional[DeadlineComplete] = None,
    db=Depends(get_db),
    ctx=Depends(get_tenant_context),
):
    payload = payload or DeadlineComplete()
    try:
        return complete_deadline(
            db,
            deadline_id,
            completed_by=payload.completed_by,
            completion_notes=payload.completion_notes,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

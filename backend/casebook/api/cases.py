from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from casebook.core.db import get_db
from casebook.crud.cases import create_case, get_case, paginate_cases
from casebook.models.enums import CasePriorityEnum, CaseStatusEnum, CaseTypeEnum
from casebook.schemas.cases import CaseCreate, CasePage, CaseRead
from casebook.tenancy.dependencies import get_tenant_context


router = APIRouter(tags=["cases"])


def _case_row(row) -> CaseRead:
    if hasattr(row, "_mapping"):
        case, open_deadlines = row[0], row[1]
        return CaseRead.model_validate(case).model_copy(update={"open_deadlines_count": open_deadlines})
    return CaseRead.model_validate(row)


@router.get("/cases", response_model=CasePage)
def list_cases_endpoint(
    page: int = Query(1, ge=1),
    per_page: Optional[int] = Query(None, ge=1),
    search: Optional[str] = None,
    status_filter: Optional[CaseStatusEnum] = Query(None, alias="status"),
    active: bool = False,
    priority: Optional[CasePriorityEnum] = None,
    case_type: Optional[CaseTypeEnum] = None,
    court: Optional[str] = None,
    client_id: Optional[int] = None,
    responsible_lawyer_id: Optional[int] = None,
    unassigned: bool = False,
    upcoming_deadline_days: Optional[int] = Query(None, ge=1, le=365),
    requires_attention: bool = False,
    with_deadlines_count: bool = False,
    sort: Optional[str] = None,
    db=Depends(get_db),
    ctx=Depends(get_tenant_context),
):
    try:
        result = paginate_cases(
            db,
            page=page,
            per_page=per_page,
            search=search,
            status=status_filter.value if status_filter else None,
            active=active,
            priority=priority.value if priority else None,
            case_type=case_type.value if case_type else None,
            court=court,
            client_id=client_id,
            responsible_lawyer_id=responsible_lawyer_id,
            unassigned=unassigned,
            upcoming_deadline_days=upcoming_deadline_days,
            requires_attention=requires_attention,
            with_deadlines_count=with_deadlines_count,
            sort=sort,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return result.map(_case_row).to_dict()


@router.post("/cases", response_model=CaseRead, status_code=status.HTTP_201_CREATED)
def create_case_endpoint(payload: CaseCreate, db=Depends(get_db), ctx=Depends(get_tenant_context)):
    try:
        return create_case(db, **payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/cases/{case_id}", response_model=CaseRead)
def get_case_endpoint(case_id: int, db=Depends(get_db), ctx=Depends(get_tenant_context)):
    return get_case(db, case_id)

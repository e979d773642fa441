# backend/hrdc/apps/help/router.py

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from hrdc.apps.accounts import models as accounts_models
from hrdc.apps.realtime.hub import GroupMembership, get_live_hub
from hrdc.apps.training import services as training_services
from hrdc.database import get_db
from hrdc.security import require_admin, require_roles

from . import schemas, services

router = APIRouter(prefix="/help", tags=["help"])

_require_employee = require_roles(accounts_models.AccountRole.EMPLOYEE)


def _current_employee(db: Session, user: accounts_models.User):
    try:
        return training_services.get_employee_for_user(db, user)
    except training_services.NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


@router.post(
    "/queries",
    response_model=schemas.HelpQueryRead,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a help query",
)
def submit_query(
    payload: schemas.HelpQueryCreate,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(_require_employee),
    hub: Optional[GroupMembership] = Depends(get_live_hub),
):
    employee = _current_employee(db, current_user)
    query = services.submit_query(db, employee=employee, data=payload.model_dump(), publisher=hub)
    return schemas.HelpQueryRead.from_query(query)


@router.get(
    "/queries/mine",
    response_model=List[schemas.HelpQueryRead],
    summary="List the current employee's help queries",
)
def my_queries(
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(_require_employee),
):
    employee = _current_employee(db, current_user)
    rows = services.list_queries(db, employee_id=employee.id)
    return [schemas.HelpQueryRead.from_query(row) for row in rows]


@router.get(
    "/queries",
    response_model=List[schemas.HelpQueryRead],
    summary="List help queries (admin); listed queries are marked as viewed",
)
def list_queries(
    status_filter: str = services.ALL_STATUSES,
    viewed: Optional[bool] = None,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    try:
        rows = services.list_queries(db, status=status_filter, viewed=viewed)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown query status '{status_filter}'.",
        )
    # Serialized before marking, so new queries still read as unviewed.
    result = [schemas.HelpQueryRead.from_query(row) for row in rows]
    services.mark_viewed(db, rows)
    return result


@router.get(
    "/queries/unviewed-count",
    response_model=schemas.UnviewedCount,
    summary="Count help queries no administrator has opened yet",
)
def unviewed_count(
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    return schemas.UnviewedCount(count=services.unviewed_count(db))


@router.post(
    "/queries/{query_id}/status",
    response_model=schemas.HelpQueryRead,
    summary="Change a help query's status",
)
def update_query_status(
    query_id: int,
    payload: schemas.HelpQueryStatusUpdate,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
    hub: Optional[GroupMembership] = Depends(get_live_hub),
):
    try:
        query = services.update_status(db, query_id, payload.status, publisher=hub)
    except services.HelpQueryNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return schemas.HelpQueryRead.from_query(query)

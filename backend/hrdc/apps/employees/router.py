# backend/hrdc/apps/employees/router.py

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session

from hrdc.apps.accounts import models as account_models
from hrdc.apps.accounts import services as account_services
from hrdc.database import get_db
from hrdc.security import require_admin

from . import models, schemas

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/employees", tags=["employees"])

_MAX_PAGE_SIZE = 500


def _get_employee_or_404(db: Session, employee_id: int) -> models.Employee:
    employee = (
        db.query(models.Employee)
        .filter(models.Employee.id == employee_id, models.Employee.is_active.is_(True))
        .first()
    )
    if not employee:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Employee not found.",
        )
    return employee


@router.get(
    "",
    response_model=List[schemas.EmployeeRead],
    summary="List active employees",
)
def list_employees(
    search: Optional[str] = None,
    department: Optional[str] = None,
    limit: int = 200,
    offset: int = 0,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_admin),
):
    limit = min(max(limit, 1), _MAX_PAGE_SIZE)
    offset = max(offset, 0)

    q = db.query(models.Employee).filter(models.Employee.is_active.is_(True))
    if department:
        q = q.filter(models.Employee.department.ilike(f"%{department}%"))
    if search:
        term = f"%{search.strip()}%"
        q = q.filter(
            or_(
                models.Employee.first_name.ilike(term),
                models.Employee.last_name.ilike(term),
                models.Employee.designation.ilike(term),
            )
        )
    return (
        q.order_by(models.Employee.first_name.asc(), models.Employee.last_name.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )


@router.get(
    "/{employee_id}",
    response_model=schemas.EmployeeRead,
    summary="Get a single employee",
)
def get_employee(
    employee_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_admin),
):
    return _get_employee_or_404(db, employee_id)


@router.post(
    "",
    response_model=schemas.EmployeeRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create an employee and their login account",
)
def create_employee(
    payload: schemas.EmployeeCreate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_admin),
):
    if account_services.email_in_use(db, payload.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists.",
        )

    user = account_services.create_user(
        db,
        email=payload.email,
        password=payload.password,
        role=account_models.AccountRole.EMPLOYEE,
        commit=False,
    )
    data = payload.model_dump(exclude={"email", "password"})
    employee = models.Employee(
        user_id=user.id,
        is_active=True,
        created_by_user_id=current_user.id,
        **data,
    )
    db.add(employee)
    db.commit()
    db.refresh(employee)
    logger.info("employee created", extra={"employee_id": employee.id, "by_user_id": current_user.id})
    return employee


@router.put(
    "/{employee_id}",
    response_model=schemas.EmployeeRead,
    summary="Update an employee",
)
def update_employee(
    employee_id: int,
    payload: schemas.EmployeeUpdate,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_admin),
):
    employee = _get_employee_or_404(db, employee_id)
    update_data = payload.model_dump(exclude_unset=True)

    new_email = update_data.pop("email", None)
    if new_email:
        if account_services.email_in_use(db, new_email, exclude_user_id=employee.user_id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="An account with this email already exists.",
            )
        employee.user.email = account_services.normalise_email(new_email)

    for field, value in update_data.items():
        setattr(employee, field, value)

    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee


@router.delete(
    "/{employee_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Soft-delete an employee (deactivates the login as well)",
)
def delete_employee(
    employee_id: int,
    db: Session = Depends(get_db),
    current_user: account_models.User = Depends(require_admin),
):
    employee = _get_employee_or_404(db, employee_id)
    employee.is_active = False
    if employee.user is not None:
        employee.user.is_active = False
    db.add(employee)
    db.commit()
    logger.info("employee deactivated", extra={"employee_id": employee.id, "by_user_id": current_user.id})
    return None

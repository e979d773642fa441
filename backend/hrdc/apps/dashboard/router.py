# backend/hrdc/apps/dashboard/router.py

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from hrdc.apps.accounts import models as accounts_models
from hrdc.apps.training import services as training_services
from hrdc.apps.training.schemas import TrainingProgramRead
from hrdc.database import get_db
from hrdc.security import require_admin, require_roles

from . import schemas, services

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

_require_employee = require_roles(accounts_models.AccountRole.EMPLOYEE)


@router.get(
    "/admin",
    response_model=schemas.AdminDashboard,
    summary="Headline counts for administrators",
)
def admin_dashboard(
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    return schemas.AdminDashboard(**services.admin_summary(db, user=current_user))


@router.get(
    "/employee",
    response_model=schemas.EmployeeDashboard,
    summary="Training overview for the current employee",
)
def employee_dashboard(
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(_require_employee),
):
    try:
        employee = training_services.get_employee_for_user(db, current_user)
    except training_services.NotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    summary = services.employee_summary(db, employee=employee, user=current_user)
    for key in ("upcoming_trainings", "in_progress_trainings", "completed_trainings"):
        summary[key] = [TrainingProgramRead.model_validate(training) for training in summary[key]]
    return schemas.EmployeeDashboard(**summary)

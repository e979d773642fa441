# backend/hrdc/apps/dashboard/services.py

"""
Read-only counters behind the administrator and employee landing pages.

Dates are compared in server-local time, the same clock trainings are
scheduled in.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import and_, exists, or_
from sqlalchemy.orm import Query, Session

from hrdc.apps.accounts.models import User
from hrdc.apps.employees.models import Employee
from hrdc.apps.help import services as help_services
from hrdc.apps.notifications import service as notification_service
from hrdc.apps.training import models as training_models
from hrdc.apps.training import services as training_services

RECENT_LIMIT = 5

_Program = training_models.TrainingProgram
_Registration = training_models.TrainingRegistration


def _live_programs(db: Session) -> Query:
    return db.query(_Program).filter(
        _Program.is_active.is_(True),
        _Program.status != training_models.TrainingStatus.CANCELLED,
    )


def _ongoing_filter(now: datetime):
    today = now.date()
    return and_(
        _Program.start_date <= today,
        or_(
            _Program.end_date > today,
            and_(_Program.end_date == today, _Program.to_time > now.time()),
        ),
    )


def _registrations(db: Session, *, employee_id: Optional[int] = None) -> Query:
    q = (
        db.query(_Registration)
        .join(_Program, _Registration.training_id == _Program.id)
        .filter(_Registration.is_active.is_(True), _Program.is_active.is_(True))
    )
    if employee_id is not None:
        q = q.filter(_Registration.employee_id == employee_id)
    return q


def _awaiting_feedback(db: Session, today: date, *, employee_id: Optional[int] = None) -> int:
    answered = exists().where(training_models.Feedback.registration_id == _Registration.id)
    return (
        _registrations(db, employee_id=employee_id)
        .filter(
            _Registration.status == training_models.RegistrationStatus.APPROVED,
            _Program.end_date < today,
            ~answered,
        )
        .count()
    )


def _certificates(db: Session, *, employee_id: Optional[int] = None) -> int:
    q = (
        db.query(training_models.Certificate)
        .join(_Registration, training_models.Certificate.registration_id == _Registration.id)
        .filter(
            training_models.Certificate.is_active.is_(True),
            training_models.Certificate.is_generated.is_(True),
        )
    )
    if employee_id is not None:
        q = q.filter(_Registration.employee_id == employee_id)
    return q.count()


def admin_summary(db: Session, *, user: User, now: Optional[datetime] = None) -> dict:
    now = now or datetime.now()
    today = now.date()

    total_trainings = db.query(_Program).filter(_Program.is_active.is_(True)).count()
    completed = (
        db.query(_Program)
        .filter(_Program.is_active.is_(True), _Program.status == training_models.TrainingStatus.COMPLETED)
        .count()
    )
    return {
        "total_employees": db.query(Employee).filter(Employee.is_active.is_(True)).count(),
        "active_trainings": _live_programs(db).filter(_ongoing_filter(now)).count(),
        "upcoming_trainings": _live_programs(db).filter(_Program.start_date > today).count(),
        "total_registrations": _registrations(db).count(),
        "pending_registrations": _registrations(db)
        .filter(_Registration.status == training_models.RegistrationStatus.PENDING)
        .count(),
        "certificates_issued": _certificates(db),
        "pending_feedback": _awaiting_feedback(db, today),
        "new_help_queries": help_services.unviewed_count(db),
        "unread_notifications": notification_service.unread_count(db, user_id=user.id, role=user.role),
        "completion_rate": round(completed / total_trainings * 100, 2) if total_trainings else 0.0,
    }


def _programs_for(rows: List[_Registration]) -> List[_Program]:
    return [row.training for row in rows]


def employee_summary(
    db: Session,
    *,
    employee: Employee,
    user: User,
    now: Optional[datetime] = None,
    limit: int = RECENT_LIMIT,
) -> dict:
    now = now or datetime.now()
    today = now.date()

    upcoming = [
        training
        for training in training_services.list_trainings(db, for_employee=employee, upcoming_only=True, today=today)
        if training.start_date > today and training.status != training_models.TrainingStatus.CANCELLED
    ]
    in_progress = (
        _registrations(db, employee_id=employee.id)
        .filter(
            _Registration.status != training_models.RegistrationStatus.REJECTED,
            _Program.start_date <= today,
            _Program.end_date >= today,
        )
        .order_by(_Program.start_date.asc(), _Program.id.asc())
        .limit(limit)
        .all()
    )
    completed = (
        _registrations(db, employee_id=employee.id)
        .filter(
            _Registration.status == training_models.RegistrationStatus.APPROVED,
            _Program.end_date < today,
        )
        .order_by(_Program.start_date.desc(), _Program.id.desc())
        .limit(limit)
        .all()
    )
    return {
        "upcoming_trainings": upcoming[:limit],
        "in_progress_trainings": _programs_for(in_progress),
        "completed_trainings": _programs_for(completed),
        "certificates_count": _certificates(db, employee_id=employee.id),
        "pending_registrations": _registrations(db, employee_id=employee.id)
        .filter(_Registration.status == training_models.RegistrationStatus.PENDING)
        .count(),
        "pending_feedback": _awaiting_feedback(db, today, employee_id=employee.id),
        "unread_notifications": notification_service.unread_count(db, user_id=user.id, role=user.role),
    }

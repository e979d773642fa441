# backend/hrdc/apps/training/services.py

"""
Training workflows: programs, registrations, attendance, marks,
certificates and feedback.

Functions here take an open session plus the live-push publisher and the
email dispatcher explicitly, raise `WorkflowError` subclasses on rule
violations, and commit their own changes. Routers translate the errors
into HTTP responses.
"""

from __future__ import annotations

import logging
import os
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from hrdc.apps.accounts.models import AccountRole, User
from hrdc.apps.employees.models import Employee
from hrdc.apps.notifications import service as notification_service
from hrdc.apps.notifications import templates
from hrdc.apps.notifications.dispatcher import TrainingEmailDispatcher, TriggerType
from hrdc.apps.realtime.hub import GroupMembership

from . import models
from .eligibility import is_eligible

logger = logging.getLogger(__name__)

CERTIFICATE_PATH_TEMPLATE = os.getenv(
    "TRAINING_CERTIFICATE_PATH_TEMPLATE",
    "certificates/training-{training_id}/registration-{registration_id}.pdf",
)


class WorkflowError(Exception):
    """Base class for rule violations surfaced to the caller."""


class NotFoundError(WorkflowError):
    pass


class ConflictError(WorkflowError):
    pass


class RuleViolation(WorkflowError):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _local_now() -> datetime:
    # Training schedules are entered as local wall-clock dates and times.
    return datetime.now()


def _safe_notify(db: Session, publisher: Optional[GroupMembership], **kwargs) -> Optional[int]:
    """Follow-up notifications never undo the workflow change they describe."""
    try:
        return notification_service.notify(db, publisher=publisher, **kwargs)
    except Exception:
        db.rollback()
        logger.exception("follow-up notification failed", extra={"title": kwargs.get("title")})
        return None


def _enqueue(dispatcher: Optional[TrainingEmailDispatcher], training_id: int, trigger: TriggerType) -> None:
    if dispatcher is None:
        logger.info("no email dispatcher configured", extra={"training_id": training_id, "trigger": trigger.value})
        return
    dispatcher.enqueue(training_id, trigger)


# ---------------------------------------------------------------------------
# LOOKUPS
# ---------------------------------------------------------------------------


def get_training(db: Session, training_id: int) -> models.TrainingProgram:
    training = (
        db.query(models.TrainingProgram)
        .filter(
            models.TrainingProgram.id == training_id,
            models.TrainingProgram.is_active.is_(True),
        )
        .first()
    )
    if training is None:
        raise NotFoundError("Training not found.")
    return training


def get_employee_for_user(db: Session, user: User) -> Employee:
    employee = (
        db.query(Employee)
        .filter(Employee.user_id == user.id, Employee.is_active.is_(True))
        .first()
    )
    if employee is None:
        raise NotFoundError("Your employee record could not be found.")
    return employee


def get_registration(db: Session, registration_id: int, *, active_only: bool = True) -> models.TrainingRegistration:
    q = db.query(models.TrainingRegistration).filter(models.TrainingRegistration.id == registration_id)
    if active_only:
        q = q.filter(models.TrainingRegistration.is_active.is_(True))
    registration = q.first()
    if registration is None:
        raise NotFoundError("Registration not found.")
    return registration


def list_trainings(
    db: Session,
    *,
    for_employee: Optional[Employee] = None,
    status: Optional[models.TrainingStatus] = None,
    upcoming_only: bool = False,
    today: Optional[date] = None,
) -> List[models.TrainingProgram]:
    q = db.query(models.TrainingProgram).filter(models.TrainingProgram.is_active.is_(True))
    if status is not None:
        q = q.filter(models.TrainingProgram.status == status)
    if upcoming_only:
        q = q.filter(models.TrainingProgram.end_date >= (today or date.today()))
    trainings = q.order_by(models.TrainingProgram.start_date.asc(), models.TrainingProgram.id.asc()).all()
    if for_employee is not None:
        trainings = [t for t in trainings if is_eligible(t.eligibility_type, for_employee)]
    return trainings


def active_registration_count(db: Session, training_id: int) -> int:
    return (
        db.query(func.count(models.TrainingRegistration.id))
        .filter(
            models.TrainingRegistration.training_id == training_id,
            models.TrainingRegistration.is_active.is_(True),
            models.TrainingRegistration.status != models.RegistrationStatus.REJECTED,
        )
        .scalar()
        or 0
    )


# ---------------------------------------------------------------------------
# PROGRAMS
# ---------------------------------------------------------------------------


def create_training(
    db: Session,
    data: dict,
    *,
    actor: User,
    publisher: Optional[GroupMembership] = None,
    dispatcher: Optional[TrainingEmailDispatcher] = None,
) -> models.TrainingProgram:
    training = models.TrainingProgram(
        **data,
        status=models.TrainingStatus.SCHEDULED,
        is_active=True,
        created_by_user_id=actor.id,
        updated_by_user_id=actor.id,
    )
    if training.valid_till is None:
        training.valid_till = training.end_date
    db.add(training)
    db.commit()
    db.refresh(training)
    logger.info("training created", extra={"training_id": training.id, "by_user_id": actor.id})

    _safe_notify(
        db,
        publisher,
        role=AccountRole.ADMIN,
        title="New Training Created",
        message=f"A new training program '{training.title}' has been added to the system.",
    )
    _safe_notify(
        db,
        publisher,
        role=AccountRole.EMPLOYEE,
        title="New Training Available",
        message=f"A new training program '{training.title}' has been added.",
    )
    _enqueue(dispatcher, training.id, TriggerType.CREATED)
    return training


_REQUIRED_TRAINING_FIELDS = frozenset(
    {
        "title",
        "trainer_name",
        "start_date",
        "end_date",
        "from_time",
        "to_time",
        "capacity",
        "mode",
        "status",
        "is_marks_entry",
    }
)


def update_training(
    db: Session,
    training_id: int,
    changes: dict,
    *,
    actor: User,
    publisher: Optional[GroupMembership] = None,
    dispatcher: Optional[TrainingEmailDispatcher] = None,
) -> models.TrainingProgram:
    training = get_training(db, training_id)
    for field, value in changes.items():
        if value is None and field in _REQUIRED_TRAINING_FIELDS:
            db.rollback()
            raise RuleViolation(f"{field} cannot be cleared.")
        setattr(training, field, value)

    if training.end_date < training.start_date:
        db.rollback()
        raise RuleViolation("End date must not be before start date.")
    if training.valid_till and training.valid_till > training.end_date:
        db.rollback()
        raise RuleViolation("Registration deadline must not be after the end date.")

    training.updated_by_user_id = actor.id
    db.add(training)
    db.commit()
    db.refresh(training)
    logger.info("training updated", extra={"training_id": training.id, "fields": sorted(changes)})

    _safe_notify(
        db,
        publisher,
        role=AccountRole.ADMIN,
        title="Training Updated",
        message=f"The training program '{training.title}' has been updated.",
    )
    _safe_notify(
        db,
        publisher,
        role=AccountRole.EMPLOYEE,
        title="Training Updated",
        message=f"The training program '{training.title}' has been updated.",
    )
    if training.status != models.TrainingStatus.CANCELLED:
        _enqueue(dispatcher, training.id, TriggerType.UPDATED)
    return training


def delete_training(db: Session, training_id: int, *, actor: User) -> None:
    training = get_training(db, training_id)
    training.is_active = False
    training.updated_by_user_id = actor.id
    db.add(training)
    db.commit()
    logger.info("training deactivated", extra={"training_id": training_id, "by_user_id": actor.id})


def announce_training(
    db: Session,
    training_id: int,
    trigger: TriggerType,
    *,
    dispatcher: TrainingEmailDispatcher,
) -> int:
    training = get_training(db, training_id)
    if training.status == models.TrainingStatus.CANCELLED:
        raise RuleViolation("Cancelled trainings cannot be announced.")
    dispatcher.enqueue(training.id, trigger)
    return dispatcher.pending()


# ---------------------------------------------------------------------------
# REGISTRATIONS
# ---------------------------------------------------------------------------


def register_for_training(
    db: Session,
    training_id: int,
    *,
    employee: Employee,
    today: Optional[date] = None,
    publisher: Optional[GroupMembership] = None,
) -> models.TrainingRegistration:
    today = today or date.today()
    training = get_training(db, training_id)

    if not training.registration_open(today):
        raise RuleViolation("Registration for this training has closed.")
    if not is_eligible(training.eligibility_type, employee):
        raise RuleViolation("You are not eligible for this training.")

    existing = (
        db.query(models.TrainingRegistration.id)
        .filter(
            models.TrainingRegistration.employee_id == employee.id,
            models.TrainingRegistration.training_id == training.id,
            models.TrainingRegistration.is_active.is_(True),
        )
        .first()
    )
    if existing is not None:
        raise ConflictError("You are already registered for this training.")

    if active_registration_count(db, training.id) >= training.capacity:
        raise RuleViolation("This training has reached its maximum capacity.")

    registration = models.TrainingRegistration(
        employee_id=employee.id,
        training_id=training.id,
        applied=True,
        status=models.RegistrationStatus.PENDING,
        is_active=True,
    )
    db.add(registration)
    db.commit()
    db.refresh(registration)
    logger.info(
        "training registration created",
        extra={"registration_id": registration.id, "training_id": training.id, "employee_id": employee.id},
    )

    _safe_notify(
        db,
        publisher,
        role=AccountRole.ADMIN,
        title="New Training Registration",
        message=f"Employee {employee.full_name} has registered for training '{training.title}'",
    )
    return registration


def cancel_registration(
    db: Session,
    registration_id: int,
    *,
    employee: Employee,
    today: Optional[date] = None,
) -> models.TrainingRegistration:
    today = today or date.today()
    registration = get_registration(db, registration_id)
    if registration.employee_id != employee.id:
        raise NotFoundError("Registration not found.")
    if registration.training.start_date <= today:
        raise RuleViolation("Cannot cancel registration for a training that has already started.")

    registration.is_active = False
    db.add(registration)
    db.commit()
    db.refresh(registration)
    logger.info("training registration cancelled", extra={"registration_id": registration.id})
    return registration


def list_registrations(
    db: Session,
    *,
    training_id: Optional[int] = None,
    employee_id: Optional[int] = None,
    status: Optional[models.RegistrationStatus] = None,
    include_inactive: bool = False,
) -> List[models.TrainingRegistration]:
    q = db.query(models.TrainingRegistration)
    if not include_inactive:
        q = q.filter(models.TrainingRegistration.is_active.is_(True))
    if training_id is not None:
        q = q.filter(models.TrainingRegistration.training_id == training_id)
    if employee_id is not None:
        q = q.filter(models.TrainingRegistration.employee_id == employee_id)
    if status is not None:
        q = q.filter(models.TrainingRegistration.status == status)
    return q.order_by(models.TrainingRegistration.created_at.desc(), models.TrainingRegistration.id.desc()).all()


def _send_status_email(db: Session, registration: models.TrainingRegistration, status_label: str) -> None:
    employee = registration.employee
    training = registration.training
    recipient = employee.email
    if not recipient:
        return
    notification_service.send_email(
        templates.TEMPLATE_REGISTRATION_STATUS,
        recipient,
        templates.registration_status_subject(status_label, training.title),
        templates.registration_status_body(
            status_label,
            employee=employee,
            training=training,
            remarks=registration.remarks,
        ),
        correlation_id=f"registration:{registration.id}:{status_label.lower()}",
        training_id=training.id,
        context={"registration_id": registration.id, "status": status_label},
        db=db,
    )
    db.commit()


def decide_registration(
    db: Session,
    registration_id: int,
    decision: models.RegistrationStatus,
    *,
    actor: User,
    remarks: Optional[str] = None,
    publisher: Optional[GroupMembership] = None,
    send_email: bool = True,
) -> models.TrainingRegistration:
    if decision == models.RegistrationStatus.PENDING:
        raise RuleViolation("A decision must be Approved or Rejected.")

    registration = get_registration(db, registration_id)
    registration.status = decision
    registration.remarks = remarks if remarks is not None else registration.remarks
    registration.decided_at = _utcnow()
    registration.decided_by_user_id = actor.id
    db.add(registration)
    db.commit()
    db.refresh(registration)

    status_label = decision.value
    logger.info(
        "training registration decided",
        extra={"registration_id": registration.id, "status": status_label, "by_user_id": actor.id},
    )

    _safe_notify(
        db,
        publisher,
        user_id=registration.employee.user_id,
        title=f"Training Registration {status_label}",
        message=f"Your registration for '{registration.training.title}' has been {status_label.lower()}.",
    )
    if send_email:
        try:
            _send_status_email(db, registration, status_label)
        except Exception:
            db.rollback()
            logger.exception("registration status email failed", extra={"registration_id": registration.id})
    return registration


def bulk_decide(
    db: Session,
    registration_ids: Sequence[int],
    decision: models.RegistrationStatus,
    *,
    actor: User,
    remarks: Optional[str] = None,
    publisher: Optional[GroupMembership] = None,
) -> tuple[list[int], list[int]]:
    updated: list[int] = []
    skipped: list[int] = []
    for registration_id in dict.fromkeys(registration_ids):
        try:
            decide_registration(
                db,
                registration_id,
                decision,
                actor=actor,
                remarks=remarks,
                publisher=publisher,
            )
        except NotFoundError:
            skipped.append(registration_id)
            continue
        updated.append(registration_id)
    return updated, skipped


# ---------------------------------------------------------------------------
# ATTENDANCE / MARKS
# ---------------------------------------------------------------------------


def _confirmed_registration_for(db: Session, training_id: int, registration_id: int) -> models.TrainingRegistration:
    registration = get_registration(db, registration_id)
    if registration.training_id != training_id:
        raise NotFoundError("Registration does not belong to this training.")
    if not registration.is_confirmed:
        raise RuleViolation("Only approved registrations can be marked.")
    return registration


def mark_attendance(
    db: Session,
    training_id: int,
    attendance_date: date,
    entries: Iterable[tuple[int, bool]],
    *,
    actor: User,
    now: Optional[datetime] = None,
) -> List[models.Attendance]:
    """
    Record presence for one training day. Allowed only once the training
    has ended; a date that already has rows cannot be submitted again.
    """
    training = get_training(db, training_id)
    if not training.has_ended(now or _local_now()):
        raise RuleViolation("Attendance can only be marked after the training has ended.")
    if not (training.start_date <= attendance_date <= training.end_date):
        raise RuleViolation("Attendance date is outside the training schedule.")

    already = (
        db.query(models.Attendance.id)
        .join(models.TrainingRegistration, models.Attendance.registration_id == models.TrainingRegistration.id)
        .filter(
            models.TrainingRegistration.training_id == training.id,
            models.Attendance.attendance_date == attendance_date,
        )
        .first()
    )
    if already is not None:
        raise ConflictError("Attendance for this date has already been submitted.")

    rows: List[models.Attendance] = []
    seen: set[int] = set()
    for registration_id, is_present in entries:
        if registration_id in seen:
            continue
        seen.add(registration_id)
        registration = _confirmed_registration_for(db, training.id, registration_id)
        rows.append(
            models.Attendance(
                registration_id=registration.id,
                attendance_date=attendance_date,
                is_present=bool(is_present),
                created_by_user_id=actor.id,
            )
        )
    db.add_all(rows)
    db.commit()
    for row in rows:
        db.refresh(row)
    logger.info(
        "attendance recorded",
        extra={"training_id": training.id, "attendance_date": attendance_date.isoformat(), "rows": len(rows)},
    )
    return rows


def list_attendance(db: Session, training_id: int) -> List[models.Attendance]:
    get_training(db, training_id)
    return (
        db.query(models.Attendance)
        .join(models.TrainingRegistration, models.Attendance.registration_id == models.TrainingRegistration.id)
        .filter(models.TrainingRegistration.training_id == training_id)
        .order_by(models.Attendance.attendance_date.asc(), models.Attendance.registration_id.asc())
        .all()
    )


def enter_marks(
    db: Session,
    training_id: int,
    entries: Iterable[tuple[int, int]],
    *,
    now: Optional[datetime] = None,
) -> List[models.TrainingRegistration]:
    training = get_training(db, training_id)
    if not training.is_marks_entry or not training.marks_out_of:
        raise RuleViolation("Marks entry is not enabled for this training.")
    if not training.has_ended(now or _local_now()):
        raise RuleViolation("Marks can only be entered after the training has ended.")

    updated: List[models.TrainingRegistration] = []
    try:
        for registration_id, marks in entries:
            if marks < 0 or marks > training.marks_out_of:
                raise RuleViolation(f"Marks must be between 0 and {training.marks_out_of}.")
            registration = _confirmed_registration_for(db, training.id, registration_id)
            registration.marks = marks
            updated.append(registration)
    except WorkflowError:
        db.rollback()
        raise
    db.commit()
    return updated


# ---------------------------------------------------------------------------
# CERTIFICATES
# ---------------------------------------------------------------------------


def _was_present(db: Session, registration: models.TrainingRegistration) -> bool:
    return (
        db.query(models.Attendance.id)
        .filter(
            models.Attendance.registration_id == registration.id,
            models.Attendance.is_present.is_(True),
        )
        .first()
        is not None
    )


def generate_certificate(
    db: Session,
    registration_id: int,
    *,
    actor: User,
    today: Optional[date] = None,
    publisher: Optional[GroupMembership] = None,
) -> models.Certificate:
    """
    Issue (or re-issue) the certificate for an approved registration with
    at least one present day. Re-generation overwrites the existing row.
    """
    registration = get_registration(db, registration_id)
    if not registration.is_confirmed:
        raise RuleViolation("Certificates are only issued for approved registrations.")
    if not _was_present(db, registration):
        raise RuleViolation("The employee has no recorded attendance for this training.")

    certificate = (
        db.query(models.Certificate)
        .filter(models.Certificate.registration_id == registration.id)
        .first()
    )
    if certificate is None:
        certificate = models.Certificate(registration_id=registration.id, created_by_user_id=actor.id)

    certificate.is_generated = True
    certificate.is_active = True
    certificate.issue_date = today or date.today()
    certificate.certificate_path = CERTIFICATE_PATH_TEMPLATE.format(
        training_id=registration.training_id,
        registration_id=registration.id,
    )
    db.add(certificate)
    db.commit()
    db.refresh(certificate)
    logger.info("certificate generated", extra={"registration_id": registration.id, "certificate_id": certificate.id})

    _safe_notify(
        db,
        publisher,
        user_id=registration.employee.user_id,
        title="Certificate Generated",
        message=f"Your certificate for '{registration.training.title}' has been generated and is ready to download.",
    )
    return certificate


def certificates_for_employee(db: Session, employee: Employee) -> List[models.Certificate]:
    return (
        db.query(models.Certificate)
        .join(models.TrainingRegistration, models.Certificate.registration_id == models.TrainingRegistration.id)
        .filter(
            models.TrainingRegistration.employee_id == employee.id,
            models.Certificate.is_generated.is_(True),
            models.Certificate.is_active.is_(True),
        )
        .order_by(models.Certificate.issue_date.desc())
        .all()
    )


# ---------------------------------------------------------------------------
# FEEDBACK
# ---------------------------------------------------------------------------


def feedback_questions(db: Session, training_id: int) -> List[models.FeedbackQuestion]:
    get_training(db, training_id)
    return (
        db.query(models.FeedbackQuestion)
        .filter(
            models.FeedbackQuestion.is_active.is_(True),
            (models.FeedbackQuestion.is_common.is_(True)) | (models.FeedbackQuestion.training_id == training_id),
        )
        .order_by(models.FeedbackQuestion.is_common.desc(), models.FeedbackQuestion.id.asc())
        .all()
    )


def add_feedback_question(
    db: Session,
    training_id: int,
    *,
    question_text: str,
    question_type: models.FeedbackQuestionType,
    is_common: bool,
) -> models.FeedbackQuestion:
    get_training(db, training_id)
    question = models.FeedbackQuestion(
        question_text=question_text.strip(),
        question_type=question_type,
        is_common=is_common,
        training_id=None if is_common else training_id,
        is_active=True,
    )
    db.add(question)
    db.commit()
    db.refresh(question)
    return question


def request_feedback(
    db: Session,
    training_id: int,
    *,
    publisher: Optional[GroupMembership] = None,
) -> int:
    training = get_training(db, training_id)
    registrations = list_registrations(db, training_id=training.id, status=models.RegistrationStatus.APPROVED)
    notified = 0
    for registration in registrations:
        notification_id = _safe_notify(
            db,
            publisher,
            user_id=registration.employee.user_id,
            title="Feedback Request",
            message=f"Please provide your feedback for the training '{training.title}' that you attended.",
        )
        if notification_id is not None:
            notified += 1
    logger.info("feedback requested", extra={"training_id": training.id, "notified": notified})
    return notified


def submit_feedback(
    db: Session,
    registration_id: int,
    answers: Iterable[dict],
    *,
    employee: Employee,
    now: Optional[datetime] = None,
) -> List[models.Feedback]:
    registration = get_registration(db, registration_id)
    if registration.employee_id != employee.id:
        raise NotFoundError("Registration not found.")
    if not registration.is_confirmed:
        raise RuleViolation("Feedback is only accepted for approved registrations.")
    if not registration.training.has_ended(now or _local_now()):
        raise RuleViolation("Feedback opens once the training has ended.")

    allowed = {question.id: question for question in feedback_questions(db, registration.training_id)}
    answered = {
        row.question_id
        for row in db.query(models.Feedback.question_id).filter(models.Feedback.registration_id == registration.id)
    }

    rows: List[models.Feedback] = []
    for answer in answers:
        question = allowed.get(answer["question_id"])
        if question is None:
            raise RuleViolation(f"Question {answer['question_id']} does not apply to this training.")
        if question.id in answered:
            raise ConflictError("Feedback has already been submitted for this question.")
        if question.question_type == models.FeedbackQuestionType.RATING and answer.get("rating_value") is None:
            raise RuleViolation("A rating is required for rating questions.")
        answered.add(question.id)
        rows.append(
            models.Feedback(
                registration_id=registration.id,
                question_id=question.id,
                rating_value=answer.get("rating_value"),
                response_text=answer.get("response_text"),
            )
        )
    db.add_all(rows)
    db.commit()
    return rows

from __future__ import annotations

from typing import List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from hrdc.apps.accounts import models as accounts_models
from hrdc.apps.notifications.dispatcher import TrainingEmailDispatcher, TriggerType, get_dispatcher
from hrdc.apps.realtime.hub import GroupMembership, get_live_hub
from hrdc.database import get_db
from hrdc.security import get_current_active_user, require_admin, require_roles

from . import models as training_models
from . import schemas as training_schemas
from . import services

router = APIRouter(prefix="/training", tags=["training"])

_require_employee = require_roles(accounts_models.AccountRole.EMPLOYEE)


# ---------------------------------------------------------------------------
# HELPERS
# ---------------------------------------------------------------------------


def _raise_http(exc: services.WorkflowError) -> NoReturn:
    if isinstance(exc, services.NotFoundError):
        code = status.HTTP_404_NOT_FOUND
    elif isinstance(exc, services.ConflictError):
        code = status.HTTP_409_CONFLICT
    else:
        code = status.HTTP_400_BAD_REQUEST
    raise HTTPException(status_code=code, detail=str(exc))


def _current_employee(db: Session, user: accounts_models.User):
    try:
        return services.get_employee_for_user(db, user)
    except services.WorkflowError as exc:
        _raise_http(exc)


# ---------------------------------------------------------------------------
# PROGRAMS
# ---------------------------------------------------------------------------


@router.get(
    "/programs",
    response_model=List[training_schemas.TrainingProgramRead],
    summary="List trainings (employees only see trainings they are eligible for)",
)
def list_programs(
    status_filter: Optional[training_models.TrainingStatus] = None,
    upcoming_only: bool = False,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    employee = None
    if current_user.role != accounts_models.AccountRole.ADMIN:
        employee = _current_employee(db, current_user)
    return services.list_trainings(
        db,
        for_employee=employee,
        status=status_filter,
        upcoming_only=upcoming_only,
    )


@router.get(
    "/programs/{training_id}",
    response_model=training_schemas.TrainingProgramRead,
    summary="Get a single training",
)
def get_program(
    training_id: int,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    try:
        return services.get_training(db, training_id)
    except services.WorkflowError as exc:
        _raise_http(exc)


@router.post(
    "/programs",
    response_model=training_schemas.TrainingProgramRead,
    status_code=status.HTTP_201_CREATED,
    summary="Create a training and announce it to eligible employees",
)
def create_program(
    payload: training_schemas.TrainingProgramCreate,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
    hub: Optional[GroupMembership] = Depends(get_live_hub),
    dispatcher: Optional[TrainingEmailDispatcher] = Depends(get_dispatcher),
):
    return services.create_training(
        db,
        payload.model_dump(),
        actor=current_user,
        publisher=hub,
        dispatcher=dispatcher,
    )


@router.put(
    "/programs/{training_id}",
    response_model=training_schemas.TrainingProgramRead,
    summary="Update a training and re-announce it",
)
def update_program(
    training_id: int,
    payload: training_schemas.TrainingProgramUpdate,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
    hub: Optional[GroupMembership] = Depends(get_live_hub),
    dispatcher: Optional[TrainingEmailDispatcher] = Depends(get_dispatcher),
):
    try:
        return services.update_training(
            db,
            training_id,
            payload.model_dump(exclude_unset=True),
            actor=current_user,
            publisher=hub,
            dispatcher=dispatcher,
        )
    except services.WorkflowError as exc:
        _raise_http(exc)


@router.delete(
    "/programs/{training_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Soft-delete a training",
)
def delete_program(
    training_id: int,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    try:
        services.delete_training(db, training_id, actor=current_user)
    except services.WorkflowError as exc:
        _raise_http(exc)
    return None


@router.post(
    "/programs/{training_id}/announce",
    response_model=training_schemas.AnnounceResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue announcement emails (created / updated / reminder)",
)
def announce_program(
    training_id: int,
    payload: training_schemas.AnnounceRequest,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
    dispatcher: Optional[TrainingEmailDispatcher] = Depends(get_dispatcher),
):
    if dispatcher is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Email dispatcher is not running.",
        )
    try:
        pending = services.announce_training(
            db,
            training_id,
            TriggerType(payload.trigger),
            dispatcher=dispatcher,
        )
    except services.WorkflowError as exc:
        _raise_http(exc)
    return training_schemas.AnnounceResponse(
        training_id=training_id,
        trigger=payload.trigger,
        pending_jobs=pending,
    )


# ---------------------------------------------------------------------------
# REGISTRATIONS
# ---------------------------------------------------------------------------


@router.post(
    "/programs/{training_id}/register",
    response_model=training_schemas.RegistrationRead,
    status_code=status.HTTP_201_CREATED,
    summary="Register the current employee for a training",
)
def register(
    training_id: int,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(_require_employee),
    hub: Optional[GroupMembership] = Depends(get_live_hub),
):
    employee = _current_employee(db, current_user)
    try:
        return services.register_for_training(db, training_id, employee=employee, publisher=hub)
    except services.WorkflowError as exc:
        _raise_http(exc)


@router.get(
    "/registrations/mine",
    response_model=List[training_schemas.RegistrationDetail],
    summary="List the current employee's registrations",
)
def my_registrations(
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(_require_employee),
):
    employee = _current_employee(db, current_user)
    rows = services.list_registrations(db, employee_id=employee.id)
    return [training_schemas.RegistrationDetail.from_registration(row) for row in rows]


@router.post(
    "/registrations/{registration_id}/cancel",
    response_model=training_schemas.RegistrationRead,
    summary="Cancel a registration before the training starts",
)
def cancel_registration(
    registration_id: int,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(_require_employee),
):
    employee = _current_employee(db, current_user)
    try:
        return services.cancel_registration(db, registration_id, employee=employee)
    except services.WorkflowError as exc:
        _raise_http(exc)


@router.get(
    "/registrations",
    response_model=List[training_schemas.RegistrationDetail],
    summary="List registrations (admin)",
)
def list_registrations(
    training_id: Optional[int] = None,
    status_filter: Optional[training_models.RegistrationStatus] = None,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    rows = services.list_registrations(db, training_id=training_id, status=status_filter)
    return [training_schemas.RegistrationDetail.from_registration(row) for row in rows]


@router.post(
    "/registrations/bulk-decision",
    response_model=training_schemas.BulkDecisionResult,
    summary="Approve or reject several registrations",
)
def bulk_decision(
    payload: training_schemas.BulkRegistrationDecision,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
    hub: Optional[GroupMembership] = Depends(get_live_hub),
):
    updated, skipped = services.bulk_decide(
        db,
        payload.registration_ids,
        payload.status,
        actor=current_user,
        remarks=payload.remarks,
        publisher=hub,
    )
    return training_schemas.BulkDecisionResult(updated=updated, skipped=skipped)


@router.post(
    "/registrations/{registration_id}/decision",
    response_model=training_schemas.RegistrationRead,
    summary="Approve or reject a registration",
)
def decide_registration(
    registration_id: int,
    payload: training_schemas.RegistrationDecision,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
    hub: Optional[GroupMembership] = Depends(get_live_hub),
):
    try:
        return services.decide_registration(
            db,
            registration_id,
            payload.status,
            actor=current_user,
            remarks=payload.remarks,
            publisher=hub,
        )
    except services.WorkflowError as exc:
        _raise_http(exc)


# ---------------------------------------------------------------------------
# ATTENDANCE / MARKS
# ---------------------------------------------------------------------------


@router.get(
    "/programs/{training_id}/attendance",
    response_model=List[training_schemas.AttendanceRead],
    summary="List attendance rows for a training",
)
def list_attendance(
    training_id: int,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    try:
        return services.list_attendance(db, training_id)
    except services.WorkflowError as exc:
        _raise_http(exc)


@router.post(
    "/programs/{training_id}/attendance",
    response_model=List[training_schemas.AttendanceRead],
    status_code=status.HTTP_201_CREATED,
    summary="Submit attendance for one training day",
)
def submit_attendance(
    training_id: int,
    payload: training_schemas.AttendanceSubmit,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    try:
        return services.mark_attendance(
            db,
            training_id,
            payload.attendance_date,
            [(entry.registration_id, entry.is_present) for entry in payload.entries],
            actor=current_user,
        )
    except services.WorkflowError as exc:
        _raise_http(exc)


@router.post(
    "/programs/{training_id}/marks",
    response_model=List[training_schemas.RegistrationRead],
    summary="Enter assessment marks",
)
def submit_marks(
    training_id: int,
    payload: training_schemas.MarksSubmit,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    try:
        return services.enter_marks(
            db,
            training_id,
            [(entry.registration_id, entry.marks) for entry in payload.entries],
        )
    except services.WorkflowError as exc:
        _raise_http(exc)


# ---------------------------------------------------------------------------
# CERTIFICATES
# ---------------------------------------------------------------------------


@router.post(
    "/registrations/{registration_id}/certificate",
    response_model=training_schemas.CertificateRead,
    summary="Generate (or regenerate) a certificate",
)
def generate_certificate(
    registration_id: int,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
    hub: Optional[GroupMembership] = Depends(get_live_hub),
):
    try:
        return services.generate_certificate(db, registration_id, actor=current_user, publisher=hub)
    except services.WorkflowError as exc:
        _raise_http(exc)


@router.get(
    "/certificates/mine",
    response_model=List[training_schemas.CertificateRead],
    summary="List the current employee's certificates",
)
def my_certificates(
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(_require_employee),
):
    employee = _current_employee(db, current_user)
    return services.certificates_for_employee(db, employee)


# ---------------------------------------------------------------------------
# FEEDBACK
# ---------------------------------------------------------------------------


@router.get(
    "/programs/{training_id}/feedback-questions",
    response_model=List[training_schemas.FeedbackQuestionRead],
    summary="Questions for a training's feedback form",
)
def list_feedback_questions(
    training_id: int,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(get_current_active_user),
):
    try:
        return services.feedback_questions(db, training_id)
    except services.WorkflowError as exc:
        _raise_http(exc)


@router.post(
    "/programs/{training_id}/feedback-questions",
    response_model=training_schemas.FeedbackQuestionRead,
    status_code=status.HTTP_201_CREATED,
    summary="Add a feedback question",
)
def add_feedback_question(
    training_id: int,
    payload: training_schemas.FeedbackQuestionCreate,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
):
    try:
        return services.add_feedback_question(
            db,
            training_id,
            question_text=payload.question_text,
            question_type=payload.question_type,
            is_common=payload.is_common,
        )
    except services.WorkflowError as exc:
        _raise_http(exc)


@router.post(
    "/programs/{training_id}/feedback-request",
    response_model=training_schemas.FeedbackRequestResult,
    summary="Ask approved registrants for feedback",
)
def request_feedback(
    training_id: int,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(require_admin),
    hub: Optional[GroupMembership] = Depends(get_live_hub),
):
    try:
        notified = services.request_feedback(db, training_id, publisher=hub)
    except services.WorkflowError as exc:
        _raise_http(exc)
    return training_schemas.FeedbackRequestResult(notified=notified)


@router.post(
    "/registrations/{registration_id}/feedback",
    status_code=status.HTTP_201_CREATED,
    summary="Submit feedback for an attended training",
)
def submit_feedback(
    registration_id: int,
    payload: training_schemas.FeedbackSubmit,
    db: Session = Depends(get_db),
    current_user: accounts_models.User = Depends(_require_employee),
):
    employee = _current_employee(db, current_user)
    try:
        rows = services.submit_feedback(
            db,
            registration_id,
            [answer.model_dump() for answer in payload.answers],
            employee=employee,
        )
    except services.WorkflowError as exc:
        _raise_http(exc)
    return {"submitted": len(rows)}

# backend/hrdc/apps/training/schemas.py

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .models import FeedbackQuestionType, RegistrationStatus, TrainingStatus


# ---------------------------------------------------------------------------
# TRAINING PROGRAMS
# ---------------------------------------------------------------------------


class TrainingProgramBase(BaseModel):
    """
    Fields an administrator fills in when scheduling a training.

    - eligibility_type: 'all' / 'technical' / 'non-technical' or any keyword
      matched against department, designation and employee type.
    - valid_till: last day registrations are accepted (defaults to end_date).
    """

    title: str = Field(..., min_length=1, max_length=255)
    trainer_name: str = Field(..., min_length=1, max_length=255)
    start_date: date
    end_date: date
    from_time: time = time(9, 0)
    to_time: time = time(17, 0)
    valid_till: Optional[date] = None
    venue: Optional[str] = Field(None, max_length=255)
    eligibility_type: Optional[str] = Field(None, max_length=128)
    capacity: int = Field(..., ge=1)
    mode: str = Field("Offline", max_length=32)
    marks_out_of: Optional[int] = Field(None, ge=1)
    is_marks_entry: bool = False

    @model_validator(mode="after")
    def _check_window(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.start_date == self.end_date and self.to_time <= self.from_time:
            raise ValueError("to_time must be after from_time for a single-day training")
        if self.valid_till and self.valid_till > self.end_date:
            raise ValueError("valid_till must not be after end_date")
        if self.is_marks_entry and not self.marks_out_of:
            raise ValueError("marks_out_of is required when is_marks_entry is set")
        return self


class TrainingProgramCreate(TrainingProgramBase):
    pass


class TrainingProgramUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    trainer_name: Optional[str] = Field(None, min_length=1, max_length=255)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    from_time: Optional[time] = None
    to_time: Optional[time] = None
    valid_till: Optional[date] = None
    venue: Optional[str] = None
    eligibility_type: Optional[str] = None
    capacity: Optional[int] = Field(None, ge=1)
    mode: Optional[str] = None
    status: Optional[TrainingStatus] = None
    marks_out_of: Optional[int] = Field(None, ge=1)
    is_marks_entry: Optional[bool] = None

    @field_validator(
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
        mode="before",
    )
    @classmethod
    def _not_null(cls, value, info):
        # Omit a field to leave it unchanged; only the nullable columns accept null.
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class TrainingProgramRead(TrainingProgramBase):
    id: int
    status: TrainingStatus
    is_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class AnnounceRequest(BaseModel):
    trigger: str = Field("created", pattern="^(created|updated|reminder)$")


class AnnounceResponse(BaseModel):
    training_id: int
    trigger: str
    pending_jobs: int


# ---------------------------------------------------------------------------
# REGISTRATIONS
# ---------------------------------------------------------------------------


class RegistrationRead(BaseModel):
    id: int
    employee_id: int
    training_id: int
    applied: bool
    status: RegistrationStatus
    remarks: Optional[str] = None
    marks: Optional[int] = None
    decided_at: Optional[datetime] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class RegistrationDetail(RegistrationRead):
    employee_name: str
    department: Optional[str] = None
    designation: Optional[str] = None
    training_title: str
    training_start_date: date

    @classmethod
    def from_registration(cls, registration) -> "RegistrationDetail":
        base = RegistrationRead.model_validate(registration).model_dump()
        return cls(
            **base,
            employee_name=registration.employee.full_name,
            department=registration.employee.department,
            designation=registration.employee.designation,
            training_title=registration.training.title,
            training_start_date=registration.training.start_date,
        )


class RegistrationDecision(BaseModel):
    status: RegistrationStatus
    remarks: Optional[str] = Field(None, max_length=2000)

    @model_validator(mode="after")
    def _decided(self):
        if self.status == RegistrationStatus.PENDING:
            raise ValueError("A decision must be Approved or Rejected")
        return self


class BulkRegistrationDecision(RegistrationDecision):
    registration_ids: List[int] = Field(..., min_length=1)


class BulkDecisionResult(BaseModel):
    updated: List[int]
    skipped: List[int]


# ---------------------------------------------------------------------------
# ATTENDANCE / MARKS
# ---------------------------------------------------------------------------


class AttendanceEntry(BaseModel):
    registration_id: int
    is_present: bool


class AttendanceSubmit(BaseModel):
    attendance_date: date
    entries: List[AttendanceEntry] = Field(..., min_length=1)


class AttendanceRead(BaseModel):
    id: int
    registration_id: int
    attendance_date: date
    is_present: bool

    class Config:
        from_attributes = True


class MarksEntry(BaseModel):
    registration_id: int
    marks: int = Field(..., ge=0)


class MarksSubmit(BaseModel):
    entries: List[MarksEntry] = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# CERTIFICATES
# ---------------------------------------------------------------------------


class CertificateRead(BaseModel):
    id: int
    registration_id: int
    is_generated: bool
    issue_date: Optional[date] = None
    certificate_path: Optional[str] = None

    class Config:
        from_attributes = True


# ---------------------------------------------------------------------------
# FEEDBACK
# ---------------------------------------------------------------------------


class FeedbackQuestionCreate(BaseModel):
    question_text: str = Field(..., min_length=1)
    question_type: FeedbackQuestionType = FeedbackQuestionType.RATING
    is_common: bool = False


class FeedbackQuestionRead(BaseModel):
    id: int
    question_text: str
    question_type: FeedbackQuestionType
    is_common: bool
    training_id: Optional[int] = None

    class Config:
        from_attributes = True


class FeedbackAnswer(BaseModel):
    question_id: int
    rating_value: Optional[Decimal] = Field(None, ge=1, le=5)
    response_text: Optional[str] = Field(None, max_length=4000)


class FeedbackSubmit(BaseModel):
    answers: List[FeedbackAnswer] = Field(..., min_length=1)


class FeedbackRequestResult(BaseModel):
    notified: int

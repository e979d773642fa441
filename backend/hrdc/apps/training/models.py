# backend/hrdc/apps/training/models.py

from __future__ import annotations

import enum
from datetime import date, datetime, time, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from hrdc.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# ENUMS
# ---------------------------------------------------------------------------


class TrainingStatus(str, enum.Enum):
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class RegistrationStatus(str, enum.Enum):
    """
    Administrator decision on a registration.

    Replaces the legacy nullable boolean (NULL / true / false) where
    `false` meant both "not yet reviewed" and "rejected".
    """

    PENDING = "Pending"
    APPROVED = "Approved"
    REJECTED = "Rejected"


class FeedbackQuestionType(str, enum.Enum):
    RATING = "Rating"
    TEXT = "Text"


# ---------------------------------------------------------------------------
# TRAINING PROGRAMS
# ---------------------------------------------------------------------------


class TrainingProgram(Base):
    """
    A scheduled training offered by the HRDC.

    - eligibility_type is a free-text tag ('all', 'technical',
      'non-technical' or a custom department/designation keyword).
    - valid_till is the last day employees may register.
    """

    __tablename__ = "training_programs"
    __table_args__ = (
        Index("idx_training_programs_active_start", "is_active", "start_date"),
    )

    id = Column(Integer, primary_key=True, index=True)

    title = Column(String(255), nullable=False)
    trainer_name = Column(String(255), nullable=False)

    start_date = Column(Date, nullable=False, index=True)
    end_date = Column(Date, nullable=False)
    from_time = Column(Time, nullable=False, default=time(9, 0))
    to_time = Column(Time, nullable=False, default=time(17, 0))
    valid_till = Column(Date, nullable=True)

    venue = Column(String(255), nullable=True)
    eligibility_type = Column(String(128), nullable=True)
    capacity = Column(Integer, nullable=False, default=0)
    mode = Column(String(32), nullable=False, default="Offline")

    status = Column(
        Enum(TrainingStatus, name="training_status_enum", native_enum=False),
        nullable=False,
        default=TrainingStatus.SCHEDULED,
        index=True,
    )

    marks_out_of = Column(Integer, nullable=True)
    is_marks_entry = Column(Boolean, nullable=False, default=False)

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_by_user_id = Column(Integer, nullable=True)
    updated_by_user_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.start_date, self.from_time or time.min)

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.end_date, self.to_time or time.max)

    def has_ended(self, now: datetime) -> bool:
        """Naive local `now`, same clock the schedule was entered in."""
        return self.status == TrainingStatus.COMPLETED or now >= self.ends_at

    def registration_open(self, today: date) -> bool:
        if self.status == TrainingStatus.CANCELLED:
            return False
        closes_on = self.valid_till or self.end_date
        return today <= closes_on

    def __repr__(self) -> str:
        return f"<TrainingProgram id={self.id} title={self.title!r} start={self.start_date}>"


# ---------------------------------------------------------------------------
# REGISTRATIONS
# ---------------------------------------------------------------------------


class TrainingRegistration(Base):
    __tablename__ = "training_registrations"
    __table_args__ = (
        Index("idx_training_reg_training_status", "training_id", "status", "is_active"),
        Index("idx_training_reg_employee_active", "employee_id", "is_active"),
    )

    id = Column(Integer, primary_key=True, index=True)

    employee_id = Column(
        Integer,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    training_id = Column(
        Integer,
        ForeignKey("training_programs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    applied = Column(Boolean, nullable=False, default=True)
    status = Column(
        Enum(RegistrationStatus, name="registration_status_enum", native_enum=False),
        nullable=False,
        default=RegistrationStatus.PENDING,
        index=True,
    )
    remarks = Column(Text, nullable=True)
    marks = Column(Integer, nullable=True)

    decided_at = Column(DateTime(timezone=True), nullable=True)
    decided_by_user_id = Column(Integer, nullable=True)

    # False once the employee cancels (or an admin withdraws) the registration.
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    employee = relationship("Employee", lazy="joined")
    training = relationship("TrainingProgram", lazy="joined")
    attendances = relationship(
        "Attendance",
        back_populates="registration",
        lazy="selectin",
        order_by="Attendance.attendance_date",
    )
    certificate = relationship(
        "Certificate",
        back_populates="registration",
        uselist=False,
        lazy="selectin",
    )

    @property
    def is_confirmed(self) -> bool:
        return self.status == RegistrationStatus.APPROVED

    def __repr__(self) -> str:
        return (
            f"<TrainingRegistration id={self.id} employee={self.employee_id} "
            f"training={self.training_id} status={self.status}>"
        )


# ---------------------------------------------------------------------------
# ATTENDANCE / CERTIFICATES
# ---------------------------------------------------------------------------


class Attendance(Base):
    """One row per registration per day; written once, never edited."""

    __tablename__ = "training_attendance"
    __table_args__ = (
        UniqueConstraint("registration_id", "attendance_date", name="uq_training_attendance_reg_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    registration_id = Column(
        Integer,
        ForeignKey("training_registrations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    attendance_date = Column(Date, nullable=False)
    is_present = Column(Boolean, nullable=False, default=False)

    created_by_user_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    registration = relationship("TrainingRegistration", back_populates="attendances")


class Certificate(Base):
    __tablename__ = "training_certificates"

    id = Column(Integer, primary_key=True, index=True)
    registration_id = Column(
        Integer,
        ForeignKey("training_registrations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    is_generated = Column(Boolean, nullable=False, default=False)
    issue_date = Column(Date, nullable=True)
    certificate_path = Column(String(512), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_by_user_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    registration = relationship("TrainingRegistration", back_populates="certificate")


# ---------------------------------------------------------------------------
# FEEDBACK
# ---------------------------------------------------------------------------


class FeedbackQuestion(Base):
    """
    Question shown on the feedback form.

    Common questions (is_common=True, training_id NULL) appear for every
    training; others only for their own training.
    """

    __tablename__ = "feedback_questions"

    id = Column(Integer, primary_key=True, index=True)
    question_text = Column(Text, nullable=False)
    question_type = Column(
        Enum(FeedbackQuestionType, name="feedback_question_type_enum", native_enum=False),
        nullable=False,
        default=FeedbackQuestionType.RATING,
    )
    is_common = Column(Boolean, nullable=False, default=False)
    training_id = Column(
        Integer,
        ForeignKey("training_programs.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class Feedback(Base):
    __tablename__ = "training_feedback"
    __table_args__ = (
        UniqueConstraint("registration_id", "question_id", name="uq_training_feedback_reg_question"),
    )

    id = Column(Integer, primary_key=True, index=True)
    registration_id = Column(
        Integer,
        ForeignKey("training_registrations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    question_id = Column(
        Integer,
        ForeignKey("feedback_questions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    rating_value = Column(Numeric(3, 1), nullable=True)
    response_text = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    question = relationship("FeedbackQuestion", lazy="joined")

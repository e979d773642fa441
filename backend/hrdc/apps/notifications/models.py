from __future__ import annotations

from datetime import datetime, timezone
import enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)

from hrdc.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Notification(Base):
    """
    In-app notification addressed to exactly one user or to every user
    holding a role (broadcast).

    Role broadcasts carry a single `is_read` flag shared by all members of
    the role, the same as the legacy notification centre.
    """

    __tablename__ = "notifications"
    __table_args__ = (
        CheckConstraint(
            "(user_id IS NULL) <> (target_role IS NULL)",
            name="ck_notifications_single_target",
        ),
        Index("ix_notifications_user_active_created", "user_id", "is_active", "created_at"),
        Index("ix_notifications_role_active_created", "target_role", "is_active", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    target_role = Column(String(32), nullable=True, index=True)

    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    # Set for training-scoped notifications such as start reminders.
    training_id = Column(
        Integer,
        ForeignKey("training_programs.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    is_read = Column(Boolean, nullable=False, default=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)

    def to_payload(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        target = f"user={self.user_id}" if self.user_id is not None else f"role={self.target_role}"
        return f"<Notification id={self.id} {target} read={self.is_read}>"


class EmailStatus(str, enum.Enum):
    QUEUED = "QUEUED"
    SENT = "SENT"
    FAILED = "FAILED"
    SKIPPED_NO_PROVIDER = "SKIPPED_NO_PROVIDER"


class EmailLog(Base):
    __tablename__ = "email_logs"
    __table_args__ = (
        Index("ix_email_logs_training_created", "training_id", "created_at"),
        Index("ix_email_logs_status_created", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    recipient = Column(String(255), nullable=False, index=True)
    subject = Column(String(255), nullable=False)
    template_key = Column(String(128), nullable=False, index=True)
    training_id = Column(
        Integer,
        ForeignKey("training_programs.id", ondelete="SET NULL"),
        nullable=True,
    )
    status = Column(
        SAEnum(EmailStatus, name="email_status_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    error = Column(Text, nullable=True)
    context_json = Column(JSON, nullable=True)
    correlation_id = Column(String(64), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<EmailLog id={self.id} recipient={self.recipient} status={self.status}>"

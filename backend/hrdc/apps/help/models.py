# backend/hrdc/apps/help/models.py

from __future__ import annotations

import enum
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from hrdc.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class HelpQueryStatus(str, enum.Enum):
    OPEN = "Open"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    CLOSED = "Closed"


class HelpQuery(Base):
    """
    Question or problem report an employee sends to the HRDC desk.

    - name / email are what the employee typed on the form and may differ
      from the profile (e.g. a preferred contact address).
    - viewed_by_admin flips to True the first time an administrator lists it.
    """

    __tablename__ = "help_queries"
    __table_args__ = (
        Index("idx_help_queries_active_status", "is_active", "status"),
        Index("idx_help_queries_active_viewed", "is_active", "viewed_by_admin"),
    )

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(
        Integer,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    query_type = Column(String(50), nullable=False, default="General")
    subject = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)

    status = Column(
        Enum(HelpQueryStatus, name="help_query_status_enum", native_enum=False),
        nullable=False,
        default=HelpQueryStatus.OPEN,
    )
    viewed_by_admin = Column(Boolean, nullable=False, default=False)
    resolved_at = Column(DateTime(timezone=True), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    employee = relationship("Employee", lazy="joined")

    def __repr__(self) -> str:
        return f"<HelpQuery id={self.id} employee={self.employee_id} status={self.status}>"

# backend/hrdc/apps/employees/models.py

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from hrdc.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Employee(Base):
    """
    HR profile for a staff member.

    department / designation / employee_type are free text as entered by
    HR; training eligibility is matched against them case-insensitively.
    Employees are never hard-deleted: `is_active = False` hides them.
    """

    __tablename__ = "employees"
    __table_args__ = (
        Index("idx_employees_active_department", "is_active", "department"),
    )

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
        index=True,
    )

    first_name = Column(String(128), nullable=False)
    middle_name = Column(String(128), nullable=True)
    last_name = Column(String(128), nullable=False)

    department = Column(String(128), nullable=False)
    designation = Column(String(128), nullable=False)
    institute = Column(String(255), nullable=True)
    employee_type = Column(
        String(64),
        nullable=False,
        doc="e.g. 'Technical', 'Non-Technical', 'Administrative'.",
    )

    phone_number = Column(String(32), nullable=True)
    alternate_phone = Column(String(32), nullable=True)

    join_date = Column(Date, nullable=True)
    left_date = Column(Date, nullable=True)

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_by_user_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    user = relationship("User", back_populates="employee", lazy="joined")

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @property
    def email(self) -> str | None:
        return self.user.email if self.user is not None else None

    def __repr__(self) -> str:
        return f"<Employee id={self.id} name={self.full_name!r} dept={self.department!r}>"

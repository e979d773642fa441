# backend/hrdc/apps/accounts/models.py

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
)
from sqlalchemy.orm import relationship

from hrdc.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountRole(str, enum.Enum):
    """Roles carried in the access token.

    The value doubles as the live-push group name, so role broadcasts
    reach every connected client that logged in with that role.
    """

    ADMIN = "Admin"
    EMPLOYEE = "Employee"


class User(Base):
    """
    Login account. Every employee has exactly one; administrators may
    exist without an employee profile.
    """

    __tablename__ = "users"
    __table_args__ = (
        Index("idx_users_role_active", "role", "is_active"),
    )

    id = Column(Integer, primary_key=True, index=True)

    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    role = Column(
        Enum(AccountRole, name="account_role_enum", native_enum=False),
        nullable=False,
        default=AccountRole.EMPLOYEE,
        index=True,
    )

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    # Opt-out of live (browser) notifications; rows are still persisted.
    is_web_notification_enabled = Column(Boolean, nullable=False, default=True)

    last_login_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    employee = relationship(
        "Employee",
        back_populates="user",
        uselist=False,
        lazy="selectin",
    )

    @property
    def is_admin(self) -> bool:
        return self.role == AccountRole.ADMIN

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"


# ---------------------------------------------------------------------------
# PASSWORD RECOVERY
# ---------------------------------------------------------------------------


class PasswordResetOtp(Base):
    """
    One-time numeric code emailed for password recovery.

    - Only a hash of the code is stored.
    - A code is consumed by a successful reset; requesting a new code
      retires every earlier one for the same user.
    """

    __tablename__ = "password_reset_otps"
    __table_args__ = (
        Index("idx_password_reset_otps_user_expires", "user_id", "expires_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    otp_hash = Column(String(255), nullable=False)
    issued_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    failed_attempts = Column(Integer, nullable=False, default=0)

    user = relationship("User", lazy="joined")

    def __repr__(self) -> str:
        return f"<PasswordResetOtp id={self.id} user={self.user_id} used={self.used_at is not None}>"

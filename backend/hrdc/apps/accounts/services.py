# backend/hrdc/apps/accounts/services.py

from __future__ import annotations

import logging
import os
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from hrdc import security
from hrdc.apps.notifications import service as notification_service
from hrdc.apps.notifications import templates

from . import models

logger = logging.getLogger(__name__)

PASSWORD_OTP_TTL_MINUTES = int(os.getenv("PASSWORD_OTP_TTL_MINUTES", "5"))
PASSWORD_OTP_MAX_ATTEMPTS = int(os.getenv("PASSWORD_OTP_MAX_ATTEMPTS", "5"))
PASSWORD_OTP_DIGITS = 6


class AuthenticationError(Exception):
    """Raised when a login attempt must be refused with a specific reason."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalise_email(email: str) -> str:
    return (email or "").strip().lower()


def authenticate_user(db: Session, *, email: str, password: str) -> Optional[models.User]:
    """
    Verify credentials and stamp `last_login_at`.

    Legacy bcrypt hashes are upgraded to Argon2 on a successful login.
    """
    user = security.authenticate_user(db, normalise_email(email), password)
    if user is None:
        logger.info("login rejected", extra={"email": normalise_email(email)})
        return None
    if not user.is_active:
        raise AuthenticationError("This account has been deactivated.")

    if security.needs_rehash(user.hashed_password):
        user.hashed_password = security.get_password_hash(password)
    user.last_login_at = _utcnow()
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def issue_access_token_for_user(user: models.User) -> Tuple[str, int]:
    token = security.token_for_user(user)
    return token, security.ACCESS_TOKEN_EXPIRE_MINUTES * 60


def update_settings(db: Session, user: models.User, *, is_web_notification_enabled: bool) -> models.User:
    user.is_web_notification_enabled = bool(is_web_notification_enabled)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user: models.User, *, current_password: str, new_password: str) -> None:
    if not security.verify_password(current_password, user.hashed_password):
        raise AuthenticationError("Current password is incorrect.")
    user.hashed_password = security.get_password_hash(new_password)
    db.add(user)
    db.commit()


def create_user(
    db: Session,
    *,
    email: str,
    password: str,
    role: models.AccountRole = models.AccountRole.EMPLOYEE,
    commit: bool = True,
) -> models.User:
    user = models.User(
        email=normalise_email(email),
        hashed_password=security.get_password_hash(password),
        role=role,
        is_active=True,
        is_web_notification_enabled=True,
    )
    db.add(user)
    if commit:
        db.commit()
        db.refresh(user)
    else:
        db.flush()
    return user


def email_in_use(db: Session, email: str, *, exclude_user_id: Optional[int] = None) -> bool:
    q = db.query(models.User.id).filter(models.User.email == normalise_email(email))
    if exclude_user_id is not None:
        q = q.filter(models.User.id != exclude_user_id)
    return q.first() is not None


# ---------------------------------------------------------------------------
# Password recovery (emailed one-time code)
# ---------------------------------------------------------------------------


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def _generate_otp() -> str:
    return f"{secrets.randbelow(10 ** PASSWORD_OTP_DIGITS):0{PASSWORD_OTP_DIGITS}d}"


def _active_user_by_email(db: Session, email: str) -> Optional[models.User]:
    user = security.get_user_by_email(db, normalise_email(email))
    if user is None or not user.is_active:
        return None
    return user


def _retire_open_otps(db: Session, user_id: int, now: datetime) -> None:
    (
        db.query(models.PasswordResetOtp)
        .filter(
            models.PasswordResetOtp.user_id == user_id,
            models.PasswordResetOtp.used_at.is_(None),
        )
        .update({models.PasswordResetOtp.used_at: now}, synchronize_session="fetch")
    )


def _latest_open_otp(db: Session, user_id: int) -> Optional[models.PasswordResetOtp]:
    return (
        db.query(models.PasswordResetOtp)
        .filter(
            models.PasswordResetOtp.user_id == user_id,
            models.PasswordResetOtp.used_at.is_(None),
        )
        .order_by(models.PasswordResetOtp.issued_at.desc(), models.PasswordResetOtp.id.desc())
        .first()
    )


def request_password_otp(db: Session, email: str, *, now: Optional[datetime] = None) -> Optional[str]:
    """
    Issue a fresh recovery code and email it to the account owner.

    Returns the raw code, or None when no active account uses `email`.
    Callers must not reveal which of the two happened. Earlier unused
    codes for the same account stop working.
    """
    now = now or _utcnow()
    user = _active_user_by_email(db, email)
    if user is None:
        logger.info("password recovery requested for unknown account", extra={"email": normalise_email(email)})
        return None

    _retire_open_otps(db, user.id, now)
    code = _generate_otp()
    otp = models.PasswordResetOtp(
        user_id=user.id,
        otp_hash=security.get_password_hash(code),
        issued_at=now,
        expires_at=now + timedelta(minutes=PASSWORD_OTP_TTL_MINUTES),
        failed_attempts=0,
    )
    db.add(otp)
    db.commit()
    db.refresh(otp)

    employee = getattr(user, "employee", None)
    notification_service.send_email(
        templates.TEMPLATE_PASSWORD_OTP,
        user.email,
        templates.PASSWORD_OTP_SUBJECT,
        templates.password_otp_body(
            name=employee.full_name if employee is not None else user.email,
            otp=code,
            ttl_minutes=PASSWORD_OTP_TTL_MINUTES,
        ),
        correlation_id=f"password-otp:{otp.id}",
        context={"user_id": user.id},
        db=db,
    )
    db.commit()
    logger.info("password recovery code issued", extra={"user_id": user.id, "otp_id": otp.id})
    return code


def verify_password_otp(
    db: Session,
    *,
    email: str,
    otp: str,
    now: Optional[datetime] = None,
) -> models.PasswordResetOtp:
    """
    Check `otp` against the latest open code for `email` without using it up.

    Expired codes are retired. A code that has been guessed wrong
    PASSWORD_OTP_MAX_ATTEMPTS times is retired as well.
    """
    now = now or _utcnow()
    user = _active_user_by_email(db, email)
    row = _latest_open_otp(db, user.id) if user is not None else None
    if row is None:
        raise AuthenticationError("Invalid OTP")

    if _aware(row.expires_at) < now:
        row.used_at = now
        db.add(row)
        db.commit()
        raise AuthenticationError("OTP has expired")

    if not security.verify_password((otp or "").strip(), row.otp_hash):
        row.failed_attempts = (row.failed_attempts or 0) + 1
        if row.failed_attempts >= PASSWORD_OTP_MAX_ATTEMPTS:
            row.used_at = now
            logger.warning("password recovery code locked", extra={"user_id": user.id, "otp_id": row.id})
        db.add(row)
        db.commit()
        raise AuthenticationError("Invalid OTP")
    return row


def reset_password_with_otp(
    db: Session,
    *,
    email: str,
    otp: str,
    new_password: str,
    now: Optional[datetime] = None,
) -> models.User:
    now = now or _utcnow()
    row = verify_password_otp(db, email=email, otp=otp, now=now)
    user = row.user
    user.hashed_password = security.get_password_hash(new_password)
    row.used_at = now
    db.add_all([user, row])
    db.commit()
    db.refresh(user)
    logger.info("password reset with recovery code", extra={"user_id": user.id})
    return user

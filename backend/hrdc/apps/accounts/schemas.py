# backend/hrdc/apps/accounts/schemas.py

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from .models import AccountRole


class UserRead(BaseModel):
    id: int
    email: EmailStr
    role: AccountRole
    is_active: bool
    is_web_notification_enabled: bool
    last_login_at: Optional[datetime] = None
    employee_id: Optional[int] = None
    full_name: Optional[str] = None

    class Config:
        from_attributes = True

    @classmethod
    def from_user(cls, user) -> "UserRead":
        employee = getattr(user, "employee", None)
        return cls(
            id=user.id,
            email=user.email,
            role=user.role,
            is_active=user.is_active,
            is_web_notification_enabled=user.is_web_notification_enabled,
            last_login_at=user.last_login_at,
            employee_id=employee.id if employee is not None else None,
            full_name=employee.full_name if employee is not None else None,
        )


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserRead


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class UserSettingsUpdate(BaseModel):
    is_web_notification_enabled: bool


class PasswordChangeRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class VerifyOtpRequest(BaseModel):
    email: EmailStr
    otp: str = Field(..., pattern=r"^\d{6}$")


class ResetPasswordRequest(VerifyOtpRequest):
    new_password: str = Field(..., min_length=8, max_length=128)


class MessageResponse(BaseModel):
    detail: str

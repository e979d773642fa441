# backend/hrdc/apps/accounts/router.py

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from hrdc.database import get_db
from hrdc.security import get_current_active_user

from . import models, schemas, services

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/login",
    response_model=schemas.Token,
    summary="Login with email and password",
)
def login(
    payload: schemas.LoginRequest,
    db: Session = Depends(get_db),
):
    try:
        user = services.authenticate_user(db, email=payload.email, password=payload.password)
    except services.AuthenticationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc) or "Incorrect email or password.",
        )

    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password.",
        )

    token, expires_in = services.issue_access_token_for_user(user)
    return schemas.Token(
        access_token=token,
        expires_in=expires_in,
        user=schemas.UserRead.from_user(user),
    )


@router.get(
    "/me",
    response_model=schemas.UserRead,
    summary="Get current logged-in user",
)
def read_current_user(
    current_user: models.User = Depends(get_current_active_user),
):
    return schemas.UserRead.from_user(current_user)


@router.put(
    "/me/settings",
    response_model=schemas.UserRead,
    summary="Update notification preferences",
)
def update_my_settings(
    payload: schemas.UserSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    user = services.update_settings(
        db,
        current_user,
        is_web_notification_enabled=payload.is_web_notification_enabled,
    )
    return schemas.UserRead.from_user(user)


@router.post(
    "/me/password",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Change the current user's password",
)
def change_my_password(
    payload: schemas.PasswordChangeRequest,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(get_current_active_user),
):
    try:
        services.change_password(
            db,
            current_user,
            current_password=payload.current_password,
            new_password=payload.new_password,
        )
    except services.AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return None


# ---------------------------------------------------------------------------
# Password recovery (public)
# ---------------------------------------------------------------------------

OTP_SENT_MESSAGE = "If the account exists, an OTP has been sent to the registered email."


@router.post(
    "/password/forgot",
    response_model=schemas.MessageResponse,
    summary="Email a password recovery OTP",
)
def forgot_password(
    payload: schemas.ForgotPasswordRequest,
    db: Session = Depends(get_db),
):
    services.request_password_otp(db, payload.email)
    return schemas.MessageResponse(detail=OTP_SENT_MESSAGE)


@router.post(
    "/password/resend-otp",
    response_model=schemas.MessageResponse,
    summary="Email a new password recovery OTP",
)
def resend_otp(
    payload: schemas.ForgotPasswordRequest,
    db: Session = Depends(get_db),
):
    services.request_password_otp(db, payload.email)
    return schemas.MessageResponse(detail=OTP_SENT_MESSAGE)


@router.post(
    "/password/verify-otp",
    response_model=schemas.MessageResponse,
    summary="Check a password recovery OTP",
)
def verify_otp(
    payload: schemas.VerifyOtpRequest,
    db: Session = Depends(get_db),
):
    try:
        services.verify_password_otp(db, email=payload.email, otp=payload.otp)
    except services.AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return schemas.MessageResponse(detail="OTP verified.")


@router.post(
    "/password/reset",
    response_model=schemas.MessageResponse,
    summary="Set a new password using a recovery OTP",
)
def reset_password(
    payload: schemas.ResetPasswordRequest,
    db: Session = Depends(get_db),
):
    try:
        services.reset_password_with_otp(
            db,
            email=payload.email,
            otp=payload.otp,
            new_password=payload.new_password,
        )
    except services.AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return schemas.MessageResponse(detail="Password has been reset successfully.")

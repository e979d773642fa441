from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from fastapi import HTTPException

from hrdc import security
from hrdc.apps.accounts import models as account_models
from hrdc.apps.accounts import router as accounts_router
from hrdc.apps.accounts import schemas, services
from hrdc.apps.notifications import models as notification_models
from hrdc.apps.notifications import providers as notification_providers

NOW = datetime(2030, 1, 7, 9, 0, tzinfo=timezone.utc)


class _RecordingProvider(notification_providers.EmailProvider):
    def __init__(self):
        self.sent = []

    def send(self, *, recipient, subject, html_body, correlation_id=None):
        self.sent.append((recipient, subject, html_body))


@pytest.fixture()
def mailbox(monkeypatch):
    provider = _RecordingProvider()
    monkeypatch.setattr(notification_providers, "get_email_provider", lambda: (provider, True))
    return provider


@pytest.fixture()
def fixed_codes(monkeypatch):
    codes = iter(["111111", "222222", "333333"])
    monkeypatch.setattr(services, "_generate_otp", lambda: next(codes))


@pytest.fixture()
def account(db_session, seed):
    employee = seed.employee(db_session, "asha@example.com", first_name="Asha", last_name="Rao")
    user = db_session.get(account_models.User, employee.user_id)
    user.hashed_password = security.get_password_hash("old-password")
    db_session.commit()
    return user


def test_request_emails_a_six_digit_code(db_session, account, mailbox):
    code = services.request_password_otp(db_session, " ASHA@example.com ", now=NOW)

    assert len(code) == 6 and code.isdigit()
    [(recipient, subject, body)] = mailbox.sent
    assert recipient == "asha@example.com"
    assert subject == "HRDC Password Recovery OTP"
    assert "Dear Asha Rao" in body
    assert f"Your OTP for password recovery is: <b>{code}</b>" in body
    assert "It will expire in 5 minutes." in body

    [log] = db_session.query(notification_models.EmailLog).all()
    assert log.template_key == "password_recovery_otp"
    assert code not in str(log.context_json)
    [row] = db_session.query(account_models.PasswordResetOtp).all()
    assert row.otp_hash != code
    assert row.expires_at.replace(tzinfo=None) == (NOW + timedelta(minutes=5)).replace(tzinfo=None)


def test_unknown_or_inactive_account_gets_the_same_answer(db_session, seed, mailbox):
    seed.user(db_session, "off@example.com", is_active=False)

    assert services.request_password_otp(db_session, "nobody@example.com", now=NOW) is None
    assert services.request_password_otp(db_session, "off@example.com", now=NOW) is None
    assert mailbox.sent == []

    response = accounts_router.forgot_password(
        schemas.ForgotPasswordRequest(email="nobody@example.com"), db=db_session
    )
    assert response.detail == accounts_router.OTP_SENT_MESSAGE


def test_verify_rejects_wrong_code_and_counts_attempts(db_session, account, mailbox, fixed_codes):
    services.request_password_otp(db_session, account.email, now=NOW)

    with pytest.raises(services.AuthenticationError, match="Invalid OTP"):
        services.verify_password_otp(db_session, email=account.email, otp="999999", now=NOW)

    row = services.verify_password_otp(db_session, email=account.email, otp="111111", now=NOW)
    assert row.failed_attempts == 1
    assert row.used_at is None


def test_expired_code_is_refused_and_retired(db_session, account, mailbox, fixed_codes):
    services.request_password_otp(db_session, account.email, now=NOW)
    later = NOW + timedelta(minutes=6)

    with pytest.raises(services.AuthenticationError, match="OTP has expired"):
        services.verify_password_otp(db_session, email=account.email, otp="111111", now=later)
    with pytest.raises(services.AuthenticationError, match="Invalid OTP"):
        services.verify_password_otp(db_session, email=account.email, otp="111111", now=later)


def test_reset_sets_password_and_consumes_code(db_session, account, mailbox, fixed_codes):
    services.request_password_otp(db_session, account.email, now=NOW)

    user = services.reset_password_with_otp(
        db_session, email=account.email, otp="111111", new_password="brand-new-pass", now=NOW
    )

    assert security.verify_password("brand-new-pass", user.hashed_password)
    assert services.authenticate_user(db_session, email=account.email, password="old-password") is None
    with pytest.raises(services.AuthenticationError):
        services.reset_password_with_otp(
            db_session, email=account.email, otp="111111", new_password="another-pass", now=NOW
        )


def test_resend_retires_the_previous_code(db_session, account, mailbox, fixed_codes):
    services.request_password_otp(db_session, account.email, now=NOW)
    response = accounts_router.resend_otp(schemas.ForgotPasswordRequest(email=account.email), db=db_session)

    assert response.detail == accounts_router.OTP_SENT_MESSAGE
    assert len(mailbox.sent) == 2
    with pytest.raises(services.AuthenticationError):
        services.verify_password_otp(db_session, email=account.email, otp="111111")
    services.verify_password_otp(db_session, email=account.email, otp="222222")


def test_code_is_locked_after_too_many_wrong_guesses(db_session, account, mailbox, fixed_codes, monkeypatch):
    monkeypatch.setattr(services, "PASSWORD_OTP_MAX_ATTEMPTS", 2)
    services.request_password_otp(db_session, account.email, now=NOW)

    for _ in range(2):
        with pytest.raises(services.AuthenticationError):
            services.verify_password_otp(db_session, email=account.email, otp="000000", now=NOW)

    with pytest.raises(services.AuthenticationError, match="Invalid OTP"):
        services.verify_password_otp(db_session, email=account.email, otp="111111", now=NOW)


def test_reset_endpoint_maps_bad_code_to_400(db_session, account, mailbox, fixed_codes):
    services.request_password_otp(db_session, account.email, now=NOW)

    with pytest.raises(HTTPException) as exc:
        accounts_router.reset_password(
            schemas.ResetPasswordRequest(email=account.email, otp="000000", new_password="brand-new-pass"),
            db=db_session,
        )
    assert exc.value.status_code == 400
    assert exc.value.detail == "Invalid OTP"

    ok = accounts_router.verify_otp(schemas.VerifyOtpRequest(email=account.email, otp="111111"), db=db_session)
    assert ok.detail == "OTP verified."

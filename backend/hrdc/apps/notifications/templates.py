"""HTML email bodies for training notifications and account recovery.

Every interpolated value is HTML-escaped; subjects are plain text.
"""

from __future__ import annotations

from datetime import date, time
from html import escape
from typing import Optional

TEMPLATE_TRAINING_CREATED = "training_created"
TEMPLATE_TRAINING_UPDATED = "training_updated"
TEMPLATE_TRAINING_REMINDER = "training_reminder"
TEMPLATE_REGISTRATION_STATUS = "registration_status"
TEMPLATE_PASSWORD_OTP = "password_recovery_otp"

PASSWORD_OTP_SUBJECT = "HRDC Password Recovery OTP"

DEFAULT_VENUE = "Online/TBD"

_TRIGGER_TEMPLATES = {
    "created": TEMPLATE_TRAINING_CREATED,
    "updated": TEMPLATE_TRAINING_UPDATED,
    "reminder": TEMPLATE_TRAINING_REMINDER,
}

_SUBJECT_PREFIX = {
    "created": "New Training Available",
    "updated": "Training Updated",
    "reminder": "Training Reminder",
}

_HEADLINE = {
    "created": "A new training program matching your profile is now open for registration.",
    "updated": "A training program matching your profile has been updated. Please review the latest details.",
    "reminder": "This is a reminder about an upcoming training program matching your profile.",
}


def format_date(value: Optional[date]) -> str:
    return value.strftime("%d/%m/%Y") if value else "-"


def format_time(value: Optional[time]) -> str:
    return value.strftime("%H:%M") if value else "-"


def template_key_for(trigger: str) -> str:
    return _TRIGGER_TEMPLATES.get(trigger, TEMPLATE_TRAINING_CREATED)


def training_subject(trigger: str, title: str) -> str:
    prefix = _SUBJECT_PREFIX.get(trigger, _SUBJECT_PREFIX["created"])
    return f"{prefix}: {title}"


def _row(label: str, value) -> str:
    return f"<tr><th align=\"left\">{escape(label)}</th><td>{escape(str(value))}</td></tr>"


def training_email_body(trigger: str, *, employee, training) -> str:
    """
    Body for created / updated / reminder announcements. The details
    table is the same for every trigger; only the headline changes.
    """
    headline = _HEADLINE.get(trigger, _HEADLINE["created"])
    rows = [
        _row("Training", training.title),
        _row("Trainer", training.trainer_name),
        _row("Start", f"{format_date(training.start_date)} {format_time(training.from_time)}"),
        _row("End", f"{format_date(training.end_date)} {format_time(training.to_time)}"),
        _row("Time", f"{format_time(training.from_time)} - {format_time(training.to_time)}"),
        _row("Venue", training.venue or DEFAULT_VENUE),
        _row("Mode", training.mode or "-"),
        _row("Capacity", training.capacity),
        _row("Eligibility", training.eligibility_type or "General"),
        _row("Your department", employee.department or "-"),
        _row("Your designation", employee.designation or "-"),
    ]
    if training.valid_till and trigger != "reminder":
        rows.append(_row("Register by", format_date(training.valid_till)))

    return (
        "<html><body>"
        f"<p>Dear {escape(employee.first_name or '')} {escape(employee.last_name or '')},</p>"
        f"<p>{escape(headline)}</p>"
        f"<table cellpadding=\"4\">{''.join(rows)}</table>"
        "<p>Please sign in to the HRDC portal for more information.</p>"
        "<p>Regards,<br/>HRDC</p>"
        "</body></html>"
    )


def registration_status_subject(status: str, title: str) -> str:
    return f"Training Registration {status} - {title}"


def registration_status_body(status: str, *, employee, training, remarks: Optional[str] = None) -> str:
    approved = status.lower() == "approved"
    if approved:
        lead = "Your registration has been approved. We look forward to seeing you at the training."
    else:
        lead = "Unfortunately your registration could not be approved for this session."
    rows = [
        _row("Training", training.title),
        _row("Trainer", training.trainer_name),
        _row("Dates", f"{format_date(training.start_date)} - {format_date(training.end_date)}"),
        _row("Time", f"{format_time(training.from_time)} - {format_time(training.to_time)}"),
        _row("Venue", training.venue or DEFAULT_VENUE),
        _row("Mode", training.mode or "-"),
    ]
    if remarks:
        rows.append(_row("Remarks", remarks))
    return (
        "<html><body>"
        f"<p>Dear {escape(employee.first_name or '')} {escape(employee.last_name or '')},</p>"
        f"<p>{escape(lead)}</p>"
        f"<table cellpadding=\"4\">{''.join(rows)}</table>"
        "<p>Regards,<br/>HRDC</p>"
        "</body></html>"
    )


def password_otp_body(*, name: str, otp: str, ttl_minutes: int) -> str:
    return (
        "<html><body>"
        f"<p>Dear {escape(name or 'User')},</p>"
        f"<p>Your OTP for password recovery is: <b>{escape(otp)}</b>. "
        f"It will expire in {int(ttl_minutes)} minutes.</p>"
        "<p>If you did not request a password reset, you can ignore this email.</p>"
        "<p>Regards,<br/>HRDC</p>"
        "</body></html>"
    )

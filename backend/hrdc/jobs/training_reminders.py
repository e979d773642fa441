"""Upcoming training reminder scan.

Safe to run from cron (a registrant who already holds the same reminder for
the same training and start date is skipped), and driven daily in-process
by `PeriodicRunner`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from typing import Callable, Optional, Sequence

from sqlalchemy.orm import Session

from hrdc.apps.employees.models import Employee
from hrdc.apps.notifications import models as notification_models
from hrdc.apps.notifications import service as notification_service
from hrdc.apps.notifications.templates import DEFAULT_VENUE, format_date, format_time
from hrdc.apps.realtime.hub import GroupMembership
from hrdc.apps.training.models import (
    RegistrationStatus,
    TrainingProgram,
    TrainingRegistration,
    TrainingStatus,
)
from hrdc.database import WriteSessionLocal

from .scheduler import ScheduledTask

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Upcoming Training Reminder"
REMINDER_OFFSETS_DAYS = (3, 1)
INTERVAL_HOURS = float(os.getenv("TRAINING_REMINDER_INTERVAL_HOURS", "24"))


@dataclass
class ReminderScanSummary:
    scanned_on: date
    trainings: int = 0
    notified: int = 0
    already_reminded: int = 0
    failed: int = 0


def _days_label(days: int) -> str:
    return "1 day" if days == 1 else f"{days} days"


def reminder_prefix(training: TrainingProgram, days: int) -> str:
    return f"Reminder: Your training '{training.title}' is scheduled to begin in {_days_label(days)}."


def reminder_message(training: TrainingProgram, days: int) -> str:
    return (
        f"{reminder_prefix(training, days)} "
        f"Date: {format_date(training.start_date)}, "
        f"Time: {format_time(training.from_time)} - {format_time(training.to_time)}, "
        f"Venue: {training.venue or DEFAULT_VENUE}"
    )


def trainings_starting_on(db: Session, day: date) -> list[TrainingProgram]:
    return (
        db.query(TrainingProgram)
        .filter(
            TrainingProgram.start_date == day,
            TrainingProgram.is_active.is_(True),
            TrainingProgram.status != TrainingStatus.CANCELLED,
        )
        .order_by(TrainingProgram.id.asc())
        .all()
    )


def _confirmed_registrations(db: Session, training_id: int) -> list[TrainingRegistration]:
    return (
        db.query(TrainingRegistration)
        .join(Employee, TrainingRegistration.employee_id == Employee.id)
        .filter(
            TrainingRegistration.training_id == training_id,
            TrainingRegistration.status == RegistrationStatus.APPROVED,
            TrainingRegistration.is_active.is_(True),
            Employee.is_active.is_(True),
        )
        .order_by(TrainingRegistration.id.asc())
        .all()
    )


def _already_reminded(db: Session, *, user_id: int, training: TrainingProgram, prefix: str) -> bool:
    # One reminder per user, training row, start date and day offset.
    return (
        db.query(notification_models.Notification.id)
        .filter(
            notification_models.Notification.user_id == user_id,
            notification_models.Notification.training_id == training.id,
            notification_models.Notification.title == REMINDER_TITLE,
            notification_models.Notification.message.startswith(prefix, autoescape=True),
            notification_models.Notification.message.contains(
                f"Date: {format_date(training.start_date)},", autoescape=True
            ),
            notification_models.Notification.is_active.is_(True),
        )
        .first()
        is not None
    )


def run_reminder_scan(
    db: Session,
    *,
    today: date,
    publisher: Optional[GroupMembership] = None,
    offsets: Sequence[int] = REMINDER_OFFSETS_DAYS,
) -> ReminderScanSummary:
    """
    Notify every confirmed registrant of trainings starting `offsets` days
    after `today`. One registrant failing does not stop the scan.
    """
    summary = ReminderScanSummary(scanned_on=today)
    for days in offsets:
        trainings = trainings_starting_on(db, today + timedelta(days=days))
        logger.info(
            "reminder scan window",
            extra={"days_ahead": days, "trainings": len(trainings), "scanned_on": today.isoformat()},
        )
        for training in trainings:
            summary.trainings += 1
            prefix = reminder_prefix(training, days)
            message = reminder_message(training, days)
            for registration in _confirmed_registrations(db, training.id):
                user_id = registration.employee.user_id
                if _already_reminded(db, user_id=user_id, training=training, prefix=prefix):
                    summary.already_reminded += 1
                    continue
                try:
                    notification_service.notify(
                        db,
                        user_id=user_id,
                        title=REMINDER_TITLE,
                        message=message,
                        publisher=publisher,
                        training_id=training.id,
                    )
                    summary.notified += 1
                except Exception:
                    db.rollback()
                    summary.failed += 1
                    logger.exception(
                        "reminder notification failed",
                        extra={"training_id": training.id, "registration_id": registration.id},
                    )
    logger.info("reminder scan completed", extra=asdict(summary))
    return summary


class TrainingReminderTask(ScheduledTask):
    name = "training-reminders"

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session] = WriteSessionLocal,
        publisher: Optional[GroupMembership] = None,
        clock: Callable[[], date] = date.today,
    ) -> None:
        self._session_factory = session_factory
        self._publisher = publisher
        self._clock = clock

    def run_once(self) -> ReminderScanSummary:
        db = self._session_factory()
        try:
            summary = run_reminder_scan(db, today=self._clock(), publisher=self._publisher)
            db.commit()
            return summary
        finally:
            db.close()


def run() -> dict:
    return asdict(TrainingReminderTask().run_once())


if __name__ == "__main__":
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    result = run()
    print("Training reminder scan completed:", result)

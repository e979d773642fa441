from __future__ import annotations

from datetime import date

from hrdc.apps.notifications import models as notification_models
from hrdc.apps.training.models import RegistrationStatus, TrainingStatus
from hrdc.jobs.training_reminders import (
    REMINDER_TITLE,
    TrainingReminderTask,
    reminder_message,
    run_reminder_scan,
)

TODAY = date(2030, 1, 7)


def _reminders(db):
    return (
        db.query(notification_models.Notification)
        .filter(notification_models.Notification.title == REMINDER_TITLE)
        .order_by(notification_models.Notification.id.asc())
        .all()
    )


def test_reminder_message_format(db_session, seed):
    training = seed.training(db_session, title="Fire Safety", start_date=date(2030, 1, 10))
    assert reminder_message(training, 3) == (
        "Reminder: Your training 'Fire Safety' is scheduled to begin in 3 days. "
        "Date: 10/01/2030, Time: 10:00 - 13:00, Venue: Main Hall"
    )
    online = seed.training(db_session, title="Ethics", start_date=date(2030, 1, 8), venue=None)
    assert reminder_message(online, 1).startswith(
        "Reminder: Your training 'Ethics' is scheduled to begin in 1 day. "
    )
    assert reminder_message(online, 1).endswith("Venue: Online/TBD")


def test_scan_notifies_only_confirmed_registrants_at_three_and_one_days(db_session, seed, publisher):
    approved = seed.employee(db_session, "approved@example.com")
    pending = seed.employee(db_session, "pending@example.com")
    rejected = seed.employee(db_session, "rejected@example.com")
    left = seed.employee(db_session, "left@example.com", is_active=False)

    three_days = seed.training(db_session, title="Three", start_date=date(2030, 1, 10))
    one_day = seed.training(db_session, title="One", start_date=date(2030, 1, 8))
    two_days = seed.training(db_session, title="Two", start_date=date(2030, 1, 9))
    cancelled = seed.training(
        db_session, title="Cancelled", start_date=date(2030, 1, 10), status=TrainingStatus.CANCELLED
    )

    for training in (three_days, one_day, two_days, cancelled):
        seed.registration(db_session, approved, training, status=RegistrationStatus.APPROVED)
    seed.registration(db_session, pending, three_days)
    seed.registration(db_session, rejected, three_days, status=RegistrationStatus.REJECTED)
    seed.registration(db_session, left, three_days, status=RegistrationStatus.APPROVED)

    summary = run_reminder_scan(db_session, today=TODAY, publisher=publisher)

    assert summary.trainings == 2
    assert summary.notified == 2
    assert summary.failed == 0
    rows = _reminders(db_session)
    assert {row.user_id for row in rows} == {approved.user_id}
    assert [row.message.split(".")[0] for row in rows] == [
        "Reminder: Your training 'Three' is scheduled to begin in 3 days",
        "Reminder: Your training 'One' is scheduled to begin in 1 day",
    ]
    assert len(publisher.events) == 2


def test_second_scan_on_the_same_day_does_not_duplicate(db_session, seed):
    employee = seed.employee(db_session, "twice@example.com")
    training = seed.training(db_session, start_date=date(2030, 1, 10))
    seed.registration(db_session, employee, training, status=RegistrationStatus.APPROVED)

    first = run_reminder_scan(db_session, today=TODAY)
    second = run_reminder_scan(db_session, today=TODAY)

    assert first.notified == 1
    assert second.notified == 0
    assert second.already_reminded == 1
    assert len(_reminders(db_session)) == 1


def test_one_day_reminder_is_sent_after_three_day_reminder(db_session, seed):
    employee = seed.employee(db_session, "both@example.com")
    training = seed.training(db_session, start_date=date(2030, 1, 10))
    seed.registration(db_session, employee, training, status=RegistrationStatus.APPROVED)

    run_reminder_scan(db_session, today=date(2030, 1, 7))
    run_reminder_scan(db_session, today=date(2030, 1, 9))

    assert len(_reminders(db_session)) == 2


def test_task_uses_its_own_session_and_clock(db_session, session_factory, seed, publisher):
    employee = seed.employee(db_session, "task@example.com")
    training = seed.training(db_session, start_date=date(2030, 1, 8))
    seed.registration(db_session, employee, training, status=RegistrationStatus.APPROVED)

    task = TrainingReminderTask(session_factory=session_factory, publisher=publisher, clock=lambda: TODAY)
    summary = task.run_once()

    assert summary.scanned_on == TODAY
    assert summary.notified == 1
    assert publisher.events[0][:3] == ("user", employee.user_id, "notification.created")


def test_recurring_training_with_the_same_title_is_reminded_each_time(db_session, seed):
    employee = seed.employee(db_session, "recurring@example.com")
    january = seed.training(db_session, title="Fire Safety", start_date=date(2030, 1, 10))
    february = seed.training(db_session, title="Fire Safety", start_date=date(2030, 2, 10))
    seed.registration(db_session, employee, january, status=RegistrationStatus.APPROVED)
    seed.registration(db_session, employee, february, status=RegistrationStatus.APPROVED)

    first = run_reminder_scan(db_session, today=date(2030, 1, 7))
    second = run_reminder_scan(db_session, today=date(2030, 2, 7))

    assert first.notified == 1
    assert second.notified == 1
    rows = _reminders(db_session)
    assert [row.training_id for row in rows] == [january.id, february.id]


def test_same_title_trainings_on_the_same_day_each_get_a_reminder(db_session, seed):
    employee = seed.employee(db_session, "double@example.com")
    morning = seed.training(db_session, title="Fire Safety", start_date=date(2030, 1, 10))
    afternoon = seed.training(db_session, title="Fire Safety", start_date=date(2030, 1, 10))
    seed.registration(db_session, employee, morning, status=RegistrationStatus.APPROVED)
    seed.registration(db_session, employee, afternoon, status=RegistrationStatus.APPROVED)

    summary = run_reminder_scan(db_session, today=TODAY)

    assert summary.notified == 2
    assert summary.already_reminded == 0
    assert {row.training_id for row in _reminders(db_session)} == {morning.id, afternoon.id}


def test_rescheduled_training_is_reminded_for_the_new_date(db_session, seed):
    employee = seed.employee(db_session, "moved@example.com")
    training = seed.training(db_session, start_date=date(2030, 1, 10))
    seed.registration(db_session, employee, training, status=RegistrationStatus.APPROVED)
    run_reminder_scan(db_session, today=TODAY)

    training.start_date = date(2030, 1, 17)
    training.end_date = date(2030, 1, 17)
    db_session.commit()
    summary = run_reminder_scan(db_session, today=date(2030, 1, 14))

    assert summary.notified == 1
    assert len(_reminders(db_session)) == 2

from __future__ import annotations

from datetime import date, datetime, time

import pytest
from pydantic import ValidationError

from hrdc.apps.accounts.models import AccountRole
from hrdc.apps.notifications import models as notification_models
from hrdc.apps.notifications import providers as notification_providers
from hrdc.apps.notifications.dispatcher import TrainingEmailDispatcher, TriggerType
from hrdc.apps.training import models as training_models
from hrdc.apps.training import services
from hrdc.apps.training.schemas import TrainingProgramUpdate

BEFORE = date(2030, 1, 1)
AFTER_END = datetime(2030, 1, 11, 9, 0)
START = date(2030, 1, 10)


@pytest.fixture()
def admin(db_session, seed):
    return seed.user(db_session, "admin@example.com", role=AccountRole.ADMIN)


@pytest.fixture()
def dispatcher(session_factory):
    return TrainingEmailDispatcher(session_factory=session_factory)


@pytest.fixture(autouse=True)
def no_email_provider(monkeypatch):
    monkeypatch.setattr(
        notification_providers,
        "get_email_provider",
        lambda: (notification_providers.NoopProvider(), False),
    )


def _notifications(db, **filters):
    q = db.query(notification_models.Notification)
    for field, value in filters.items():
        q = q.filter(getattr(notification_models.Notification, field) == value)
    return q.order_by(notification_models.Notification.id.asc()).all()


def _program_data(**overrides):
    data = {
        "title": "Fire Safety",
        "trainer_name": "A. Trainer",
        "start_date": START,
        "end_date": START,
        "from_time": time(10, 0),
        "to_time": time(13, 0),
        "valid_till": None,
        "venue": "Main Hall",
        "eligibility_type": "all",
        "capacity": 2,
        "mode": "Offline",
        "marks_out_of": None,
        "is_marks_entry": False,
    }
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# PROGRAMS
# ---------------------------------------------------------------------------


def test_create_training_notifies_both_roles_and_queues_emails(db_session, admin, publisher, dispatcher):
    training = services.create_training(
        db_session, _program_data(), actor=admin, publisher=publisher, dispatcher=dispatcher
    )

    assert training.valid_till == training.end_date
    assert training.status == training_models.TrainingStatus.SCHEDULED
    admin_rows = _notifications(db_session, target_role="Admin")
    employee_rows = _notifications(db_session, target_role="Employee")
    assert [row.title for row in admin_rows] == ["New Training Created"]
    assert admin_rows[0].message == "A new training program 'Fire Safety' has been added to the system."
    assert [row.title for row in employee_rows] == ["New Training Available"]
    assert [event[:2] for event in publisher.events] == [("group", "Admin"), ("group", "Employee")]
    assert dispatcher.pending() == 1


def test_create_training_without_dispatcher_still_saves(db_session, admin):
    training = services.create_training(db_session, _program_data(), actor=admin)
    assert training.id is not None


def test_update_training_rejects_inverted_dates(db_session, admin, seed, dispatcher):
    training = seed.training(db_session, start_date=START)
    with pytest.raises(services.RuleViolation):
        services.update_training(
            db_session, training.id, {"end_date": date(2030, 1, 5)}, actor=admin, dispatcher=dispatcher
        )
    assert db_session.get(training_models.TrainingProgram, training.id).end_date == START
    assert dispatcher.pending() == 0


@pytest.mark.parametrize("field", ["start_date", "end_date", "title", "trainer_name", "capacity", "is_marks_entry"])
def test_update_payload_rejects_null_for_required_fields(field):
    with pytest.raises(ValidationError):
        TrainingProgramUpdate.model_validate({field: None})


def test_update_payload_allows_clearing_optional_fields():
    payload = TrainingProgramUpdate.model_validate({"venue": None, "valid_till": None})
    assert payload.model_dump(exclude_unset=True) == {"venue": None, "valid_till": None}


def test_update_training_refuses_to_clear_required_fields(db_session, admin, seed, dispatcher):
    training = seed.training(db_session, start_date=START)
    with pytest.raises(services.RuleViolation):
        services.update_training(
            db_session, training.id, {"start_date": None}, actor=admin, dispatcher=dispatcher
        )
    assert db_session.get(training_models.TrainingProgram, training.id).start_date == START
    assert dispatcher.pending() == 0


def test_update_training_requeues_unless_cancelled(db_session, admin, seed, dispatcher):
    training = seed.training(db_session, start_date=START)
    services.update_training(db_session, training.id, {"venue": "Room 2"}, actor=admin, dispatcher=dispatcher)
    assert dispatcher.pending() == 1
    assert [row.title for row in _notifications(db_session)] == ["Training Updated", "Training Updated"]

    services.update_training(
        db_session,
        training.id,
        {"status": training_models.TrainingStatus.CANCELLED},
        actor=admin,
        dispatcher=dispatcher,
    )
    assert dispatcher.pending() == 1


def test_announce_rejects_cancelled_and_missing(db_session, seed, dispatcher):
    cancelled = seed.training(db_session, status=training_models.TrainingStatus.CANCELLED)
    with pytest.raises(services.RuleViolation):
        services.announce_training(db_session, cancelled.id, TriggerType.REMINDER, dispatcher=dispatcher)
    with pytest.raises(services.NotFoundError):
        services.announce_training(db_session, 9999, TriggerType.REMINDER, dispatcher=dispatcher)

    active = seed.training(db_session)
    assert services.announce_training(db_session, active.id, TriggerType.REMINDER, dispatcher=dispatcher) == 1


def test_employee_listing_hides_ineligible_and_deleted(db_session, admin, seed):
    employee = seed.employee(db_session, "hr@example.com", department="Human Resources", designation="Officer")
    seed.training(db_session, title="Open", eligibility_type="all")
    seed.training(db_session, title="Tech", eligibility_type="technical")
    deleted = seed.training(db_session, title="Deleted")
    services.delete_training(db_session, deleted.id, actor=admin)

    titles = [t.title for t in services.list_trainings(db_session, for_employee=employee)]
    assert titles == ["Open"]
    assert {t.title for t in services.list_trainings(db_session)} == {"Open", "Tech"}


# ---------------------------------------------------------------------------
# REGISTRATIONS
# ---------------------------------------------------------------------------


def test_register_notifies_admins(db_session, seed, publisher):
    employee = seed.employee(db_session, "asha@example.com", first_name="Asha", last_name="Rao")
    training = seed.training(db_session, start_date=START)

    registration = services.register_for_training(
        db_session, training.id, employee=employee, today=BEFORE, publisher=publisher
    )

    assert registration.status == training_models.RegistrationStatus.PENDING
    [row] = _notifications(db_session, target_role="Admin")
    assert row.title == "New Training Registration"
    assert row.message == "Employee Asha Rao has registered for training 'Fire Safety'"


def test_register_rejects_duplicates_closed_ineligible_and_full(db_session, seed):
    first = seed.employee(db_session, "first@example.com")
    second = seed.employee(db_session, "second@example.com")
    third = seed.employee(db_session, "third@example.com")
    training = seed.training(db_session, start_date=START, capacity=2)

    services.register_for_training(db_session, training.id, employee=first, today=BEFORE)
    with pytest.raises(services.ConflictError):
        services.register_for_training(db_session, training.id, employee=first, today=BEFORE)

    with pytest.raises(services.RuleViolation):
        services.register_for_training(db_session, training.id, employee=second, today=date(2030, 1, 11))

    tech = seed.training(db_session, title="Tech", start_date=START, eligibility_type="technical")
    with pytest.raises(services.RuleViolation):
        services.register_for_training(db_session, tech.id, employee=second, today=BEFORE)

    services.register_for_training(db_session, training.id, employee=second, today=BEFORE)
    with pytest.raises(services.RuleViolation):
        services.register_for_training(db_session, training.id, employee=third, today=BEFORE)


def test_rejected_registrations_free_capacity(db_session, seed):
    first = seed.employee(db_session, "r1@example.com")
    second = seed.employee(db_session, "r2@example.com")
    training = seed.training(db_session, start_date=START, capacity=1)
    seed.registration(db_session, first, training, status=training_models.RegistrationStatus.REJECTED)

    registration = services.register_for_training(db_session, training.id, employee=second, today=BEFORE)
    assert registration.id is not None


def test_cancel_only_before_start_and_only_own(db_session, seed):
    owner = seed.employee(db_session, "owner@example.com")
    stranger = seed.employee(db_session, "stranger@example.com")
    training = seed.training(db_session, start_date=START)
    registration = seed.registration(db_session, owner, training)

    with pytest.raises(services.NotFoundError):
        services.cancel_registration(db_session, registration.id, employee=stranger, today=BEFORE)
    with pytest.raises(services.RuleViolation):
        services.cancel_registration(db_session, registration.id, employee=owner, today=START)

    cancelled = services.cancel_registration(db_session, registration.id, employee=owner, today=BEFORE)
    assert cancelled.is_active is False
    assert services.list_registrations(db_session, training_id=training.id) == []


def test_decision_notifies_employee_and_logs_email(db_session, admin, seed, publisher):
    employee = seed.employee(db_session, "decide@example.com")
    training = seed.training(db_session, start_date=START)
    registration = seed.registration(db_session, employee, training)

    decided = services.decide_registration(
        db_session,
        registration.id,
        training_models.RegistrationStatus.APPROVED,
        actor=admin,
        remarks="See you there",
        publisher=publisher,
    )

    assert decided.status == training_models.RegistrationStatus.APPROVED
    assert decided.decided_by_user_id == admin.id
    [row] = _notifications(db_session, user_id=employee.user_id)
    assert row.title == "Training Registration Approved"
    assert row.message == "Your registration for 'Fire Safety' has been approved."
    assert publisher.events[-1][:3] == ("user", employee.user_id, "notification.created")

    log = db_session.query(notification_models.EmailLog).one()
    assert log.recipient == "decide@example.com"
    assert log.subject == "Training Registration Approved - Fire Safety"
    assert log.status == notification_models.EmailStatus.SKIPPED_NO_PROVIDER


def test_decision_cannot_be_pending(db_session, admin, seed):
    employee = seed.employee(db_session, "pend@example.com")
    registration = seed.registration(db_session, employee, seed.training(db_session))
    with pytest.raises(services.RuleViolation):
        services.decide_registration(
            db_session, registration.id, training_models.RegistrationStatus.PENDING, actor=admin
        )


def test_bulk_decide_skips_unknown_ids(db_session, admin, seed):
    training = seed.training(db_session)
    ids = [
        seed.registration(db_session, seed.employee(db_session, f"b{index}@example.com"), training).id
        for index in range(2)
    ]

    updated, skipped = services.bulk_decide(
        db_session, ids + [9999, ids[0]], training_models.RegistrationStatus.REJECTED, actor=admin
    )

    assert updated == ids
    assert skipped == [9999]
    titles = {row.title for row in _notifications(db_session)}
    assert titles == {"Training Registration Rejected"}


# ---------------------------------------------------------------------------
# ATTENDANCE / MARKS / CERTIFICATES / FEEDBACK
# ---------------------------------------------------------------------------


def _approved(db, seed, training, email):
    employee = seed.employee(db, email)
    registration = seed.registration(db, employee, training, status=training_models.RegistrationStatus.APPROVED)
    return employee, registration


def test_attendance_rules(db_session, admin, seed):
    training = seed.training(db_session, start_date=START)
    _, approved = _approved(db_session, seed, training, "att@example.com")
    pending = seed.registration(db_session, seed.employee(db_session, "pa@example.com"), training)

    with pytest.raises(services.RuleViolation):
        services.mark_attendance(
            db_session, training.id, START, [(approved.id, True)], actor=admin, now=datetime(2030, 1, 10, 12, 0)
        )
    with pytest.raises(services.RuleViolation):
        services.mark_attendance(
            db_session, training.id, date(2030, 1, 11), [(approved.id, True)], actor=admin, now=AFTER_END
        )
    with pytest.raises(services.RuleViolation):
        services.mark_attendance(db_session, training.id, START, [(pending.id, True)], actor=admin, now=AFTER_END)

    rows = services.mark_attendance(
        db_session, training.id, START, [(approved.id, True), (approved.id, False)], actor=admin, now=AFTER_END
    )
    assert [(row.registration_id, row.is_present) for row in rows] == [(approved.id, True)]

    with pytest.raises(services.ConflictError):
        services.mark_attendance(db_session, training.id, START, [(approved.id, True)], actor=admin, now=AFTER_END)
    assert len(services.list_attendance(db_session, training.id)) == 1


def test_marks_entry_rules(db_session, seed):
    plain = seed.training(db_session, title="Plain", start_date=START)
    _, plain_reg = _approved(db_session, seed, plain, "plain@example.com")
    with pytest.raises(services.RuleViolation):
        services.enter_marks(db_session, plain.id, [(plain_reg.id, 5)], now=AFTER_END)

    graded = seed.training(db_session, title="Graded", start_date=START, is_marks_entry=True, marks_out_of=50)
    _, first = _approved(db_session, seed, graded, "g1@example.com")
    _, second = _approved(db_session, seed, graded, "g2@example.com")

    with pytest.raises(services.RuleViolation):
        services.enter_marks(db_session, graded.id, [(first.id, 40), (second.id, 51)], now=AFTER_END)
    assert db_session.get(training_models.TrainingRegistration, first.id).marks is None

    updated = services.enter_marks(db_session, graded.id, [(first.id, 40), (second.id, 50)], now=AFTER_END)
    assert [row.marks for row in updated] == [40, 50]


def test_certificate_requires_attendance_and_regenerates_in_place(db_session, admin, seed, publisher):
    training = seed.training(db_session, start_date=START)
    employee, registration = _approved(db_session, seed, training, "cert@example.com")

    with pytest.raises(services.RuleViolation):
        services.generate_certificate(db_session, registration.id, actor=admin)

    services.mark_attendance(db_session, training.id, START, [(registration.id, True)], actor=admin, now=AFTER_END)
    first = services.generate_certificate(
        db_session, registration.id, actor=admin, today=date(2030, 1, 12), publisher=publisher
    )
    again = services.generate_certificate(db_session, registration.id, actor=admin, today=date(2030, 1, 13))

    assert first.id == again.id
    assert again.issue_date == date(2030, 1, 13)
    assert again.certificate_path == f"certificates/training-{training.id}/registration-{registration.id}.pdf"
    assert db_session.query(training_models.Certificate).count() == 1
    assert [c.id for c in services.certificates_for_employee(db_session, employee)] == [first.id]
    titles = [row.title for row in _notifications(db_session, user_id=employee.user_id)]
    assert titles == ["Certificate Generated", "Certificate Generated"]


def test_feedback_request_and_submission(db_session, seed, publisher):
    training = seed.training(db_session, start_date=START)
    employee, registration = _approved(db_session, seed, training, "fb@example.com")
    seed.registration(db_session, seed.employee(db_session, "nofb@example.com"), training)

    rating = services.add_feedback_question(
        db_session,
        training.id,
        question_text="How useful was it?",
        question_type=training_models.FeedbackQuestionType.RATING,
        is_common=True,
    )
    comment = services.add_feedback_question(
        db_session,
        training.id,
        question_text="Comments",
        question_type=training_models.FeedbackQuestionType.TEXT,
        is_common=False,
    )
    assert [q.id for q in services.feedback_questions(db_session, training.id)] == [rating.id, comment.id]

    assert services.request_feedback(db_session, training.id, publisher=publisher) == 1
    [request] = _notifications(db_session, title="Feedback Request")
    assert request.user_id == employee.user_id

    with pytest.raises(services.RuleViolation):
        services.submit_feedback(
            db_session, registration.id, [{"question_id": rating.id}], employee=employee, now=AFTER_END
        )

    rows = services.submit_feedback(
        db_session,
        registration.id,
        [{"question_id": rating.id, "rating_value": 4}, {"question_id": comment.id, "response_text": "Good"}],
        employee=employee,
        now=AFTER_END,
    )
    assert len(rows) == 2

    with pytest.raises(services.ConflictError):
        services.submit_feedback(
            db_session, registration.id, [{"question_id": rating.id, "rating_value": 5}], employee=employee, now=AFTER_END
        )


def test_registration_links_load_without_reverse_collections(db_session, seed):
    employee = seed.employee(db_session, "links@example.com")
    training = seed.training(db_session, start_date=START)
    registration = seed.registration(db_session, employee, training)
    db_session.expire_all()

    loaded = db_session.get(training_models.TrainingRegistration, registration.id)
    assert loaded.employee.id == employee.id
    assert loaded.training.title == "Fire Safety"
    assert not hasattr(training_models.TrainingProgram, "registrations")
    assert not hasattr(type(employee), "registrations")

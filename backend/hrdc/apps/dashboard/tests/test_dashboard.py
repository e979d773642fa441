from __future__ import annotations

from datetime import date, datetime

import pytest
from fastapi import HTTPException

from hrdc.apps.accounts.models import AccountRole, User
from hrdc.apps.dashboard import router as dashboard_router
from hrdc.apps.dashboard import schemas, services
from hrdc.apps.help import services as help_services
from hrdc.apps.notifications import service as notification_service
from hrdc.apps.training import models as training_models

NOW = datetime(2030, 1, 10, 11, 0)


@pytest.fixture()
def world(db_session, seed):
    admin = seed.user(db_session, "admin@example.com", role=AccountRole.ADMIN)
    employee = seed.employee(db_session, "asha@example.com")
    seed.employee(db_session, "left@example.com", is_active=False)

    ongoing = seed.training(db_session, title="Ongoing", start_date=date(2030, 1, 10))
    finished = seed.training(
        db_session,
        title="Finished",
        start_date=date(2030, 1, 5),
        status=training_models.TrainingStatus.COMPLETED,
    )
    upcoming = seed.training(db_session, title="Upcoming", start_date=date(2030, 1, 20))
    seed.training(
        db_session,
        title="Cancelled",
        start_date=date(2030, 1, 20),
        status=training_models.TrainingStatus.CANCELLED,
    )

    approved = training_models.RegistrationStatus.APPROVED
    seed.registration(db_session, employee, ongoing, status=approved)
    done = seed.registration(db_session, employee, finished, status=approved)
    seed.registration(db_session, employee, upcoming)
    db_session.add(
        training_models.Certificate(
            registration_id=done.id,
            is_generated=True,
            issue_date=date(2030, 1, 6),
            is_active=True,
        )
    )
    db_session.commit()

    help_services.submit_query(
        db_session,
        employee=employee,
        data={"subject": "Where is my certificate?", "message": "Please check."},
    )
    notification_service.notify(db_session, user_id=employee.user_id, title="Hello", message="Welcome aboard")
    return admin, employee


def test_admin_summary_counts(db_session, world):
    admin, _ = world

    summary = services.admin_summary(db_session, user=admin, now=NOW)

    assert summary == {
        "total_employees": 1,
        "active_trainings": 1,
        "upcoming_trainings": 1,
        "total_registrations": 3,
        "pending_registrations": 1,
        "certificates_issued": 1,
        "pending_feedback": 1,
        "new_help_queries": 1,
        "unread_notifications": 1,
        "completion_rate": 25.0,
    }


def test_training_that_ended_earlier_today_is_not_active(db_session, world):
    admin, _ = world
    after_class = datetime(2030, 1, 10, 14, 0)
    assert services.admin_summary(db_session, user=admin, now=after_class)["active_trainings"] == 0


def test_feedback_clears_pending_count(db_session, world):
    admin, employee = world
    registration = (
        db_session.query(training_models.TrainingRegistration)
        .join(training_models.TrainingProgram)
        .filter(training_models.TrainingProgram.title == "Finished")
        .one()
    )
    question = training_models.FeedbackQuestion(question_text="Useful?", is_common=True, is_active=True)
    db_session.add(question)
    db_session.commit()
    db_session.add(
        training_models.Feedback(registration_id=registration.id, question_id=question.id, rating_value=5)
    )
    db_session.commit()

    assert services.admin_summary(db_session, user=admin, now=NOW)["pending_feedback"] == 0
    assert services.employee_summary(
        db_session, employee=employee, user=db_session.get(User, employee.user_id), now=NOW
    )["pending_feedback"] == 0


def test_employee_summary(db_session, world):
    _, employee = world

    summary = services.employee_summary(
        db_session, employee=employee, user=db_session.get(User, employee.user_id), now=NOW
    )

    assert [t.title for t in summary["upcoming_trainings"]] == ["Upcoming"]
    assert [t.title for t in summary["in_progress_trainings"]] == ["Ongoing"]
    assert [t.title for t in summary["completed_trainings"]] == ["Finished"]
    assert summary["certificates_count"] == 1
    assert summary["pending_registrations"] == 1
    assert summary["pending_feedback"] == 1
    assert summary["unread_notifications"] == 1


def test_dashboard_endpoints(db_session, world):
    admin, employee = world

    overview = dashboard_router.admin_dashboard(db=db_session, current_user=admin)
    assert isinstance(overview, schemas.AdminDashboard)
    assert overview.total_employees == 1

    mine = dashboard_router.employee_dashboard(db=db_session, current_user=db_session.get(User, employee.user_id))
    assert isinstance(mine, schemas.EmployeeDashboard)
    assert mine.certificates_count == 1

    with pytest.raises(HTTPException) as exc:
        dashboard_router.employee_dashboard(db=db_session, current_user=admin)
    assert exc.value.status_code == 404

from __future__ import annotations

import os
import sys
from datetime import date, time
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parent
sys.path.append(str(ROOT))

os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["DATABASE_WRITE_URL"] = "sqlite+pysqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["NOTIFICATIONS_EMAIL_PROVIDER"] = "none"
os.environ["REALTIME_ENABLED"] = "false"

from hrdc.database import Base  # noqa: E402
from hrdc.apps.accounts import models as account_models  # noqa: E402
from hrdc.apps.employees import models as employee_models  # noqa: E402
from hrdc.apps.notifications import models as notification_models  # noqa: E402,F401
from hrdc.apps.help import models as help_models  # noqa: E402,F401
from hrdc.apps.training import models as training_models  # noqa: E402


@pytest.fixture()
def engine():
    # One shared connection so worker threads (asyncio.to_thread) see the same in-memory database.
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
    )


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ---------------------------------------------------------------------------
# Seed helpers shared by the app test modules
# ---------------------------------------------------------------------------


def make_user(db, email, *, role=account_models.AccountRole.EMPLOYEE, is_active=True, push=True):
    user = account_models.User(
        email=email,
        hashed_password="x",
        role=role,
        is_active=is_active,
        is_web_notification_enabled=push,
    )
    db.add(user)
    db.commit()
    return user


def make_employee(
    db,
    email,
    *,
    first_name="Test",
    last_name="Employee",
    department="Administration",
    designation="Clerk",
    employee_type="Non-Technical",
    is_active=True,
    user_active=True,
):
    user = make_user(db, email, is_active=user_active)
    employee = employee_models.Employee(
        user_id=user.id,
        first_name=first_name,
        last_name=last_name,
        department=department,
        designation=designation,
        employee_type=employee_type,
        is_active=is_active,
    )
    db.add(employee)
    db.commit()
    return employee


def make_training(
    db,
    *,
    title="Fire Safety",
    start_date=date(2030, 1, 10),
    end_date=None,
    eligibility_type="all",
    capacity=30,
    venue="Main Hall",
    status=training_models.TrainingStatus.SCHEDULED,
    is_active=True,
    valid_till=None,
    **extra,
):
    training = training_models.TrainingProgram(
        title=title,
        trainer_name="Trainer",
        start_date=start_date,
        end_date=end_date or start_date,
        from_time=time(10, 0),
        to_time=time(13, 0),
        valid_till=valid_till or end_date or start_date,
        venue=venue,
        eligibility_type=eligibility_type,
        capacity=capacity,
        status=status,
        is_active=is_active,
        **extra,
    )
    db.add(training)
    db.commit()
    return training


def make_registration(db, employee, training, *, status=training_models.RegistrationStatus.PENDING, is_active=True):
    registration = training_models.TrainingRegistration(
        employee_id=employee.id,
        training_id=training.id,
        status=status,
        is_active=is_active,
    )
    db.add(registration)
    db.commit()
    return registration


class RecordingPublisher:
    """GroupMembership stand-in that records every publish."""

    def __init__(self, *, fail=False):
        self.fail = fail
        self.events = []

    def connect(self, user_id, role):
        raise NotImplementedError

    def disconnect(self, connection):
        raise NotImplementedError

    def publish_to_user(self, user_id, event, payload):
        if self.fail:
            raise RuntimeError("push transport down")
        self.events.append(("user", user_id, event, payload))
        return 1

    def publish_to_group(self, group, event, payload):
        if self.fail:
            raise RuntimeError("push transport down")
        self.events.append(("group", str(getattr(group, "value", group)), event, payload))
        return 1


@pytest.fixture()
def seed():
    class _Seed:
        user = staticmethod(make_user)
        employee = staticmethod(make_employee)
        training = staticmethod(make_training)
        registration = staticmethod(make_registration)

    return _Seed


@pytest.fixture()
def publisher():
    return RecordingPublisher()


@pytest.fixture()
def failing_publisher():
    return RecordingPublisher(fail=True)

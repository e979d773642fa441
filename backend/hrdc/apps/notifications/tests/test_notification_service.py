from __future__ import annotations

import pytest

from hrdc.apps.accounts.models import AccountRole
from hrdc.apps.notifications import models as notification_models
from hrdc.apps.notifications import providers as notification_providers
from hrdc.apps.notifications import service as notification_service


class _FailingProvider(notification_providers.EmailProvider):
    def send(self, *, recipient, subject, html_body, correlation_id=None):
        raise RuntimeError("smtp down")


class _RecordingProvider(notification_providers.EmailProvider):
    def __init__(self):
        self.sent = []

    def send(self, *, recipient, subject, html_body, correlation_id=None):
        self.sent.append(recipient)


def test_create_notification_requires_exactly_one_target(db_session, seed):
    user = seed.user(db_session, "one@example.com")
    with pytest.raises(ValueError):
        notification_service.create_notification(db_session, title="T", message="M")
    with pytest.raises(ValueError):
        notification_service.create_notification(
            db_session, user_id=user.id, role=AccountRole.ADMIN, title="T", message="M"
        )
    assert db_session.query(notification_models.Notification).count() == 0


def test_create_notification_rejects_blank_text(db_session, seed):
    user = seed.user(db_session, "blank@example.com")
    with pytest.raises(ValueError):
        notification_service.create_notification(db_session, user_id=user.id, title=" ", message="M")


def test_user_notification_is_persisted_then_pushed(db_session, seed, publisher):
    user = seed.user(db_session, "push@example.com")
    notification = notification_service.create_notification(
        db_session,
        user_id=user.id,
        title="Training Registration Approved",
        message="Your registration for 'Fire Safety' has been approved.",
        publisher=publisher,
    )

    assert notification.id is not None
    assert notification.is_read is False
    assert len(publisher.events) == 1
    kind, target, event, payload = publisher.events[0]
    assert (kind, target, event) == ("user", user.id, "notification.created")
    assert payload["id"] == notification.id
    assert payload["title"] == "Training Registration Approved"


def test_push_skipped_when_user_disabled_web_notifications(db_session, seed, publisher):
    user = seed.user(db_session, "quiet@example.com", push=False)
    notification_service.notify(db_session, user_id=user.id, title="T", message="M", publisher=publisher)
    assert publisher.events == []
    assert db_session.query(notification_models.Notification).count() == 1


def test_role_broadcast_pushes_to_group(db_session, publisher):
    notification_service.notify(
        db_session,
        role=AccountRole.ADMIN,
        title="New Training Registration",
        message="Employee A B has registered for training 'X'",
        publisher=publisher,
    )
    assert publisher.events[0][:3] == ("group", "Admin", "notification.created")
    row = db_session.query(notification_models.Notification).one()
    assert row.user_id is None
    assert row.target_role == "Admin"


def test_push_failure_does_not_lose_the_notification(db_session, seed, failing_publisher):
    user = seed.user(db_session, "lossy@example.com")
    notification_id = notification_service.notify(
        db_session,
        user_id=user.id,
        title="T",
        message="M",
        publisher=failing_publisher,
    )
    assert db_session.get(notification_models.Notification, notification_id) is not None


def test_list_notifications_scopes_to_user_and_role(db_session, seed):
    me = seed.user(db_session, "me@example.com")
    other = seed.user(db_session, "other@example.com")
    notification_service.notify(db_session, user_id=me.id, title="Mine", message="m")
    notification_service.notify(db_session, user_id=other.id, title="Theirs", message="m")
    notification_service.notify(db_session, role=AccountRole.EMPLOYEE, title="Everyone", message="m")
    notification_service.notify(db_session, role=AccountRole.ADMIN, title="Admins", message="m")

    titles = {
        row.title
        for row in notification_service.list_notifications(db_session, user_id=me.id, role=me.role)
    }
    assert titles == {"Mine", "Everyone"}


def test_mark_read_is_idempotent(db_session, seed, publisher):
    user = seed.user(db_session, "reader@example.com")
    notification_id = notification_service.notify(db_session, user_id=user.id, title="T", message="M")

    first = notification_service.mark_read(db_session, notification_id, publisher=publisher)
    read_at = first.read_at
    second = notification_service.mark_read(db_session, notification_id, publisher=publisher)

    assert second.is_read is True
    assert second.read_at == read_at
    assert [event[2] for event in publisher.events] == ["notification.read", "notification.read"]


def test_mark_read_unknown_id_returns_none(db_session):
    assert notification_service.mark_read(db_session, 9999) is None


def test_unread_count_and_mark_all_read(db_session, seed, publisher):
    user = seed.user(db_session, "bulk@example.com")
    for index in range(3):
        notification_service.notify(db_session, user_id=user.id, title=f"T{index}", message="M")
    notification_service.notify(db_session, role=AccountRole.EMPLOYEE, title="Broadcast", message="M")

    assert notification_service.unread_count(db_session, user_id=user.id, role=user.role) == 4
    assert notification_service.mark_all_read(db_session, user_id=user.id, role=user.role, publisher=publisher) == 4
    assert notification_service.unread_count(db_session, user_id=user.id, role=user.role) == 0
    assert notification_service.mark_all_read(db_session, user_id=user.id, role=user.role) == 0
    assert publisher.events[-1][2] == "notification.all_read"
    assert notification_service.counts_for(db_session, user_id=user.id, role=user.role) == (4, 0)


def test_send_email_without_provider_is_recorded_as_skipped(db_session, monkeypatch):
    monkeypatch.setattr(
        notification_providers,
        "get_email_provider",
        lambda: (notification_providers.NoopProvider(), False),
    )
    log = notification_service.send_email(
        "registration_status",
        "someone@example.com",
        "Subject",
        "<p>Body</p>",
        "corr-1",
        db=db_session,
    )
    assert log.status == notification_models.EmailStatus.SKIPPED_NO_PROVIDER
    assert log.error == "No provider configured"


def test_send_email_success_and_failure(db_session, monkeypatch):
    provider = _RecordingProvider()
    monkeypatch.setattr(notification_providers, "get_email_provider", lambda: (provider, True))
    ok = notification_service.send_email("k", "ok@example.com", "S", "<p/>", "c1", db=db_session)
    assert ok.status == notification_models.EmailStatus.SENT
    assert ok.sent_at is not None
    assert provider.sent == ["ok@example.com"]

    monkeypatch.setattr(notification_providers, "get_email_provider", lambda: (_FailingProvider(), True))
    failed = notification_service.send_email("k", "bad@example.com", "S", "<p/>", "c2", db=db_session)
    assert failed.status == notification_models.EmailStatus.FAILED
    assert failed.error == "smtp down"

    with pytest.raises(RuntimeError):
        notification_service.send_email("k", "bad@example.com", "S", "<p/>", "c3", critical=True, db=db_session)


def test_notifications_provider_variable_overrides_legacy_one(monkeypatch):
    monkeypatch.setenv("EMAIL_PROVIDER", "smtp")
    provider, configured = notification_providers.get_email_provider()
    assert isinstance(provider, notification_providers.NoopProvider)
    assert configured is False

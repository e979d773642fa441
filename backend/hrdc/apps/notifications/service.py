from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple, Union

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from hrdc.apps.accounts.models import AccountRole, User
from hrdc.apps.realtime.hub import GroupMembership
from hrdc.apps.realtime.schemas import LiveEventName
from hrdc.database import WriteSessionLocal

from . import models, providers

logger = logging.getLogger(__name__)

RoleLike = Union[AccountRole, str, None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _role_name(role: RoleLike) -> Optional[str]:
    if role is None:
        return None
    value = role.value if isinstance(role, AccountRole) else str(role)
    value = value.strip()
    return value or None


# ---------------------------------------------------------------------------
# EMAIL
# ---------------------------------------------------------------------------


def send_email(
    template_key: str,
    recipient: str,
    subject: str,
    html_body: str,
    correlation_id: Optional[str],
    critical: bool = False,
    *,
    training_id: Optional[int] = None,
    context: Optional[dict] = None,
    db: Optional[Session] = None,
) -> models.EmailLog:
    """
    Send one email and record the outcome in `email_logs`.

    Delivery is best-effort: a provider failure is logged as FAILED and
    swallowed unless `critical` is set.
    """
    owns_session = db is None
    db = db or WriteSessionLocal()
    log = models.EmailLog(
        recipient=recipient,
        subject=subject,
        template_key=template_key,
        training_id=training_id,
        status=models.EmailStatus.QUEUED,
        context_json=context or {},
        correlation_id=correlation_id,
    )
    try:
        db.add(log)
        db.flush()

        provider, configured = providers.get_email_provider()
        if not configured:
            log.status = models.EmailStatus.SKIPPED_NO_PROVIDER
            log.error = "No provider configured"
            db.add(log)
            if owns_session:
                db.commit()
            return log

        try:
            provider.send(
                recipient=recipient,
                subject=subject,
                html_body=html_body,
                correlation_id=correlation_id,
            )
            log.status = models.EmailStatus.SENT
            log.sent_at = _utcnow()
        except Exception as exc:
            log.status = models.EmailStatus.FAILED
            log.error = str(exc)
            logger.warning(
                "email send failed",
                extra={"recipient": recipient, "template_key": template_key, "error": str(exc)},
            )
            if critical:
                db.add(log)
                if owns_session:
                    db.commit()
                raise
        db.add(log)
        if owns_session:
            db.commit()
        return log
    finally:
        if owns_session:
            db.close()


# ---------------------------------------------------------------------------
# NOTIFICATION WRITER
# ---------------------------------------------------------------------------


def _visible_to(user_id: int, role: RoleLike):
    role_name = _role_name(role)
    personal = models.Notification.user_id == user_id
    if role_name is None:
        target = personal
    else:
        target = or_(
            personal,
            and_(
                models.Notification.user_id.is_(None),
                models.Notification.target_role == role_name,
            ),
        )
    return and_(target, models.Notification.is_active.is_(True))


def _push_enabled(db: Session, user_id: int) -> bool:
    enabled = (
        db.query(User.is_web_notification_enabled)
        .filter(User.id == user_id)
        .scalar()
    )
    return enabled is not False


def _push(publisher: Optional[GroupMembership], *, user_id=None, group=None, event: str, payload: dict) -> None:
    if publisher is None:
        return
    try:
        if user_id is not None:
            publisher.publish_to_user(user_id, event, payload)
        else:
            publisher.publish_to_group(group, event, payload)
    except Exception:
        logger.warning(
            "live push failed",
            exc_info=True,
            extra={"user_id": user_id, "group": group, "event": event},
        )


def create_notification(
    db: Session,
    *,
    user_id: Optional[int] = None,
    role: RoleLike = None,
    title: str,
    message: str,
    publisher: Optional[GroupMembership] = None,
    training_id: Optional[int] = None,
) -> models.Notification:
    """
    Persist a notification for one user or one role, then push it live.

    The row is committed before the push; push failures are logged only.
    Database errors propagate to the caller.
    """
    role_name = _role_name(role)
    if (user_id is None) == (role_name is None):
        raise ValueError("Exactly one of user_id or role must be provided")
    if not (title or "").strip() or not (message or "").strip():
        raise ValueError("Notification title and message are required")

    notification = models.Notification(
        user_id=user_id,
        target_role=role_name if user_id is None else None,
        title=title.strip(),
        message=message.strip(),
        training_id=training_id,
        is_read=False,
        is_active=True,
        created_at=_utcnow(),
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)

    logger.info(
        "notification created",
        extra={"notification_id": notification.id, "user_id": user_id, "role": role_name},
    )

    payload = notification.to_payload()
    if user_id is not None:
        if _push_enabled(db, user_id):
            _push(publisher, user_id=user_id, event=LiveEventName.NOTIFICATION_CREATED.value, payload=payload)
    else:
        _push(publisher, group=role_name, event=LiveEventName.NOTIFICATION_CREATED.value, payload=payload)
    return notification


def notify(
    db: Session,
    *,
    user_id: Optional[int] = None,
    role: RoleLike = None,
    title: str,
    message: str,
    publisher: Optional[GroupMembership] = None,
    training_id: Optional[int] = None,
) -> int:
    notification = create_notification(
        db,
        user_id=user_id,
        role=role,
        title=title,
        message=message,
        publisher=publisher,
        training_id=training_id,
    )
    return notification.id


def list_notifications(
    db: Session,
    *,
    user_id: int,
    role: RoleLike,
    unread_only: bool = False,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[models.Notification]:
    q = db.query(models.Notification).filter(_visible_to(user_id, role))
    if unread_only:
        q = q.filter(models.Notification.is_read.is_(False))
    q = q.order_by(models.Notification.created_at.desc(), models.Notification.id.desc())
    if offset:
        q = q.offset(offset)
    if limit:
        q = q.limit(limit)
    return q.all()


def unread_count(db: Session, *, user_id: int, role: RoleLike) -> int:
    return (
        db.query(models.Notification)
        .filter(_visible_to(user_id, role), models.Notification.is_read.is_(False))
        .count()
    )


def get_visible_notification(
    db: Session,
    notification_id: int,
    *,
    user_id: int,
    role: RoleLike,
) -> Optional[models.Notification]:
    return (
        db.query(models.Notification)
        .filter(models.Notification.id == notification_id, _visible_to(user_id, role))
        .first()
    )


def mark_read(
    db: Session,
    notification_id: int,
    *,
    publisher: Optional[GroupMembership] = None,
) -> Optional[models.Notification]:
    """Idempotent. Returns None when the notification does not exist."""
    notification = db.get(models.Notification, notification_id)
    if notification is None:
        return None
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = _utcnow()
        db.add(notification)
        db.commit()
        db.refresh(notification)

    if notification.user_id is not None and _push_enabled(db, notification.user_id):
        _push(
            publisher,
            user_id=notification.user_id,
            event=LiveEventName.NOTIFICATION_READ.value,
            payload={"id": notification.id},
        )
    return notification


def mark_all_read(
    db: Session,
    *,
    user_id: int,
    role: RoleLike,
    publisher: Optional[GroupMembership] = None,
) -> int:
    now = _utcnow()
    count = (
        db.query(models.Notification)
        .filter(_visible_to(user_id, role), models.Notification.is_read.is_(False))
        .update({"is_read": True, "read_at": now}, synchronize_session=False)
    )
    db.commit()
    if _push_enabled(db, user_id):
        _push(
            publisher,
            user_id=user_id,
            event=LiveEventName.NOTIFICATION_ALL_READ.value,
            payload={"count": count},
        )
    return count


def counts_for(db: Session, *, user_id: int, role: RoleLike) -> Tuple[int, int]:
    total = db.query(models.Notification).filter(_visible_to(user_id, role)).count()
    return total, unread_count(db, user_id=user_id, role=role)

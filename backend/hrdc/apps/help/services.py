# backend/hrdc/apps/help/services.py

"""
Employee help desk: queries submitted from the help page and the
administrator's triage of them.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from hrdc.apps.accounts.models import AccountRole
from hrdc.apps.employees.models import Employee
from hrdc.apps.notifications import service as notification_service
from hrdc.apps.realtime.hub import GroupMembership

from . import models

logger = logging.getLogger(__name__)

ALL_STATUSES = "all"


class HelpQueryNotFound(Exception):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _notify_quietly(db: Session, publisher: Optional[GroupMembership], **kwargs) -> None:
    try:
        notification_service.notify(db, publisher=publisher, **kwargs)
    except Exception:
        db.rollback()
        logger.exception("help desk notification failed", extra={"title": kwargs.get("title")})


def submit_query(
    db: Session,
    *,
    employee: Employee,
    data: dict,
    publisher: Optional[GroupMembership] = None,
) -> models.HelpQuery:
    query = models.HelpQuery(
        employee_id=employee.id,
        name=(data.get("name") or employee.full_name).strip(),
        email=(data.get("email") or employee.email or "").strip().lower(),
        query_type=(data.get("query_type") or "General").strip(),
        subject=data["subject"].strip(),
        message=data["message"].strip(),
        status=models.HelpQueryStatus.OPEN,
        viewed_by_admin=False,
        is_active=True,
    )
    db.add(query)
    db.commit()
    db.refresh(query)
    logger.info("help query submitted", extra={"query_id": query.id, "employee_id": employee.id})

    _notify_quietly(
        db,
        publisher,
        role=AccountRole.ADMIN,
        title="New Help Query",
        message=f"{query.name} submitted a {query.query_type} query: '{query.subject}'",
    )
    return query


def list_queries(
    db: Session,
    *,
    status: Optional[str] = None,
    viewed: Optional[bool] = None,
    employee_id: Optional[int] = None,
) -> List[models.HelpQuery]:
    q = db.query(models.HelpQuery).filter(models.HelpQuery.is_active.is_(True))
    if status and status.lower() != ALL_STATUSES:
        q = q.filter(models.HelpQuery.status == models.HelpQueryStatus(status))
    if viewed is not None:
        q = q.filter(models.HelpQuery.viewed_by_admin.is_(viewed))
    if employee_id is not None:
        q = q.filter(models.HelpQuery.employee_id == employee_id)
    return q.order_by(models.HelpQuery.created_at.desc(), models.HelpQuery.id.desc()).all()


def mark_viewed(db: Session, queries: Iterable[models.HelpQuery]) -> int:
    unseen = [query for query in queries if not query.viewed_by_admin]
    for query in unseen:
        query.viewed_by_admin = True
        db.add(query)
    if unseen:
        db.commit()
    return len(unseen)


def unviewed_count(db: Session) -> int:
    return (
        db.query(models.HelpQuery)
        .filter(models.HelpQuery.is_active.is_(True), models.HelpQuery.viewed_by_admin.is_(False))
        .count()
    )


def update_status(
    db: Session,
    query_id: int,
    status: models.HelpQueryStatus,
    *,
    publisher: Optional[GroupMembership] = None,
) -> models.HelpQuery:
    """
    Move a query to `status`. Resolving stamps `resolved_at`; reopening
    clears it. The submitting employee is notified of the change.
    """
    query = (
        db.query(models.HelpQuery)
        .filter(models.HelpQuery.id == query_id, models.HelpQuery.is_active.is_(True))
        .first()
    )
    if query is None:
        raise HelpQueryNotFound("Query not found.")

    query.status = status
    if status == models.HelpQueryStatus.RESOLVED:
        query.resolved_at = _utcnow()
    elif status in (models.HelpQueryStatus.OPEN, models.HelpQueryStatus.IN_PROGRESS):
        query.resolved_at = None
    query.viewed_by_admin = True
    db.add(query)
    db.commit()
    db.refresh(query)
    logger.info("help query status changed", extra={"query_id": query.id, "status": status.value})

    if query.employee is not None:
        _notify_quietly(
            db,
            publisher,
            user_id=query.employee.user_id,
            title="Help Query Updated",
            message=f"Your query '{query.subject}' is now {status.value}.",
        )
    return query

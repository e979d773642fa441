from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from hrdc.apps.accounts.models import User
from hrdc.apps.realtime.hub import GroupMembership, get_live_hub
from hrdc.database import get_db
from hrdc.security import get_current_active_user, require_admin

from . import models, schemas, service


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=List[schemas.NotificationRead])
def list_my_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    return service.list_notifications(
        db,
        user_id=current_user.id,
        role=current_user.role,
        unread_only=unread_only,
        limit=limit,
        offset=offset,
    )


@router.get("/unread-count", response_model=schemas.NotificationCounts)
def notification_counts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    total, unread = service.counts_for(db, user_id=current_user.id, role=current_user.role)
    return schemas.NotificationCounts(total=total, unread=unread)


@router.post("/read-all", response_model=schemas.MarkAllReadResult)
def mark_all_notifications_read(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    hub: Optional[GroupMembership] = Depends(get_live_hub),
):
    updated = service.mark_all_read(db, user_id=current_user.id, role=current_user.role, publisher=hub)
    return schemas.MarkAllReadResult(updated=updated)


@router.post("/{notification_id}/read", response_model=schemas.NotificationRead)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    hub: Optional[GroupMembership] = Depends(get_live_hub),
):
    visible = service.get_visible_notification(
        db,
        notification_id,
        user_id=current_user.id,
        role=current_user.role,
    )
    if visible is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return service.mark_read(db, notification_id, publisher=hub)


@router.get("/email-logs", response_model=List[schemas.EmailLogRead])
def list_email_logs(
    status_filter: Optional[models.EmailStatus] = Query(None, alias="status"),
    template_key: Optional[str] = None,
    recipient: Optional[str] = None,
    training_id: Optional[int] = None,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    qs = db.query(models.EmailLog)
    if status_filter:
        qs = qs.filter(models.EmailLog.status == status_filter)
    if template_key:
        qs = qs.filter(models.EmailLog.template_key == template_key)
    if recipient:
        qs = qs.filter(models.EmailLog.recipient.ilike(f"%{recipient}%"))
    if training_id:
        qs = qs.filter(models.EmailLog.training_id == training_id)
    if start:
        qs = qs.filter(models.EmailLog.created_at >= start)
    if end:
        qs = qs.filter(models.EmailLog.created_at <= end)
    return qs.order_by(models.EmailLog.created_at.desc(), models.EmailLog.id.desc()).limit(limit).all()

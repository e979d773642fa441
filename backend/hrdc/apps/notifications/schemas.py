from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from .models import EmailStatus


class NotificationRead(BaseModel):
    id: int
    user_id: Optional[int] = None
    target_role: Optional[str] = None
    title: str
    message: str
    training_id: Optional[int] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationCounts(BaseModel):
    total: int
    unread: int


class MarkAllReadResult(BaseModel):
    updated: int


class EmailLogRead(BaseModel):
    id: int
    created_at: datetime
    sent_at: Optional[datetime] = None
    recipient: str
    subject: str
    template_key: str
    training_id: Optional[int] = None
    status: EmailStatus
    error: Optional[str] = None
    context_json: Optional[dict] = None
    correlation_id: Optional[str] = None

    class Config:
        from_attributes = True

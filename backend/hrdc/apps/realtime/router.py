from __future__ import annotations

import asyncio
import queue
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from hrdc.apps.accounts import models as account_models
from hrdc.security import get_current_active_user_from_query

from .hub import Connection, GroupMembership, format_sse, get_live_hub, keepalive_message

router = APIRouter(prefix="/api", tags=["realtime"])

KEEPALIVE_SEC = 15


async def _event_generator(
    request: Request,
    hub: GroupMembership,
    connection: Connection,
) -> AsyncGenerator[str, None]:
    try:
        while True:
            if await request.is_disconnected():
                break
            try:
                event = await asyncio.to_thread(connection.queue.get, True, KEEPALIVE_SEC)
                yield format_sse(event.to_json(), event=event.event, event_id=event.id)
            except queue.Empty:
                yield keepalive_message()
    finally:
        hub.disconnect(connection)


@router.get("/notifications/stream")
async def stream_notifications(
    request: Request,
    user: account_models.User = Depends(get_current_active_user_from_query),
    hub: GroupMembership = Depends(get_live_hub),
) -> StreamingResponse:
    if hub is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Live notifications are not available.",
        )
    connection = hub.connect(user.id, user.role)
    return StreamingResponse(
        _event_generator(request, hub, connection),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )

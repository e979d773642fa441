"""In-process live push hub.

`GroupMembership` is the capability the notification writer depends on:
connect/disconnect a live session and publish to a user or to a role
group. `LiveHub` implements it for Server-Sent Events: each connection
owns a bounded queue that the SSE generator drains. When a queue is full
the oldest event is dropped so a stalled browser never blocks publishers.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional, Set

from fastapi import Request

logger = logging.getLogger(__name__)

CONNECTION_QUEUE_SIZE = 200


@dataclass
class LiveEvent:
    id: str
    event: str
    payload: Dict[str, Any]
    ts: int

    @classmethod
    def build(cls, event: str, payload: Dict[str, Any], *, event_id: Optional[str] = None) -> "LiveEvent":
        return cls(
            id=event_id or uuid.uuid4().hex,
            event=event,
            payload=dict(payload or {}),
            ts=int(time.time() * 1000),
        )

    def to_json(self) -> str:
        return json.dumps(
            {"id": self.id, "type": self.event, "ts": self.ts, "payload": self.payload},
            default=str,
        )


@dataclass(eq=False)
class Connection:
    user_id: int
    group: Optional[str]
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    queue: "queue.Queue[LiveEvent]" = field(default_factory=lambda: queue.Queue(maxsize=CONNECTION_QUEUE_SIZE))


class GroupMembership:
    """Live-session addressing keyed by user id or group (role) name."""

    def connect(self, user_id: int, role: Optional[str]) -> Connection:
        raise NotImplementedError

    def disconnect(self, connection: Connection) -> None:
        raise NotImplementedError

    def publish_to_user(self, user_id: int, event: str, payload: Dict[str, Any]) -> int:
        raise NotImplementedError

    def publish_to_group(self, group: str, event: str, payload: Dict[str, Any]) -> int:
        raise NotImplementedError


class LiveHub(GroupMembership):
    """
    Lock-guarded registry of live connections.

    Publishing snapshots the target queues under the lock and enqueues
    outside it. `mirror` (optional) receives every local publish so other
    processes can deliver to their own connections; events arriving from
    the mirror go through `deliver_remote` and are not mirrored again.
    """

    def __init__(self, *, queue_size: int = CONNECTION_QUEUE_SIZE, mirror=None) -> None:
        self._queue_size = queue_size
        self._mirror = mirror
        self._lock = threading.Lock()
        self._connections: Dict[str, Connection] = {}
        self._by_user: Dict[int, Set[str]] = defaultdict(set)
        self._by_group: Dict[str, Set[str]] = defaultdict(set)

    def attach_mirror(self, mirror) -> None:
        self._mirror = mirror

    # -- membership ---------------------------------------------------------

    def connect(self, user_id: int, role: Optional[str]) -> Connection:
        group = str(getattr(role, "value", role)) if role else None
        connection = Connection(
            user_id=int(user_id),
            group=group,
            queue=queue.Queue(maxsize=self._queue_size),
        )
        with self._lock:
            self._connections[connection.id] = connection
            self._by_user[connection.user_id].add(connection.id)
            if group:
                self._by_group[group].add(connection.id)
        logger.debug(
            "live connection opened",
            extra={"connection_id": connection.id, "user_id": connection.user_id, "group": group},
        )
        return connection

    def disconnect(self, connection: Connection) -> None:
        with self._lock:
            self._connections.pop(connection.id, None)
            self._discard(self._by_user, connection.user_id, connection.id)
            if connection.group:
                self._discard(self._by_group, connection.group, connection.id)
        logger.debug("live connection closed", extra={"connection_id": connection.id})

    @staticmethod
    def _discard(index: Dict[Any, Set[str]], key: Any, connection_id: str) -> None:
        members = index.get(key)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            index.pop(key, None)

    def connection_count(self) -> int:
        with self._lock:
            return len(self._connections)

    def group_members(self, group: str) -> Set[int]:
        with self._lock:
            ids = list(self._by_group.get(group, ()))
            return {self._connections[cid].user_id for cid in ids if cid in self._connections}

    # -- publishing ---------------------------------------------------------

    def publish_to_user(self, user_id: int, event: str, payload: Dict[str, Any]) -> int:
        live_event = LiveEvent.build(event, payload)
        delivered = self._deliver_to_user(int(user_id), live_event)
        self._mirror_publish("user", str(user_id), live_event)
        return delivered

    def publish_to_group(self, group: str, event: str, payload: Dict[str, Any]) -> int:
        group = str(getattr(group, "value", group))
        live_event = LiveEvent.build(event, payload)
        delivered = self._deliver_to_group(group, live_event)
        self._mirror_publish("group", group, live_event)
        return delivered

    def deliver_remote(self, target_kind: str, target: str, live_event: LiveEvent) -> int:
        if target_kind == "user":
            return self._deliver_to_user(int(target), live_event)
        return self._deliver_to_group(target, live_event)

    def _deliver_to_user(self, user_id: int, live_event: LiveEvent) -> int:
        with self._lock:
            targets = [self._connections[cid] for cid in self._by_user.get(user_id, ()) if cid in self._connections]
        return self._deliver(targets, live_event)

    def _deliver_to_group(self, group: str, live_event: LiveEvent) -> int:
        with self._lock:
            targets = [self._connections[cid] for cid in self._by_group.get(group, ()) if cid in self._connections]
        return self._deliver(targets, live_event)

    @staticmethod
    def _deliver(targets: Iterable[Connection], live_event: LiveEvent) -> int:
        delivered = 0
        for connection in targets:
            q = connection.queue
            try:
                q.put_nowait(live_event)
            except queue.Full:
                try:
                    _ = q.get_nowait()
                    q.put_nowait(live_event)
                except (queue.Empty, queue.Full):
                    continue
            delivered += 1
        return delivered

    def _mirror_publish(self, target_kind: str, target: str, live_event: LiveEvent) -> None:
        if self._mirror is None:
            return
        try:
            self._mirror.publish_event(target_kind=target_kind, target=target, live_event=live_event)
        except Exception:
            logger.warning(
                "live event mirror publish failed",
                exc_info=True,
                extra={"target_kind": target_kind, "target": target, "event": live_event.event},
            )


def format_sse(data: str, event: Optional[str] = None, event_id: Optional[str] = None) -> str:
    lines = []
    if event_id:
        lines.append(f"id: {event_id}")
    if event:
        lines.append(f"event: {event}")
    for chunk in data.splitlines():
        lines.append(f"data: {chunk}")
    lines.append("")
    return "\n".join(lines) + "\n"


def keepalive_message() -> str:
    payload = json.dumps({"type": "heartbeat", "ts": time.time()})
    return format_sse(payload, event="heartbeat")


def get_live_hub(request: Request) -> Optional[GroupMembership]:
    """FastAPI dependency: the hub created at start-up, if any."""
    return getattr(request.app.state, "live_hub", None)

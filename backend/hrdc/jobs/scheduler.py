"""Periodic task driver for in-process background jobs.

A `ScheduledTask` does one unit of work in `run_once()` and knows nothing
about timing. A `PeriodicRunner` calls it on an interval until the shared
stop event is set, so the interval policy can change without touching the
task and tests can call `run_once()` directly.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


async def wait_for_stop(stop_event: asyncio.Event, timeout: float) -> bool:
    """Sleep up to `timeout` seconds; return True as soon as `stop_event` is set."""
    if stop_event.is_set():
        return True
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=max(timeout, 0))
    except asyncio.TimeoutError:
        return False
    return True


class ScheduledTask:
    name = "scheduled-task"

    def run_once(self) -> Any:
        raise NotImplementedError


class RunnerState(str, enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"


class PeriodicRunner:
    """
    Drives a task as: [tick] -> wait(interval) -> [tick] -> ...

    The blocking `run_once()` executes in a worker thread. A failing tick
    is logged and the runner waits for the next interval.
    """

    def __init__(
        self,
        task: ScheduledTask,
        *,
        interval_seconds: float,
        run_at_start: bool = True,
        wait: Callable[[asyncio.Event, float], Awaitable[bool]] = wait_for_stop,
    ) -> None:
        self.task = task
        self.interval_seconds = interval_seconds
        self.run_at_start = run_at_start
        self._wait = wait
        self.state = RunnerState.IDLE
        self.runs = 0
        self.last_run_at: Optional[datetime] = None
        self.last_result: Any = None
        self.last_error: Optional[str] = None

    async def tick(self) -> Any:
        self.state = RunnerState.SCANNING
        self.last_run_at = datetime.now(timezone.utc)
        try:
            self.last_result = await asyncio.to_thread(self.task.run_once)
            self.last_error = None
            return self.last_result
        except Exception as exc:
            self.last_error = str(exc)
            logger.exception("scheduled task failed", extra={"task": self.task.name})
            return None
        finally:
            self.runs += 1
            self.state = RunnerState.IDLE

    async def run(self, stop_event: asyncio.Event) -> None:
        logger.info(
            "periodic runner started",
            extra={"task": self.task.name, "interval_seconds": self.interval_seconds},
        )
        if not self.run_at_start and await self._wait(stop_event, self.interval_seconds):
            logger.info("periodic runner stopped", extra={"task": self.task.name})
            return
        while not stop_event.is_set():
            await self.tick()
            if await self._wait(stop_event, self.interval_seconds):
                break
        logger.info("periodic runner stopped", extra={"task": self.task.name, "runs": self.runs})

    def status(self) -> dict:
        return {
            "task": self.task.name,
            "state": self.state.value,
            "runs": self.runs,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_error": self.last_error,
        }

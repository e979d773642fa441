"""Queued training email dispatcher.

Request handlers enqueue `(training_id, trigger)` jobs; one asyncio worker
drains the queue strictly FIFO. For each job the training and its eligible
employees are re-read from the database, the emails are rendered, and then
sent in fixed-size batches. Sends within a batch run concurrently in worker
threads and are all awaited before the inter-batch pause. A failed send is
logged and recorded; it never aborts the batch, the job or the worker.

The queue lives in memory only: jobs pending at shutdown are lost.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import os
import queue
import sys
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Deque, List, Optional, Tuple

from fastapi import Request
from sqlalchemy.orm import Session

from hrdc.apps.accounts.models import User
from hrdc.apps.employees.models import Employee
from hrdc.apps.training.eligibility import filter_eligible
from hrdc.apps.training.models import TrainingProgram
from hrdc.database import WriteSessionLocal
from hrdc.jobs.scheduler import wait_for_stop

from . import models, providers, templates

logger = logging.getLogger(__name__)

BATCH_SIZE = int(os.getenv("TRAINING_EMAIL_BATCH_SIZE", "10"))
BATCH_PAUSE_SEC = float(os.getenv("TRAINING_EMAIL_BATCH_PAUSE_SEC", "2"))
IDLE_POLL_SEC = float(os.getenv("TRAINING_EMAIL_IDLE_POLL_SEC", "5"))
ERROR_BACKOFF_SEC = float(os.getenv("TRAINING_EMAIL_ERROR_BACKOFF_SEC", "1"))

_RECENT_SUMMARIES = 50


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TriggerType(str, enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    REMINDER = "reminder"


@dataclass(frozen=True)
class NotificationJob:
    training_id: int
    trigger: TriggerType
    enqueued_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class OutboundEmail:
    employee_id: int
    recipient: str
    subject: str
    html_body: str
    template_key: str
    correlation_id: str


@dataclass
class SendOutcome:
    email: OutboundEmail
    ok: bool
    error: Optional[str] = None
    sent_at: Optional[datetime] = None


@dataclass
class DispatchSummary:
    training_id: int
    trigger: TriggerType
    recipients: int = 0
    batches: int = 0
    sent: int = 0
    failed: int = 0
    skipped_reason: Optional[str] = None

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None


ProviderFactory = Callable[[], Tuple[providers.EmailProvider, bool]]
Sleep = Callable[[float], Awaitable[None]]


def chunked(items: List, size: int) -> List[List]:
    size = max(int(size), 1)
    return [items[i:i + size] for i in range(0, len(items), size)]


class TrainingEmailDispatcher:
    """
    Owns the job queue and the worker loop. One instance per process,
    created at start-up and shared through `app.state`.

    `session_factory`, `provider_factory` and `sleep` are injectable so the
    batching behaviour can be exercised without a mail server or real time.
    """

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session] = WriteSessionLocal,
        provider_factory: ProviderFactory = providers.get_email_provider,
        batch_size: int = BATCH_SIZE,
        batch_pause: float = BATCH_PAUSE_SEC,
        idle_poll: float = IDLE_POLL_SEC,
        error_backoff: float = ERROR_BACKOFF_SEC,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._queue: "queue.Queue[NotificationJob]" = queue.Queue()
        self._session_factory = session_factory
        self._provider_factory = provider_factory
        self.batch_size = max(int(batch_size), 1)
        self.batch_pause = batch_pause
        self.idle_poll = idle_poll
        self.error_backoff = error_backoff
        self._sleep = sleep
        self.recent: Deque[DispatchSummary] = deque(maxlen=_RECENT_SUMMARIES)
        self.processed_jobs = 0

    # -- producer side ------------------------------------------------------

    def enqueue(self, training_id: int, trigger: TriggerType | str = TriggerType.CREATED) -> NotificationJob:
        job = NotificationJob(training_id=int(training_id), trigger=TriggerType(trigger))
        self._queue.put_nowait(job)
        logger.info(
            "training notification queued",
            extra={"training_id": job.training_id, "trigger": job.trigger.value, "pending": self.pending()},
        )
        return job

    def pending(self) -> int:
        return self._queue.qsize()

    # -- consumer side ------------------------------------------------------

    async def run(self, stop_event: asyncio.Event) -> None:
        logger.info("training email dispatcher started")
        while not stop_event.is_set():
            try:
                summary = await self.process_next()
                if summary is None:
                    await wait_for_stop(stop_event, self.idle_poll)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("training email dispatcher iteration failed")
                await wait_for_stop(stop_event, self.error_backoff)
        logger.info("training email dispatcher stopped", extra={"pending": self.pending()})

    async def process_next(self) -> Optional[DispatchSummary]:
        try:
            job = self._queue.get_nowait()
        except queue.Empty:
            return None
        try:
            return await self.process_job(job)
        finally:
            self.processed_jobs += 1
            self._queue.task_done()

    async def process_job(self, job: NotificationJob) -> DispatchSummary:
        summary = DispatchSummary(training_id=job.training_id, trigger=job.trigger)
        emails, reason = await asyncio.to_thread(self._load_emails, job)
        if reason is not None:
            summary.skipped_reason = reason
            logger.warning(
                "training notification skipped",
                extra={"training_id": job.training_id, "trigger": job.trigger.value, "reason": reason},
            )
            self.recent.append(summary)
            return summary

        summary.recipients = len(emails)
        provider, configured = self._provider_factory()
        if not configured:
            await asyncio.to_thread(self._record_skipped, job, emails)
            summary.skipped_reason = "no email provider configured"
            logger.info(
                "training emails not sent: no provider",
                extra={"training_id": job.training_id, "recipients": len(emails)},
            )
            self.recent.append(summary)
            return summary

        batches = chunked(emails, self.batch_size)
        for index, batch in enumerate(batches):
            outcomes = await asyncio.gather(
                *(asyncio.to_thread(self._send_one, provider, email) for email in batch)
            )
            summary.batches += 1
            summary.sent += sum(1 for outcome in outcomes if outcome.ok)
            summary.failed += sum(1 for outcome in outcomes if not outcome.ok)
            await asyncio.to_thread(self._record_outcomes, job, outcomes)
            logger.info(
                "training email batch sent",
                extra={
                    "training_id": job.training_id,
                    "batch": index + 1,
                    "batches": len(batches),
                    "sent": summary.sent,
                    "failed": summary.failed,
                },
            )
            if index < len(batches) - 1:
                await self._sleep(self.batch_pause)

        logger.info(
            "training notification processed",
            extra={
                "training_id": job.training_id,
                "trigger": job.trigger.value,
                "recipients": summary.recipients,
                "sent": summary.sent,
                "failed": summary.failed,
            },
        )
        self.recent.append(summary)
        return summary

    # -- blocking helpers (run in worker threads) ----------------------------

    def _load_emails(self, job: NotificationJob) -> Tuple[List[OutboundEmail], Optional[str]]:
        db = self._session_factory()
        try:
            training = db.get(TrainingProgram, job.training_id)
            if training is None or not training.is_active:
                return [], "training not found"

            employees = (
                db.query(Employee)
                .join(User, Employee.user_id == User.id)
                .filter(Employee.is_active.is_(True), User.is_active.is_(True))
                .order_by(Employee.id.asc())
                .all()
            )
            eligible = filter_eligible(training.eligibility_type, employees)
            if not eligible:
                logger.warning(
                    "no eligible employees for training",
                    extra={"training_id": training.id, "eligibility": training.eligibility_type},
                )

            trigger = job.trigger.value
            subject = templates.training_subject(trigger, training.title)
            template_key = templates.template_key_for(trigger)
            emails = []
            for employee in eligible:
                recipient = employee.email
                if not recipient:
                    continue
                emails.append(
                    OutboundEmail(
                        employee_id=employee.id,
                        recipient=recipient,
                        subject=subject,
                        html_body=templates.training_email_body(trigger, employee=employee, training=training),
                        template_key=template_key,
                        correlation_id=f"training:{training.id}:{trigger}:{employee.id}",
                    )
                )
            return emails, None
        finally:
            db.close()

    @staticmethod
    def _send_one(provider: providers.EmailProvider, email: OutboundEmail) -> SendOutcome:
        try:
            provider.send(
                recipient=email.recipient,
                subject=email.subject,
                html_body=email.html_body,
                correlation_id=email.correlation_id,
            )
        except Exception as exc:
            logger.warning(
                "training email failed",
                extra={"recipient": email.recipient, "correlation_id": email.correlation_id, "error": str(exc)},
            )
            return SendOutcome(email=email, ok=False, error=str(exc))
        logger.debug("training email sent", extra={"recipient": email.recipient})
        return SendOutcome(email=email, ok=True, sent_at=_utcnow())

    def _record_outcomes(self, job: NotificationJob, outcomes: List[SendOutcome]) -> None:
        rows = [
            models.EmailLog(
                recipient=outcome.email.recipient,
                subject=outcome.email.subject,
                template_key=outcome.email.template_key,
                training_id=job.training_id,
                status=models.EmailStatus.SENT if outcome.ok else models.EmailStatus.FAILED,
                sent_at=outcome.sent_at,
                error=outcome.error,
                context_json={"employee_id": outcome.email.employee_id, "trigger": job.trigger.value},
                correlation_id=outcome.email.correlation_id,
            )
            for outcome in outcomes
        ]
        self._write_logs(rows)

    def _record_skipped(self, job: NotificationJob, emails: List[OutboundEmail]) -> None:
        rows = [
            models.EmailLog(
                recipient=email.recipient,
                subject=email.subject,
                template_key=email.template_key,
                training_id=job.training_id,
                status=models.EmailStatus.SKIPPED_NO_PROVIDER,
                error="No provider configured",
                context_json={"employee_id": email.employee_id, "trigger": job.trigger.value},
                correlation_id=email.correlation_id,
            )
            for email in emails
        ]
        self._write_logs(rows)

    def _write_logs(self, rows: List[models.EmailLog]) -> None:
        if not rows:
            return
        db = self._session_factory()
        try:
            db.add_all(rows)
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("failed to record email log rows", extra={"rows": len(rows)})
        finally:
            db.close()


def get_dispatcher(request: Request) -> Optional[TrainingEmailDispatcher]:
    """FastAPI dependency: the dispatcher started by the application lifespan."""
    return getattr(request.app.state, "email_dispatcher", None)


def main(argv: Optional[List[str]] = None) -> DispatchSummary:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        raise SystemExit("usage: python -m hrdc.apps.notifications.dispatcher TRAINING_ID [created|updated|reminder]")
    training_id = int(args[0])
    trigger = TriggerType(args[1]) if len(args) > 1 else TriggerType.CREATED
    dispatcher = TrainingEmailDispatcher()
    job = NotificationJob(training_id=training_id, trigger=trigger)
    return asyncio.run(dispatcher.process_job(job))


if __name__ == "__main__":
    logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    result = main()
    print("Training email dispatch completed:", result)

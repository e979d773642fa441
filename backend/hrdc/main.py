# backend/hrdc/main.py
import asyncio
import logging
import os
from contextlib import asynccontextmanager
from typing import List

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .apps.accounts.router import router as accounts_router
from .apps.employees.router import router as employees_router
from .apps.dashboard.router import router as dashboard_router
from .apps.help.router import router as help_router
from .apps.notifications.dispatcher import TrainingEmailDispatcher
from .apps.notifications.router import router as notifications_router
from .apps.realtime.gateway import RealtimeGateway
from .apps.realtime.hub import LiveHub
from .apps.realtime.router import router as realtime_router
from .apps.training.router import router as training_router
from .jobs.scheduler import PeriodicRunner
from .jobs.training_reminders import INTERVAL_HOURS, TrainingReminderTask

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "on"}


def _allowed_origins() -> List[str]:
    """
    Parse CORS_ALLOWED_ORIGINS from env.

    Accepts comma-separated origins. If unset, defaults to local dev ports.
    """
    raw = os.getenv("CORS_ALLOWED_ORIGINS", "")
    if raw:
        origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
        if origins:
            return origins
    return [
        "http://127.0.0.1:5173",
        "http://localhost:5173",
        "http://localhost:4173",
    ]


@asynccontextmanager
async def lifespan(app: FastAPI):
    hub = LiveHub()
    gateway = RealtimeGateway(hub=hub)
    if gateway.active:
        hub.attach_mirror(gateway)
        gateway.connect()

    dispatcher = TrainingEmailDispatcher()
    reminder_runner = PeriodicRunner(
        TrainingReminderTask(publisher=hub),
        interval_seconds=INTERVAL_HOURS * 3600,
    )

    app.state.live_hub = hub
    app.state.realtime_gateway = gateway
    app.state.email_dispatcher = dispatcher
    app.state.reminder_runner = reminder_runner

    stop_event = asyncio.Event()
    tasks = []
    if _env_flag("BACKGROUND_JOBS_ENABLED", "true"):
        tasks.append(asyncio.create_task(dispatcher.run(stop_event), name="training-email-dispatcher"))
        tasks.append(asyncio.create_task(reminder_runner.run(stop_event), name="training-reminders"))
    else:
        logger.info("background jobs disabled")

    try:
        yield
    finally:
        stop_event.set()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        gateway.close()
        logger.info("background jobs stopped", extra={"pending_emails": dispatcher.pending()})


app = FastAPI(title="HRDC Training Portal API", version="1.0.0", lifespan=lifespan)
cors_origins = _allowed_origins()
allow_credentials = "*" not in cors_origins

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["health"])
def read_root():
    return {"status": "ok", "message": "HRDC training portal backend is running"}


@app.get("/health", tags=["health"])
def health():
    return {"status": "ok"}


@app.get("/health/background", tags=["health"])
def background_health():
    hub = getattr(app.state, "live_hub", None)
    dispatcher = getattr(app.state, "email_dispatcher", None)
    runner = getattr(app.state, "reminder_runner", None)
    gateway = getattr(app.state, "realtime_gateway", None)
    return {
        "live_connections": hub.connection_count() if hub else 0,
        "pending_emails": dispatcher.pending() if dispatcher else 0,
        "processed_email_jobs": dispatcher.processed_jobs if dispatcher else 0,
        "reminders": runner.status() if runner else None,
        "realtime": gateway.health() if gateway else None,
    }


app.include_router(accounts_router)
app.include_router(employees_router)
app.include_router(training_router)
app.include_router(notifications_router)
app.include_router(realtime_router)
app.include_router(help_router)
app.include_router(dashboard_router)

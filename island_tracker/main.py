# island_tracker/main.py
import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import island_tracker.models  # noqa: F401  (registers tables for create_all)
from island_tracker.config.settings import settings
from island_tracker.db.database import Base, SessionLocal, engine
from island_tracker.domain.clock import SystemClock
from island_tracker.domain.errors import (
    ChallengeError,
    Forbidden,
    InvalidTimezone,
    InvalidTransition,
    NotAuthenticated,
    NotFound,
    PersistenceError,
)
from island_tracker.routers import auth, challenge, notifications
from island_tracker.routers import settings as settings_router
from island_tracker.services.missed_day_sweep import sweep_missed_days
from island_tracker.services.notifications import NotificationEmitter

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotFound: status.HTTP_404_NOT_FOUND,
    Forbidden: status.HTTP_403_FORBIDDEN,
    NotAuthenticated: status.HTTP_401_UNAUTHORIZED,
    InvalidTransition: status.HTTP_409_CONFLICT,
    InvalidTimezone: 422,
    PersistenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


async def challenge_error_handler(request: Request, exc: ChallengeError):
    code = status.HTTP_400_BAD_REQUEST
    for cls, mapped in ERROR_STATUS.items():
        if isinstance(exc, cls):
            code = mapped
            break
    if code == status.HTTP_503_SERVICE_UNAVAILABLE:
        # in-memory result was not stored; the client should retry
        logger.error("[api] persistence failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=code, content={"detail": str(exc)})


def _sweep_job(app: FastAPI):
    db = SessionLocal()
    try:
        sweep_missed_days(
            db,
            app.state.clock,
            app.state.notifier,
            default_timezone=settings.default_timezone,
            fail_on_missed_makeup=settings.fail_on_missed_makeup,
        )
    except Exception as e:
        db.rollback()
        logger.exception("[scheduler ERROR][missed_sweep] %s", e)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    - create tables
    - periodic missed-day sweep (settings.missed_day_sweep_minutes, cron minute field)
    - notification expiry jobs run on the same scheduler
    """
    Base.metadata.create_all(bind=engine)

    scheduler = app.state.scheduler
    scheduler.add_job(
        _sweep_job,
        CronTrigger(minute=settings.missed_day_sweep_minutes),
        args=[app],
        id="missed-day-sweep",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("scheduler started")

    try:
        yield
    finally:
        scheduler.shutdown(wait=False)
        logger.info("scheduler stopped")


def create_app() -> FastAPI:
    app = FastAPI(title="Island Tracker", version="1.0.0", lifespan=lifespan)

    app.state.clock = SystemClock()
    app.state.scheduler = AsyncIOScheduler(timezone="UTC")
    app.state.notifier = NotificationEmitter(
        capacity=settings.notification_capacity,
        display_seconds=settings.notification_display_seconds,
        scheduler=app.state.scheduler,
        clock=app.state.clock,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ChallengeError, challenge_error_handler)

    app.include_router(auth.router)
    app.include_router(settings_router.router)
    app.include_router(challenge.router)
    app.include_router(notifications.router)

    @app.get("/")
    async def root():
        return {"message": "Island Tracker API is running", "version": "1.0.0"}

    return app


app = create_app()

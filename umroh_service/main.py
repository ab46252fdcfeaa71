import asyncio
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import models
from .database import engine
from .routers import reminder_router, report_router, notification_router
from .reminder_scheduler import run_reminder_scheduler

import redis.asyncio as redis
from fastapi_limiter import FastAPILimiter
from .config import settings

# Setup logger
logger = logging.getLogger("umroh_service")

# Create database tables on startup
models.Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manages application startup and shutdown events.
    """
    logger.info("Umroh service starting up...")

    redis_client = redis.from_url(settings.REDIS_URL, encoding="utf-8")
    try:
        await FastAPILimiter.init(redis_client)
        logger.info("FastAPILimiter initialized with Redis.")
    except Exception as e:
        logger.error(f"Failed to initialize FastAPILimiter: {e}")

    # Cron normally calls the reminder endpoint; the in-process loop is opt-in
    scheduler_task = None
    if settings.ENABLE_REMINDER_SCHEDULER:
        scheduler_task = asyncio.create_task(run_reminder_scheduler())
        logger.info(
            f"Reminder scheduler started, running every {settings.REMINDER_POLL_INTERVAL_SECONDS} seconds."
        )

    yield  # The application is now running

    logger.info("Umroh service shutting down...")

    await redis_client.aclose()

    if scheduler_task is not None:
        scheduler_task.cancel()
        try:
            await scheduler_task
        except asyncio.CancelledError:
            logger.info("Reminder scheduler task successfully cancelled.")
        except Exception as e:
            logger.error(f"Error during reminder scheduler shutdown: {e}")


app = FastAPI(
    title="Umroh Booking Service API",
    description="Commission reports and payment reminders for Umroh bookings.",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(reminder_router.router)
app.include_router(report_router.router)
app.include_router(notification_router.router)


@app.get("/")
def read_root():
    return {"message": "Welcome to the Umroh Booking Service"}

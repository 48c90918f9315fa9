"""familyload - household task lifecycle engine."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from familyload.core.cache_client import InMemoryCache
from familyload.core.config import settings
from familyload.core.db_client import close_connection, init_db
from familyload.core.logging import configure_logfire, instrument_fastapi
from familyload.core.scheduler import start_scheduler, stop_scheduler
from familyload.core.scheduler_tracker import job_tracker
from familyload.interface.cron_router import router as cron_router


logger = logging.getLogger(__name__)

SCHEDULED_JOBS = ["daily_generation", "daily_auto_assign"]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()

    await init_db()
    logger.info("Database initialized")

    app.state.cache = InMemoryCache(
        max_entries=settings.summary_cache_max_entries,
        default_ttl_seconds=settings.summary_cache_ttl_seconds,
    )
    if not settings.cron_secret:
        logger.warning("startup_validation", extra={"setting": "cron_secret", "status": "missing"})

    start_scheduler()
    yield
    # Shutdown
    stop_scheduler()
    await app.state.cache.clear()
    await close_connection()


app = FastAPI(
    title="familyload",
    description="Household task generation and load-balanced assignment engine",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(cron_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)


@app.get("/health/scheduler")
async def scheduler_health_check() -> JSONResponse:
    """Scheduler health check endpoint with job statuses."""
    job_statuses = {job_name: job_tracker.get_job_status(job_name) for job_name in SCHEDULED_JOBS}
    dlq = job_tracker.get_dead_letter_queue()

    has_failures = any(job_status["consecutive_failures"] > 0 for job_status in job_statuses.values())
    overall_status = "degraded" if has_failures else "healthy"
    if dlq:
        overall_status = "critical"

    return JSONResponse(
        content={
            "status": overall_status,
            "jobs": {
                job_name: {
                    **job_status,
                    "last_success": str(job_status["last_success"]) if job_status["last_success"] else None,
                    "last_failure": str(job_status["last_failure"]) if job_status["last_failure"] else None,
                    "current_run_started": (
                        str(job_status["current_run_started"]) if job_status["current_run_started"] else None
                    ),
                }
                for job_name, job_status in job_statuses.items()
            },
            "dead_letter_queue_size": len(dlq),
            "dead_letter_queue": dlq,
        },
        status_code=200 if overall_status == "healthy" else 503,
    )

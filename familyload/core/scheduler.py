"""Scheduler for the daily generation and auto-assignment runs."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from familyload.core.config import settings
from familyload.core.scheduler_tracker import retry_job_with_backoff
from familyload.services import assignment_service, generation_service


logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()


async def run_daily_generation() -> None:
    """Generate template tasks for every active household.

    Households that fail are reported by the summary; the job itself only
    fails when the household list cannot be read.
    """
    logger.info("Running daily generation job")
    summary = await generation_service.generate_for_all_households()
    logger.info(
        "Completed daily generation job",
        extra={
            "households": summary.households_processed,
            "generated": summary.total_generated,
            "failed_households": summary.failed_households,
        },
    )


async def run_daily_auto_assign() -> None:
    """Assign pending unassigned tasks in every active household."""
    logger.info("Running daily auto-assignment job")
    results = await assignment_service.auto_assign_all_households()
    assigned = sum(result.assigned_count for result in results)
    logger.info("Completed auto-assignment job: %d tasks assigned in %d households", assigned, len(results))


def start_scheduler() -> None:
    """Start the scheduler and register all jobs.

    This should be called during FastAPI app startup.
    """
    logger.info("Starting scheduler")

    scheduler.add_job(
        retry_job_with_backoff,
        args=[run_daily_generation, "daily_generation"],
        trigger=CronTrigger(hour=settings.generation_hour, minute=0),
        id="daily_generation",
        name="Generate Template Tasks",
        replace_existing=True,
    )
    logger.info("Scheduled generation job: daily at %d:00", settings.generation_hour)

    # Runs after generation so new template tasks get an owner the same morning
    scheduler.add_job(
        retry_job_with_backoff,
        args=[run_daily_auto_assign, "daily_auto_assign"],
        trigger=CronTrigger(hour=settings.auto_assign_hour, minute=0),
        id="daily_auto_assign",
        name="Auto-Assign Unassigned Tasks",
        replace_existing=True,
    )
    logger.info("Scheduled auto-assignment job: daily at %d:00", settings.auto_assign_hour)

    scheduler.start()
    logger.info("Scheduler started successfully")


def stop_scheduler() -> None:
    """Stop the scheduler.

    This should be called during FastAPI app shutdown.
    """
    logger.info("Stopping scheduler")
    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")

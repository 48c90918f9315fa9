"""Job execution tracking and monitoring for scheduled jobs."""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from familyload.core.config import Constants
from familyload.models.service_models import JobRun


logger = logging.getLogger(__name__)

CONSECUTIVE_FAILURE_THRESHOLD = 3


class JobTracker:
    """Track job execution history and health status in memory."""

    def __init__(self, *, history_maxlen: int = Constants.TRACKER_HISTORY_MAXLEN) -> None:
        """Initialize job tracker.

        Args:
            history_maxlen: Number of runs kept per job, oldest dropped first
        """
        self._state: dict[str, dict[str, Any]] = {}
        self._history: dict[str, deque[JobRun]] = {}
        self._history_maxlen = history_maxlen
        self._dead_letter_queue: deque[tuple[str, str, str]] = deque(maxlen=100)

    def _job_state(self, job_name: str) -> dict[str, Any]:
        return self._state.setdefault(job_name, {})

    def _append_run(self, run: JobRun) -> None:
        self._history.setdefault(run.job_name, deque(maxlen=self._history_maxlen)).append(run)

    def record_job_start(self, job_name: str) -> JobRun:
        """Record job execution start and return the run being tracked."""
        run = JobRun(job_name=job_name, started_at=datetime.now(UTC))
        self._job_state(job_name)["current_run"] = run
        return run

    def record_job_success(self, run: JobRun, *, attempts: int) -> None:
        """Record successful job execution."""
        finished = run.model_copy(update={"finished_at": datetime.now(UTC), "success": True, "attempts": attempts})
        state = self._job_state(run.job_name)
        state["last_success"] = finished.finished_at
        state["consecutive_failures"] = 0
        state["success_count"] = state.get("success_count", 0) + 1
        state.pop("current_run", None)
        self._append_run(finished)

    def record_job_failure(self, run: JobRun, *, attempts: int, error: str) -> int:
        """Record failed job execution.

        Returns:
            Number of consecutive failures of the job, this one included
        """
        finished = run.model_copy(
            update={"finished_at": datetime.now(UTC), "success": False, "attempts": attempts, "error": error[:500]}
        )
        state = self._job_state(run.job_name)
        state["last_failure"] = finished.finished_at
        state["last_error"] = finished.error
        state["consecutive_failures"] = state.get("consecutive_failures", 0) + 1
        state["failure_count"] = state.get("failure_count", 0) + 1
        state.pop("current_run", None)
        self._append_run(finished)
        return state["consecutive_failures"]

    def get_job_status(self, job_name: str) -> dict[str, Any]:
        """Get job execution status.

        Returns:
            Dict with job status information
        """
        state = self._state.get(job_name, {})
        current_run: JobRun | None = state.get("current_run")
        return {
            "job_name": job_name,
            "last_success": state.get("last_success"),
            "last_failure": state.get("last_failure"),
            "last_error": state.get("last_error"),
            "consecutive_failures": state.get("consecutive_failures", 0),
            "success_count": state.get("success_count", 0),
            "failure_count": state.get("failure_count", 0),
            "currently_running": current_run is not None,
            "current_run_started": current_run.started_at if current_run else None,
        }

    def get_job_history(self, job_name: str) -> list[JobRun]:
        """Finished runs of a job, oldest first."""
        return list(self._history.get(job_name, ()))

    def add_to_dead_letter_queue(self, job_name: str, error: str, context: str) -> None:
        """Add persistently failed job to dead letter queue."""
        self._dead_letter_queue.append((job_name, error, context))
        logger.error(
            "Job added to dead letter queue",
            extra={"job_name": job_name, "error": error, "context": context},
        )

    def get_dead_letter_queue(self) -> list[dict[str, str]]:
        """Get all items in dead letter queue."""
        return [
            {"job_name": job_name, "error": error, "context": context}
            for job_name, error, context in self._dead_letter_queue
        ]


# Tracker for the scheduler's jobs
job_tracker = JobTracker()


async def retry_job_with_backoff(
    job_func: Callable[[], Awaitable[Any]],
    job_name: str,
    max_retries: int = 3,
    base_delay: float = 2.0,
    tracker: JobTracker | None = None,
) -> bool:
    """Execute job with retry logic and exponential backoff.

    Both scheduled jobs are idempotent, so a retried run never duplicates work.

    Args:
        job_func: Async function to execute
        job_name: Name of the job for tracking
        max_retries: Maximum number of attempts
        base_delay: Base delay in seconds for exponential backoff
        tracker: Tracker to record into, defaults to the scheduler's tracker

    Returns:
        True if an attempt succeeded
    """
    tracker = tracker or job_tracker
    run = tracker.record_job_start(job_name)

    last_error = None
    for attempt in range(max_retries):
        try:
            logger.info("Executing %s (attempt %d/%d)", job_name, attempt + 1, max_retries)
            await job_func()

            tracker.record_job_success(run, attempts=attempt + 1)
            logger.info("%s completed successfully", job_name)
            return True

        except Exception as e:
            last_error = str(e)
            logger.error(
                "%s failed on attempt %d/%d: %s",
                job_name,
                attempt + 1,
                max_retries,
                last_error,
            )

            if attempt < max_retries - 1:
                delay = base_delay**attempt
                logger.info("Retrying %s in %ss", job_name, delay)
                await asyncio.sleep(delay)

    error_msg = f"Failed after {max_retries} attempts: {last_error}"
    consecutive_failures = tracker.record_job_failure(run, attempts=max_retries, error=error_msg)
    logger.error(
        "%s failed after all retry attempts",
        job_name,
        extra={"error": error_msg, "consecutive_failures": consecutive_failures},
    )

    if consecutive_failures >= CONSECUTIVE_FAILURE_THRESHOLD:
        tracker.add_to_dead_letter_queue(
            job_name=job_name,
            error=last_error or "Unknown error",
            context=f"Failed {consecutive_failures} consecutive times",
        )
    return False

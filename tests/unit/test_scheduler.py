"""Tests for the daily job registration."""

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from familyload.core import scheduler
from familyload.core.scheduler_tracker import retry_job_with_backoff
from familyload.models.service_models import BatchAssignmentResult, GenerationSummary
from familyload.services import assignment_service, generation_service


@pytest.mark.unit
async def test_start_scheduler_registers_daily_jobs(monkeypatch):
    fresh = AsyncIOScheduler()
    monkeypatch.setattr(scheduler, "scheduler", fresh)

    scheduler.start_scheduler()
    try:
        jobs = {job.id: job for job in fresh.get_jobs()}
        assert set(jobs) == {"daily_generation", "daily_auto_assign"}
        assert jobs["daily_generation"].func is retry_job_with_backoff
        assert jobs["daily_generation"].args == (scheduler.run_daily_generation, "daily_generation")
        assert jobs["daily_auto_assign"].args == (scheduler.run_daily_auto_assign, "daily_auto_assign")
    finally:
        scheduler.stop_scheduler()


@pytest.mark.unit
async def test_daily_jobs_call_services(monkeypatch):
    calls = []

    async def fake_generate(**kwargs):
        calls.append("generate")
        return GenerationSummary(households_processed=2, total_generated=3)

    async def fake_assign(**kwargs):
        calls.append("assign")
        return [BatchAssignmentResult(household_id="1", assigned_count=2)]

    monkeypatch.setattr(generation_service, "generate_for_all_households", fake_generate)
    monkeypatch.setattr(assignment_service, "auto_assign_all_households", fake_assign)

    await scheduler.run_daily_generation()
    await scheduler.run_daily_auto_assign()

    assert calls == ["generate", "assign"]

"""Tests for the health check endpoints."""

from unittest.mock import MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from familyload.main import app


def job_status(consecutive_failures: int = 0) -> dict:
    return {
        "job_name": "daily_generation",
        "last_success": "2026-03-16T03:00:00Z",
        "last_failure": "2026-03-16T04:00:00Z" if consecutive_failures else None,
        "last_error": "database is locked" if consecutive_failures else None,
        "consecutive_failures": consecutive_failures,
        "success_count": 10,
        "failure_count": consecutive_failures,
        "currently_running": False,
        "current_run_started": None,
    }


@pytest.fixture
def client() -> TestClient:
    """Create a test client for FastAPI app."""
    return TestClient(app)


@pytest.fixture
def mock_tracker():
    with patch("familyload.main.job_tracker") as tracker:
        tracker.get_dead_letter_queue = MagicMock(return_value=[])
        yield tracker


@pytest.mark.unit
def test_health_endpoint_returns_healthy(client: TestClient) -> None:
    """Test that health endpoint returns healthy status."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.unit
def test_scheduler_health_all_jobs_healthy(client: TestClient, mock_tracker: MagicMock) -> None:
    """Test scheduler health endpoint when all jobs are healthy."""
    mock_tracker.get_job_status = MagicMock(return_value=job_status())

    response = client.get("/health/scheduler")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert set(data["jobs"]) == {"daily_generation", "daily_auto_assign"}
    assert data["dead_letter_queue_size"] == 0


@pytest.mark.unit
def test_scheduler_health_degraded_with_failures(client: TestClient, mock_tracker: MagicMock) -> None:
    """Test scheduler health endpoint when a job has failed."""
    mock_tracker.get_job_status = MagicMock(return_value=job_status(consecutive_failures=1))

    response = client.get("/health/scheduler")

    assert response.status_code == 503
    assert response.json()["status"] == "degraded"


@pytest.mark.unit
def test_scheduler_health_critical_with_dlq(client: TestClient, mock_tracker: MagicMock) -> None:
    """Test scheduler health endpoint when jobs are in the dead letter queue."""
    mock_tracker.get_job_status = MagicMock(return_value=job_status(consecutive_failures=3))
    mock_tracker.get_dead_letter_queue = MagicMock(
        return_value=[
            {"job_name": "daily_generation", "error": "database is locked", "context": "Failed 3 consecutive times"}
        ]
    )

    response = client.get("/health/scheduler")

    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "critical"
    assert data["dead_letter_queue_size"] == 1

"""Scheduler trigger and reporting endpoints."""

import logging
import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status

from familyload.core.cache_client import InMemoryCache
from familyload.core.config import settings
from familyload.core.errors import ErrorSeverity, classify_error_with_response
from familyload.models.service_models import (
    BatchAssignmentResult,
    GenerationConfig,
    GenerationSummary,
    HouseholdBalance,
)
from familyload.services import assignment_service, generation_service, load_service


logger = logging.getLogger(__name__)

router = APIRouter(tags=["engine"])


async def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """Check the bearer secret of a scheduler trigger.

    Triggers are refused outright while no secret is configured.
    """
    if not settings.cron_secret:
        logger.warning("cron_auth_not_configured")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Cron secret not configured")

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secrets.compare_digest(token, settings.cron_secret):
        logger.warning("cron_auth_invalid_token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid cron secret")


def get_cache(request: Request) -> InMemoryCache | None:
    """Reporting cache owned by the running application, if any."""
    return getattr(request.app.state, "cache", None)


def _to_http_error(error: Exception) -> HTTPException:
    response = classify_error_with_response(error)
    status_code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if response.severity == ErrorSeverity.CRITICAL
        else status.HTTP_500_INTERNAL_SERVER_ERROR
    )
    return HTTPException(status_code=status_code, detail=response.model_dump(mode="json"))


@router.post("/cron/generate-tasks", dependencies=[Depends(require_cron_secret)])
async def trigger_generation(
    look_ahead_days: int | None = Query(default=None, ge=0),
    cache: InMemoryCache | None = Depends(get_cache),
) -> GenerationSummary:
    """Generate template tasks for every active household."""
    try:
        summary = await generation_service.generate_for_all_households(
            config=GenerationConfig(look_ahead_days=look_ahead_days)
        )
    except Exception as e:
        logger.exception("Generation trigger failed")
        raise _to_http_error(e) from e

    if cache is not None and summary.total_generated:
        await cache.clear()
    return summary


@router.post("/cron/auto-assign", dependencies=[Depends(require_cron_secret)])
async def trigger_auto_assign(cache: InMemoryCache | None = Depends(get_cache)) -> list[BatchAssignmentResult]:
    """Assign pending unassigned tasks in every active household."""
    try:
        results = await assignment_service.auto_assign_all_households()
    except Exception as e:
        logger.exception("Auto-assign trigger failed")
        raise _to_http_error(e) from e

    for result in results:
        if result.assigned_count:
            await load_service.invalidate_household_cache(cache, result.household_id)
    return results


@router.get("/households/{household_id}/balance")
async def get_household_balance(
    household_id: str,
    period_days: int | None = Query(default=None, ge=1),
    cache: InMemoryCache | None = Depends(get_cache),
) -> HouseholdBalance:
    """Member loads and alert level of a household."""
    try:
        return await load_service.household_balance(household_id=household_id, period_days=period_days, cache=cache)
    except Exception as e:
        logger.exception("Balance report failed", extra={"household_id": household_id})
        raise _to_http_error(e) from e

"""Endpoints triggered by the external scheduler."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.auth import require_cron_secret
from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limiter import RateLimiter
from app.models.shared import utc_now
from app.schemas.discount import RateLimitCleanupResponse, ReservationStatsResponse, SweepResponse
from app.services.reservation_reaper import ReservationReaper

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_cron_secret)])


@router.post(
    "/discount_reservations/sweep",
    response_model=SweepResponse,
    summary="Release lapsed discount reservations",
    responses={401: {"description": "Invalid cron secret"}},
)
async def sweep_discount_reservations(db: Session = Depends(get_db)) -> SweepResponse:
    now = utc_now()
    reaper = ReservationReaper(db)
    result = reaper.sweep(now=now, grace_minutes=settings.RESERVATION_SWEEP_GRACE_MINUTES)
    stats = reaper.stats(now)
    return SweepResponse(
        released=result.released,
        stats=ReservationStatsResponse(total=stats.total, live=stats.live, lapsed=stats.lapsed),
    )


@router.post(
    "/rate_limits/cleanup",
    response_model=RateLimitCleanupResponse,
    summary="Delete stale rate limit windows",
    responses={401: {"description": "Invalid cron secret"}},
)
async def cleanup_rate_limits() -> RateLimitCleanupResponse:
    deleted = RateLimiter().cleanup(max_age_hours=settings.RATE_LIMIT_RETENTION_HOURS)
    logger.info("Deleted %d stale rate limit window(s)", deleted)
    return RateLimitCleanupResponse(deleted=deleted)

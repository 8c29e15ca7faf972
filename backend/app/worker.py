import logging
from typing import Any

from arq import cron

from app.core.config import settings
from app.core.database import SessionLocal
from app.core.logging_config import configure_logging
from app.core.rate_limiter import RateLimiter
from app.services.reservation_reaper import ReservationReaper
from app.tasks import redis_settings

logger = logging.getLogger(__name__)


async def sweep_discount_reservations_task(ctx: dict[str, Any]) -> int:
    """Background task: release slots held by reservations whose TTL passed.

    Runs every 5 minutes. Holds are released only once they have been lapsed
    for longer than RESERVATION_SWEEP_GRACE_MINUTES.
    """
    db = SessionLocal()
    try:
        reaper = ReservationReaper(db)
        result = reaper.sweep(grace_minutes=settings.RESERVATION_SWEEP_GRACE_MINUTES)
        if result.released > 0:
            stats = reaper.stats()
            logger.info(
                "Released %d lapsed reservations (%d live, %d lapsed remaining)",
                result.released,
                stats.live,
                stats.lapsed,
            )
        return result.released
    finally:
        db.close()


async def cleanup_rate_limits_task(ctx: dict[str, Any]) -> int:
    """Background task: delete rate limit windows older than the retention period."""
    deleted = RateLimiter(session_factory=SessionLocal).cleanup(
        max_age_hours=settings.RATE_LIMIT_RETENTION_HOURS
    )
    if deleted > 0:
        logger.info("Deleted %d stale rate limit windows", deleted)
    return deleted


async def startup(ctx: dict[str, Any]) -> None:
    configure_logging(json_logs=settings.LOG_JSON, level=settings.LOG_LEVEL)


class WorkerSettings:
    functions = [
        sweep_discount_reservations_task,
        cleanup_rate_limits_task,
    ]
    cron_jobs = [
        cron(
            sweep_discount_reservations_task,
            minute={0, 5, 10, 15, 20, 25, 30, 35, 40, 45, 50, 55},
        ),
        cron(cleanup_rate_limits_task, minute={0}),  # hourly
    ]
    on_startup = startup
    redis_settings = redis_settings

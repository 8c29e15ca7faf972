from typing import Any

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from app.core.config import settings

# Redis connection settings
redis_settings = RedisSettings.from_dsn(settings.REDIS_URL)


async def get_redis_pool() -> ArqRedis:
    """Get or create Redis pool for arq"""
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job | None:
    """Enqueue a task to the arq worker.

    Returns None when arq refuses the job because one with the same id is
    already queued.
    """
    pool = await get_redis_pool()
    try:
        return await pool.enqueue_job(task_name, *args, **kwargs)
    finally:
        await pool.close()


async def enqueue_reservation_sweep() -> Job | None:
    """Ask the worker to sweep lapsed reservations now instead of at the next cron tick."""
    return await enqueue_task(
        "sweep_discount_reservations_task", _job_id="sweep_discount_reservations"
    )


async def enqueue_rate_limit_cleanup() -> Job | None:
    return await enqueue_task("cleanup_rate_limits_task")

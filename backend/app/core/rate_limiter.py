"""Rate limiter persisted in the ``rate_limits`` table.

Each key owns one counter row. Its window opens with the first request and
lasts ``window_minutes``; the first request after that opens a new window.
Counters live in the database so every API process shares them. The limiter
only advises: callers decide how to respond to a denial. When the store is
unreachable the limiter fails open so checkout keeps working during an
unrelated outage.
"""

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core import database
from app.models.rate_limit import RateLimitCounter
from app.models.shared import as_utc, utc_now

logger = logging.getLogger(__name__)

# Guarded statements can lose to a concurrent writer; retry the cycle this often
MAX_ATTEMPTS = 3


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: datetime
    retry_after: int = 0


class RateLimiter:
    """Per-key request counter over a window anchored at the key's first request."""

    def __init__(self, session_factory: Callable[[], Session] | None = None):
        self._session_factory = session_factory

    def _open_session(self) -> Session:
        if self._session_factory is not None:
            return self._session_factory()
        return database.SessionLocal()

    def check(
        self,
        key: str,
        max_requests: int,
        window_minutes: int,
        now: datetime | None = None,
    ) -> RateLimitResult:
        """Count one request against ``key`` and report whether it is allowed."""
        now = now or utc_now()
        window = timedelta(minutes=window_minutes)

        db = self._open_session()
        try:
            result = self._increment(db, key, max_requests, window, now)
        except SQLAlchemyError:
            db.rollback()
            logger.warning("Rate limit store unavailable for key %s, allowing request", key,
                           exc_info=True)
            return RateLimitResult(allowed=True, remaining=max_requests, reset_at=now + window)
        finally:
            db.close()

        if not result.allowed:
            result.retry_after = max(1, math.ceil((result.reset_at - now).total_seconds()))
        return result

    def _increment(
        self,
        db: Session,
        key: str,
        max_requests: int,
        window: timedelta,
        now: datetime,
    ) -> RateLimitResult:
        """Bump the key's counter, opening a new window when the old one ran out."""
        # A window that started before the cutoff has ended
        cutoff = now - window
        for_key = RateLimitCounter.key == key
        row = None

        for _ in range(MAX_ATTEMPTS):
            bumped = db.execute(
                update(RateLimitCounter)
                .where(
                    for_key,
                    RateLimitCounter.window_start >= cutoff,
                    RateLimitCounter.count < max_requests,
                )
                .values(count=RateLimitCounter.count + 1)
            )
            if bumped.rowcount == 1:  # type: ignore[attr-defined]
                count, window_start = db.execute(
                    select(RateLimitCounter.count, RateLimitCounter.window_start).where(for_key)
                ).one()
                db.commit()
                return RateLimitResult(
                    allowed=True,
                    remaining=max(0, max_requests - int(count)),
                    reset_at=as_utc(window_start) + window,
                )

            reopened = db.execute(
                update(RateLimitCounter)
                .where(for_key, RateLimitCounter.window_start < cutoff)
                .values(count=1, window_start=now)
            )
            if reopened.rowcount == 1:  # type: ignore[attr-defined]
                db.commit()
                return RateLimitResult(
                    allowed=True, remaining=max(0, max_requests - 1), reset_at=now + window
                )

            row = db.execute(
                select(RateLimitCounter.count, RateLimitCounter.window_start).where(for_key)
            ).one_or_none()
            if row is None:
                db.add(RateLimitCounter(key=key, window_start=now, count=1))
                try:
                    db.commit()
                except IntegrityError:
                    # Another process created the counter first
                    db.rollback()
                    continue
                return RateLimitResult(
                    allowed=True, remaining=max(0, max_requests - 1), reset_at=now + window
                )

            db.rollback()
            count, window_start = row
            if count >= max_requests and as_utc(window_start) >= cutoff:
                break

        if row is None:
            logger.warning("Rate limit counter for key %s kept changing, allowing request", key)
            return RateLimitResult(allowed=True, remaining=max_requests, reset_at=now + window)
        return RateLimitResult(
            allowed=False, remaining=0, reset_at=as_utc(row[1]) + window
        )

    def cleanup(self, max_age_hours: int = 24, now: datetime | None = None) -> int:
        """Delete counters whose window started more than ``max_age_hours`` ago."""
        cutoff = (now or utc_now()) - timedelta(hours=max_age_hours)
        db = self._open_session()
        try:
            result = db.execute(
                delete(RateLimitCounter).where(RateLimitCounter.window_start < cutoff)
            )
            db.commit()
            return int(result.rowcount or 0)  # type: ignore[attr-defined]
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to clean up rate limit counters")
            return 0
        finally:
            db.close()

    def reset(self) -> None:
        """Clear all tracked state (useful for testing)."""
        db = self._open_session()
        try:
            db.execute(delete(RateLimitCounter))
            db.commit()
        finally:
            db.close()

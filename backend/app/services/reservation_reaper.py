"""Periodic release of slots held by reservations whose TTL passed."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import is_lock_contention
from app.models.shared import utc_now
from app.repositories.discount_code_repository import DiscountCodeRepository
from app.repositories.discount_reservation_repository import (
    DiscountReservationRepository,
    ReservationStats,
)

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    released: int = 0
    skipped_codes: list[UUID] = field(default_factory=list)


class ReservationReaper:
    """Sweeps lapsed holds, one code row lock at a time.

    Each code is handled in its own short transaction using the same locking
    discipline as the reservation engine. A reservation that gets redeemed
    between selection and release is skipped: the guarded UPDATE only touches
    rows that still hold their slot.
    """

    def __init__(self, db: Session):
        self.db = db
        self.code_repo = DiscountCodeRepository(db)
        self.reservation_repo = DiscountReservationRepository(db)

    def sweep(
        self,
        now: datetime | None = None,
        grace_minutes: int = 0,
        batch_size: int = 500,
    ) -> SweepResult:
        now = now or utc_now()
        cutoff = now - timedelta(minutes=grace_minutes)
        result = SweepResult()

        lapsed = self.reservation_repo.list_lapsed(cutoff, limit=batch_size)
        self.db.rollback()

        by_code: dict[UUID, list[UUID]] = defaultdict(list)
        for reservation_id, code_id in lapsed:
            by_code[code_id].append(reservation_id)

        for code_id, reservation_ids in by_code.items():
            try:
                result.released += self._release_for_code(code_id, reservation_ids, now, cutoff)
            except OperationalError as e:
                self.db.rollback()
                if not is_lock_contention(e):
                    raise
                logger.info("Discount code %s busy, leaving its lapsed holds for the next sweep", code_id)
                result.skipped_codes.append(code_id)

        logger.info(
            "Reservation sweep released %d slot(s) across %d code(s)", result.released, len(by_code)
        )
        return result

    def _release_for_code(
        self, code_id: UUID, reservation_ids: list[UUID], now: datetime, cutoff: datetime
    ) -> int:
        code = self.code_repo.lock_by_id(code_id, settings.RESERVATION_LOCK_TIMEOUT_MS)
        if code is None:
            self.db.rollback()
            return 0

        released = 0
        for reservation_id in reservation_ids:
            if self.reservation_repo.mark_released(reservation_id, now, lapsed_before=cutoff):
                released += 1
        if released:
            self.code_repo.release_slots(code_id, released)
        self.db.commit()
        return released

    def stats(self, now: datetime | None = None) -> ReservationStats:
        return self.reservation_repo.stats(now or utc_now())

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.discount_reservation import DiscountReservation


@dataclass
class ReservationStats:
    total: int
    live: int
    lapsed: int


class DiscountReservationRepository:
    """Reservation rows. Writes are staged, not committed."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, reservation_id: UUID) -> DiscountReservation | None:
        return (
            self.db.query(DiscountReservation)
            .filter(DiscountReservation.id == reservation_id)
            .populate_existing()
            .first()
        )

    def _holding(self):  # type: ignore[no-untyped-def]
        return self.db.query(DiscountReservation).filter(
            DiscountReservation.redeemed_at.is_(None),
            DiscountReservation.released_at.is_(None),
        )

    def count_live_for_customer(self, code_id: UUID, email: str, now: datetime) -> int:
        return (
            self._holding()
            .filter(
                DiscountReservation.discount_code_id == code_id,
                DiscountReservation.customer_email == email,
                DiscountReservation.expires_at > now,
            )
            .count()
        )

    def get_holding_for_customer(self, code_id: UUID, email: str) -> DiscountReservation | None:
        """Most recent reservation of this customer still holding a slot, live or lapsed."""
        return (
            self._holding()
            .filter(
                DiscountReservation.discount_code_id == code_id,
                DiscountReservation.customer_email == email,
            )
            .order_by(DiscountReservation.created_at.desc())
            .first()
        )

    def list_lapsed(
        self, cutoff: datetime, code_id: UUID | None = None, limit: int = 500
    ) -> list[tuple[UUID, UUID]]:
        """(reservation_id, discount_code_id) pairs whose hold lapsed at or before ``cutoff``."""
        query = self._holding().filter(DiscountReservation.expires_at <= cutoff)
        if code_id is not None:
            query = query.filter(DiscountReservation.discount_code_id == code_id)
        rows = (
            query.with_entities(DiscountReservation.id, DiscountReservation.discount_code_id)
            .order_by(DiscountReservation.expires_at)
            .limit(limit)
            .all()
        )
        return [(row[0], row[1]) for row in rows]

    def create(
        self, code_id: UUID, email: str, created_at: datetime, expires_at: datetime
    ) -> DiscountReservation:
        reservation = DiscountReservation(
            discount_code_id=code_id,
            customer_email=email,
            created_at=created_at,
            expires_at=expires_at,
        )
        self.db.add(reservation)
        self.db.flush()
        return reservation

    def mark_redeemed(self, reservation_id: UUID, now: datetime) -> bool:
        """Set redeemed_at once, only while the reservation still holds its slot."""
        updated = (
            self._holding()
            .filter(DiscountReservation.id == reservation_id)
            .update({DiscountReservation.redeemed_at: now}, synchronize_session=False)
        )
        return updated == 1

    def mark_redeemed_after_release(self, reservation_id: UUID, now: datetime) -> bool:
        """Set redeemed_at on a reservation whose hold already went back to the code."""
        updated = (
            self.db.query(DiscountReservation)
            .filter(
                DiscountReservation.id == reservation_id,
                DiscountReservation.redeemed_at.is_(None),
            )
            .update({DiscountReservation.redeemed_at: now}, synchronize_session=False)
        )
        return updated == 1

    def mark_released(
        self, reservation_id: UUID, now: datetime, lapsed_before: datetime | None = None
    ) -> bool:
        """Release the hold unless it was redeemed or released concurrently.

        With ``lapsed_before`` the row must also have expired by then, so a
        sweep never releases a reservation that was extended or is still live.
        """
        query = self._holding().filter(DiscountReservation.id == reservation_id)
        if lapsed_before is not None:
            query = query.filter(DiscountReservation.expires_at <= lapsed_before)
        updated = query.update({DiscountReservation.released_at: now}, synchronize_session=False)
        return updated == 1

    def stats(self, now: datetime) -> ReservationStats:
        total = self.db.query(DiscountReservation).count()
        live = self._holding().filter(DiscountReservation.expires_at > now).count()
        lapsed = self._holding().filter(DiscountReservation.expires_at <= now).count()
        return ReservationStats(total=total, live=live, lapsed=lapsed)

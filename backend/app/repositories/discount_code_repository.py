"""Discount code repository for data access.

Counter methods (``reserve_slot`` and friends) never commit: they are called
inside the reservation, redemption and sweep transactions while the code row
is locked, and each is a single guarded UPDATE whose affected-row count says
whether the change was allowed.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import case, or_
from sqlalchemy.orm import Session

from app.core.database import set_lock_timeout
from app.models.discount_code import DiscountCode, normalize_code
from app.models.shared import utc_now
from app.schemas.discount import DiscountCodeCreate, DiscountCodeUpdate


class DiscountCodeRepository:
    """Repository for DiscountCode model."""

    def __init__(self, db: Session):
        self.db = db

    def get_all(self, skip: int = 0, limit: int | None = 100) -> list[DiscountCode]:
        return (
            self.db.query(DiscountCode)
            .order_by(DiscountCode.created_at.desc(), DiscountCode.code)
            .offset(skip)
            .limit(limit)
            .all()
        )

    def count(self) -> int:
        return self.db.query(DiscountCode).count()

    def get_by_code(self, code: str) -> DiscountCode | None:
        """Case-insensitive exact lookup (codes are stored uppercase)."""
        return self.db.query(DiscountCode).filter(DiscountCode.code == normalize_code(code)).first()

    def list_active_codes(self) -> list[str]:
        rows = (
            self.db.query(DiscountCode.code)
            .filter(DiscountCode.is_active.is_(True))
            .order_by(DiscountCode.code)
            .all()
        )
        return [row[0] for row in rows]

    def _claim_write_lock(self, *criteria) -> None:  # type: ignore[no-untyped-def]
        """No-op UPDATE on the code row where FOR UPDATE is ignored.

        SQLite only serialises writers, and pysqlite opens the transaction at
        the first DML statement. Touching the row first makes every later read
        in the transaction happen under the database write lock.
        """
        if self.db.get_bind().dialect.name == "postgresql":
            return
        self.db.query(DiscountCode).filter(*criteria).update(
            {DiscountCode.reserved_uses: DiscountCode.reserved_uses}, synchronize_session=False
        )

    def lock_by_code(self, code: str, timeout_ms: int | None = None) -> DiscountCode | None:
        """Select the code row FOR UPDATE, waiting at most ``timeout_ms``."""
        set_lock_timeout(self.db, timeout_ms)
        self._claim_write_lock(DiscountCode.code == normalize_code(code))
        return (
            self.db.query(DiscountCode)
            .filter(DiscountCode.code == normalize_code(code))
            .with_for_update()
            .populate_existing()
            .first()
        )

    def lock_by_id(self, code_id: UUID, timeout_ms: int | None = None) -> DiscountCode | None:
        set_lock_timeout(self.db, timeout_ms)
        self._claim_write_lock(DiscountCode.id == code_id)
        return (
            self.db.query(DiscountCode)
            .filter(DiscountCode.id == code_id)
            .with_for_update()
            .populate_existing()
            .first()
        )

    def reserve_slot(self, code_id: UUID) -> bool:
        """reserved_uses += 1, only while current + reserved < max_uses."""
        updated = (
            self.db.query(DiscountCode)
            .filter(
                DiscountCode.id == code_id,
                or_(
                    DiscountCode.max_uses.is_(None),
                    DiscountCode.current_uses + DiscountCode.reserved_uses < DiscountCode.max_uses,
                ),
            )
            .update(
                {DiscountCode.reserved_uses: DiscountCode.reserved_uses + 1},
                synchronize_session=False,
            )
        )
        return updated == 1

    def release_slots(self, code_id: UUID, count: int = 1) -> bool:
        """reserved_uses -= count, clamped at zero."""
        updated = (
            self.db.query(DiscountCode)
            .filter(DiscountCode.id == code_id)
            .update(
                {
                    DiscountCode.reserved_uses: case(
                        (DiscountCode.reserved_uses >= count, DiscountCode.reserved_uses - count),
                        else_=0,
                    )
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def convert_slot(self, code_id: UUID) -> bool:
        """Move one held slot into current_uses."""
        updated = (
            self.db.query(DiscountCode)
            .filter(
                DiscountCode.id == code_id,
                DiscountCode.reserved_uses >= 1,
                or_(
                    DiscountCode.max_uses.is_(None),
                    DiscountCode.current_uses < DiscountCode.max_uses,
                ),
            )
            .update(
                {
                    DiscountCode.reserved_uses: DiscountCode.reserved_uses - 1,
                    DiscountCode.current_uses: DiscountCode.current_uses + 1,
                },
                synchronize_session=False,
            )
        )
        return updated == 1

    def consume_slot(self, code_id: UUID) -> bool:
        """current_uses += 1 without a held slot, only while capacity remains."""
        updated = (
            self.db.query(DiscountCode)
            .filter(
                DiscountCode.id == code_id,
                or_(
                    DiscountCode.max_uses.is_(None),
                    DiscountCode.current_uses + DiscountCode.reserved_uses < DiscountCode.max_uses,
                ),
            )
            .update(
                {DiscountCode.current_uses: DiscountCode.current_uses + 1},
                synchronize_session=False,
            )
        )
        return updated == 1

    def create(self, data: DiscountCodeCreate) -> DiscountCode:
        code = DiscountCode(
            code=normalize_code(data.code),
            plan_id=data.plan_id,
            discount_type=data.discount_type.value,
            discount_value=data.discount_value,
            discount_duration_months=data.discount_duration_months,
            admin_notes=data.admin_notes,
            max_uses=data.max_uses,
            max_uses_per_customer=data.max_uses_per_customer,
            valid_from=data.valid_from,
            valid_until=data.valid_until,
            is_active=data.is_active,
            deactivated_at=None if data.is_active else utc_now(),
            grace_period_minutes=data.grace_period_minutes,
        )
        self.db.add(code)
        self.db.commit()
        self.db.refresh(code)
        return code

    def update(
        self, code: str, data: DiscountCodeUpdate, now: datetime | None = None
    ) -> DiscountCode | None:
        """Update a code's admin fields. Counters are never touched here."""
        discount_code = self.get_by_code(code)
        if not discount_code:
            return None

        update_data = data.model_dump(exclude_unset=True)

        if "is_active" in update_data and update_data["is_active"] is not None:
            is_active = update_data.pop("is_active")
            if discount_code.is_active and not is_active:
                discount_code.deactivated_at = now or utc_now()  # type: ignore[assignment]
            elif is_active and not discount_code.is_active:
                discount_code.deactivated_at = None  # type: ignore[assignment]
            discount_code.is_active = is_active  # type: ignore[assignment]

        for key, value in update_data.items():
            setattr(discount_code, key, value)

        self.db.commit()
        self.db.refresh(discount_code)
        return discount_code

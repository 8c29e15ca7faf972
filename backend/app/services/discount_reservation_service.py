"""Reservation engine: validate a discount code and hold one of its slots.

Every reservation runs as one transaction around the code row. The row is
locked first (``SELECT ... FOR UPDATE`` with a short lock timeout on
PostgreSQL), the business rules are checked in a fixed order, and the slot is
taken with a guarded UPDATE whose affected-row count is the final word on
capacity. Two callers can therefore never both see the last free slot and
both win it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import is_lock_contention
from app.models.discount_code import DiscountCode, normalize_code
from app.models.discount_reservation import DiscountReservation
from app.models.shared import as_utc, utc_now
from app.models.subscription_plan import SubscriptionPlan
from app.repositories.customer_repository import normalize_email
from app.repositories.discount_code_repository import DiscountCodeRepository
from app.repositories.discount_redemption_repository import DiscountRedemptionRepository
from app.repositories.discount_reservation_repository import DiscountReservationRepository
from app.repositories.subscription_plan_repository import SubscriptionPlanRepository
from app.services.code_matcher import CodeMatcher
from app.services.discount_errors import DiscountError, DiscountErrorCode
from app.services.pricing import Discount, PriceQuote, calculate_price

logger = logging.getLogger(__name__)


def code_prefix(code: str) -> str:
    """Loggable stand-in for a code; full codes never reach the logs."""
    normalized = normalize_code(code)
    return f"{normalized[:4]}..." if len(normalized) > 4 else normalized


def ensure_code_usable(code: DiscountCode, now: datetime) -> None:
    """Check activity (with grace period) and the validity window, in that order."""
    if not code.is_active:
        deactivated_at = code.deactivated_at
        grace = timedelta(minutes=int(code.grace_period_minutes or 0))
        if deactivated_at is None or now > as_utc(deactivated_at) + grace:
            raise DiscountError(DiscountErrorCode.INACTIVE, "Code is no longer active")

    if code.valid_from is not None and now < as_utc(code.valid_from):
        raise DiscountError(DiscountErrorCode.NOT_YET_VALID, "Code is not yet valid")

    if code.valid_until is not None and now > as_utc(code.valid_until):
        valid_until = as_utc(code.valid_until)
        raise DiscountError(
            DiscountErrorCode.EXPIRED,
            f"Code expired on {valid_until.strftime('%b %d, %Y')}",
            expires_at=valid_until,
        )


def invalid_code_error(suggestion: str | None) -> DiscountError:
    if suggestion:
        message = f"Code not found. Did you mean '{suggestion}'?"
    else:
        message = "Code not found. Check for typos or try another code."
    return DiscountError(DiscountErrorCode.INVALID_CODE, message, suggestion=suggestion)


@dataclass
class ReservationResult:
    reservation_id: UUID
    code: str
    expires_at: datetime
    plan: SubscriptionPlan
    discount: Discount
    quote: PriceQuote
    original_price: Decimal


class DiscountReservationService:
    def __init__(self, db: Session):
        self.db = db
        self.code_repo = DiscountCodeRepository(db)
        self.reservation_repo = DiscountReservationRepository(db)
        self.redemption_repo = DiscountRedemptionRepository(db)
        self.plan_repo = SubscriptionPlanRepository(db)

    def reserve(self, code: str, customer_email: str, now: datetime | None = None) -> ReservationResult:
        """Validate ``code`` for ``customer_email`` and hold one slot for them.

        Raises:
            DiscountError: with a validation kind when a business rule fails,
                ``CODE_LOCKED`` when the code row is busy, or
                ``DATABASE_ERROR`` when the store fails.
        """
        now = now or utc_now()
        email = normalize_email(customer_email)
        try:
            result = self._reserve_locked(code, email, now)
            self.db.commit()
        except DiscountError as e:
            self.db.rollback()
            if e.code == DiscountErrorCode.INVALID_CODE:
                e = invalid_code_error(CodeMatcher(self.db).suggest(code))
            logger.info(
                "Discount reservation rejected: code=%s reason=%s has_suggestion=%s",
                code_prefix(code),
                e.code.value,
                e.suggestion is not None,
            )
            raise e from None
        except OperationalError as e:
            self.db.rollback()
            if is_lock_contention(e):
                logger.info("Discount code %s is locked, asking caller to retry", code_prefix(code))
                raise DiscountError(DiscountErrorCode.CODE_LOCKED) from e
            logger.exception("Failed to reserve discount code %s", code_prefix(code))
            raise DiscountError(DiscountErrorCode.DATABASE_ERROR) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to reserve discount code %s", code_prefix(code))
            raise DiscountError(DiscountErrorCode.DATABASE_ERROR) from e

        logger.info(
            "Discount code %s reserved: reservation=%s expires_at=%s",
            code_prefix(code),
            result.reservation_id,
            result.expires_at.isoformat(),
        )
        return result

    def _reserve_locked(self, code: str, email: str, now: datetime) -> ReservationResult:
        discount_code = self.code_repo.lock_by_code(code, settings.RESERVATION_LOCK_TIMEOUT_MS)
        if discount_code is None:
            raise DiscountError(DiscountErrorCode.INVALID_CODE)

        ensure_code_usable(discount_code, now)

        plan = self.plan_repo.get_by_id(discount_code.plan_id)  # type: ignore[arg-type]
        if plan is None or not plan.is_active:
            raise DiscountError(
                DiscountErrorCode.PLAN_UNAVAILABLE, "The plan for this code is no longer available"
            )

        # Abandoned checkouts on this code stop blocking capacity right away
        if self._release_lapsed(discount_code, now):
            self.db.refresh(discount_code)

        max_uses = discount_code.max_uses
        if max_uses is not None and discount_code.current_uses + discount_code.reserved_uses >= max_uses:
            raise DiscountError(DiscountErrorCode.MAX_USES, "Code has reached its usage limit")

        self._check_customer_limits(discount_code, email, now)

        if not self.code_repo.reserve_slot(discount_code.id):  # type: ignore[arg-type]
            raise DiscountError(DiscountErrorCode.MAX_USES, "Code has reached its usage limit")

        expires_at = now + timedelta(minutes=settings.RESERVATION_TTL_MINUTES)
        reservation = self.reservation_repo.create(
            discount_code.id,  # type: ignore[arg-type]
            email,
            created_at=now,
            expires_at=expires_at,
        )

        discount = Discount.from_code(discount_code)
        default_plan = self.plan_repo.get_default()
        original_price = Decimal(str((default_plan or plan).price_amount))
        quote = calculate_price(plan.price_amount, discount, original_price=original_price)

        return ReservationResult(
            reservation_id=reservation.id,  # type: ignore[arg-type]
            code=str(discount_code.code),
            expires_at=expires_at,
            plan=plan,
            discount=discount,
            quote=quote,
            original_price=original_price,
        )

    def _check_customer_limits(self, code: DiscountCode, email: str, now: datetime) -> None:
        live = self.reservation_repo.count_live_for_customer(code.id, email, now)  # type: ignore[arg-type]
        cap = code.max_uses_per_customer
        if cap is not None:
            redeemed = self.redemption_repo.count_for_customer(code.id, email)  # type: ignore[arg-type]
            if redeemed + live >= cap:
                if live and redeemed < cap:
                    raise DiscountError(
                        DiscountErrorCode.RESERVATION_EXISTS,
                        "You already have a checkout in progress with this code",
                    )
                raise DiscountError(
                    DiscountErrorCode.ALREADY_USED, "You have already used this code"
                )
        if live:
            raise DiscountError(
                DiscountErrorCode.RESERVATION_EXISTS,
                "You already have a checkout in progress with this code",
            )

    def _release_lapsed(self, code: DiscountCode, now: datetime) -> int:
        """Release holds on ``code`` whose TTL has passed. Caller holds the row lock."""
        released = 0
        for reservation_id, _ in self.reservation_repo.list_lapsed(now, code_id=code.id):  # type: ignore[arg-type]
            if self.reservation_repo.mark_released(reservation_id, now, lapsed_before=now):
                released += 1
        if released:
            self.code_repo.release_slots(code.id, released)  # type: ignore[arg-type]
        return released

    def release(self, reservation_id: UUID, now: datetime | None = None) -> bool:
        """Give back the slot held by a reservation (checkout abandoned early).

        Idempotent: returns False when the reservation is unknown or no longer
        holds a slot.
        """
        now = now or utc_now()
        try:
            reservation = self.reservation_repo.get_by_id(reservation_id)
            if reservation is None or not _is_holding(reservation):
                return False

            self.code_repo.lock_by_id(
                reservation.discount_code_id,  # type: ignore[arg-type]
                settings.RESERVATION_LOCK_TIMEOUT_MS,
            )
            if not self.reservation_repo.mark_released(reservation_id, now):
                self.db.rollback()
                return False
            self.code_repo.release_slots(reservation.discount_code_id)  # type: ignore[arg-type]
            self.db.commit()
        except OperationalError as e:
            self.db.rollback()
            if is_lock_contention(e):
                raise DiscountError(DiscountErrorCode.CODE_LOCKED) from e
            logger.exception("Failed to release reservation %s", reservation_id)
            raise DiscountError(DiscountErrorCode.DATABASE_ERROR) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to release reservation %s", reservation_id)
            raise DiscountError(DiscountErrorCode.DATABASE_ERROR) from e

        logger.info("Reservation %s released", reservation_id)
        return True


def _is_holding(reservation: DiscountReservation) -> bool:
    return reservation.redeemed_at is None and reservation.released_at is None

"""Redemption converter: turn a paid checkout into a permanent redemption.

Called from the payment webhook, which may deliver the same event more than
once. The provider subscription id is the idempotency key and is checked
before anything else.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.discount_code import DiscountCode
from app.models.discount_redemption import DiscountRedemption
from app.models.discount_reservation import DiscountReservation
from app.models.shared import as_utc, utc_now
from app.repositories.customer_repository import CustomerRepository, normalize_email
from app.repositories.discount_code_repository import DiscountCodeRepository
from app.repositories.discount_redemption_repository import DiscountRedemptionRepository
from app.repositories.discount_reservation_repository import DiscountReservationRepository
from app.services.discount_errors import DiscountError, DiscountErrorCode

logger = logging.getLogger(__name__)


@dataclass
class RedemptionResult:
    redemption: DiscountRedemption
    replayed: bool = False


class DiscountRedemptionService:
    def __init__(self, db: Session):
        self.db = db
        self.code_repo = DiscountCodeRepository(db)
        self.reservation_repo = DiscountReservationRepository(db)
        self.redemption_repo = DiscountRedemptionRepository(db)
        self.customer_repo = CustomerRepository(db)

    def redeem(
        self,
        provider_subscription_id: str,
        reservation_id: UUID | None = None,
        customer_email: str | None = None,
        code: str | None = None,
        customer_name: str | None = None,
        now: datetime | None = None,
    ) -> RedemptionResult:
        """Record a completed purchase against a reservation or a code.

        A live reservation converts its held slot. A reservation that lapsed
        before the webhook arrived still converts, directly against the code,
        as long as the code has a free slot; otherwise ``MAX_USES``.
        Replaying a known ``provider_subscription_id`` returns the stored
        redemption untouched.
        """
        if not provider_subscription_id:
            raise DiscountError(DiscountErrorCode.INVALID_REQUEST, "provider_subscription_id is required")
        if reservation_id is None and not (customer_email and code):
            raise DiscountError(
                DiscountErrorCode.INVALID_REQUEST,
                "Either reservation_id or customer_email and code are required",
            )

        now = now or utc_now()
        try:
            existing = self.redemption_repo.get_by_provider_subscription_id(provider_subscription_id)
            if existing:
                logger.info("Redemption for %s already recorded, replaying", provider_subscription_id)
                return RedemptionResult(redemption=existing, replayed=True)

            redemption = self._redeem_locked(
                provider_subscription_id, reservation_id, customer_email, code, customer_name, now
            )
            self.db.commit()
        except DiscountError as e:
            self.db.rollback()
            log = logger.info if e.is_validation_error else logger.warning
            log("Redemption for %s rejected: reason=%s", provider_subscription_id, e.code.value)
            raise
        except IntegrityError as e:
            # A concurrent delivery of the same event committed first
            self.db.rollback()
            existing = self.redemption_repo.get_by_provider_subscription_id(provider_subscription_id)
            if existing:
                return RedemptionResult(redemption=existing, replayed=True)
            logger.exception("Failed to record redemption %s", provider_subscription_id)
            raise DiscountError(DiscountErrorCode.DATABASE_ERROR) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.exception("Failed to record redemption %s", provider_subscription_id)
            raise DiscountError(DiscountErrorCode.DATABASE_ERROR) from e

        self.db.refresh(redemption)
        logger.info(
            "Discount redeemed: subscription=%s code_id=%s reservation=%s",
            provider_subscription_id,
            redemption.discount_code_id,
            redemption.reservation_id,
        )
        return RedemptionResult(redemption=redemption)

    def _redeem_locked(
        self,
        provider_subscription_id: str,
        reservation_id: UUID | None,
        customer_email: str | None,
        code: str | None,
        customer_name: str | None,
        now: datetime,
    ) -> DiscountRedemption:
        reservation: DiscountReservation | None = None
        if reservation_id is not None:
            reservation = self.reservation_repo.get_by_id(reservation_id)
            if reservation is None:
                raise DiscountError(DiscountErrorCode.INVALID_REQUEST, "Reservation not found")
            # Webhooks wait for the lock; they must never give up before recording
            discount_code = self.code_repo.lock_by_id(reservation.discount_code_id)  # type: ignore[arg-type]
        else:
            discount_code = self.code_repo.lock_by_code(code or "")
            if discount_code is None:
                raise DiscountError(DiscountErrorCode.INVALID_CODE, "Code not found")
            reservation = self.reservation_repo.get_holding_for_customer(
                discount_code.id, normalize_email(customer_email or "")  # type: ignore[arg-type]
            )

        if discount_code is None:
            raise DiscountError(DiscountErrorCode.INVALID_CODE, "Code not found")

        if reservation is not None:
            # Reload under the lock so a concurrent sweep or redemption is visible
            reservation = self.reservation_repo.get_by_id(reservation.id)  # type: ignore[arg-type]

        email = customer_email or (reservation.customer_email if reservation else None)
        customer = self.customer_repo.get_or_create(str(email), customer_name) if email else None

        if reservation is not None and reservation.redeemed_at is not None:
            raise DiscountError(DiscountErrorCode.ALREADY_USED, "Reservation was already redeemed")

        linked_reservation_id = self._take_slot(discount_code, reservation, now)

        return self.redemption_repo.create(
            code_id=discount_code.id,  # type: ignore[arg-type]
            customer_id=customer.id if customer else None,  # type: ignore[arg-type]
            reservation_id=linked_reservation_id,
            provider_subscription_id=provider_subscription_id,
            redeemed_at=now,
        )

    def _take_slot(
        self, code: DiscountCode, reservation: DiscountReservation | None, now: datetime
    ) -> UUID | None:
        """Move the usage into ``current_uses``. Returns the reservation to link, if any."""
        code_id: UUID = code.id  # type: ignore[assignment]
        holding = reservation is not None and reservation.released_at is None

        if holding and as_utc(reservation.expires_at) > now:  # type: ignore[union-attr]
            if self.reservation_repo.mark_redeemed(reservation.id, now):  # type: ignore[union-attr, arg-type]
                if not self.code_repo.convert_slot(code_id):
                    raise DiscountError(DiscountErrorCode.MAX_USES, "Code has reached its usage limit")
                return reservation.id  # type: ignore[union-attr, return-value]

        # Lapsed or already released: the stale hold goes back before capacity is checked
        if holding and self.reservation_repo.mark_released(reservation.id, now):  # type: ignore[union-attr, arg-type]
            self.code_repo.release_slots(code_id)
            logger.info(
                "Reservation %s lapsed before payment, redeeming against code capacity",
                reservation.id,  # type: ignore[union-attr]
            )

        if not self.code_repo.consume_slot(code_id):
            raise DiscountError(DiscountErrorCode.MAX_USES, "Code has reached its usage limit")
        # The stale reservation stays unlinked but can never convert again
        if reservation is not None and not self.reservation_repo.mark_redeemed_after_release(
            reservation.id, now  # type: ignore[arg-type]
        ):
            raise DiscountError(DiscountErrorCode.ALREADY_USED, "Reservation was already redeemed")
        return None

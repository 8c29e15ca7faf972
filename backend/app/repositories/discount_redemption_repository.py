from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from app.models.customer import Customer
from app.models.discount_redemption import DiscountRedemption


class DiscountRedemptionRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_by_provider_subscription_id(
        self, provider_subscription_id: str
    ) -> DiscountRedemption | None:
        return (
            self.db.query(DiscountRedemption)
            .filter(DiscountRedemption.provider_subscription_id == provider_subscription_id)
            .first()
        )

    def count_for_customer(self, code_id: UUID, email: str) -> int:
        return (
            self.db.query(DiscountRedemption)
            .join(Customer, Customer.id == DiscountRedemption.customer_id)
            .filter(DiscountRedemption.discount_code_id == code_id, Customer.email == email)
            .count()
        )

    def create(
        self,
        *,
        code_id: UUID,
        customer_id: UUID | None,
        reservation_id: UUID | None,
        provider_subscription_id: str,
        redeemed_at: datetime,
    ) -> DiscountRedemption:
        redemption = DiscountRedemption(
            discount_code_id=code_id,
            customer_id=customer_id,
            reservation_id=reservation_id,
            provider_subscription_id=provider_subscription_id,
            redeemed_at=redeemed_at,
        )
        self.db.add(redemption)
        self.db.flush()
        return redemption

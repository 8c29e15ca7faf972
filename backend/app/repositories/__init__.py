from app.repositories.customer_repository import CustomerRepository
from app.repositories.discount_code_repository import DiscountCodeRepository
from app.repositories.discount_redemption_repository import DiscountRedemptionRepository
from app.repositories.discount_reservation_repository import DiscountReservationRepository
from app.repositories.subscription_plan_repository import SubscriptionPlanRepository

__all__ = [
    "CustomerRepository",
    "DiscountCodeRepository",
    "DiscountRedemptionRepository",
    "DiscountReservationRepository",
    "SubscriptionPlanRepository",
]

from app.models.customer import Customer
from app.models.discount_code import DiscountCode, DiscountStatus, DiscountType
from app.models.discount_redemption import DiscountRedemption
from app.models.discount_reservation import DiscountReservation
from app.models.rate_limit import RateLimitCounter
from app.models.subscription_plan import BillingCycle, SubscriptionPlan

__all__ = [
    "BillingCycle",
    "Customer",
    "DiscountCode",
    "DiscountRedemption",
    "DiscountReservation",
    "DiscountStatus",
    "DiscountType",
    "RateLimitCounter",
    "SubscriptionPlan",
]

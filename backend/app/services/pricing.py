"""Discounted price calculation for subscription plans.

Pure functions over ``Decimal``; nothing here touches the database.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from app.models.discount_code import DiscountCode, DiscountType

CENT = Decimal("0.01")
ZERO = Decimal("0")


def round_money(value: Decimal) -> Decimal:
    """Round to cents, halves away from zero."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Discount:
    """What a discount code takes off the plan price."""

    discount_type: DiscountType
    value: Decimal | None = None
    duration_months: int = 1

    @classmethod
    def percentage(cls, value: Decimal | int | str, duration_months: int = 1) -> "Discount":
        return cls(DiscountType.PERCENTAGE, Decimal(str(value)), duration_months)

    @classmethod
    def fixed_amount(cls, value: Decimal | int | str, duration_months: int = 1) -> "Discount":
        return cls(DiscountType.FIXED_AMOUNT, Decimal(str(value)), duration_months)

    @classmethod
    def free_trial(cls, months: int = 1) -> "Discount":
        return cls(DiscountType.FREE_TRIAL, None, months)

    @classmethod
    def from_code(cls, code: DiscountCode) -> "Discount":
        value = code.discount_value
        return cls(
            DiscountType(str(code.discount_type)),
            Decimal(str(value)) if value is not None else None,
            int(code.discount_duration_months or 1),
        )

    def describe(self, currency_symbol: str = "$") -> str:
        months = self.duration_months
        if self.discount_type == DiscountType.FREE_TRIAL:
            return f"{months} month{'s' if months > 1 else ''} free"
        period = "first month" if months == 1 else f"first {months} months"
        value = self.value or ZERO
        if self.discount_type == DiscountType.PERCENTAGE:
            return f"{value.normalize():f}% off {period}"
        return f"{currency_symbol}{round_money(value)} off {period}"


@dataclass(frozen=True)
class PriceQuote:
    final_price: Decimal
    savings: Decimal
    savings_percent: int | None = None


def calculate_price(
    plan_price: Decimal | int | str,
    discount: Discount,
    original_price: Decimal | int | str | None = None,
) -> PriceQuote:
    """Apply ``discount`` to ``plan_price``.

    Savings never exceed the plan price and neither figure goes negative.
    Intermediate values keep full precision; rounding happens once, on the
    savings, and the final price is derived from the rounded savings so the
    two always add back up to the plan price.

    ``savings_percent`` is expressed against ``original_price`` (the default
    plan's price) and omitted when that price is unknown.
    """
    price = max(Decimal(str(plan_price)), ZERO)
    value = discount.value if discount.value is not None else ZERO

    if discount.discount_type == DiscountType.PERCENTAGE:
        savings = price * value / Decimal("100")
    elif discount.discount_type == DiscountType.FIXED_AMOUNT:
        savings = min(value, price)
    else:
        savings = price

    savings = round_money(min(max(savings, ZERO), price))
    final_price = round_money(max(price - savings, ZERO))

    savings_percent = None
    if original_price is not None:
        original = Decimal(str(original_price))
        if original > 0:
            savings_percent = int(
                (savings / original * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
            )

    return PriceQuote(final_price=final_price, savings=savings, savings_percent=savings_percent)

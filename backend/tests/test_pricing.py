"""Tests for discounted price calculation."""

from decimal import Decimal

from app.models.discount_code import DiscountCode, DiscountType
from app.services.pricing import Discount, calculate_price, round_money


class TestCalculatePrice:
    def test_percentage_discount(self):
        quote = calculate_price(Decimal("29.00"), Discount.percentage(50))
        assert quote.final_price == Decimal("14.50")
        assert quote.savings == Decimal("14.50")

    def test_fixed_amount_capped_at_plan_price(self):
        quote = calculate_price(Decimal("5.00"), Discount.fixed_amount(10))
        assert quote.savings == Decimal("5.00")
        assert quote.final_price == Decimal("0.00")

    def test_fixed_amount_below_price(self):
        quote = calculate_price(Decimal("29.00"), Discount.fixed_amount("10.50"))
        assert quote.savings == Decimal("10.50")
        assert quote.final_price == Decimal("18.50")

    def test_free_trial(self):
        quote = calculate_price(Decimal("29.00"), Discount.free_trial(2))
        assert quote.final_price == Decimal("0.00")
        assert quote.savings == Decimal("29.00")

    def test_rounds_half_away_from_zero_once(self):
        # 33% of 9.99 = 3.2967 -> 3.30 savings, 6.69 final
        quote = calculate_price(Decimal("9.99"), Discount.percentage(33))
        assert quote.savings == Decimal("3.30")
        assert quote.final_price == Decimal("6.69")

    def test_half_cent_rounds_up(self):
        # 50% of 0.05 = 0.025
        quote = calculate_price(Decimal("0.05"), Discount.percentage(50))
        assert quote.savings == Decimal("0.03")
        assert quote.final_price == Decimal("0.02")

    def test_savings_and_final_add_up_to_price(self):
        for percent in (1, 7, 13, 33, 66, 99):
            quote = calculate_price(Decimal("19.99"), Discount.percentage(percent))
            assert quote.savings + quote.final_price == Decimal("19.99")

    def test_negative_price_clamped(self):
        quote = calculate_price(Decimal("-5"), Discount.fixed_amount(10))
        assert quote.final_price == Decimal("0.00")
        assert quote.savings == Decimal("0.00")

    def test_savings_percent_against_original_price(self):
        quote = calculate_price(
            Decimal("19.00"), Discount.percentage(50), original_price=Decimal("29.00")
        )
        assert quote.savings == Decimal("9.50")
        assert quote.savings_percent == 33

    def test_savings_percent_omitted_without_original_price(self):
        assert calculate_price(Decimal("29.00"), Discount.percentage(50)).savings_percent is None

    def test_savings_percent_omitted_for_zero_original_price(self):
        quote = calculate_price(Decimal("29.00"), Discount.percentage(50), original_price=0)
        assert quote.savings_percent is None


class TestDiscount:
    def test_describe_percentage(self):
        assert Discount.percentage(50).describe() == "50% off first month"
        assert Discount.percentage("12.5", 3).describe() == "12.5% off first 3 months"

    def test_describe_fixed_amount(self):
        assert Discount.fixed_amount(10).describe() == "$10.00 off first month"
        assert Discount.fixed_amount(10, 3).describe() == "$10.00 off first 3 months"

    def test_describe_free_trial(self):
        assert Discount.free_trial(1).describe() == "1 month free"
        assert Discount.free_trial(2).describe() == "2 months free"

    def test_from_code(self):
        code = DiscountCode(
            code="TRIAL",
            discount_type=DiscountType.FREE_TRIAL.value,
            discount_value=None,
            discount_duration_months=3,
        )
        discount = Discount.from_code(code)
        assert discount.discount_type == DiscountType.FREE_TRIAL
        assert discount.value is None
        assert discount.duration_months == 3


def test_round_money():
    assert round_money(Decimal("1.005")) == Decimal("1.01")
    assert round_money(Decimal("-1.005")) == Decimal("-1.01")

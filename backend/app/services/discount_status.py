"""Computed status and usage figures for the admin views.

Status is derived from stored fields every time it is read and is never
persisted.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.orm import Session

from app.models.discount_code import DiscountCode, DiscountStatus
from app.models.shared import as_utc, utc_now
from app.models.subscription_plan import SubscriptionPlan
from app.repositories.discount_code_repository import DiscountCodeRepository
from app.repositories.subscription_plan_repository import SubscriptionPlanRepository
from app.services.pricing import Discount, calculate_price


def compute_status(
    code: DiscountCode, plan: SubscriptionPlan | None, now: datetime | None = None
) -> DiscountStatus:
    now = now or utc_now()
    if plan is None or not plan.is_active:
        return DiscountStatus.ERROR

    if not code.is_active:
        deactivated_at = code.deactivated_at
        grace = timedelta(minutes=int(code.grace_period_minutes or 0))
        if deactivated_at is None or now > as_utc(deactivated_at) + grace:
            return DiscountStatus.INACTIVE

    if code.valid_until is not None and now > as_utc(code.valid_until):
        return DiscountStatus.EXPIRED

    if code.max_uses is not None and code.current_uses >= code.max_uses:
        return DiscountStatus.EXHAUSTED

    if code.current_uses == 0:
        return DiscountStatus.UNUSED
    return DiscountStatus.ACTIVE


@dataclass
class UsageSummary:
    current: int
    reserved: int
    max: int | None
    percentage: int


def usage_summary(code: DiscountCode) -> UsageSummary:
    current = int(code.current_uses or 0)
    reserved = int(code.reserved_uses or 0)
    max_uses = code.max_uses
    percentage = 0
    if max_uses:
        ratio = Decimal(current + reserved) / Decimal(int(max_uses)) * 100
        percentage = int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    return UsageSummary(current=current, reserved=reserved, max=max_uses, percentage=percentage)  # type: ignore[arg-type]


@dataclass
class DiscountOverview:
    code: DiscountCode
    plan: SubscriptionPlan | None
    status: DiscountStatus
    usage: UsageSummary
    display_text: str
    savings: Decimal | None


class DiscountStatusService:
    """Joins codes with their plans and derives the admin-facing view."""

    def __init__(self, db: Session):
        self.db = db
        self.code_repo = DiscountCodeRepository(db)
        self.plan_repo = SubscriptionPlanRepository(db)

    def overview(
        self, code: DiscountCode, plan: SubscriptionPlan | None, now: datetime | None = None
    ) -> DiscountOverview:
        discount = Discount.from_code(code)
        savings = calculate_price(plan.price_amount, discount).savings if plan else None
        return DiscountOverview(
            code=code,
            plan=plan,
            status=compute_status(code, plan, now),
            usage=usage_summary(code),
            display_text=discount.describe(),
            savings=savings,
        )

    def get(self, code: str, now: datetime | None = None) -> DiscountOverview | None:
        discount_code = self.code_repo.get_by_code(code)
        if discount_code is None:
            return None
        plan = self.plan_repo.get_by_id(discount_code.plan_id)  # type: ignore[arg-type]
        return self.overview(discount_code, plan, now)

    def _overviews(self, codes: list[DiscountCode], now: datetime) -> list[DiscountOverview]:
        plans = self.plan_repo.get_by_ids([c.plan_id for c in codes])  # type: ignore[misc]
        return [self.overview(c, plans.get(c.plan_id), now) for c in codes]  # type: ignore[call-overload]

    def list(
        self,
        status: DiscountStatus | None = None,
        skip: int = 0,
        limit: int = 100,
        now: datetime | None = None,
    ) -> tuple[list[DiscountOverview], int]:
        """Return one page of overviews and the total number of matching codes."""
        now = now or utc_now()
        if status is None:
            codes = self.code_repo.get_all(skip=skip, limit=limit)
            return self._overviews(codes, now), self.code_repo.count()

        # Status is computed, not stored, so filter every code before paging
        matching = [
            o for o in self._overviews(self.code_repo.get_all(limit=None), now) if o.status == status
        ]
        return matching[skip : skip + limit], len(matching)

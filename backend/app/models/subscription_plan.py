"""Subscription plans offered at checkout."""

from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    ANNUAL = "annual"


class SubscriptionPlan(Base):
    """A business-facing plan that discount codes point at.

    Exactly one active plan is flagged ``is_default``; its price is the
    reference ("original") price shown struck through at checkout.
    """

    __tablename__ = "subscription_plans"
    __table_args__ = (
        CheckConstraint("price_amount > 0", name="chk_price_amount_positive"),
        CheckConstraint("billing_cycle IN ('monthly', 'annual')", name="chk_billing_cycle"),
        Index(
            "uq_subscription_plans_default",
            "is_default",
            unique=True,
            postgresql_where=text("is_default"),
            sqlite_where=text("is_default = 1"),
        ),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    business_name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price_amount = Column(Numeric(10, 2), nullable=False)
    price_currency = Column(String(3), nullable=False, default="USD")
    billing_cycle = Column(String(20), nullable=False, default=BillingCycle.MONTHLY.value)
    trial_price_amount = Column(Numeric(10, 2), nullable=True)
    trial_duration_months = Column(Integer, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

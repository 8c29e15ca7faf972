"""Discount code model for promotional subscription pricing."""

from enum import Enum

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    FREE_TRIAL = "free_trial"


class DiscountStatus(str, Enum):
    """Computed status for the admin UI. Never stored."""

    ACTIVE = "active"
    UNUSED = "unused"
    EXHAUSTED = "exhausted"
    EXPIRED = "expired"
    INACTIVE = "inactive"
    ERROR = "error"


def normalize_code(code: str) -> str:
    return code.strip().upper()


class DiscountCode(Base):
    """Promotional code that unlocks a subscription plan at a discount.

    ``current_uses`` counts completed redemptions; ``reserved_uses`` counts
    reservations still holding a slot. Both are only ever changed by guarded
    UPDATE statements issued while the row is locked.
    """

    __tablename__ = "discount_codes"
    __table_args__ = (
        CheckConstraint(
            "current_uses >= 0 AND reserved_uses >= 0", name="chk_uses_non_negative"
        ),
        CheckConstraint(
            "max_uses IS NULL OR current_uses + reserved_uses <= max_uses",
            name="chk_uses_within_max",
        ),
        CheckConstraint(
            "valid_from IS NULL OR valid_until IS NULL OR valid_from < valid_until",
            name="chk_valid_date_range",
        ),
        CheckConstraint(
            "discount_value IS NULL OR discount_value > 0", name="chk_discount_value_positive"
        ),
        CheckConstraint(
            "discount_type != 'percentage' OR discount_value <= 100",
            name="chk_percentage_max_100",
        ),
        CheckConstraint(
            "max_uses_per_customer IS NULL OR max_uses_per_customer > 0",
            name="chk_max_uses_per_customer_positive",
        ),
        CheckConstraint("grace_period_minutes >= 0", name="chk_grace_period_non_negative"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    code = Column(String(100), unique=True, index=True, nullable=False)
    plan_id = Column(
        UUIDType,
        ForeignKey("subscription_plans.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    discount_type = Column(String(20), nullable=False)
    discount_value = Column(Numeric(10, 2), nullable=True)
    discount_duration_months = Column(Integer, nullable=False, default=1)
    admin_notes = Column(Text, nullable=True)

    max_uses = Column(Integer, nullable=True)
    current_uses = Column(Integer, nullable=False, default=0)
    reserved_uses = Column(Integer, nullable=False, default=0)
    max_uses_per_customer = Column(Integer, nullable=True, default=1)

    valid_from = Column(DateTime(timezone=True), nullable=True)
    valid_until = Column(DateTime(timezone=True), nullable=True)

    is_active = Column(Boolean, nullable=False, default=True)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)
    grace_period_minutes = Column(Integer, nullable=False, default=30)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

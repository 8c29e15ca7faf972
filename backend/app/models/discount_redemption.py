"""Permanent record of a paid use of a discount code."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, String

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid


class DiscountRedemption(Base):
    __tablename__ = "discount_code_redemptions"
    __table_args__ = (Index("ix_redemptions_analytics", "discount_code_id", "redeemed_at"),)

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    discount_code_id = Column(
        UUIDType,
        ForeignKey("discount_codes.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    customer_id = Column(
        UUIDType, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    reservation_id = Column(
        UUIDType,
        ForeignKey("discount_code_reservations.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    # Idempotency key for webhook deliveries
    provider_subscription_id = Column(String(255), unique=True, nullable=False)
    redeemed_at = Column(DateTime(timezone=True), nullable=False)

"""Time-boxed holds on discount code slots."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, String

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid


class DiscountReservation(Base):
    """A checkout in flight holding one slot of a discount code.

    A reservation holds its slot until exactly one of ``redeemed_at`` (payment
    completed) or ``released_at`` (expired and swept, or cancelled) is set.
    """

    __tablename__ = "discount_code_reservations"
    __table_args__ = (
        Index("ix_reservations_customer", "discount_code_id", "customer_email"),
        Index("ix_reservations_cleanup", "expires_at", "redeemed_at", "released_at"),
    )

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    discount_code_id = Column(
        UUIDType,
        ForeignKey("discount_codes.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    customer_email = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    redeemed_at = Column(DateTime(timezone=True), nullable=True)
    released_at = Column(DateTime(timezone=True), nullable=True)

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String

from app.core.database import Base
from app.models.shared import UUIDType, generate_uuid


class RateLimitCounter(Base):
    """Request count for one key inside its current time window."""

    __tablename__ = "rate_limits"
    __table_args__ = (CheckConstraint("count > 0", name="chk_rate_limits_count_positive"),)

    id = Column(UUIDType, primary_key=True, default=generate_uuid)
    key = Column(String(255), nullable=False, unique=True, index=True)
    window_start = Column(DateTime(timezone=True), nullable=False, index=True)
    count = Column(Integer, nullable=False, default=1)

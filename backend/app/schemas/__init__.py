from app.schemas.discount import (
    AdminDiscountResponse,
    CancelReservationResponse,
    DiscountCodeCreate,
    DiscountCodeResponse,
    DiscountCodeUpdate,
    DiscountErrorResponse,
    DiscountSummary,
    DiscountUsage,
    PlanSummary,
    RateLimitCleanupResponse,
    RedeemDiscountRequest,
    RedeemDiscountResponse,
    RedemptionResponse,
    ReservationStatsResponse,
    ReserveDiscountRequest,
    ReserveDiscountResponse,
    SweepResponse,
)

__all__ = [
    "AdminDiscountResponse",
    "CancelReservationResponse",
    "DiscountCodeCreate",
    "DiscountCodeResponse",
    "DiscountCodeUpdate",
    "DiscountErrorResponse",
    "DiscountSummary",
    "DiscountUsage",
    "PlanSummary",
    "RateLimitCleanupResponse",
    "RedeemDiscountRequest",
    "RedeemDiscountResponse",
    "RedemptionResponse",
    "ReservationStatsResponse",
    "ReserveDiscountRequest",
    "ReserveDiscountResponse",
    "SweepResponse",
]

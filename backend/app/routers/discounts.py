"""Checkout-facing discount endpoints."""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limiter import RateLimiter
from app.schemas.discount import (
    CancelReservationResponse,
    DiscountErrorResponse,
    DiscountSummary,
    PlanSummary,
    ReserveDiscountRequest,
    ReserveDiscountResponse,
    request_error_message,
)
from app.services.discount_errors import DiscountError, DiscountErrorCode
from app.services.discount_reservation_service import (
    DiscountReservationService,
    ReservationResult,
)

logger = logging.getLogger(__name__)

router = APIRouter()

checkout_rate_limiter = RateLimiter()


def client_ip(request: Request) -> str:
    """Best guess at the caller's address behind Cloudflare or a proxy."""
    cf_ip = request.headers.get("CF-Connecting-IP")
    if cf_ip:
        return cf_ip.strip()
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else "unknown"


def _check_rate_limit(request: Request) -> None:
    """Dependency that limits reservation attempts per client IP."""
    limit = settings.RATE_LIMIT_RESERVE_PER_MINUTE
    result = checkout_rate_limiter.check(
        f"checkout:{client_ip(request)}", limit, settings.RATE_LIMIT_WINDOW_MINUTES
    )
    if not result.allowed:
        raise HTTPException(
            status_code=429,
            detail="Too many requests. Please try again later.",
            headers={
                "Retry-After": str(result.retry_after),
                "X-RateLimit-Limit": str(limit),
                "X-RateLimit-Remaining": str(result.remaining),
                "X-RateLimit-Reset": str(int(result.reset_at.timestamp())),
            },
        )


def _error_response(error: DiscountError) -> JSONResponse:
    return JSONResponse(status_code=error.http_status, content=error.to_payload())


def _success_payload(result: ReservationResult) -> ReserveDiscountResponse:
    plan = result.plan
    discount = result.discount
    return ReserveDiscountResponse(
        reservation_id=result.reservation_id,
        expires_at=result.expires_at,
        plan=PlanSummary(
            id=plan.id,  # type: ignore[arg-type]
            name=str(plan.business_name),
            description=plan.description,  # type: ignore[arg-type]
            price=plan.price_amount,  # type: ignore[arg-type]
            discounted_price=result.quote.final_price,
            currency=str(plan.price_currency),
            billing_cycle=str(plan.billing_cycle),
            trial_price=plan.trial_price_amount,  # type: ignore[arg-type]
            trial_duration_months=plan.trial_duration_months,  # type: ignore[arg-type]
        ),
        discount=DiscountSummary(
            code=result.code,
            type=discount.discount_type,
            value=discount.value,
            duration_months=discount.duration_months,
            display_text=discount.describe(),
        ),
        original_price=result.original_price,
        savings=result.quote.savings,
        savings_percent=result.quote.savings_percent,
    )


@router.post(
    "/reserve",
    response_model=ReserveDiscountResponse,
    summary="Validate and reserve a discount code",
    responses={
        400: {"model": DiscountErrorResponse, "description": "Code rejected or bad request"},
        409: {"model": DiscountErrorResponse, "description": "Code busy, retry"},
        429: {"description": "Rate limit exceeded"},
        500: {"model": DiscountErrorResponse, "description": "Server error"},
    },
    dependencies=[Depends(_check_rate_limit)],
)
async def reserve_discount(
    request: Request,
    db: Session = Depends(get_db),
) -> ReserveDiscountResponse | JSONResponse:
    """Hold one slot of a discount code for this checkout for a limited time."""
    try:
        payload = await request.json()
    except ValueError:
        return _error_response(
            DiscountError(DiscountErrorCode.INVALID_REQUEST, "Invalid request body")
        )
    if not isinstance(payload, dict):
        return _error_response(
            DiscountError(DiscountErrorCode.INVALID_REQUEST, "Invalid request body")
        )

    try:
        data = ReserveDiscountRequest.model_validate(payload)
    except ValidationError as e:
        return _error_response(
            DiscountError(DiscountErrorCode.INVALID_REQUEST, request_error_message(e))
        )

    try:
        result = DiscountReservationService(db).reserve(data.code, data.email)
    except DiscountError as e:
        return _error_response(e)
    except Exception:
        logger.exception("Unexpected error while reserving a discount code")
        return _error_response(DiscountError(DiscountErrorCode.INTERNAL_ERROR))

    return _success_payload(result)


@router.post(
    "/reservations/{reservation_id}/cancel",
    response_model=CancelReservationResponse,
    summary="Release a reservation early",
    responses={
        409: {"model": DiscountErrorResponse, "description": "Code busy, retry"},
        500: {"model": DiscountErrorResponse, "description": "Server error"},
    },
)
async def cancel_reservation(
    reservation_id: UUID,
    db: Session = Depends(get_db),
) -> CancelReservationResponse | JSONResponse:
    """Give the slot back when checkout could not be started."""
    try:
        released = DiscountReservationService(db).release(reservation_id)
    except DiscountError as e:
        return _error_response(e)
    return CancelReservationResponse(reservation_id=reservation_id, released=released)

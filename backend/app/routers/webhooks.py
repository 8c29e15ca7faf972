"""Payment webhook collaborator: record completed discounted purchases."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.auth import require_webhook_secret
from app.core.database import get_db
from app.schemas.discount import (
    DiscountErrorResponse,
    RedeemDiscountRequest,
    RedeemDiscountResponse,
    RedemptionResponse,
)
from app.services.discount_errors import DiscountError
from app.services.discount_redemption_service import DiscountRedemptionService

router = APIRouter()


@router.post(
    "/discount_redemptions",
    response_model=RedeemDiscountResponse,
    summary="Convert a reservation into a redemption",
    responses={
        400: {"model": DiscountErrorResponse, "description": "Redemption rejected"},
        401: {"description": "Invalid webhook secret"},
        500: {"model": DiscountErrorResponse, "description": "Server error"},
    },
    dependencies=[Depends(require_webhook_secret)],
)
async def redeem_discount(
    data: RedeemDiscountRequest,
    db: Session = Depends(get_db),
) -> RedeemDiscountResponse | JSONResponse:
    """Safe to call more than once for the same provider subscription."""
    try:
        result = DiscountRedemptionService(db).redeem(
            data.provider_subscription_id,
            reservation_id=data.reservation_id,
            customer_email=data.customer_email,
            code=data.code,
            customer_name=data.customer_name,
        )
    except DiscountError as e:
        return JSONResponse(status_code=e.http_status, content=e.to_payload())
    return RedeemDiscountResponse(
        redemption=RedemptionResponse.model_validate(result.redemption),
        replayed=result.replayed,
    )

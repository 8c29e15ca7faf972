"""Admin read/write endpoints for discount codes."""

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.orm import Session

from app.core.auth import require_admin_key
from app.core.database import get_db
from app.models.discount_code import DiscountStatus, DiscountType
from app.models.shared import as_utc
from app.repositories.discount_code_repository import DiscountCodeRepository
from app.repositories.subscription_plan_repository import SubscriptionPlanRepository
from app.schemas.discount import (
    AdminDiscountResponse,
    DiscountCodeCreate,
    DiscountCodeResponse,
    DiscountCodeUpdate,
    DiscountUsage,
)
from app.services.discount_status import DiscountOverview, DiscountStatusService

router = APIRouter(dependencies=[Depends(require_admin_key)])


def _to_response(overview: DiscountOverview) -> AdminDiscountResponse:
    base = DiscountCodeResponse.model_validate(overview.code)
    return AdminDiscountResponse(
        **base.model_dump(),
        status=overview.status,
        usage=DiscountUsage(
            current=overview.usage.current,
            reserved=overview.usage.reserved,
            max=overview.usage.max,
            percentage=overview.usage.percentage,
        ),
        plan_name=str(overview.plan.business_name) if overview.plan else None,
        display_text=overview.display_text,
        savings=overview.savings,
    )


@router.get(
    "/",
    response_model=list[AdminDiscountResponse],
    summary="List discount codes",
    responses={401: {"description": "Invalid admin API key"}},
)
async def list_discounts(
    response: Response,
    status: DiscountStatus | None = Query(default=None),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=1000),
    db: Session = Depends(get_db),
) -> list[AdminDiscountResponse]:
    """List codes with computed status and usage, optionally filtered by status."""
    overviews, total = DiscountStatusService(db).list(status=status, skip=skip, limit=limit)
    response.headers["X-Total-Count"] = str(total)
    return [_to_response(o) for o in overviews]


@router.get(
    "/{code}",
    response_model=AdminDiscountResponse,
    summary="Get discount code",
    responses={401: {"description": "Invalid admin API key"}, 404: {"description": "Not found"}},
)
async def get_discount(code: str, db: Session = Depends(get_db)) -> AdminDiscountResponse:
    overview = DiscountStatusService(db).get(code)
    if not overview:
        raise HTTPException(status_code=404, detail="Discount code not found")
    return _to_response(overview)


@router.post(
    "/",
    response_model=AdminDiscountResponse,
    status_code=201,
    summary="Create discount code",
    responses={
        401: {"description": "Invalid admin API key"},
        404: {"description": "Plan not found"},
        409: {"description": "Discount code already exists"},
        422: {"description": "Validation error"},
    },
)
async def create_discount(
    data: DiscountCodeCreate, db: Session = Depends(get_db)
) -> AdminDiscountResponse:
    repo = DiscountCodeRepository(db)
    if repo.get_by_code(data.code):
        raise HTTPException(status_code=409, detail="Discount code already exists")
    plan = SubscriptionPlanRepository(db).get_by_id(data.plan_id)
    if not plan:
        raise HTTPException(status_code=404, detail="Plan not found")
    code = repo.create(data)
    return _to_response(DiscountStatusService(db).overview(code, plan))


@router.patch(
    "/{code}",
    response_model=AdminDiscountResponse,
    summary="Update discount code",
    responses={
        401: {"description": "Invalid admin API key"},
        404: {"description": "Not found"},
        422: {"description": "Validation error"},
    },
)
async def update_discount(
    code: str, data: DiscountCodeUpdate, db: Session = Depends(get_db)
) -> AdminDiscountResponse:
    """Update a code. Deactivating starts its grace period; reactivating clears it."""
    repo = DiscountCodeRepository(db)
    existing = repo.get_by_code(code)
    if not existing:
        raise HTTPException(status_code=404, detail="Discount code not found")
    if data.max_uses is not None and data.max_uses < existing.current_uses + existing.reserved_uses:
        raise HTTPException(
            status_code=422, detail="max_uses cannot be lower than the slots already in use"
        )
    valid_from = data.valid_from if "valid_from" in data.model_fields_set else existing.valid_from
    valid_until = data.valid_until if "valid_until" in data.model_fields_set else existing.valid_until
    if valid_from and valid_until and as_utc(valid_from) >= as_utc(valid_until):  # type: ignore[arg-type]
        raise HTTPException(status_code=422, detail="valid_from must be before valid_until")
    if "discount_value" in data.model_fields_set:
        discount_type = DiscountType(str(existing.discount_type))
        if data.discount_value is None and discount_type != DiscountType.FREE_TRIAL:
            raise HTTPException(
                status_code=422, detail="discount_value is required for this discount type"
            )
        if (
            discount_type == DiscountType.PERCENTAGE
            and data.discount_value is not None
            and data.discount_value > 100
        ):
            raise HTTPException(status_code=422, detail="percentage discounts cannot exceed 100")
    updated = repo.update(code, data)
    plan = SubscriptionPlanRepository(db).get_by_id(updated.plan_id)  # type: ignore[union-attr, arg-type]
    return _to_response(DiscountStatusService(db).overview(updated, plan))  # type: ignore[arg-type]

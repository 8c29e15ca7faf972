"""Discount reservation, redemption and admin schemas."""

import re
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_core import PydanticCustomError

from app.models.discount_code import DiscountStatus, DiscountType

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_CODE_LENGTH = 100
MAX_EMAIL_LENGTH = 255

_FIELD_LABELS = {"code": "Discount code", "email": "Email"}


class ReserveDiscountRequest(BaseModel):
    code: str
    email: str

    @field_validator("code")
    @classmethod
    def check_code(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise PydanticCustomError("required", "Discount code is required")
        if len(value) > MAX_CODE_LENGTH:
            raise PydanticCustomError("too_long", "Discount code is too long")
        return value

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            raise PydanticCustomError("required", "Email is required")
        if len(value) > MAX_EMAIL_LENGTH:
            raise PydanticCustomError("too_long", "Email is too long")
        if not EMAIL_PATTERN.match(value):
            raise PydanticCustomError("invalid_email", "Invalid email address")
        return value


def request_error_message(exc: ValidationError) -> str:
    """Collapse a validation failure into the single message shown to shoppers."""
    errors = exc.errors()
    if not errors:
        return "Invalid request"
    error = errors[0]
    field = str(error["loc"][0]) if error.get("loc") else ""
    if error["type"] in ("required", "too_long", "invalid_email"):
        return error["msg"]
    if field in _FIELD_LABELS:
        return f"{_FIELD_LABELS[field]} is required"
    return "Invalid request"


class PlanSummary(BaseModel):
    id: UUID
    name: str
    description: str | None = None
    price: Decimal
    discounted_price: Decimal
    currency: str
    billing_cycle: str
    trial_price: Decimal | None = None
    trial_duration_months: int | None = None


class DiscountSummary(BaseModel):
    code: str
    type: DiscountType
    value: Decimal | None = None
    duration_months: int
    display_text: str


class ReserveDiscountResponse(BaseModel):
    success: bool = True
    reservation_id: UUID
    expires_at: datetime
    plan: PlanSummary
    discount: DiscountSummary
    original_price: Decimal
    savings: Decimal
    savings_percent: int | None = None


class DiscountErrorDetail(BaseModel):
    code: str
    message: str
    suggestion: str | None = None
    expires_at: datetime | None = None


class DiscountErrorResponse(BaseModel):
    success: bool = False
    error: DiscountErrorDetail


class CancelReservationResponse(BaseModel):
    reservation_id: UUID
    released: bool


class RedeemDiscountRequest(BaseModel):
    provider_subscription_id: str = Field(min_length=1, max_length=255)
    reservation_id: UUID | None = None
    customer_email: str | None = Field(default=None, max_length=MAX_EMAIL_LENGTH)
    code: str | None = Field(default=None, max_length=MAX_CODE_LENGTH)
    customer_name: str | None = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def check_reference(self) -> "RedeemDiscountRequest":
        if self.reservation_id is None and not (self.customer_email and self.code):
            raise ValueError("Either reservation_id or customer_email and code are required")
        return self


class RedemptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    discount_code_id: UUID
    customer_id: UUID | None = None
    reservation_id: UUID | None = None
    provider_subscription_id: str
    redeemed_at: datetime


class RedeemDiscountResponse(BaseModel):
    redemption: RedemptionResponse
    replayed: bool


class ReservationStatsResponse(BaseModel):
    total: int
    live: int
    lapsed: int


class SweepResponse(BaseModel):
    released: int
    stats: ReservationStatsResponse


class RateLimitCleanupResponse(BaseModel):
    deleted: int


class DiscountCodeCreate(BaseModel):
    code: str = Field(min_length=1, max_length=MAX_CODE_LENGTH)
    plan_id: UUID
    discount_type: DiscountType
    discount_value: Decimal | None = Field(default=None, gt=0)
    discount_duration_months: int = Field(default=1, ge=1)
    admin_notes: str | None = None
    max_uses: int | None = Field(default=None, ge=1)
    max_uses_per_customer: int | None = Field(default=1, ge=1)
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool = True
    grace_period_minutes: int = Field(default=30, ge=0)

    @model_validator(mode="after")
    def check_discount(self) -> "DiscountCodeCreate":
        if self.discount_type != DiscountType.FREE_TRIAL and self.discount_value is None:
            raise ValueError("discount_value is required for this discount type")
        if (
            self.discount_type == DiscountType.PERCENTAGE
            and self.discount_value is not None
            and self.discount_value > 100
        ):
            raise ValueError("percentage discounts cannot exceed 100")
        if self.valid_from and self.valid_until and self.valid_from >= self.valid_until:
            raise ValueError("valid_from must be before valid_until")
        return self


class DiscountCodeUpdate(BaseModel):
    discount_value: Decimal | None = Field(default=None, gt=0)
    discount_duration_months: int | None = Field(default=None, ge=1)
    admin_notes: str | None = None
    max_uses: int | None = Field(default=None, ge=1)
    max_uses_per_customer: int | None = Field(default=None, ge=1)
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool | None = None
    grace_period_minutes: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_required_fields(self) -> "DiscountCodeUpdate":
        for field in ("discount_duration_months", "is_active", "grace_period_minutes"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class DiscountCodeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    plan_id: UUID
    discount_type: str
    discount_value: Decimal | None = None
    discount_duration_months: int
    admin_notes: str | None = None
    max_uses: int | None = None
    current_uses: int
    reserved_uses: int
    max_uses_per_customer: int | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool
    deactivated_at: datetime | None = None
    grace_period_minutes: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


class DiscountUsage(BaseModel):
    current: int
    reserved: int
    max: int | None = None
    percentage: int


class AdminDiscountResponse(DiscountCodeResponse):
    status: DiscountStatus
    usage: DiscountUsage
    plan_name: str | None = None
    display_text: str
    savings: Decimal | None = None

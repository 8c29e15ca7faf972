"""Closed, machine-readable error taxonomy for discount operations."""

from datetime import datetime
from enum import Enum
from typing import Any


class DiscountErrorCode(str, Enum):
    INVALID_CODE = "INVALID_CODE"
    EXPIRED = "EXPIRED"
    MAX_USES = "MAX_USES"
    ALREADY_USED = "ALREADY_USED"
    INACTIVE = "INACTIVE"
    NOT_YET_VALID = "NOT_YET_VALID"
    PLAN_UNAVAILABLE = "PLAN_UNAVAILABLE"
    RESERVATION_EXISTS = "RESERVATION_EXISTS"
    CODE_LOCKED = "CODE_LOCKED"
    INVALID_REQUEST = "INVALID_REQUEST"
    DATABASE_ERROR = "DATABASE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Expected, user-facing outcomes; audited at info level only.
VALIDATION_ERROR_CODES = frozenset(
    {
        DiscountErrorCode.INVALID_CODE,
        DiscountErrorCode.EXPIRED,
        DiscountErrorCode.MAX_USES,
        DiscountErrorCode.ALREADY_USED,
        DiscountErrorCode.INACTIVE,
        DiscountErrorCode.NOT_YET_VALID,
        DiscountErrorCode.PLAN_UNAVAILABLE,
        DiscountErrorCode.RESERVATION_EXISTS,
    }
)

_HTTP_STATUS = {
    DiscountErrorCode.CODE_LOCKED: 409,
    DiscountErrorCode.DATABASE_ERROR: 500,
    DiscountErrorCode.INTERNAL_ERROR: 500,
}

GENERIC_MESSAGES = {
    DiscountErrorCode.DATABASE_ERROR: "Failed to validate discount code",
    DiscountErrorCode.INTERNAL_ERROR: "An unexpected error occurred",
    DiscountErrorCode.CODE_LOCKED: "This code is busy right now, please try again",
}


class DiscountError(Exception):
    """Raised by the reservation engine and redemption converter."""

    def __init__(
        self,
        code: DiscountErrorCode,
        message: str | None = None,
        *,
        suggestion: str | None = None,
        expires_at: datetime | None = None,
    ):
        self.code = code
        self.message = message or GENERIC_MESSAGES.get(code, code.value)
        self.suggestion = suggestion
        self.expires_at = expires_at
        super().__init__(self.message)

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS.get(self.code, 400)

    @property
    def is_validation_error(self) -> bool:
        return self.code in VALIDATION_ERROR_CODES

    def to_payload(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.suggestion is not None:
            error["suggestion"] = self.suggestion
        if self.expires_at is not None:
            error["expires_at"] = self.expires_at.isoformat()
        return {"success": False, "error": error}

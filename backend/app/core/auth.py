import hmac

from fastapi import Header, HTTPException

from app.core.config import settings


def _secret_matches(provided: str | None, expected: str) -> bool:
    # An unset secret locks the endpoint rather than opening it
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def require_admin_key(x_admin_key: str | None = Header(default=None)) -> None:
    """Guard for the admin discount endpoints."""
    if not _secret_matches(x_admin_key, settings.ADMIN_API_KEY):
        raise HTTPException(status_code=401, detail="Invalid admin API key")


def require_cron_secret(cron_secret: str | None = Header(default=None, alias="Cron-Secret")) -> None:
    """Guard for endpoints the external scheduler calls."""
    if not _secret_matches(cron_secret, settings.CRON_SECRET):
        raise HTTPException(status_code=401, detail="Invalid cron secret")


def require_webhook_secret(x_webhook_secret: str | None = Header(default=None)) -> None:
    if not _secret_matches(x_webhook_secret, settings.WEBHOOK_SECRET):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")

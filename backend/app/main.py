from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import init_db
from app.core.logging_config import configure_logging
from app.routers import admin_discounts, cron, discounts, webhooks

OPENAPI_TAGS = [
    {"name": "Discounts", "description": "Validate and reserve discount codes at checkout."},
    {"name": "Webhooks", "description": "Record discounted purchases reported by the payment provider."},
    {"name": "Cron", "description": "Periodic maintenance triggered by the external scheduler."},
    {"name": "Admin", "description": "Manage discount codes and inspect their status."},
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging(json_logs=settings.LOG_JSON, level=settings.LOG_LEVEL)
    init_db()
    yield


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.version,
    description=(
        "Discount code reservation and redemption service. "
        "Holds limited-use codes during checkout and converts them on payment."
    ),
    openapi_tags=OPENAPI_TAGS,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=[
        "X-Total-Count",
        "Retry-After",
        "X-RateLimit-Limit",
        "X-RateLimit-Remaining",
        "X-RateLimit-Reset",
    ],
)

app.include_router(discounts.router, prefix="/v1/discounts", tags=["Discounts"])
app.include_router(webhooks.router, prefix="/v1/webhooks", tags=["Webhooks"])
app.include_router(cron.router, prefix="/v1/cron", tags=["Cron"])
app.include_router(admin_discounts.router, prefix="/v1/admin/discounts", tags=["Admin"])


@app.get("/")
async def root() -> dict[str, str]:
    return {
        "app": settings.APP_NAME,
        "version": settings.version,
        "domain": settings.APP_DOMAIN,
        "status": "running",
    }

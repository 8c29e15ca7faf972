from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "discount-reservations"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DOMAIN: str = "example.com"
    APP_DATABASE_DSN: str = "sqlite:////tmp/database.db"
    REDIS_URL: str = "redis://localhost:6379"

    # Logging
    LOG_JSON: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Shared secrets for collaborators
    CRON_SECRET: str = ""
    WEBHOOK_SECRET: str = ""
    ADMIN_API_KEY: str = ""

    # Reservations
    RESERVATION_TTL_MINUTES: int = 15
    RESERVATION_LOCK_TIMEOUT_MS: int = 500
    RESERVATION_SWEEP_GRACE_MINUTES: int = 0

    # Rate limiting
    RATE_LIMIT_RESERVE_PER_MINUTE: int = 10
    RATE_LIMIT_WINDOW_MINUTES: int = 1
    RATE_LIMIT_RETENTION_HOURS: int = 24

    # Typo suggestions
    SUGGESTION_MAX_DISTANCE: int = 2
    SUGGESTION_MAX_RATIO: float = 0.3


settings = Settings()

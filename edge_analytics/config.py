"""
Configuration module for the edge analytics service
Loads environment variables and provides settings
"""
from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=True
    )

    # Application
    APP_ENV: str = "development"
    APP_DEBUG: bool = False

    # Bearer token for /api/admin/* batch jobs
    ADMIN_TOKEN: str = "change-me-in-production"

    # Redis (the only store; flat key-value namespace)
    REDIS_URL: str = "redis://redis:6379/0"
    KV_SCAN_COUNT: int = 500

    # Site that publishes /data/profiles.json and /data/campaign.json
    SITE_ORIGIN: str = "https://navigen.io"
    # Public base of this service, used when building tracked URLs
    PUBLIC_BASE_URL: str = "https://navigen.io"

    # CORS allowlist for credentialed calls
    CORS_ORIGINS: list[str] = ["https://navigen.io", "https://navigen-go.pages.dev"]

    # Day bucketing
    TZ_FALLBACK: str = "Europe/Berlin"

    # Expirations (seconds)
    COUNTER_TTL_SEC: int = 60 * 60 * 24 * 366
    SCAN_LOG_TTL_SEC: int = 60 * 60 * 24 * 56
    REDEEM_TOKEN_TTL_SEC: int = 60 * 60 * 24 * 56

    # External catalog fetch
    CATALOG_CACHE_TTL_SEC: int = 60
    CATALOG_TIMEOUT_SEC: float = 5.0

    # Edge metadata headers (Cloudflare visitor location headers by default)
    COUNTRY_HEADER: str = "CF-IPCountry"
    CITY_HEADER: str = "CF-IPCity"

    # Marker header an internal caller must send on POST /hit/qr-redeem
    INTERNAL_REDEEM_HEADER: str = "X-Internal-Redeem"

    QR_DEFAULT_SIZE: int = 512


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

# storefront/core/config.py
from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized settings loaded from environment.

    Store API only:
      - JWT_SECRET (signing secret for bearer tokens; the client side never
        needs it, so it is optional here and enforced in core.auth)

    Optional:
      - DATABASE_URL (defaults to a local SQLite file)
      - STORE_BASE_URL (where the client-side store adapter talks to)
      - pricing knobs (TAX_RATE, GIFT_WRAP_FEE)
      - revalidation knobs (REVALIDATE_INTERVAL_SECONDS, REVALIDATE_DEDUPE_SECONDS)
    """

    PROJECT_NAME: str = "Storefront Cart Store"
    API_V1_STR: str = "/api/v1"
    LOG_LEVEL: str = "INFO"

    # Persistence
    DATABASE_URL: str = "sqlite:///./storefront.db"

    # JWT verification (store API side)
    JWT_SECRET: str | None = None
    JWT_ALG: str = "HS256"

    # Remote store adapter (client side)
    STORE_BASE_URL: str = "http://localhost:8000/api/v1"
    STORE_TIMEOUT_SECONDS: float = 5.0

    # Pricing (18% GST, flat gift wrap fee)
    TAX_RATE: Decimal = Decimal("0.18")
    GIFT_WRAP_FEE: Decimal = Decimal("50")

    # Revalidation against the store
    REVALIDATE_INTERVAL_SECONDS: float = 30.0
    REVALIDATE_DEDUPE_SECONDS: float = 10.0

    # Session teardown policy
    CLEAR_WISHLIST_ON_LOGOUT: bool = True

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    """
    Cached settings loader.
    Ensures we don't re-parse .env on every import / request.
    """
    return Settings()

from __future__ import annotations
import os
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "storefront")

    # Shared secret sent by the admin console in the X-Admin-Token header
    ADMIN_TOKEN: str = "change-me"

    DELIVERY_CHARGE_INSIDE_DHAKA: float = 80.0
    DELIVERY_CHARGE_OUTSIDE_DHAKA: float = 100.0

    COLLECTION_PERIOD_DAYS: int = 30
    ANALYTICS_RETENTION_DAYS: int = 60
    RESERVATION_GRACE_SECONDS: int = 600

    LOG_LEVEL: str = "INFO"
    PORT: int = 8000


settings = Settings()

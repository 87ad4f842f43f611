"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    debug: bool = False

    # Storage
    storage_backend: Literal["memory", "sql"] = "memory"
    database_url: str = "postgresql+asyncpg://bookmarket:bookmarket_dev_password@db:5432/bookmarket"

    # Reservations: one timeout shared by Listing.hold and both sweeps
    hold_duration_minutes: float = 15.0
    default_currency: str = "USD"

    # Listing service (unset means in-process)
    listing_service_url: str | None = None
    listing_client_timeout_seconds: float = 5.0

    # Reservation sweeper
    sweep_enabled: bool = False
    sweep_interval_seconds: float = 60.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = True
    slow_request_ms: float = 1000.0

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()

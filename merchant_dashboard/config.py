"""
Merchant dashboard configuration.
"""
from datetime import timedelta
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings from environment variables."""

    # Server
    host: str = "0.0.0.0"
    port: int = 8003
    debug: bool = False

    # Merchant API - every order, product and offer lives behind this
    api_base_url: str = "http://localhost:8002"
    api_timeout: float = 10.0
    api_token: str = ""  # optional, seeds the session on startup
    merchant_id: str = "merchant123"

    # Order timers
    tick_interval_seconds: float = 1.0
    refresh_interval_seconds: float = 30.0  # 0 disables polling
    offer_window_seconds: int = 120
    delivery_window_minutes: int = 90

    # Notifications kept for the UI
    notification_history: int = 100

    # Logging
    log_level: str = "info"
    log_path: str = ""  # e.g. /app/logs/dashboard.log

    # Version
    version: str = "1.0.0"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def offer_window(self) -> timedelta:
        """How long a merchant has to accept a pending order."""
        return timedelta(seconds=self.offer_window_seconds)

    @property
    def delivery_window(self) -> timedelta:
        """Delivery estimate added at acceptance time."""
        return timedelta(minutes=self.delivery_window_minutes)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

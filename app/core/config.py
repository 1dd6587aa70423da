"""
Application configuration using 12-factor environment variables.
"""
from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="WhatsApp Inbox Service")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)

    # Business side of every conversation
    business_wa_id: str = Field(default="918329446654", min_length=1)

    # Webhook
    webhook_secret: Optional[str] = Field(default=None, description="HMAC-SHA256 secret for X-Hub-Signature-256")
    webhook_verify_token: Optional[str] = Field(default=None, description="Token for the GET subscription handshake")
    webhook_batch_timeout_seconds: float = Field(default=10.0, gt=0)

    # Database
    database_url: str = Field(default="sqlite+aiosqlite:///./data/chat.db")
    database_busy_timeout_seconds: float = Field(default=30.0, gt=0)
    reconcile_max_attempts: int = Field(default=3, ge=1)

    # Simulated delivery of business-originated messages
    simulated_delivery_enabled: bool = Field(default=True)
    simulated_delivery_delay_seconds: float = Field(default=1.0, ge=0)

    # Real-time fan-out
    notifier_backend: Literal["broadcast", "none"] = Field(default="broadcast")
    notifier_queue_size: int = Field(default=100, ge=1)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text

    @property
    def is_webhook_secret_configured(self) -> bool:
        """Check if webhook signatures should be enforced."""
        return bool(self.webhook_secret and len(self.webhook_secret) > 0)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

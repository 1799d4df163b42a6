"""Application settings using Pydantic for environment-based configuration."""
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """KPay settings loaded from ``KPAY_*`` environment variables."""

    # Gateway Configuration
    base_url: str = Field(default="https://kyamiprint.kp", description="Production API base URL")
    sandbox_url: str = Field(
        default="https://private-f32974-kyamirefapiv2.apiary-mock.com",
        description="Sandbox API base URL",
    )
    sandbox_mode: bool = Field(default=True, description="Send requests to the sandbox")
    entity: str = Field(default="0000", description="Merchant entity code")
    token: str = Field(default="", description="Bearer token for the gateway API")
    hash: str = Field(default="", description="Shared secret sent as Sys-Marc-Zone header")
    factory_bag: str = Field(default="Content", description="Sys-Factory-Bag header value")

    # Webhook Configuration
    webhook_enabled: bool = Field(default=True, description="Register the webhook route")
    webhook_path: str = Field(default="/api/kpay/webhook", description="Webhook route path")
    webhook_secret: str = Field(default="", description="HMAC secret for X-Signature")

    # Payment Defaults
    currency: str = Field(default="AOA", description="Default currency code")
    reference_expiry_hours: int = Field(default=24, description="Default reference lifetime")
    timeout: float = Field(default=30.0, description="Gateway request timeout (seconds)")
    log_requests: bool = Field(default=False, description="Log gateway request/response bodies")

    # Database Configuration
    database_url: str = Field(default="sqlite:///./kpay.db", description="SQLAlchemy database URL")
    database_echo: bool = Field(default=False, description="Echo SQL queries (debug)")

    # Application Configuration
    app_name: str = Field(default="kpay-payments", description="Application name")
    app_env: str = Field(default="development", description="Environment (development/production)")
    log_level: str = Field(default="INFO", description="Logging level")

    # API Configuration
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, description="API port")

    model_config = SettingsConfigDict(
        env_prefix="KPAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @field_validator("reference_expiry_hours")
    @classmethod
    def validate_expiry_hours(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Reference expiry hours must be positive")
        return v

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return v.upper()

    def missing_credentials(self) -> List[str]:
        """Return the names of required gateway credentials that are unset."""
        required = {"token": self.token, "hash": self.hash, "entity": self.entity}
        return [name for name, value in required.items() if not value]

    @property
    def api_base_url(self) -> str:
        """Base URL for the active mode (sandbox or production)."""
        url = self.sandbox_url if self.sandbox_mode else self.base_url
        return url.rstrip("/")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env.lower() == "production"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()

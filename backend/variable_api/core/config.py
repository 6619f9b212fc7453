"""Configuration management using Pydantic Settings."""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase Configuration
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")
    SUPABASE_SERVICE_ROLE_KEY: SecretStr = SecretStr("")

    # Application Settings
    APP_SECRET_KEY: SecretStr = SecretStr("")
    APP_ENV: Literal["development", "staging", "production"] = "development"
    APP_URL: str = "http://localhost:5173"  # Where the payment provider redirects back to

    # Logging
    LOG_FORMAT: Literal["text", "json"] = "text"
    LOG_LEVEL: str = "INFO"

    # CORS Configuration
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Onboarding
    ONBOARDING_DEFAULT_COMPANY_NAME: str = "My Company"
    PAYMENT_VERIFY_MAX_ATTEMPTS: int = 3
    PAYMENT_VERIFY_DELAY_SECONDS: float = 3.0
    PAYMENT_VERIFY_TIMEOUT_SECONDS: float = 30.0
    WIZARD_REGISTRY_MAX_USERS: int = 10000
    WIZARD_REGISTRY_TTL_SECONDS: float = 1800.0  # Idle wizards are dropped and resume from storage

    @field_validator("SUPABASE_URL")
    @classmethod
    def validate_supabase_url(cls, v: str) -> str:
        """Validate that SUPABASE_URL is a valid URL."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("SUPABASE_URL must start with http:// or https://")
        return v.rstrip("/") if v else v

    @field_validator("PAYMENT_VERIFY_MAX_ATTEMPTS")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        """Payment verification must be bounded and make at least one read."""
        if v < 1:
            raise ValueError("PAYMENT_VERIFY_MAX_ATTEMPTS must be at least 1")
        return v

    @property
    def cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.APP_ENV == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.APP_ENV == "production"

    @property
    def is_configured(self) -> bool:
        """Check if required settings are configured."""
        return bool(self.SUPABASE_URL and self.SUPABASE_SERVICE_ROLE_KEY.get_secret_value())

    def validate_startup(self) -> None:
        """Validate that all required secrets are configured.

        Raises:
            ValueError: If any required secret is missing or empty.
        """
        required_secrets = {
            "SUPABASE_URL": self.SUPABASE_URL,
            "SUPABASE_SERVICE_ROLE_KEY": self.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
            "APP_SECRET_KEY": self.APP_SECRET_KEY.get_secret_value(),
        }
        missing = [name for name, value in required_secrets.items() if not value]
        if missing:
            raise ValueError(f"Required secrets are missing or empty: {', '.join(missing)}")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Settings instance with validated configuration.

    Raises:
        ValueError: If required secrets are missing.
    """
    settings = Settings()
    settings.validate_startup()
    return settings


# Global settings instance - import this for easy access
settings = get_settings()

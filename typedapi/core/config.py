"""Centralized configuration management with environment-aware defaults.

Settings are read with pydantic-settings from environment variables and an
optional ``.env`` file. Nested sections use the ``__`` delimiter, so
``LOG_CONFIG__LOG_LEVEL=DEBUG`` sets ``settings.log_config.log_level``.

Configuration sources (in order of precedence):
1. Environment variables
2. .env file in project root
3. Default values in model definitions
"""

import os
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogConfig(BaseModel):
    """Logging configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_formatter_type: Literal["console", "json"] | None = Field(
        default=None,
        description="Log output formatter. Auto-detected if not specified.",
    )
    sensitive_fields: list[str] = Field(
        default_factory=lambda: [
            "password",
            "token",
            "secret",
            "api_key",
            "authorization",
            "stripe-signature",
        ],
        description="Field and header names to redact in logs",
    )


class WebhookConfig(BaseModel):
    """Webhook provider configuration."""

    stripe_webhook_secret: SecretStr | None = Field(
        default=None,
        description="Stripe endpoint signing secret (whsec_...)",
    )
    stripe_tolerance_seconds: int = Field(
        default=300,
        gt=0,
        description="Maximum accepted age of a Stripe signature timestamp",
    )

    @field_validator("stripe_webhook_secret", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v


class Settings(BaseSettings):
    """Main settings class for the application."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(default="Generated API", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Environment the application is running in",
    )
    debug: bool = Field(default=True, description="Debug mode flag")
    app_routes: str | None = Field(
        default=None,
        description="Route registration callback to serve, as 'module:function'",
    )

    # API settings
    api_host: str = Field(default="127.0.0.1", description="API host")
    api_port: int = Field(default=8000, description="API port")
    openapi_url: str | None = Field(
        default="/openapi.json", description="Generated OpenAPI document URL"
    )

    log_config: LogConfig = Field(
        default_factory=LogConfig, description="Logging configuration"
    )
    webhook_config: WebhookConfig = Field(
        default_factory=WebhookConfig, description="Webhook configuration"
    )

    def model_post_init(self, __context: object) -> None:
        """Fill in the log formatter when it was not configured."""
        super().model_post_init(__context)
        if self.log_config.log_formatter_type is None:
            self.log_config.log_formatter_type = self._detect_formatter()

    def _detect_formatter(self) -> Literal["console", "json"]:
        # Managed runtimes ingest structured logs
        if os.getenv("K_SERVICE") or os.getenv("AWS_EXECUTION_ENV"):
            return "json"
        if self.environment == "development":
            return "console"
        return "json"

    @field_validator("openapi_url", "app_routes", mode="before")
    @classmethod
    def empty_str_to_none(cls, v: str | None) -> str | None:
        """Convert empty strings to None for nullable fields."""
        if v == "":
            return None
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

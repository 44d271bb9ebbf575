"""
Configuration management using Pydantic Settings
Handles environment variables and validation
"""
from functools import lru_cache
from typing import Optional

from pydantic import ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings

from core.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Environment
    environment: str = Field(default="development")
    debug: bool = Field(default=False)

    # Application
    app_name: str = "AppMetrics"
    app_version: str = "0.1.0"

    # Snapshot database
    database_url: str = Field(default="sqlite:///./appmetrics.db")
    database_echo: bool = Field(default=False)

    # Outbound HTTP
    request_timeout: int = Field(default=30)

    # TTL cache
    cache_default_ttl_ms: int = Field(default=60 * 60 * 1000)  # 1 hour

    # RevenueCat (billing)
    revenuecat_api_key: Optional[SecretStr] = Field(default=None)
    revenuecat_project_id: str = Field(default="")
    revenuecat_base_url: str = Field(default="https://api.revenuecat.com/v2")

    # Sentry (crash reporting)
    sentry_token: Optional[SecretStr] = Field(default=None)
    sentry_org: str = Field(default="")
    sentry_project: str = Field(default="")
    sentry_base_url: str = Field(default="https://sentry.io/api/0")

    # PostHog (product analytics)
    posthog_api_key: Optional[SecretStr] = Field(default=None)
    posthog_project_id: str = Field(default="")
    posthog_host: str = Field(default="https://us.posthog.com")

    # Firestore (subscription event store)
    firebase_project_id: str = Field(default="")
    google_application_credentials: Optional[str] = Field(default=None)
    google_application_credentials_base64: Optional[SecretStr] = Field(default=None)
    firestore_base_url: str = Field(default="https://firestore.googleapis.com/v1")
    events_collection: str = Field(default="revenuecat_events")
    events_query_limit: int = Field(default=50000, ge=1)
    users_collection: str = Field(default="users")
    users_query_limit: int = Field(default=100000, ge=1)

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")  # json or text

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        if v not in ("json", "text"):
            raise ValueError("log_format must be 'json' or 'text'")
        return v

    def get_api_key(self, service: str) -> str:
        """Get API key for a service, raising ConfigurationError when it is not set"""
        secrets = {
            "revenuecat": ("revenuecat_api_key", self.revenuecat_api_key),
            "sentry": ("sentry_token", self.sentry_token),
            "posthog": ("posthog_api_key", self.posthog_api_key),
        }

        if service not in secrets:
            raise ConfigurationError(f"Unknown API service: {service}")

        setting, secret = secrets[service]
        key = secret.get_secret_value() if secret else None
        if not key:
            raise ConfigurationError(f"{setting.upper()} not configured", setting=setting)
        return key

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra environment variables
    )

    def model_dump(self, **kwargs):
        """Override to mask sensitive fields when serializing"""
        data = super().model_dump(**kwargs)

        sensitive_fields = [
            "revenuecat_api_key",
            "sentry_token",
            "posthog_api_key",
            "google_application_credentials_base64",
        ]

        for field in sensitive_fields:
            if field in data and data[field]:
                if hasattr(data[field], "get_secret_value"):
                    value = data[field].get_secret_value()
                else:
                    value = str(data[field])

                # Keep first 4 chars for identification
                if len(value) > 4:
                    data[field] = value[:4] + "*" * (len(value) - 4)
                else:
                    data[field] = "*" * len(value)

        return data


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Global settings instance
settings = get_settings()

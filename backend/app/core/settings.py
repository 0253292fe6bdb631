from __future__ import annotations

import json
from functools import lru_cache
from typing import List

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, DotEnvSettingsSource, EnvSettingsSource, SettingsConfigDict


class _FallbackEnvSettingsSource(EnvSettingsSource):
    """Allow ALLOW_ORIGINS to be comma-separated instead of strict JSON."""

    def decode_complex_value(self, field_name, field, value):  # type: ignore[override]
        try:
            return super().decode_complex_value(field_name, field, value)
        except json.JSONDecodeError:
            if field_name == "allow_origins":
                return value
            raise


class _FallbackDotEnvSettingsSource(DotEnvSettingsSource):
    """Allow ALLOW_ORIGINS to be comma-separated instead of strict JSON."""

    def decode_complex_value(self, field_name, field, value):  # type: ignore[override]
        try:
            return super().decode_complex_value(field_name, field, value)
        except json.JSONDecodeError:
            if field_name == "allow_origins":
                return value
            raise


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    project_name: str = "Dealer Transfers API"
    project_version: str = "1.0.0"
    environment: str = Field(
        default="development",
        description="Deployment environment name",
        validation_alias=AliasChoices("ENV", "ENVIRONMENT"),
    )
    log_level: str = Field(default="INFO", description="Logging level")

    # Database
    database_url: str = Field(
        default="postgresql+psycopg2://postgres@localhost:5432/dealer_transfers",
        description="SQLAlchemy database URL",
    )
    db_pool_size: int = Field(default=5, description="Base DB connection pool size")
    db_max_overflow: int = Field(default=10, description="Additional DB connections beyond pool size")
    db_pool_timeout: int = Field(default=30, description="Seconds to wait for a DB connection")
    db_pool_recycle: int = Field(default=1800, description="Recycle DB connections after N seconds")

    # Auth / JWT (tokens are issued by the identity provider)
    jwt_secret: str = Field(default="change_me", description="JWT signing secret")
    algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60, description="Access token expiry in minutes")

    # CORS
    allow_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]
    )

    # Links embedded in notifications
    app_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL for links in notifications",
        validation_alias=AliasChoices("APP_BASE_URL", "NEXTAUTH_URL", "FRONTEND_BASE_URL"),
    )

    # Notification dispatch
    notifications_enabled: bool = Field(
        default=True,
        description="Run rule-based notification dispatch on domain events",
        validation_alias=AliasChoices("NOTIFICATIONS_ENABLED"),
    )
    notification_send_timeout_seconds: float = Field(
        default=15.0,
        description="Timeout applied to each outbound email/SMS provider call",
        validation_alias=AliasChoices("NOTIFICATION_SEND_TIMEOUT_SECONDS"),
    )

    # Email delivery
    email_provider: str = Field(
        default="disabled",
        description="Email provider: resend, postmark, smtp, disabled",
        validation_alias=AliasChoices("EMAIL_PROVIDER"),
    )
    email_api_key: str | None = Field(
        default=None,
        description="API key for Resend/Postmark",
        validation_alias=AliasChoices("EMAIL_API_KEY", "RESEND_API_KEY"),
    )
    email_from: str | None = Field(
        default=None,
        description="From address for outbound email",
        validation_alias=AliasChoices("EMAIL_FROM"),
    )
    smtp_host: str | None = Field(default=None, description="SMTP host")
    smtp_port: int = Field(default=587, description="SMTP port")
    smtp_username: str | None = Field(default=None, description="SMTP username")
    smtp_password: str | None = Field(default=None, description="SMTP password")
    smtp_use_tls: bool = Field(default=True, description="Use TLS for SMTP")

    # SMS delivery
    sms_provider: str = Field(
        default="disabled",
        description="SMS provider: twilio, disabled",
        validation_alias=AliasChoices("SMS_PROVIDER"),
    )
    twilio_account_sid: str | None = Field(
        default=None,
        description="Twilio account SID",
        validation_alias=AliasChoices("TWILIO_ACCOUNT_SID"),
    )
    twilio_auth_token: str | None = Field(
        default=None,
        description="Twilio auth token",
        validation_alias=AliasChoices("TWILIO_AUTH_TOKEN"),
    )
    twilio_phone_number: str | None = Field(
        default=None,
        description="Twilio sender number (E.164)",
        validation_alias=AliasChoices("TWILIO_PHONE_NUMBER"),
    )
    sms_max_length: int = Field(default=160, description="SMS messages are truncated to this length")

    @field_validator("allow_origins", mode="before")
    @classmethod
    def parse_allow_origins(cls, value: str | List[str]) -> List[str]:
        if isinstance(value, list):
            return value
        if isinstance(value, str) and value.strip():
            return [origin.strip() for origin in value.split(",") if origin.strip()]
        return [
            "http://localhost",
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ]

    @field_validator("email_provider", "sms_provider")
    @classmethod
    def normalize_provider(cls, value: str) -> str:
        return (value or "disabled").strip().lower()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            _FallbackEnvSettingsSource(settings_cls),
            _FallbackDotEnvSettingsSource(settings_cls),
            file_secret_settings,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()

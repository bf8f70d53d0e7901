from functools import lru_cache
import json

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_list_value(value: str) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        raw = value.strip()
        if raw == "":
            return []
        try:
            parsed = json.loads(raw)
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if str(item).strip()]
        except ValueError:
            pass
        return [item.strip() for item in raw.split(",") if item.strip()]
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        validate_by_name=True,
        populate_by_name=True,
    )
    environment: str = "development"
    public_base_url: str = "https://gentlespacerealty.com"

    supabase_url: str = ""
    supabase_jwt_secret: str = ""
    supabase_jwt_audience: str = "authenticated"

    expose_error_details: bool = False
    docs_enabled: bool = Field(default=True)
    openapi_enabled: bool = Field(default=True)

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    smtp_from_email: str = Field(
        default="Gentle Space Realty <no-reply@gentlespacerealty.com>",
        validation_alias=AliasChoices("SMTP_FROM_EMAIL", "EMAIL_FROM"),
    )

    enable_whatsapp: bool = False
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_whatsapp_from_number: str = ""
    whatsapp_default_country_code: str = "91"

    admin_notification_email: str = ""
    admin_whatsapp_number: str = ""

    notification_max_attempts: int = Field(default=3, ge=1, le=10)
    notification_retry_delays_raw: str = Field(
        default="5,15,60",
        validation_alias=AliasChoices("NOTIFICATION_RETRY_DELAYS"),
    )
    notification_short_circuit_permanent_errors: bool = False
    notification_retention_seconds: int = 24 * 3600
    notification_retention_interval_seconds: int = 300
    notification_shutdown_timeout_seconds: float = 10.0
    notification_failure_alert_threshold: int = 5

    pii_redaction_enabled: bool = Field(
        default=True,
        validation_alias=AliasChoices("PII_REDACTION_ENABLED"),
    )

    rate_limit_api_enabled: bool = False
    rate_limit_api_per_min: int = 300
    rate_limit_inquiry_per_min: int = 10
    trusted_proxy_cidrs_raw: str = Field(
        default="",
        validation_alias=AliasChoices("TRUSTED_PROXY_CIDRS"),
    )

    enable_recurring_jobs: bool = False

    cors_allow_origins_raw: str = Field(
        default="",
        validation_alias=AliasChoices("CORS_ALLOW_ORIGINS"),
    )
    cors_allow_methods_raw: str = Field(
        default="GET,POST,OPTIONS",
        validation_alias=AliasChoices("CORS_ALLOW_METHODS"),
    )
    cors_allow_headers_raw: str = Field(
        default="Authorization,Content-Type,Accept",
        validation_alias=AliasChoices("CORS_ALLOW_HEADERS"),
    )

    @field_validator("notification_retry_delays_raw")
    @classmethod
    def _check_retry_delays(cls, value: str) -> str:
        items = _parse_list_value(value)
        if not items:
            raise ValueError("NOTIFICATION_RETRY_DELAYS must list at least one delay")
        for item in items:
            if float(item) < 0:
                raise ValueError("NOTIFICATION_RETRY_DELAYS must not be negative")
        return value

    @property
    def notification_retry_delays(self) -> list[float]:
        return [float(item) for item in _parse_list_value(self.notification_retry_delays_raw)]

    @property
    def trusted_proxy_cidrs(self) -> list[str]:
        return _parse_list_value(self.trusted_proxy_cidrs_raw)

    @property
    def cors_allow_origins(self) -> list[str]:
        return _parse_list_value(self.cors_allow_origins_raw)

    @property
    def cors_allow_methods(self) -> list[str]:
        return _parse_list_value(self.cors_allow_methods_raw)

    @property
    def cors_allow_headers(self) -> list[str]:
        return _parse_list_value(self.cors_allow_headers_raw)

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() == "production"

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_from_email)


@lru_cache
def get_settings() -> Settings:
    return Settings()

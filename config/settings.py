"""Application settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. App-specific
settings use the ``SUDARSHAN_`` prefix; provider credentials (Twilio,
Gemini, mailbox) use their canonical environment variable names via
``validation_alias``.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(StrEnum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Central configuration for the Sudarshan grievance backend.

    Environment variables are loaded from a ``.env`` file when present.
    """

    model_config = SettingsConfigDict(
        env_prefix="SUDARSHAN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # ── App ────────────────────────────────────────────────────────────
    env: Literal["development", "production"] = "development"
    public_url: str = "https://lean-hacks-backend.onrender.com"
    upload_dir: str = "uploads"
    cors_origins: str = "*"

    # ── Complaint defaults ─────────────────────────────────────────────
    fallback_lat: float = 28.6139
    fallback_long: float = 77.2090
    default_country_code: str = "+91"

    # ── Twilio (voice + browser calling) ───────────────────────────────
    twilio_account_sid: str = Field(default="", validation_alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: str = Field(default="", validation_alias="TWILIO_AUTH_TOKEN")
    twilio_phone_number: str = Field(default="", validation_alias="TWILIO_PHONE_NUMBER")
    twilio_api_key_sid: str = Field(default="", validation_alias="TWILIO_API_KEY_SID")
    twilio_api_key_secret: str = Field(default="", validation_alias="TWILIO_API_KEY_SECRET")
    citizen_client_identity: str = "citizen"
    browser_token_ttl_seconds: int = 3600

    # ── SMS ────────────────────────────────────────────────────────────
    sms_provider: str = Field(default="twilio", validation_alias="SMS_PROVIDER")
    sms_api_key: str = Field(default="", validation_alias="SMS_API_KEY")

    # ── Gemini ─────────────────────────────────────────────────────────
    gemini_api_key: str = Field(default="", validation_alias="GEMINI_API_KEY")
    gcp_project_id: str = Field(default="", validation_alias="GCP_PROJECT_ID")
    gcp_region: str = Field(default="asia-south1", validation_alias="GCP_REGION")
    gemini_model: str = Field(default="gemini-2.0-flash", validation_alias="GEMINI_MODEL")

    # ── Email intake agent (IMAP) ──────────────────────────────────────
    email_agent_enabled: bool = True
    email_user: str = Field(default="", validation_alias="EMAIL_USER")
    email_password: str = Field(default="", validation_alias="EMAIL_PASS")
    imap_host: str = Field(default="imap.gmail.com", validation_alias="IMAP_HOST")
    imap_port: int = Field(default=993, validation_alias="IMAP_PORT")
    email_auth_timeout_seconds: float = 3.0
    email_poll_interval_seconds: float = 30.0
    email_initial_delay_seconds: float = 5.0

    # ── Outbound email (SMTP) ──────────────────────────────────────────
    smtp_host: str = Field(default="", validation_alias="SMTP_HOST")
    smtp_port: int = Field(default=465, validation_alias="SMTP_PORT")
    smtp_user: str = Field(default="", validation_alias="SMTP_USER")
    smtp_password: str = Field(default="", validation_alias="SMTP_PASS")
    mail_from: str = Field(default="noreply@sudarshan.local", validation_alias="MAIL_FROM")

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # ── Derived Properties ─────────────────────────────────────────────

    @property
    def is_production(self) -> bool:
        return self.env == Environment.PRODUCTION

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def email_agent_configured(self) -> bool:
        return bool(self.email_user and self.email_password)


# Module-level singleton; import ``settings`` everywhere.
settings = Settings()

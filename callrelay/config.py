"""Configuration for the call relay service.

Security Note:
    - All secrets MUST be provided via environment variables
    - No default secrets are provided
    - Application will fail fast if required secrets are missing in production
"""

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _is_production() -> bool:
    """Check if running in production environment."""
    env = os.getenv("ENVIRONMENT", "development").lower()
    return env in ("production", "prod", "staging")


class Settings(BaseSettings):
    """Service settings.

    Every field maps to an environment variable of the same name
    (case-insensitive), e.g. ``WEBHOOK_SIGNING_SECRET``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Environment
    environment: str = Field(
        default="development",
        description="Environment: development, staging, production",
    )

    # Service settings
    service_name: str = "callrelay"
    host: str = "0.0.0.0"
    port: int = 8787
    debug: bool = False
    log_level: str = "info"
    log_format: str = Field(default="json", description="json or pretty")
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Inbound Resend webhooks
    webhook_signing_secret: str = Field(
        default="",
        description="Resend webhook signing secret (REQUIRED in production)",
    )
    webhook_signature_header: str = "svix-signature"
    webhook_timestamp_header: str = "svix-timestamp"
    webhook_max_age_seconds: int = Field(
        default=300,
        description="Replay window for signed webhooks, in seconds",
    )
    debug_webhooks: bool = Field(
        default=False,
        description="Log raw payloads, verification and forward outcomes",
    )

    # Downstream target
    target_webhook_url: str = Field(
        default="",
        description="URL that canonical events are forwarded to",
    )
    target_webhook_auth_token: str = Field(
        default="",
        description="Bearer token sent to the target",
    )
    forward_max_attempts: int = 5
    forward_retry_base_delay: float = 5.0
    forward_retry_multiplier: float = 3.0
    forward_retry_max_delay: float = 300.0
    forward_retry_on_status: List[int] = Field(
        default_factory=lambda: [408, 429],
        description="4xx statuses treated as transient (every 5xx is retried)",
    )
    forward_timeout_seconds: float = 10.0
    forward_deadline_seconds: Optional[float] = Field(
        default=None,
        description="Upper bound on total forwarding time per request",
    )
    store_failed_payloads: bool = False

    # Storage
    storage_backend: str = Field(
        default="auto",
        description="auto, redis or memory",
    )
    redis_url: Optional[str] = None
    storage_namespace: str = "phone_agent_storage"
    storage_default_ttl: int = Field(
        default=0,
        description="TTL for call records and failed payloads (0 = no expiry)",
    )
    storage_lock_updates: bool = True

    # Bland.ai voice provider
    bland_ai_api_key: str = Field(default="", description="Bland.ai API key")
    bland_ai_webhook_secret: str = Field(
        default="",
        description="Secret used to verify call-provider webhooks (optional)",
    )
    bland_ai_agent_id: Optional[str] = None
    bland_ai_voice_id: Optional[str] = None
    bland_ai_base_url: str = "https://api.bland.ai"
    bland_ai_timeout_seconds: float = 30.0
    call_webhook_url: Optional[str] = Field(
        default=None,
        description="Public URL the provider posts call events to",
    )
    call_webhook_signature_header: str = "x-webhook-signature"
    call_webhook_timestamp_header: str = "x-webhook-timestamp"
    max_call_duration_minutes: int = 30

    @field_validator("storage_backend")
    @classmethod
    def validate_storage_backend(cls, v: str) -> str:
        """Validate the storage backend name."""
        v = v.lower()
        if v not in ("auto", "redis", "memory"):
            raise ValueError("STORAGE_BACKEND must be one of: auto, redis, memory")
        return v

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate the log output format."""
        v = v.lower()
        if v not in ("json", "pretty"):
            raise ValueError("LOG_FORMAT must be json or pretty")
        return v

    @field_validator("webhook_max_age_seconds", "forward_max_attempts", "max_call_duration_minutes")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Reject zero and negative limits."""
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("storage_default_ttl")
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        """TTL may be zero (no expiry) but never negative."""
        if v < 0:
            raise ValueError("STORAGE_DEFAULT_TTL must not be negative")
        return v

    @model_validator(mode="after")
    def validate_required_secrets(self) -> "Settings":
        """Fail fast on missing secrets in production."""
        if self.storage_backend == "redis" and not self.redis_url:
            raise ValueError("REDIS_URL is required when STORAGE_BACKEND=redis")

        if _is_production():
            missing = self.webhook_config_errors()
            if not self.bland_ai_api_key:
                missing.append("Missing Bland.ai API key")
            if missing:
                raise ValueError(
                    "Invalid production configuration: " + "; ".join(missing)
                )
        return self

    def webhook_config_errors(self) -> List[str]:
        """Return the problems that prevent webhook relaying."""
        errors = []
        if not self.webhook_signing_secret:
            errors.append("Missing Resend webhook signing secret")
        if not self.target_webhook_url:
            errors.append("Missing target webhook URL")
        if not self.target_webhook_auth_token:
            errors.append("Missing target webhook authentication token")
        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings."""
    return Settings()

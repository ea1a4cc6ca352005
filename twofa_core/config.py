"""
Two-Factor Configuration
========================
Configuration for challenge issuance, verification and delivery.
"""

import os
import secrets
from dataclasses import dataclass, field
from typing import Optional
import structlog

from .exceptions import ConfigurationError
from .models import DeliveryChannel

logger = structlog.get_logger(__name__)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}")


@dataclass
class VerificationConfig:
    """Configuration for the code verification engine."""
    code_digits: int = 6
    ttl_seconds: int = 600  # 10 minutes
    max_attempts: int = 5
    resend_cooldown_seconds: int = 60
    secret_key: str = ""
    cas_retries: int = 8
    channel: DeliveryChannel = DeliveryChannel.LOG
    redis_key_prefix: str = "twofa:challenge"

    def __post_init__(self):
        self.channel = DeliveryChannel(self.channel)
        if not self.secret_key:
            # Codes hashed with an ephemeral key do not survive a restart
            logger.warning("TWOFA_SECRET_KEY not set, using a per-process key")
            self.secret_key = secrets.token_hex(32)
        self.validate()

    def validate(self) -> None:
        if not 4 <= self.code_digits <= 10:
            raise ConfigurationError("code_digits must be between 4 and 10")
        if self.ttl_seconds <= 0:
            raise ConfigurationError("ttl_seconds must be positive")
        if self.max_attempts <= 0:
            raise ConfigurationError("max_attempts must be positive")
        if self.resend_cooldown_seconds < 0:
            raise ConfigurationError("resend_cooldown_seconds must not be negative")
        if self.cas_retries <= 0:
            raise ConfigurationError("cas_retries must be positive")

    @classmethod
    def from_env(cls) -> "VerificationConfig":
        """Build a config from ``TWOFA_*`` environment variables."""
        try:
            channel = DeliveryChannel(os.getenv("TWOFA_CHANNEL", DeliveryChannel.LOG.value).lower())
        except ValueError:
            raise ConfigurationError(f"Unknown TWOFA_CHANNEL {os.getenv('TWOFA_CHANNEL')!r}")

        return cls(
            code_digits=_env_int("TWOFA_CODE_DIGITS", 6),
            ttl_seconds=_env_int("TWOFA_TTL_SECONDS", 600),
            max_attempts=_env_int("TWOFA_MAX_ATTEMPTS", 5),
            resend_cooldown_seconds=_env_int("TWOFA_RESEND_COOLDOWN_SECONDS", 60),
            secret_key=os.getenv("TWOFA_SECRET_KEY", ""),
            cas_retries=_env_int("TWOFA_CAS_RETRIES", 8),
            channel=channel,
            redis_key_prefix=os.getenv("TWOFA_REDIS_PREFIX", "twofa:challenge"),
        )


@dataclass
class NotifierConfig:
    """Connection settings for the email and SMS notifiers."""
    smtp_host: str = field(default_factory=lambda: os.getenv("TWOFA_SMTP_HOST", "localhost"))
    smtp_port: int = field(default_factory=lambda: _env_int("TWOFA_SMTP_PORT", 587))
    smtp_username: Optional[str] = field(default_factory=lambda: os.getenv("TWOFA_SMTP_USERNAME"))
    smtp_password: Optional[str] = field(default_factory=lambda: os.getenv("TWOFA_SMTP_PASSWORD"))
    smtp_starttls: bool = field(
        default_factory=lambda: os.getenv("TWOFA_SMTP_STARTTLS", "true").lower() == "true"
    )
    email_from: str = field(
        default_factory=lambda: os.getenv("TWOFA_EMAIL_FROM", "no-reply@localhost")
    )
    sms_account_sid: str = field(default_factory=lambda: os.getenv("TWOFA_SMS_ACCOUNT_SID", ""))
    sms_auth_token: str = field(default_factory=lambda: os.getenv("TWOFA_SMS_AUTH_TOKEN", ""))
    sms_from_number: str = field(default_factory=lambda: os.getenv("TWOFA_SMS_FROM", ""))
    sms_base_url: str = field(
        default_factory=lambda: os.getenv("TWOFA_SMS_BASE_URL", "https://api.twilio.com/2010-04-01")
    )
    timeout: float = 10.0

"""
Process configuration.

All settings are read once per container from the environment, optionally
overlaid with the JSON secret named by APP_SECRET_NAME (see utils.secrets).
Secret values win over plain environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

from utils.errors import ConfigurationError
from utils.logger import get_logger
from utils.secrets import get_app_secrets

logger = get_logger("config")

DEFAULT_PRIMARY_PROVIDER = "resend"
DEFAULT_FALLBACK_PROVIDER = "sendgrid"
DEFAULT_TOKEN_DAYS = 7


def _int(source: Mapping[str, str], name: str, default: int) -> int:
    raw = source.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        msg = f"Invalid {name}='{raw}'. Must be an integer."
        logger.error(msg)
        raise ConfigurationError(msg)


def _float(source: Mapping[str, str], name: str, default: float) -> float:
    raw = source.get(name)
    if raw in (None, ""):
        return default
    try:
        return float(raw)
    except ValueError:
        msg = f"Invalid {name}='{raw}'. Must be a number."
        logger.error(msg)
        raise ConfigurationError(msg)


def _bool(source: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = source.get(name)
    if raw in (None, ""):
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class SendGridSettings:
    api_key: str = ""
    from_email: str = ""


@dataclass(frozen=True)
class ResendSettings:
    api_key: str = ""
    from_email: str = ""


@dataclass(frozen=True)
class SmtpSettings:
    host: str = ""
    port: int = 587
    user: str = ""
    password: str = ""
    secure: bool = False
    from_email: str = ""
    debug: bool = False
    verify: bool = True
    timeout: float = 10.0

    def missing(self) -> List[str]:
        return [
            name
            for name, value in (
                ("SMTP_HOST", self.host),
                ("SMTP_USER", self.user),
                ("SMTP_PASS", self.password),
            )
            if not value
        ]


@dataclass(frozen=True)
class TwilioSettings:
    account_sid: str = ""
    auth_token: str = ""
    phone_number: str = ""
    messaging_service_sid: str = ""


@dataclass(frozen=True)
class Settings:
    users_table: str = ""
    users_email_index: str = "email-index"
    dynamodb_endpoint_url: Optional[str] = None
    aws_region: str = "us-east-1"

    jwt_secret: str = ""
    jwt_expires_days: int = DEFAULT_TOKEN_DAYS

    email_provider: str = DEFAULT_PRIMARY_PROVIDER
    email_fallback_provider: str = DEFAULT_FALLBACK_PROVIDER
    http_timeout: float = 10.0

    sendgrid: SendGridSettings = field(default_factory=SendGridSettings)
    resend: ResendSettings = field(default_factory=ResendSettings)
    smtp: SmtpSettings = field(default_factory=SmtpSettings)
    twilio: TwilioSettings = field(default_factory=TwilioSettings)

    app_version: str = "v1"

    @classmethod
    def from_mapping(cls, source: Mapping[str, str]) -> "Settings":
        def get(name: str, default: str = "") -> str:
            return (source.get(name) or default).strip()

        return cls(
            users_table=get("USERS_TABLE"),
            users_email_index=get("USERS_EMAIL_INDEX", "email-index"),
            dynamodb_endpoint_url=get("DYNAMODB_ENDPOINT_URL") or None,
            aws_region=get("AWS_REGION", "us-east-1"),
            jwt_secret=get("JWT_SECRET"),
            jwt_expires_days=_int(source, "JWT_EXPIRES_DAYS", DEFAULT_TOKEN_DAYS),
            email_provider=get("EMAIL_PROVIDER", DEFAULT_PRIMARY_PROVIDER).lower(),
            email_fallback_provider=get("EMAIL_FALLBACK_PROVIDER", DEFAULT_FALLBACK_PROVIDER).lower(),
            http_timeout=_float(source, "HTTP_TIMEOUT_SECONDS", 10.0),
            sendgrid=SendGridSettings(
                api_key=get("SENDGRID_API_KEY"),
                from_email=get("SENDGRID_FROM_EMAIL"),
            ),
            resend=ResendSettings(
                api_key=get("RESEND_API_KEY"),
                from_email=get("RESEND_FROM_EMAIL"),
            ),
            smtp=SmtpSettings(
                host=get("SMTP_HOST"),
                port=_int(source, "SMTP_PORT", 587),
                user=get("SMTP_USER"),
                password=source.get("SMTP_PASS") or "",
                secure=_bool(source, "SMTP_SECURE"),
                from_email=get("SMTP_FROM_EMAIL"),
                debug=_bool(source, "SMTP_DEBUG"),
                verify=_bool(source, "SMTP_VERIFY", True),
                timeout=_float(source, "SMTP_TIMEOUT_SECONDS", 10.0),
            ),
            twilio=TwilioSettings(
                account_sid=get("TWILIO_ACCOUNT_SID"),
                auth_token=get("TWILIO_AUTH_TOKEN"),
                phone_number=get("TWILIO_PHONE_NUMBER"),
                messaging_service_sid=get("TWILIO_MESSAGING_SERVICE_SID"),
            ),
            app_version=get("APP_VERSION", "v1"),
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        source: Dict[str, str] = dict(os.environ if environ is None else environ)
        source.update(get_app_secrets())
        return cls.from_mapping(source)

    def require(self, *names: str) -> None:
        """
        Raise ConfigurationError listing every named attribute that is empty.
        """
        missing = [name.upper() for name in names if not getattr(self, name)]
        if missing:
            msg = f"Missing required environment variables: {', '.join(missing)}"
            logger.error(msg)
            raise ConfigurationError(msg)

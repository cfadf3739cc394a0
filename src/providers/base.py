from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from utils.logger import get_logger


class Diagnosis(str, Enum):
    """Why a send attempt failed, independent of the transport."""

    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_RESET = "connection_reset"
    TIMEOUT = "timeout"
    AUTH_FAILED = "auth_failed"
    FORBIDDEN = "forbidden"
    RATE_LIMITED = "rate_limited"
    INVALID_RECIPIENT = "invalid_recipient"
    INVALID_CONTENT = "invalid_content"
    DOMAIN_NOT_VERIFIED = "domain_not_verified"
    TLS_FAILED = "tls_failed"
    SERVER_ERROR = "server_error"
    REJECTED = "rejected"
    NOT_CONFIGURED = "not_configured"
    UNKNOWN = "unknown"


# Caller-facing text per diagnosis. Raw transport errors stay in the logs.
USER_MESSAGES = {
    Diagnosis.CONNECTION_REFUSED: "Cannot connect to email server. Please try again later.",
    Diagnosis.CONNECTION_RESET: "Connection to email server was lost. Please try again.",
    Diagnosis.TIMEOUT: "Email server is not responding. Please try again later.",
    Diagnosis.AUTH_FAILED: "Email service authentication failed. Please contact support.",
    Diagnosis.FORBIDDEN: "Email sending not authorized. Please contact support.",
    Diagnosis.RATE_LIMITED: "Email service is busy. Please try again later.",
    Diagnosis.INVALID_RECIPIENT: "Invalid email address format.",
    Diagnosis.INVALID_CONTENT: "There was a problem with the email content.",
    Diagnosis.DOMAIN_NOT_VERIFIED: "Email domain not authorized. Please contact support.",
    Diagnosis.TLS_FAILED: "Secure connection failed. Please try again.",
    Diagnosis.SERVER_ERROR: "Email service is temporarily unavailable. Please try again later.",
    Diagnosis.REJECTED: "Email was rejected by server.",
    Diagnosis.NOT_CONFIGURED: "Email provider is not configured.",
    Diagnosis.UNKNOWN: "Failed to send email.",
}


@dataclass(frozen=True)
class EmailMessage:
    to: str
    from_email: str
    subject: str
    text: str
    html: str


@dataclass(frozen=True)
class SmsMessage:
    to: str
    body: str


@dataclass(frozen=True)
class SendResult:
    success: bool
    provider: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None
    diagnosis: Optional[Diagnosis] = None
    error_code: Optional[int] = None
    status: Optional[str] = None
    segments: Optional[int] = None


class ChannelProvider(ABC):
    """
    One third-party transport for one message type.

    `is_configured()` is decided once, at construction, from settings and
    never changes afterwards. `send()` makes exactly one attempt and never
    raises for transport failures; it returns a failed SendResult instead.
    """

    name = "base"

    def __init__(self):
        self.logger = get_logger(f"providers.{self.name}")
        self._configured = False

    def is_configured(self) -> bool:
        return self._configured

    @abstractmethod
    def send(self, message: Any) -> SendResult:
        pass

    def _log_configuration(self, **fields: Any) -> None:
        self.logger.info(
            "provider.configuration",
            extra={"fields": {"provider": self.name, "configured": self._configured, **fields}},
        )

    def _ok(self, message_id: Optional[str], **extra: Any) -> SendResult:
        self.logger.info(
            "provider.send_success",
            extra={"fields": {"provider": self.name, "message_id": message_id, **extra}},
        )
        return SendResult(success=True, provider=self.name, message_id=message_id, **extra)

    def _fail(
        self,
        diagnosis: Diagnosis,
        error: Optional[str] = None,
        exc: Optional[BaseException] = None,
        log_fields: Optional[Dict[str, Any]] = None,
        **extra: Any,
    ) -> SendResult:
        fields = {"provider": self.name, "diagnosis": diagnosis.value, **extra, **(log_fields or {})}
        if exc is not None:
            fields["error_type"] = type(exc).__name__
            fields["error"] = str(exc)
        self.logger.error("provider.send_failure", extra={"fields": fields})
        return SendResult(
            success=False,
            provider=self.name,
            error=error or USER_MESSAGES[diagnosis],
            diagnosis=diagnosis,
            **extra,
        )

    def _not_configured(self) -> SendResult:
        return self._fail(
            Diagnosis.NOT_CONFIGURED,
            f"{self.name} is not configured.",
        )


def mask(value: Optional[str], keep: int = 6) -> str:
    """Preview a credential for logs without exposing it."""
    if not value:
        return "NOT SET"
    return f"{value[:keep]}..."

# utils/twilio_client.py

from typing import Optional, Tuple

from twilio.base.exceptions import TwilioRestException
from twilio.rest import Client as TwilioClient

from providers.base import ChannelProvider, Diagnosis, SendResult, SmsMessage, mask
from utils.config import TwilioSettings
from utils.logger import get_logger

logger = get_logger("twilio_client")

# Twilio error code -> (HTTP status, caller-facing message)
TWILIO_ERRORS = {
    21211: (400, "Invalid phone number"),
    21408: (403, "Permission denied to send SMS to this number"),
    21610: (400, "Phone number is not reachable or opted out"),
    21614: (400, "Invalid phone number format"),
}
DEFAULT_SMS_ERROR = (500, "Failed to send SMS")

_DIAGNOSES = {
    21211: Diagnosis.INVALID_RECIPIENT,
    21408: Diagnosis.FORBIDDEN,
    21610: Diagnosis.REJECTED,
    21614: Diagnosis.INVALID_RECIPIENT,
    20003: Diagnosis.AUTH_FAILED,
    20429: Diagnosis.RATE_LIMITED,
}


def sms_error_status(code: Optional[int]) -> Tuple[int, str]:
    """HTTP status and message for a Twilio error code."""
    return TWILIO_ERRORS.get(code, DEFAULT_SMS_ERROR)


def build_client(settings: TwilioSettings) -> Optional[TwilioClient]:
    """
    Build an authenticated Twilio client, or None when the account SID or
    auth token is missing.
    """
    missing = [
        name
        for name, value in [
            ("TWILIO_ACCOUNT_SID", settings.account_sid),
            ("TWILIO_AUTH_TOKEN", settings.auth_token),
        ]
        if not value
    ]

    if missing:
        logger.warning("Twilio client not configured", extra={"missing": missing})
        return None

    client = TwilioClient(settings.account_sid, settings.auth_token)
    logger.info("Twilio client initialized successfully")
    return client


class TwilioSmsProvider(ChannelProvider):
    """
    SMS through Twilio's Messages API.

    Uses the messaging service when TWILIO_MESSAGING_SERVICE_SID is set,
    otherwise sends from TWILIO_PHONE_NUMBER.
    """

    name = "twilio"

    def __init__(self, settings: Optional[TwilioSettings] = None, client: Optional[TwilioClient] = None):
        super().__init__()
        self.settings = settings or TwilioSettings()
        self.client = client if client is not None else build_client(self.settings)
        has_sender = bool(self.settings.phone_number or self.settings.messaging_service_sid)
        self._configured = self.client is not None and has_sender

        self._log_configuration(
            account_sid=mask(self.settings.account_sid),
            phone_number=self.settings.phone_number or "NOT SET",
            messaging_service_sid=mask(self.settings.messaging_service_sid),
        )

    def send(self, message: SmsMessage) -> SendResult:
        if not self._configured:
            return self._not_configured()

        kwargs = {"to": message.to, "body": message.body}
        if self.settings.messaging_service_sid:
            # IMPORTANT: Twilio expects "messaging_service_sid", not "msid"
            kwargs["messaging_service_sid"] = self.settings.messaging_service_sid
        else:
            kwargs["from_"] = self.settings.phone_number

        self.logger.info(
            "sms.twilio_send_start",
            extra={"fields": {"to": message.to, "length": len(message.body)}},
        )

        try:
            resp = self.client.messages.create(**kwargs)
        except TwilioRestException as e:
            status, error = sms_error_status(e.code)
            return self._fail(
                _DIAGNOSES.get(e.code, Diagnosis.SERVER_ERROR if (e.status or 0) >= 500 else Diagnosis.UNKNOWN),
                error=error,
                error_code=e.code,
                log_fields={"http_status": e.status, "twilio_message": e.msg, "mapped_status": status},
            )
        except Exception as e:
            # Transport-level failures (DNS, TLS, timeouts) from the Twilio HTTP client
            return self._fail(Diagnosis.UNKNOWN, error=DEFAULT_SMS_ERROR[1], exc=e)

        return self._ok(
            getattr(resp, "sid", None),
            status=getattr(resp, "status", None),
            segments=_segments(getattr(resp, "num_segments", None)),
        )


def _segments(value) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None

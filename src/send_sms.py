import re
from datetime import datetime, timezone

from providers.base import SmsMessage
from utils.context import get_services
from utils.errors import AuthError, ConfigurationError, ServiceError, UpstreamError, ValidationError
from utils.logger import RequestLogger, request_logger
from utils.responses import error_response, parse_body, success_response
from utils.tokens import authenticate_request
from utils.twilio_client import sms_error_status

PHONE_RE = re.compile(r"^\+?[1-9]\d{1,14}$")
PHONE_STRIP_RE = re.compile(r"[\s()-]")

MAX_SMS_LENGTH = 1600
MISCONFIGURED = "Server is misconfigured. Please contact administrator."


def normalize_phone(raw: str) -> str:
    """
    Strip spaces, parentheses and dashes, then make sure the number starts
    with '+'. Raises ValidationError if what remains is not E.164-like.
    """
    digits = PHONE_STRIP_RE.sub("", raw)
    if not PHONE_RE.fullmatch(digits):
        raise ValidationError("Invalid phone number format. Use E.164 format (e.g., +1234567890)")
    return digits if digits.startswith("+") else f"+{digits}"


def handle(event: dict, services, log: RequestLogger) -> dict:
    auth = authenticate_request(event, services.tokens, log)
    if not auth.valid:
        log.request_end(401, reason="auth_failed", error=auth.reason.value)
        return error_response(AuthError(auth.message), log.request_id)

    try:
        payload = parse_body(event)
        business_group = payload.get("businessGroup")
        to = payload.get("to")
        body = payload.get("body")

        log.debug(
            "sms.payload_received",
            extra={
                "fields": {
                    "businessGroup": business_group,
                    "to": to,
                    "bodyLength": len(body) if isinstance(body, str) else None,
                }
            },
        )

        if not business_group or not to or not body:
            log.validation_error(
                "fields",
                "missing_required_fields",
                hasBusinessGroup=bool(business_group),
                hasTo=bool(to),
                hasBody=bool(body),
            )
            raise ValidationError("Please provide businessGroup, to, and body")

        try:
            formatted_to = normalize_phone(str(to))
        except ValidationError:
            log.validation_error("to", "invalid_phone_format", phone=str(to))
            raise

        if not services.sms.is_configured():
            log.error("sms.not_configured")
            raise ConfigurationError("SMS service is not configured. Please contact administrator.")

        text = f"[{business_group}] {body}"
        if len(text) > MAX_SMS_LENGTH:
            log.validation_error("body", "too_long", length=len(text))
            raise ValidationError(
                f"Message body is too long. Maximum length is {MAX_SMS_LENGTH} characters."
            )

        result = services.sms.send(SmsMessage(to=formatted_to, body=text))

        if not result.success:
            status, message = sms_error_status(result.error_code)
            details = {"code": result.error_code} if result.error_code is not None else None
            raise UpstreamError(message, status_code=status, details=details)

        log.info(
            "sms.sent",
            extra={"fields": {"sid": result.message_id, "to": formatted_to, "status": result.status}},
        )
        log.request_end(200)

        return success_response(
            {
                "message": "SMS sent successfully",
                "data": {
                    "businessGroup": business_group,
                    "to": formatted_to,
                    "messageId": result.message_id,
                    "status": result.status,
                    "sentAt": datetime.now(timezone.utc).isoformat(),
                    "segments": result.segments,
                },
            },
            request_id=log.request_id,
        )

    except ServiceError as e:
        log.request_end(e.status_code, error=e.message)
        return error_response(e, log.request_id)

    except Exception:
        log.exception("sms.unexpected_error")
        log.request_end(500, error="unexpected_error")
        return error_response(ServiceError("Failed to send SMS"), log.request_id)


def lambda_handler(event, context):
    log = request_logger("send_sms", event, context)
    log.request_start(endpoint="/v1/messaging/send-sms")

    # Misconfiguration is a 500, not a 4xx
    try:
        services = get_services()
    except Exception as e:
        log.error("sms.env_error", extra={"fields": {"error": str(e)}}, exc_info=True)
        log.request_end(500, reason="server_misconfigured")
        return error_response(ConfigurationError(MISCONFIGURED), log.request_id)

    return handle(event, services, log)

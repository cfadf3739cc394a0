import html
import re
from datetime import datetime, timezone

from providers.base import EmailMessage
from utils.context import get_services
from utils.errors import AuthError, ConfigurationError, ServiceError, UpstreamError, ValidationError
from utils.logger import RequestLogger, request_logger
from utils.responses import error_response, parse_body, success_response
from utils.tokens import authenticate_request

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MISCONFIGURED = "Server is misconfigured. Please contact administrator."

HTML_TEMPLATE = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <div style="background-color: #f8f9fa; padding: 20px; border-bottom: 3px solid #007bff;">
    <h2 style="margin: 0; color: #333;">{group}</h2>
  </div>
  <div style="padding: 30px; background-color: #ffffff;">
    <div style="color: #333; line-height: 1.6;">
      {body}
    </div>
  </div>
  <div style="background-color: #f8f9fa; padding: 15px; text-align: center; font-size: 12px; color: #666;">
    <p style="margin: 0;">This email was sent from {group}</p>
  </div>
</div>
"""


def render_html(business_group: str, body: str) -> str:
    return HTML_TEMPLATE.format(
        group=html.escape(business_group),
        body=html.escape(body).replace("\n", "<br>"),
    )


def handle(event: dict, services, log: RequestLogger) -> dict:
    auth = authenticate_request(event, services.tokens, log)
    if not auth.valid:
        log.request_end(401, reason="auth_failed", error=auth.reason.value)
        return error_response(AuthError(auth.message), log.request_id)

    try:
        payload = parse_body(event)
        business_group = payload.get("businessGroup")
        to = payload.get("to")
        subject = payload.get("subject")
        body = payload.get("body")

        log.debug(
            "email.payload_received",
            extra={
                "fields": {
                    "businessGroup": business_group,
                    "to": to,
                    "subjectPreview": str(subject)[:50] if subject else None,
                    "bodyLength": len(body) if isinstance(body, str) else None,
                }
            },
        )

        if not business_group or not to or not subject or not body:
            log.validation_error(
                "fields",
                "missing_required_fields",
                hasBusinessGroup=bool(business_group),
                hasTo=bool(to),
                hasSubject=bool(subject),
                hasBody=bool(body),
            )
            raise ValidationError("Please provide businessGroup, to, subject, and body")

        if not isinstance(to, str) or not EMAIL_RE.fullmatch(to):
            log.validation_error("to", "invalid_email_format", email=str(to))
            raise ValidationError("Invalid email address format")

        configured = services.email.get_configured_providers()
        from_email = services.email.get_default_from_email()
        if not configured or not from_email:
            log.error(
                "email.not_configured",
                extra={"fields": {"configured_providers": configured, "from_email_present": bool(from_email)}},
            )
            raise ConfigurationError("Email service is not configured. Please contact administrator.")

        business_group = str(business_group)
        body = str(body)
        message = EmailMessage(
            to=to,
            from_email=from_email,
            subject=f"[{business_group}] {subject}",
            text=body,
            html=render_html(business_group, body),
        )

        log.info(
            "email.send_start",
            extra={"fields": {"to": message.to, "from": message.from_email, "providers": configured}},
        )
        result = services.email.send(message)

        if not result.success:
            raise UpstreamError(result.error or "Failed to send email")

        log.info(
            "email.sent",
            extra={"fields": {"provider": result.provider, "message_id": result.message_id}},
        )
        log.request_end(200, provider=result.provider)

        return success_response(
            {
                "message": "Email sent successfully",
                "data": {
                    "businessGroup": business_group,
                    "to": to,
                    "subject": message.subject,
                    "sentAt": datetime.now(timezone.utc).isoformat(),
                    "provider": result.provider,
                    "messageId": result.message_id,
                },
            },
            request_id=log.request_id,
        )

    except ServiceError as e:
        log.request_end(e.status_code, error=e.message)
        return error_response(e, log.request_id)

    except Exception:
        log.exception("email.unexpected_error")
        log.request_end(500, error="unexpected_error")
        return error_response(ServiceError("Failed to send email"), log.request_id)


def lambda_handler(event, context):
    log = request_logger("send_email", event, context)
    log.request_start(endpoint="/v1/messaging/send-email")

    # Misconfiguration is a 500, not a 4xx
    try:
        services = get_services()
    except Exception as e:
        log.error("email.env_error", extra={"fields": {"error": str(e)}}, exc_info=True)
        log.request_end(500, reason="server_misconfigured")
        return error_response(ConfigurationError(MISCONFIGURED), log.request_id)

    return handle(event, services, log)

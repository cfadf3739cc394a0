from typing import Optional

import httpx

from providers.base import ChannelProvider, Diagnosis, EmailMessage, SendResult, mask

SENDGRID_URL = "https://api.sendgrid.com/v3/mail/send"


class SendGridProvider(ChannelProvider):
    """
    SendGrid v3 Mail Send API over HTTPS.
    """

    name = "sendgrid"

    def __init__(self, api_key: str = "", from_email: str = "", timeout: float = 10.0,
                 client: Optional[httpx.Client] = None):
        super().__init__()
        self.api_key = api_key
        self.from_email = from_email
        self.timeout = timeout
        self._client = client
        self._configured = bool(api_key)
        self._log_configuration(api_key=mask(api_key), from_email=from_email or "NOT SET")

    def _payload(self, message: EmailMessage) -> dict:
        return {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": message.from_email},
            "subject": message.subject,
            "content": [
                {"type": "text/plain", "value": message.text},
                {"type": "text/html", "value": message.html},
            ],
        }

    def _post(self, message: EmailMessage) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self._client is not None:
            return self._client.post(SENDGRID_URL, json=self._payload(message), headers=headers)
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(SENDGRID_URL, json=self._payload(message), headers=headers)

    def send(self, message: EmailMessage) -> SendResult:
        if not self._configured:
            return self._not_configured()

        self.logger.info(
            "provider.send_start",
            extra={"fields": {"provider": self.name, "to": message.to, "subject": message.subject}},
        )

        try:
            response = self._post(message)
        except httpx.TimeoutException as e:
            return self._fail(Diagnosis.TIMEOUT, exc=e)
        except httpx.ConnectError as e:
            return self._fail(Diagnosis.CONNECTION_REFUSED, exc=e)
        except httpx.HTTPError as e:
            return self._fail(Diagnosis.CONNECTION_RESET, exc=e)

        if response.is_success:
            return self._ok(response.headers.get("x-message-id"))

        return self._classify(response)

    def _classify(self, response: httpx.Response) -> SendResult:
        status = response.status_code
        errors = []
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            errors = [e for e in body.get("errors") or [] if isinstance(e, dict)]

        if status == 401:
            diagnosis = Diagnosis.AUTH_FAILED
        elif status == 403:
            diagnosis = Diagnosis.FORBIDDEN
        elif status == 429:
            diagnosis = Diagnosis.RATE_LIMITED
        elif status >= 500:
            diagnosis = Diagnosis.SERVER_ERROR
        elif status == 400:
            diagnosis = Diagnosis.INVALID_CONTENT
        else:
            diagnosis = Diagnosis.REJECTED

        # SendGrid's 400 messages describe the request, not the account
        error = None
        if diagnosis is Diagnosis.INVALID_CONTENT and errors:
            error = errors[0].get("message")

        return self._fail(
            diagnosis,
            error=error,
            log_fields={
                "http_status": status,
                "sendgrid_errors": [
                    {"message": e.get("message"), "field": e.get("field")} for e in errors
                ],
            },
        )

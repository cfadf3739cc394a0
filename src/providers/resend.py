from typing import Optional

import httpx

from providers.base import ChannelProvider, Diagnosis, EmailMessage, SendResult, mask

RESEND_URL = "https://api.resend.com/emails"


class ResendProvider(ChannelProvider):
    name = "resend"

    def __init__(self, api_key: str = "", from_email: str = "", timeout: float = 10.0,
                 client: Optional[httpx.Client] = None):
        super().__init__()
        self.api_key = api_key
        self.from_email = from_email
        self.timeout = timeout
        self._client = client
        self._configured = bool(api_key)
        self._log_configuration(api_key=mask(api_key), from_email=from_email or "NOT SET")

    def _post(self, message: EmailMessage) -> httpx.Response:
        payload = {
            "from": message.from_email,
            "to": [message.to],
            "subject": message.subject,
            "text": message.text,
            "html": message.html,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self._client is not None:
            return self._client.post(RESEND_URL, json=payload, headers=headers)
        with httpx.Client(timeout=self.timeout) as client:
            return client.post(RESEND_URL, json=payload, headers=headers)

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

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.is_success:
            return self._ok(body.get("id"))

        return self._fail(
            self._diagnose(response.status_code, str(body.get("message") or "")),
            log_fields={
                "http_status": response.status_code,
                "resend_error": body.get("name"),
                "resend_message": body.get("message"),
            },
        )

    @staticmethod
    def _diagnose(status: int, message: str) -> Diagnosis:
        text = message.lower()
        if status == 401 or "api key" in text:
            return Diagnosis.AUTH_FAILED
        if status == 429 or "rate limit" in text:
            return Diagnosis.RATE_LIMITED
        if "domain" in text:
            return Diagnosis.DOMAIN_NOT_VERIFIED
        if status == 403:
            return Diagnosis.FORBIDDEN
        if status == 422:
            return Diagnosis.INVALID_RECIPIENT
        if status >= 500:
            return Diagnosis.SERVER_ERROR
        return Diagnosis.REJECTED

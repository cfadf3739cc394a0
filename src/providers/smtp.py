import smtplib
import socket
import ssl
from email.message import EmailMessage as MimeMessage
from email.utils import make_msgid
from typing import Optional

from providers.base import ChannelProvider, Diagnosis, EmailMessage, SendResult
from utils.config import SmtpSettings


def diagnose(exc: BaseException) -> Diagnosis:
    """
    Map an smtplib / socket failure onto a Diagnosis.
    Order matters: the SMTP exception classes are checked before the
    OSError family they belong to.
    """
    if isinstance(exc, smtplib.SMTPAuthenticationError):
        return Diagnosis.AUTH_FAILED
    if isinstance(exc, (smtplib.SMTPRecipientsRefused, smtplib.SMTPSenderRefused)):
        return Diagnosis.INVALID_RECIPIENT
    if isinstance(exc, smtplib.SMTPDataError):
        return Diagnosis.INVALID_CONTENT
    if isinstance(exc, smtplib.SMTPServerDisconnected):
        return Diagnosis.CONNECTION_RESET
    if isinstance(exc, smtplib.SMTPResponseException):
        if exc.smtp_code >= 500:
            return Diagnosis.SERVER_ERROR
        if exc.smtp_code >= 400:
            return Diagnosis.REJECTED
        return Diagnosis.UNKNOWN
    if isinstance(exc, ssl.SSLError):
        return Diagnosis.TLS_FAILED
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return Diagnosis.TIMEOUT
    if isinstance(exc, ConnectionRefusedError):
        return Diagnosis.CONNECTION_REFUSED
    if isinstance(exc, ConnectionResetError):
        return Diagnosis.CONNECTION_RESET
    if isinstance(exc, socket.gaierror):
        return Diagnosis.CONNECTION_REFUSED
    return Diagnosis.UNKNOWN


class SmtpProvider(ChannelProvider):
    """
    Plain SMTP with STARTTLS (or implicit SSL when SMTP_SECURE=true).

    A best-effort connection check runs at construction when enabled. Its
    failure is only logged: the server may well be reachable by the time
    the first real message goes out.
    """

    name = "smtp"

    def __init__(self, settings: Optional[SmtpSettings] = None, verify: Optional[bool] = None):
        super().__init__()
        self.settings = settings or SmtpSettings()
        self.from_email = self.settings.from_email
        missing = self.settings.missing()
        self._configured = not missing

        self._log_configuration(
            host=self.settings.host or "NOT SET",
            port=self.settings.port,
            user=self.settings.user or "NOT SET",
            password="set" if self.settings.password else "NOT SET",
            secure=self.settings.secure,
            from_email=self.from_email or "NOT SET",
            missing=missing,
        )

        should_verify = self.settings.verify if verify is None else verify
        if self._configured and should_verify:
            self.verify_connection()

    def _connect(self) -> smtplib.SMTP:
        s = self.settings
        if s.secure:
            server = smtplib.SMTP_SSL(
                s.host, s.port, timeout=s.timeout, context=ssl.create_default_context()
            )
        else:
            server = smtplib.SMTP(s.host, s.port, timeout=s.timeout)
        if s.debug:
            server.set_debuglevel(1)
        try:
            if not s.secure:
                server.starttls(context=ssl.create_default_context())
            server.login(s.user, s.password)
        except Exception:
            server.close()
            raise
        return server

    def verify_connection(self) -> bool:
        try:
            server = self._connect()
            server.quit()
        except (smtplib.SMTPException, OSError) as e:
            self.logger.warning(
                "provider.verify_failed",
                extra={
                    "fields": {
                        "provider": self.name,
                        "host": self.settings.host,
                        "port": self.settings.port,
                        "diagnosis": diagnose(e).value,
                        "error": str(e),
                    }
                },
            )
            return False

        self.logger.info("provider.verified", extra={"fields": {"provider": self.name}})
        return True

    def _build(self, message: EmailMessage, message_id: str) -> MimeMessage:
        mime = MimeMessage()
        mime["From"] = message.from_email
        mime["To"] = message.to
        mime["Subject"] = message.subject
        mime["Message-ID"] = message_id
        mime.set_content(message.text)
        mime.add_alternative(message.html, subtype="html")
        return mime

    def send(self, message: EmailMessage) -> SendResult:
        if not self._configured:
            return self._not_configured()

        self.logger.info(
            "provider.send_start",
            extra={
                "fields": {
                    "provider": self.name,
                    "host": self.settings.host,
                    "port": self.settings.port,
                    "to": message.to,
                    "subject": message.subject,
                }
            },
        )

        domain = message.from_email.rsplit("@", 1)[-1] if "@" in message.from_email else None
        message_id = make_msgid(domain=domain)

        try:
            server = self._connect()
            try:
                refused = server.send_message(self._build(message, message_id))
            finally:
                try:
                    server.quit()
                except smtplib.SMTPException:
                    server.close()
        except (smtplib.SMTPException, OSError) as e:
            return self._fail(
                diagnose(e),
                exc=e,
                log_fields={"smtp_code": getattr(e, "smtp_code", None)},
            )

        if refused:
            return self._fail(Diagnosis.INVALID_RECIPIENT, log_fields={"refused": list(refused)})

        return self._ok(message_id)

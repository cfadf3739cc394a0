from typing import Dict, List, Optional

from providers.base import ChannelProvider, EmailMessage, SendResult
from providers.resend import ResendProvider
from providers.sendgrid import SendGridProvider
from providers.smtp import SmtpProvider
from utils.config import DEFAULT_FALLBACK_PROVIDER, DEFAULT_PRIMARY_PROVIDER, Settings
from utils.logger import get_logger

logger = get_logger("dispatcher")

ALL_PROVIDERS_FAILED = "All email providers failed or are not configured"

# Order used when no primary-specific sender address is available
FROM_EMAIL_ORDER = ("resend", "sendgrid", "smtp")


class EmailDispatcher:
    """
    Sends an email through the primary provider, falling back to the
    secondary one when the primary is unconfigured or fails.

    At most two attempts are made per message, sequentially. Unconfigured
    providers are skipped without calling their send().
    """

    def __init__(
        self,
        providers: Dict[str, ChannelProvider],
        primary: Optional[str] = DEFAULT_PRIMARY_PROVIDER,
        fallback: Optional[str] = DEFAULT_FALLBACK_PROVIDER,
    ):
        self.providers = dict(providers)
        self.primary = primary or None
        self.fallback = fallback or None

        for role, name in (("primary", self.primary), ("fallback", self.fallback)):
            if name and name not in self.providers:
                logger.warning(
                    "dispatcher.unknown_provider",
                    extra={"fields": {"role": role, "provider": name, "known": list(self.providers)}},
                )

        logger.info(
            "dispatcher.configured",
            extra={
                "fields": {
                    "primary": self.primary,
                    "fallback": self.fallback,
                    "providers": {name: p.is_configured() for name, p in self.providers.items()},
                }
            },
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailDispatcher":
        providers: Dict[str, ChannelProvider] = {
            "sendgrid": SendGridProvider(
                api_key=settings.sendgrid.api_key,
                from_email=settings.sendgrid.from_email,
                timeout=settings.http_timeout,
            ),
            "resend": ResendProvider(
                api_key=settings.resend.api_key,
                from_email=settings.resend.from_email,
                timeout=settings.http_timeout,
            ),
            "smtp": SmtpProvider(settings.smtp),
        }
        return cls(
            providers,
            primary=settings.email_provider,
            fallback=settings.email_fallback_provider,
        )

    def _attempt(self, role: str, name: Optional[str], message: EmailMessage) -> Optional[SendResult]:
        provider = self.providers.get(name) if name else None
        if provider is None or not provider.is_configured():
            logger.warning(
                "dispatcher.provider_skipped",
                extra={"fields": {"role": role, "provider": name, "reason": "not_configured"}},
            )
            return None

        logger.info("dispatcher.attempt", extra={"fields": {"role": role, "provider": name}})
        result = provider.send(message)

        if not result.success:
            logger.warning(
                "dispatcher.provider_failed",
                extra={
                    "fields": {
                        "role": role,
                        "provider": name,
                        "diagnosis": result.diagnosis.value if result.diagnosis else None,
                        "error": result.error,
                    }
                },
            )
        return result

    def send(self, message: EmailMessage) -> SendResult:
        if self.primary:
            result = self._attempt("primary", self.primary, message)
            if result is not None and result.success:
                return result

        if self.fallback and self.fallback != self.primary:
            result = self._attempt("fallback", self.fallback, message)
            if result is not None and result.success:
                return result

        logger.error(
            "dispatcher.all_failed",
            extra={"fields": {"primary": self.primary, "fallback": self.fallback, "to": message.to}},
        )
        return SendResult(success=False, error=ALL_PROVIDERS_FAILED)

    def get_configured_providers(self) -> List[str]:
        return [name for name, provider in self.providers.items() if provider.is_configured()]

    def get_default_from_email(self) -> str:
        primary = self.providers.get(self.primary) if self.primary else None
        from_email = getattr(primary, "from_email", "") if primary else ""

        if not from_email:
            for name in FROM_EMAIL_ORDER:
                from_email = getattr(self.providers.get(name), "from_email", "") or ""
                if from_email:
                    break

        logger.debug(
            "dispatcher.default_from_email",
            extra={"fields": {"from_email": from_email, "primary": self.primary}},
        )
        return from_email

"""
Process-scoped services.

Everything a handler needs is built once per Lambda container, in a fixed
order (settings, user store, token service, email dispatcher, SMS provider),
and reused by every invocation that container serves.
"""

import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from providers.dispatcher import EmailDispatcher
from utils.access_gate import AccessGate
from utils.config import Settings
from utils.errors import ConfigurationError
from utils.logger import get_logger
from utils.tokens import TokenService
from utils.twilio_client import TwilioSmsProvider
from utils.user_store import UserStore, get_users_table, reset_users_table

logger = get_logger("context")


@dataclass
class Services:
    settings: Settings
    tokens: TokenService
    email: EmailDispatcher
    sms: TwilioSmsProvider
    users: Optional[UserStore] = None

    @property
    def access_gate(self) -> AccessGate:
        if self.users is None:
            raise ConfigurationError("Missing required environment variables: USERS_TABLE")
        return AccessGate(self.users, self.tokens)


def build_services(settings: Settings) -> Services:
    settings.require("jwt_secret")

    users = None
    if settings.users_table:
        table = get_users_table(
            settings.users_table,
            region=settings.aws_region,
            endpoint_url=settings.dynamodb_endpoint_url,
        )
        users = UserStore(table, email_index=settings.users_email_index)
    else:
        logger.warning("context.users_table_missing")

    services = Services(
        settings=settings,
        users=users,
        tokens=TokenService(settings.jwt_secret, timedelta(days=settings.jwt_expires_days)),
        email=EmailDispatcher.from_settings(settings),
        sms=TwilioSmsProvider(settings.twilio),
    )
    logger.info(
        "context.ready",
        extra={
            "fields": {
                "email_providers": services.email.get_configured_providers(),
                "sms_configured": services.sms.is_configured(),
                "users_table": settings.users_table or None,
            }
        },
    )
    return services


_services: Optional[Services] = None
_services_lock = threading.Lock()


def get_services() -> Services:
    """
    Return this container's Services, building them on first use.
    A failed build is not cached; the next invocation tries again.
    """
    global _services

    if _services is not None:
        return _services

    with _services_lock:
        if _services is None:
            _services = build_services(Settings.from_env())
        return _services


def reset_services() -> None:
    global _services
    with _services_lock:
        _services = None
    reset_users_table()

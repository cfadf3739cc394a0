"""
Channel providers
=================

One module per third-party email transport plus the dispatcher that picks
between them:

- base.py        → ChannelProvider capability, SendResult, Diagnosis
- sendgrid.py    → SendGrid HTTP API
- resend.py      → Resend HTTP API
- smtp.py        → SMTP (STARTTLS / SSL)
- dispatcher.py  → primary/fallback routing for email

The SMS transport (Twilio) lives in utils/twilio_client.py.
"""

from providers.base import ChannelProvider, Diagnosis, EmailMessage, SendResult, SmsMessage
from providers.dispatcher import ALL_PROVIDERS_FAILED, EmailDispatcher

__all__ = [
    "ALL_PROVIDERS_FAILED",
    "ChannelProvider",
    "Diagnosis",
    "EmailDispatcher",
    "EmailMessage",
    "SendResult",
    "SmsMessage",
]

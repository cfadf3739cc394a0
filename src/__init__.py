"""
Partner Messaging API
=====================

Lambda code root for a small authenticated messaging gateway: partner-scoped
login that issues a bearer token, plus email and SMS send endpoints.

Modules under this package:
- login.py       → POST /v1/auth/login (partner or API-key mode)
- send_email.py  → POST /v1/messaging/send-email (primary/fallback providers)
- send_sms.py    → POST /v1/messaging/send-sms (Twilio)
- health.py      → GET /health, GET /version
- providers/     → email providers (Resend, SendGrid, SMTP) and the dispatcher
- utils/         → logging, config, secrets, tokens, user store, Twilio

Environment variables expected:
  • JWT_SECRET                 - Token signing secret (required)
  • USERS_TABLE                - DynamoDB table holding users and partners
  • APP_SECRET_NAME            - Secrets Manager secret overlaid on the env (optional)
  • EMAIL_PROVIDER             - Primary email provider (default: resend)
  • EMAIL_FALLBACK_PROVIDER    - Fallback email provider (default: sendgrid)
  • LOG_LEVEL                  - Log verbosity (default: INFO)

Handlers are stateless between invocations apart from the per-container
service context in utils/context.py.
"""

__version__ = "1.0.0"

__all__ = ["__version__"]

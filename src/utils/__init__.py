"""
Shared helpers for the messaging Lambdas.

- logger.py          → structured JSON logging, request-scoped logger
- errors.py          → error taxonomy mapped to HTTP statuses
- responses.py       → API Gateway body parsing and response envelopes
- config.py          → Settings built from env + Secrets Manager
- secrets.py         → AWS Secrets Manager integration
- tokens.py          → JWT issue/validate, bearer header checks
- user_store.py      → DynamoDB-backed user and partner lookups
- access_gate.py     → login flows (partner mode, API-key mode)
- twilio_client.py   → Twilio SMS provider and error-code mapping
- context.py         → per-container service context

Nothing is imported here so each handler only pays for what it uses.
"""

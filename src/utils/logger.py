import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from utils.responses import get_header


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Attributes every LogRecord carries; anything else came in through `extra=`.
_RESERVED_ATTRS = set(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime", "_configured"}


class JsonFormatter(logging.Formatter):
    """
    Simple JSON formatter for Lambda logs.
    Produces one JSON object per log line. Easy to parse in CloudWatch / tools.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S,%f%z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS or key.startswith("_"):
                continue
            payload[key] = value

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def get_logger(name: str = "app") -> logging.Logger:
    """
    Returns a singleton JSON-logging logger for the given name.
    Safe to call many times; it will only configure the logger once.
    """
    logger = logging.getLogger(name)

    # Avoid reconfiguring handlers on repeated calls
    if getattr(logger, "_configured", False):
        return logger

    level = getattr(logging, LOG_LEVEL, logging.INFO)
    logger.setLevel(level)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)

    # Do not propagate to the root logger; we emit JSON ourselves.
    logger.propagate = False

    logger._configured = True  # type: ignore[attr-defined]

    return logger


class RequestLogger(logging.LoggerAdapter):
    """
    Request-scoped logger. Every line carries the request context
    (requestId, method, path and, once authenticated, the user).
    """

    def __init__(self, logger: logging.Logger, context: Optional[Dict[str, Any]] = None):
        super().__init__(logger, dict(context or {}))
        self._started = time.monotonic()

    def process(self, msg, kwargs):
        extra = kwargs.get("extra") or {}
        kwargs["extra"] = {"context": self.extra, **extra}
        return msg, kwargs

    @property
    def request_id(self) -> Optional[str]:
        return self.extra.get("requestId")

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._started) * 1000)

    def set_user(self, user_id: str, email: str) -> None:
        self.extra["userId"] = user_id
        self.extra["userEmail"] = email

    def request_start(self, **fields: Any) -> None:
        self.info("request.start", extra={"fields": fields})

    def request_end(self, status_code: int, **fields: Any) -> None:
        self.info(
            "request.end",
            extra={"fields": {"statusCode": status_code, "durationMs": self.elapsed_ms(), **fields}},
        )

    def auth_success(self, user_id: str, email: str) -> None:
        self.set_user(user_id, email)
        self.info("auth.success", extra={"fields": {"userId": user_id, "email": email}})

    def auth_failure(self, reason: str, **fields: Any) -> None:
        self.warning("auth.failure", extra={"fields": {"reason": reason, **fields}})

    def validation_error(self, field: str, reason: str, **fields: Any) -> None:
        self.warning(
            "request.validation_error",
            extra={"fields": {"field": field, "reason": reason, **fields}},
        )


def request_logger(name: str, event: dict, context: Any = None) -> RequestLogger:
    """
    Build a RequestLogger from an API Gateway (HTTP API v2) event.

    The request id is taken from an inbound `x-request-id` header when the
    caller supplied one, otherwise from the Lambda request id.
    """
    headers = event.get("headers") or {}
    http = (event.get("requestContext") or {}).get("http") or {}

    request_id = (
        get_header(headers, "x-request-id")
        or getattr(context, "aws_request_id", None)
        or f"req_{int(time.time() * 1000)}"
    )

    return RequestLogger(
        get_logger(name),
        {
            "requestId": request_id,
            "method": http.get("method", "POST"),
            "path": event.get("rawPath") or http.get("path"),
            "ip": http.get("sourceIp") or get_header(headers, "x-forwarded-for") or "unknown",
            "userAgent": http.get("userAgent") or get_header(headers, "user-agent") or "unknown",
        },
    )


# Convenience helper for “fire-and-forget” logging
_base_logger = get_logger("messaging")


def log(message: str, **fields: Any) -> None:
    """
    Convenience function for quick logs without manually grabbing a logger.
    Example:
        log("health.check", path="/health", method="GET")
    """
    if fields:
        _base_logger.info(message, extra={"fields": fields})
    else:
        _base_logger.info(message)

"""
Error taxonomy for the messaging service.

Every error a handler may answer with is a ServiceError carrying the HTTP
status it maps to and a message that is safe to return to the caller.
Diagnostic detail belongs in the logs, never in `message`.
"""

from typing import Any, Dict, Optional


class ServiceError(Exception):
    status_code = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Any = None,
        extra: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        self.extra = extra or {}


class ValidationError(ServiceError):
    """Client input must be fixed (400)."""

    status_code = 400


class AuthError(ServiceError):
    """Missing/invalid token or bad credentials (401)."""

    status_code = 401


class InvalidPartnerError(AuthError):
    def __init__(self, message: str = "Invalid partner"):
        super().__init__(message)


class InvalidCredentialsError(AuthError):
    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message)


class InvalidApiKeyError(AuthError):
    def __init__(self, message: str = "Invalid API key"):
        super().__init__(message)


class AuthorizationError(ServiceError):
    """Authenticated but not allowed (403)."""

    status_code = 403


class AccessNotApprovedError(AuthorizationError):
    def __init__(self, status: str):
        super().__init__(
            "API access not approved. Please request API access first.",
            extra={"apiAccessStatus": status},
        )
        self.api_access_status = status


class ConfigurationError(ServiceError):
    """A required provider or setting is missing; an operator problem (500)."""

    status_code = 500


class UpstreamError(ServiceError):
    """A third-party transport failed after classification."""

    status_code = 500


class InternalError(ServiceError):
    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message)

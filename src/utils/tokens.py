from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

import jwt

from utils.logger import get_logger
from utils.responses import get_header

logger = get_logger("tokens")

ALGORITHM = "HS256"
TOKEN_EXPIRE_DAYS = 7
BEARER_PREFIX = "Bearer "


class TokenFailure(str, Enum):
    MISSING_HEADER = "MissingHeader"
    MALFORMED_SCHEME = "MalformedScheme"
    EMPTY_TOKEN = "EmptyToken"
    EXPIRED = "Expired"
    INVALID = "Invalid"
    UNKNOWN = "Unknown"


FAILURE_MESSAGES = {
    TokenFailure.MISSING_HEADER: (
        "Missing authorization token. Please include 'Authorization: Bearer <token>' header."
    ),
    TokenFailure.MALFORMED_SCHEME: "Invalid authorization format. Use 'Authorization: Bearer <token>'.",
    TokenFailure.EMPTY_TOKEN: "Authorization token is empty.",
    TokenFailure.EXPIRED: "Token has expired. Please login again.",
    TokenFailure.INVALID: "Invalid token. Please login again.",
    TokenFailure.UNKNOWN: "Authentication failed. Please login again.",
}


@dataclass(frozen=True)
class TokenClaims:
    user_id: str
    email: str
    partner_id: Optional[str]
    role: str
    plan: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "email": self.email,
            "partnerId": self.partner_id,
            "role": self.role,
            "plan": self.plan,
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TokenClaims":
        # KeyError here means a signed token with the wrong shape
        return cls(
            user_id=payload["userId"],
            email=payload["email"],
            partner_id=payload.get("partnerId"),
            role=payload["role"],
            plan=payload["plan"],
        )


@dataclass(frozen=True)
class TokenValidation:
    valid: bool
    claims: Optional[TokenClaims] = None
    reason: Optional[TokenFailure] = None

    @property
    def message(self) -> Optional[str]:
        return FAILURE_MESSAGES.get(self.reason) if self.reason else None

    @classmethod
    def failed(cls, reason: TokenFailure) -> "TokenValidation":
        return cls(valid=False, reason=reason)


class TokenService:
    """
    Issues and validates self-contained session tokens (HS256 JWT).
    There is no server-side session state: a token is valid iff its
    signature checks out and it has not expired.
    """

    def __init__(self, secret: str, expires_in: Optional[timedelta] = None):
        if not secret:
            raise ValueError("A token-signing secret is required")
        self._secret = secret
        self.expires_in = expires_in or timedelta(days=TOKEN_EXPIRE_DAYS)

    def issue(self, claims: TokenClaims, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            **claims.to_payload(),
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self.expires_in).timestamp()),
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def decode(self, token: str) -> TokenValidation:
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp"]},
            )
            return TokenValidation(valid=True, claims=TokenClaims.from_payload(payload))
        except jwt.ExpiredSignatureError:
            return TokenValidation.failed(TokenFailure.EXPIRED)
        except (jwt.InvalidTokenError, KeyError, TypeError):
            return TokenValidation.failed(TokenFailure.INVALID)
        except Exception:
            logger.exception("tokens.verify_error")
            return TokenValidation.failed(TokenFailure.UNKNOWN)

    def validate_header(self, header_value: Optional[str]) -> TokenValidation:
        """
        Validate a raw Authorization header value ("Bearer <token>").
        """
        if not header_value:
            return TokenValidation.failed(TokenFailure.MISSING_HEADER)

        if not header_value.startswith(BEARER_PREFIX):
            return TokenValidation.failed(TokenFailure.MALFORMED_SCHEME)

        token = header_value[len(BEARER_PREFIX):].strip()
        if not token:
            return TokenValidation.failed(TokenFailure.EMPTY_TOKEN)

        logger.debug("tokens.validate", extra={"fields": {"tokenPrefix": token[:20] + "..."}})
        return self.decode(token)


def authenticate_request(event: dict, tokens: TokenService, log) -> TokenValidation:
    """
    Validate the bearer token of an API Gateway event and record the outcome
    on the request logger.
    """
    validation = tokens.validate_header(get_header(event.get("headers"), "authorization"))
    if validation.valid:
        log.auth_success(validation.claims.user_id, validation.claims.email)
    else:
        log.auth_failure(validation.reason.value)
    return validation

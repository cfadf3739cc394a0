"""
Credential & access gate for the login endpoint.

Two login policies exist and are exposed as separate operations:

- login_with_partner: the caller names the partner they belong to; the user
  is looked up within that partner.
- login_with_api_key: the caller presents the API key issued on approval;
  the partner, if any, is resolved from the user record.

Both require the user's API access to be approved before a token is issued.
"""

import hmac
from dataclasses import dataclass
from typing import Any, Dict, Optional

from utils.errors import (
    AccessNotApprovedError,
    InvalidApiKeyError,
    InvalidCredentialsError,
    InvalidPartnerError,
)
from utils.logger import get_logger
from utils.tokens import TokenClaims, TokenService
from utils.user_store import UserRecord, UserStore

logger = get_logger("access_gate")


@dataclass(frozen=True)
class LoginResult:
    token: str
    user: UserRecord
    partner: Optional[UserRecord] = None

    def user_summary(self) -> Dict[str, Any]:
        summary = {
            "id": self.user.id,
            "name": self.user.name,
            "email": self.user.email,
            "plan": self.user.plan,
            "role": self.user.role,
        }
        if self.partner is not None:
            summary["partner"] = self.partner.summary()
        return summary


class AccessGate:
    def __init__(self, store: UserStore, tokens: TokenService):
        self.store = store
        self.tokens = tokens

    def login_with_partner(self, username: str, password: str, partner_email: str) -> LoginResult:
        partner = self.store.find_partner_by_email(partner_email.lower())
        if partner is None:
            logger.warning("login.invalid_partner", extra={"fields": {"partner": partner_email}})
            raise InvalidPartnerError()

        user = self.store.find_user_by_email(username.lower(), partner_id=partner.id)
        if user is None:
            logger.warning(
                "login.user_not_in_partner",
                extra={"fields": {"username": username, "partner_id": partner.id}},
            )
            raise InvalidCredentialsError("Invalid credentials or you don't belong to this partner")

        self._check_password(user, password)
        self._check_approved(user)

        return self._issue(user, partner, partner_id=partner.id)

    def login_with_api_key(self, username: str, password: str, api_key: str) -> LoginResult:
        user = self.store.find_user_by_email(username.lower())
        if user is None:
            logger.warning("login.user_not_found", extra={"fields": {"username": username}})
            raise InvalidCredentialsError()

        self._check_password(user, password)
        self._check_approved(user)

        stored_key = user.api_access.api_key
        if not stored_key or not hmac.compare_digest(stored_key.encode("utf-8"), api_key.encode("utf-8")):
            logger.warning("login.invalid_api_key", extra={"fields": {"user_id": user.id}})
            raise InvalidApiKeyError()

        partner = None
        if user.partner_id:
            partner = self.store.get_user(user.partner_id)
            if partner is None:
                logger.warning(
                    "login.partner_missing",
                    extra={"fields": {"user_id": user.id, "partner_id": user.partner_id}},
                )

        return self._issue(user, partner, partner_id=user.partner_id)

    def _check_password(self, user: UserRecord, password: str) -> None:
        if not user.check_password(password):
            logger.warning("login.bad_password", extra={"fields": {"user_id": user.id}})
            raise InvalidCredentialsError()

    def _check_approved(self, user: UserRecord) -> None:
        if not user.api_access.approved:
            logger.warning(
                "login.access_not_approved",
                extra={"fields": {"user_id": user.id, "status": user.api_access.status}},
            )
            raise AccessNotApprovedError(user.api_access.status)

    def _issue(self, user: UserRecord, partner: Optional[UserRecord], partner_id: Optional[str]) -> LoginResult:
        claims = TokenClaims(
            user_id=user.id,
            email=user.email,
            partner_id=partner_id,
            role=user.role,
            plan=user.plan,
        )
        token = self.tokens.issue(claims)
        logger.info(
            "login.token_issued",
            extra={"fields": {"user_id": user.id, "partner_id": partner_id, "role": user.role}},
        )
        return LoginResult(token=token, user=user, partner=partner)

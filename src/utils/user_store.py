"""
Read-only access to the users table.

Users live in a DynamoDB table keyed by `id`, with a global secondary index
on `email`. Emails are stored lowercase, so lookups lowercase their input.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import bcrypt
import boto3
from boto3.dynamodb.conditions import Key

from utils.logger import get_logger

logger = get_logger("user_store")

ROLES = ("admin", "partner", "user")
PLANS = ("demo", "starter", "professional", "enterprise")
ACCESS_STATUSES = ("none", "pending", "approved", "rejected")


def _parse_dt(value: Any) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("user_store.bad_timestamp", extra={"fields": {"value": str(value)}})
        return None


@dataclass
class ApiAccess:
    status: str = "none"
    requested_at: Optional[datetime] = None
    approved_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    api_key: Optional[str] = None
    rejection_reason: Optional[str] = None

    @property
    def approved(self) -> bool:
        return self.status == "approved"

    @classmethod
    def from_item(cls, item: Optional[Dict[str, Any]]) -> "ApiAccess":
        item = item or {}
        status = item.get("status") or "none"
        if status not in ACCESS_STATUSES:
            logger.warning("user_store.unknown_access_status", extra={"fields": {"status": status}})
        return cls(
            status=status,
            requested_at=_parse_dt(item.get("requestedAt")),
            approved_at=_parse_dt(item.get("approvedAt")),
            approved_by=item.get("approvedBy"),
            api_key=item.get("apiKey"),
            rejection_reason=item.get("rejectionReason"),
        )


@dataclass
class UserRecord:
    id: str
    name: str
    email: str
    password_hash: str = field(repr=False, default="")
    role: str = "user"
    plan: str = "demo"
    partner_id: Optional[str] = None
    api_access: ApiAccess = field(default_factory=ApiAccess)

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> "UserRecord":
        role = item.get("role") or "user"
        plan = item.get("plan") or "demo"
        if role not in ROLES or plan not in PLANS:
            logger.warning(
                "user_store.unknown_role_or_plan",
                extra={"fields": {"id": item.get("id"), "role": role, "plan": plan}},
            )
        return cls(
            id=str(item["id"]),
            name=item.get("name", ""),
            email=(item.get("email") or "").lower(),
            password_hash=item.get("password_hash") or item.get("password") or "",
            role=role,
            plan=plan,
            partner_id=item.get("partner_id") or item.get("partnerId"),
            api_access=ApiAccess.from_item(item.get("api_access") or item.get("apiAccess")),
        )

    def check_password(self, candidate: str) -> bool:
        if not self.password_hash or candidate is None:
            return False
        try:
            return bcrypt.checkpw(candidate.encode("utf-8"), self.password_hash.encode("utf-8"))
        except (ValueError, TypeError):
            # Malformed stored hash
            return False

    def summary(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "email": self.email}


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


# Reuse the table handle across invocations
_table = None
_table_lock = threading.Lock()


def get_users_table(table_name: str, region: Optional[str] = None, endpoint_url: Optional[str] = None):
    """
    Return the memoized DynamoDB Table for this container, creating it on
    first use. Concurrent first callers wait on the lock and share one handle.
    """
    global _table

    if _table is not None:
        return _table

    with _table_lock:
        if _table is None:
            logger.info(
                "user_store.connect",
                extra={"fields": {"table": table_name, "region": region, "endpoint": endpoint_url}},
            )
            resource = boto3.resource("dynamodb", region_name=region, endpoint_url=endpoint_url)
            _table = resource.Table(table_name)
        return _table


def reset_users_table() -> None:
    global _table
    with _table_lock:
        _table = None


class UserStore:
    """
    Lookup-by-email / lookup-by-id over the users table.
    Store errors (botocore ClientError and friends) propagate to the caller.
    """

    def __init__(self, table, email_index: str = "email-index"):
        self.table = table
        self.email_index = email_index

    def _query_email(self, email: str) -> List[Dict[str, Any]]:
        resp = self.table.query(
            IndexName=self.email_index,
            KeyConditionExpression=Key("email").eq(email.strip().lower()),
        )
        return resp.get("Items", [])

    def find_user_by_email(self, email: str, partner_id: Optional[str] = None) -> Optional[UserRecord]:
        """
        Find a user by email. When `partner_id` is given the user must belong
        to that partner.
        """
        if not email:
            return None

        for item in self._query_email(email):
            user = UserRecord.from_item(item)
            if partner_id is not None and user.partner_id != partner_id:
                continue
            return user

        logger.debug(
            "user_store.user_not_found",
            extra={"fields": {"email": email, "partner_id": partner_id}},
        )
        return None

    def find_partner_by_email(self, email: str) -> Optional[UserRecord]:
        if not email:
            return None

        for item in self._query_email(email):
            user = UserRecord.from_item(item)
            if user.role == "partner":
                return user
        return None

    def get_user(self, user_id: str) -> Optional[UserRecord]:
        if not user_id:
            return None
        resp = self.table.get_item(Key={"id": user_id})
        item = resp.get("Item")
        return UserRecord.from_item(item) if item else None

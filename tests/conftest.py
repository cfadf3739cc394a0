import json
import types
from datetime import timedelta

import pytest

from providers.base import ChannelProvider, Diagnosis
from providers.dispatcher import EmailDispatcher
from utils.config import Settings, TwilioSettings
from utils.context import Services
from utils.logger import RequestLogger, get_logger
from utils.tokens import TokenClaims, TokenService
from utils.twilio_client import TwilioSmsProvider
from utils.user_store import UserStore, hash_password

JWT_SECRET = "test-signing-secret"
PASSWORD = "correct horse battery staple"
API_KEY = "ak_live_0123456789abcdef"


# ---------------------------------------------------------------------------
# DynamoDB stand-in
# ---------------------------------------------------------------------------

class StubUsersTable:
    """
    Mimics the two Table calls the user store makes: query on the email
    index and get_item by id.
    """

    def __init__(self, items=None):
        self.items = list(items or [])
        self.queries = []

    def query(self, IndexName, KeyConditionExpression):
        values = KeyConditionExpression.get_expression()["values"]
        email = values[1]
        self.queries.append({"index": IndexName, "email": email})
        return {"Items": [i for i in self.items if i.get("email") == email]}

    def get_item(self, Key):
        for item in self.items:
            if item["id"] == Key["id"]:
                return {"Item": item}
        return {}


def make_user_item(
    user_id,
    email,
    role="user",
    plan="starter",
    partner_id=None,
    status="approved",
    api_key=API_KEY,
    password=PASSWORD,
    name=None,
):
    item = {
        "id": user_id,
        "name": name or user_id.title(),
        "email": email,
        "password": hash_password(password),
        "role": role,
        "plan": plan,
        "apiAccess": {"status": status},
    }
    if partner_id:
        item["partnerId"] = partner_id
    if status == "approved":
        item["apiAccess"]["apiKey"] = api_key
        item["apiAccess"]["approvedAt"] = "2024-03-01T10:00:00Z"
        item["apiAccess"]["approvedBy"] = "admin-1"
    return item


@pytest.fixture(scope="session")
def user_items():
    # bcrypt is slow; hash once per session
    return [
        make_user_item("partner-1", "acme@example.com", role="partner", plan="enterprise", name="Acme"),
        make_user_item("user-1", "alice@example.com", partner_id="partner-1"),
        make_user_item("user-2", "bob@example.com", partner_id="partner-1", status="pending"),
        make_user_item("user-3", "carol@example.com", status="rejected"),
        make_user_item("user-4", "dave@example.com", status="none"),
        make_user_item("user-5", "erin@example.com", partner_id="partner-gone"),
        make_user_item("user-6", "frank@example.com"),
    ]


@pytest.fixture
def users_table(user_items):
    return StubUsersTable(user_items)


@pytest.fixture
def user_store(users_table):
    return UserStore(users_table)


@pytest.fixture
def tokens():
    return TokenService(JWT_SECRET, timedelta(days=7))


# ---------------------------------------------------------------------------
# Provider stand-ins
# ---------------------------------------------------------------------------

class StubEmailProvider(ChannelProvider):
    def __init__(self, name, configured=True, succeed=True, from_email=""):
        self.name = name
        super().__init__()
        self._configured = configured
        self.succeed = succeed
        self.from_email = from_email
        self.calls = []

    def send(self, message):
        self.calls.append(message)
        if self.succeed:
            return self._ok(f"{self.name}-msg-1")
        return self._fail(Diagnosis.SERVER_ERROR)


class StubTwilioMessages:
    def __init__(self, raises=None, sid="SM0123456789abcdef", status="queued", num_segments="1"):
        self.raises = raises
        self.sent = []
        self.sid = sid
        self.status = status
        self.num_segments = num_segments

    def create(self, **kwargs):
        self.sent.append(kwargs)
        if self.raises is not None:
            raise self.raises
        return types.SimpleNamespace(sid=self.sid, status=self.status, num_segments=self.num_segments)


class StubTwilioClient:
    def __init__(self, **kwargs):
        self.messages = StubTwilioMessages(**kwargs)


TWILIO_SETTINGS = TwilioSettings(
    account_sid="AC0123456789",
    auth_token="tok",
    phone_number="+15550001111",
)


@pytest.fixture
def twilio_client():
    return StubTwilioClient()


@pytest.fixture
def sms_provider(twilio_client):
    return TwilioSmsProvider(TWILIO_SETTINGS, client=twilio_client)


@pytest.fixture
def email_providers():
    return {
        "resend": StubEmailProvider("resend", from_email="noreply@example.com"),
        "sendgrid": StubEmailProvider("sendgrid", from_email="noreply@example.com"),
        "smtp": StubEmailProvider("smtp", configured=False),
    }


@pytest.fixture
def services(user_store, tokens, email_providers, sms_provider):
    return Services(
        settings=Settings(jwt_secret=JWT_SECRET, users_table="users"),
        tokens=tokens,
        email=EmailDispatcher(email_providers, primary="resend", fallback="sendgrid"),
        sms=sms_provider,
        users=user_store,
    )


@pytest.fixture
def request_log():
    return RequestLogger(get_logger("tests"), {"requestId": "req-test"})


# ---------------------------------------------------------------------------
# API Gateway (HTTP API v2) events
# ---------------------------------------------------------------------------

@pytest.fixture
def make_event():
    def _make(body=None, token=None, headers=None, path="/v1/messaging/send-email", method="POST"):
        h = dict(headers or {})
        if token is not None:
            h["authorization"] = f"Bearer {token}"
        return {
            "version": "2.0",
            "rawPath": path,
            "headers": h,
            "requestContext": {"http": {"method": method, "path": path, "sourceIp": "203.0.113.7"}},
            "body": json.dumps(body) if isinstance(body, dict) else body,
            "isBase64Encoded": False,
        }

    return _make


@pytest.fixture
def auth_token(tokens):
    return tokens.issue(
        TokenClaims(
            user_id="user-1",
            email="alice@example.com",
            partner_id="partner-1",
            role="user",
            plan="starter",
        )
    )

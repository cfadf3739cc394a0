import base64
import json

import pytest

import login

from conftest import API_KEY, PASSWORD

PATH = "/v1/auth/login"


def _body(resp):
    return json.loads(resp["body"])


def test_partner_login(services, make_event, request_log):
    event = make_event(
        {"username": "alice@example.com", "password": PASSWORD, "partner": "acme@example.com"},
        path=PATH,
    )

    resp = login.handle(event, services, request_log)

    assert resp["statusCode"] == 200
    body = _body(resp)
    assert body["success"] is True
    assert body["message"] == "Login successful"
    assert body["user"]["partner"]["id"] == "partner-1"
    claims = services.tokens.decode(body["token"]).claims
    assert claims.user_id == "user-1"
    assert claims.partner_id == "partner-1"


def test_api_key_login(services, make_event, request_log):
    event = make_event(
        {"username": "frank@example.com", "password": PASSWORD, "apiKey": API_KEY},
        path=PATH,
    )

    resp = login.handle(event, services, request_log)

    assert resp["statusCode"] == 200
    assert _body(resp)["user"] == {
        "id": "user-6",
        "name": "User-6",
        "email": "frank@example.com",
        "plan": "starter",
        "role": "user",
    }


@pytest.mark.parametrize(
    "payload",
    [
        {"password": PASSWORD, "partner": "acme@example.com"},
        {"username": "alice@example.com", "partner": "acme@example.com"},
        {"username": "alice@example.com", "password": PASSWORD},
    ],
)
def test_missing_fields(services, make_event, request_log, payload):
    resp = login.handle(make_event(payload, path=PATH), services, request_log)

    assert resp["statusCode"] == 400
    assert _body(resp)["error"] == "Please provide username, password, and partner or apiKey"


def test_partner_and_api_key_together_is_ambiguous(services, make_event, request_log):
    payload = {
        "username": "alice@example.com",
        "password": PASSWORD,
        "partner": "acme@example.com",
        "apiKey": API_KEY,
    }

    resp = login.handle(make_event(payload, path=PATH), services, request_log)

    assert resp["statusCode"] == 400
    assert _body(resp)["error"] == "Provide either partner or apiKey, not both"


def test_not_approved_carries_status(services, make_event, request_log):
    payload = {"username": "carol@example.com", "password": PASSWORD, "apiKey": API_KEY}

    resp = login.handle(make_event(payload, path=PATH), services, request_log)

    assert resp["statusCode"] == 403
    assert _body(resp) == {
        "success": False,
        "error": "API access not approved. Please request API access first.",
        "apiAccessStatus": "rejected",
    }


@pytest.mark.parametrize(
    "payload,error",
    [
        ({"username": "alice@example.com", "password": PASSWORD, "partner": "x@example.com"}, "Invalid partner"),
        ({"username": "alice@example.com", "password": "nope", "apiKey": API_KEY}, "Invalid credentials"),
        ({"username": "alice@example.com", "password": PASSWORD, "apiKey": "wrong"}, "Invalid API key"),
    ],
)
def test_unauthorized(services, make_event, request_log, payload, error):
    resp = login.handle(make_event(payload, path=PATH), services, request_log)

    assert resp["statusCode"] == 401
    assert _body(resp)["error"] == error


def test_store_failure_is_internal_error(services, make_event, request_log, monkeypatch):
    def broken_query(**kwargs):
        raise RuntimeError("dynamodb unavailable")

    monkeypatch.setattr(services.users.table, "query", broken_query)
    payload = {"username": "alice@example.com", "password": PASSWORD, "apiKey": API_KEY}

    resp = login.handle(make_event(payload, path=PATH), services, request_log)

    assert resp["statusCode"] == 500
    assert _body(resp)["error"] == "Internal server error"


def test_missing_users_table_is_a_configuration_error(services, make_event, request_log):
    services.users = None
    payload = {"username": "alice@example.com", "password": PASSWORD, "apiKey": API_KEY}

    resp = login.handle(make_event(payload, path=PATH), services, request_log)

    assert resp["statusCode"] == 500
    assert _body(resp)["error"] == "Missing required environment variables: USERS_TABLE"


def test_base64_body_with_invalid_utf8_is_bad_request(services, make_event, request_log):
    event = make_event(base64.b64encode(b"\xff\xfe{").decode("ascii"), path=PATH)
    event["isBase64Encoded"] = True

    resp = login.handle(event, services, request_log)

    assert resp["statusCode"] == 400
    assert _body(resp)["error"] == "Invalid JSON body"

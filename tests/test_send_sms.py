import json

import pytest
from twilio.base.exceptions import TwilioRestException

import send_sms
from utils.config import TwilioSettings
from utils.errors import ValidationError
from utils.twilio_client import TwilioSmsProvider

from conftest import TWILIO_SETTINGS, StubTwilioClient

PATH = "/v1/messaging/send-sms"


def _body(resp):
    return json.loads(resp["body"])


def _payload(**overrides):
    payload = {"businessGroup": "Acme", "to": "+15551234567", "body": "Your code is 1234"}
    payload.update(overrides)
    return payload


def test_send_sms_success(services, make_event, auth_token, request_log, twilio_client):
    resp = send_sms.handle(make_event(_payload(), token=auth_token, path=PATH), services, request_log)

    assert resp["statusCode"] == 200
    body = _body(resp)
    assert body["message"] == "SMS sent successfully"
    assert body["data"]["messageId"] == "SM0123456789abcdef"
    assert body["data"]["status"] == "queued"
    assert body["data"]["segments"] == 1
    assert body["data"]["to"] == "+15551234567"
    assert twilio_client.messages.sent[0]["body"] == "[Acme] Your code is 1234"


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("15551234567", "+15551234567"),
        ("+1 (555) 123-4567", "+15551234567"),
        ("44 20 7946 0958", "+442079460958"),
    ],
)
def test_phone_numbers_are_normalized(raw, expected):
    assert send_sms.normalize_phone(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "+0123456", "1", "+1234567890123456", "555.123.4567"])
def test_bad_phone_numbers_are_rejected(raw):
    with pytest.raises(ValidationError) as exc:
        send_sms.normalize_phone(raw)
    assert exc.value.message == "Invalid phone number format. Use E.164 format (e.g., +1234567890)"


def test_send_sms_normalizes_before_sending(services, make_event, auth_token, request_log, twilio_client):
    event = make_event(_payload(to="1 (555) 123-4567"), token=auth_token, path=PATH)

    resp = send_sms.handle(event, services, request_log)

    assert resp["statusCode"] == 200
    assert twilio_client.messages.sent[0]["to"] == "+15551234567"


def test_send_sms_invalid_phone(services, make_event, auth_token, request_log, twilio_client):
    resp = send_sms.handle(make_event(_payload(to="call me"), token=auth_token, path=PATH), services, request_log)

    assert resp["statusCode"] == 400
    assert twilio_client.messages.sent == []


def test_send_sms_requires_token(services, make_event, request_log, twilio_client):
    resp = send_sms.handle(make_event(_payload(), path=PATH), services, request_log)

    assert resp["statusCode"] == 401
    assert _body(resp) == {
        "success": False,
        "error": "Missing authorization token. Please include 'Authorization: Bearer <token>' header.",
    }
    assert twilio_client.messages.sent == []


def test_send_sms_missing_fields(services, make_event, auth_token, request_log):
    resp = send_sms.handle(make_event({"to": "+15551234567"}, token=auth_token, path=PATH), services, request_log)

    assert resp["statusCode"] == 400
    assert _body(resp)["error"] == "Please provide businessGroup, to, and body"


def test_send_sms_length_boundary(services, make_event, auth_token, request_log, twilio_client):
    prefix_len = len("[Acme] ")

    at_limit = make_event(_payload(body="x" * (1600 - prefix_len)), token=auth_token, path=PATH)
    assert send_sms.handle(at_limit, services, request_log)["statusCode"] == 200

    over = make_event(_payload(body="x" * (1601 - prefix_len)), token=auth_token, path=PATH)
    resp = send_sms.handle(over, services, request_log)

    assert resp["statusCode"] == 400
    assert _body(resp)["error"] == "Message body is too long. Maximum length is 1600 characters."
    assert len(twilio_client.messages.sent) == 1


def test_send_sms_not_configured(services, make_event, auth_token, request_log):
    services.sms = TwilioSmsProvider(TwilioSettings(account_sid="AC1", auth_token="tok"), client=StubTwilioClient())

    resp = send_sms.handle(make_event(_payload(), token=auth_token, path=PATH), services, request_log)

    assert resp["statusCode"] == 500
    assert _body(resp)["error"] == "SMS service is not configured. Please contact administrator."


@pytest.mark.parametrize(
    "code,status,message",
    [
        (21211, 400, "Invalid phone number"),
        (21408, 403, "Permission denied to send SMS to this number"),
        (21610, 400, "Phone number is not reachable or opted out"),
        (21614, 400, "Invalid phone number format"),
        (20500, 500, "Failed to send SMS"),
    ],
)
def test_send_sms_twilio_errors(services, make_event, auth_token, request_log, code, status, message):
    exc = TwilioRestException(400, "https://api.twilio.com/Messages.json", msg="raw", code=code)
    services.sms = TwilioSmsProvider(TWILIO_SETTINGS, client=StubTwilioClient(raises=exc))

    resp = send_sms.handle(make_event(_payload(), token=auth_token, path=PATH), services, request_log)

    assert resp["statusCode"] == status
    assert _body(resp) == {"success": False, "error": message, "details": {"code": code}}


def test_lambda_handler_misconfigured(monkeypatch, make_event, auth_token):
    def boom():
        raise RuntimeError("no secret")

    monkeypatch.setattr("send_sms.get_services", boom, raising=True)

    resp = send_sms.lambda_handler(make_event(_payload(), token=auth_token, path=PATH), None)

    assert resp["statusCode"] == 500
    assert _body(resp)["error"] == "Server is misconfigured. Please contact administrator."

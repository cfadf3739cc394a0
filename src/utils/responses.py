import base64
import binascii
import json
from typing import Any, Dict, Optional

from utils.errors import ServiceError, ValidationError


def get_header(headers: Optional[Dict[str, Any]], name: str) -> Optional[str]:
    """
    Case-insensitive header lookup. HTTP API v2 lowercases header names,
    REST APIs and local tests may not.
    """
    name = name.lower()
    for key, value in (headers or {}).items():
        if key.lower() == name:
            return value
    return None


def parse_body(event: dict) -> dict:
    """
    Extract and parse the JSON body from the Lambda event.

    - For API Gateway / HttpApi: event["body"] is a JSON string
      (base64-encoded when isBase64Encoded is set).
    - For direct tests: event["body"] may already be a dict.

    Raises ValidationError when the body is not a JSON object.
    """
    body = event.get("body")

    if isinstance(body, dict):
        return body

    if body is None or body == "":
        raise ValidationError("Invalid JSON body")

    try:
        if event.get("isBase64Encoded"):
            body = base64.b64decode(body, validate=True).decode("utf-8")
        payload = json.loads(body)
    except (binascii.Error, UnicodeDecodeError, TypeError, ValueError):
        raise ValidationError("Invalid JSON body")

    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON body")

    return payload


def json_response(status_code: int, payload: Dict[str, Any], request_id: Optional[str] = None) -> dict:
    headers = {"Content-Type": "application/json"}
    if request_id:
        headers["x-request-id"] = request_id
    return {
        "statusCode": status_code,
        "headers": headers,
        "body": json.dumps(payload, default=str),
    }


def success_response(payload: Dict[str, Any], status_code: int = 200, request_id: Optional[str] = None) -> dict:
    return json_response(status_code, {"success": True, **payload}, request_id)


def error_response(error: ServiceError, request_id: Optional[str] = None) -> dict:
    payload: Dict[str, Any] = {"success": False, "error": error.message}
    if error.details is not None:
        payload["details"] = error.details
    payload.update(error.extra)
    return json_response(error.status_code, payload, request_id)

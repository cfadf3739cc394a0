import os
import json
from typing import Optional

import boto3

from utils.errors import ConfigurationError
from utils.logger import get_logger

logger = get_logger("secrets")


def _get_secret_name_and_region() -> tuple[Optional[str], str]:
    """
    Resolve the application secret name and AWS region from environment variables.

    APP_SECRET_NAME is optional; without it every setting comes from the
    environment alone. AWS_REGION defaults to us-east-1 inside Lambda if not set.
    """
    secret_name = os.getenv("APP_SECRET_NAME")
    region_name = os.getenv("AWS_REGION", "us-east-1")
    return secret_name, region_name


def get_app_secrets() -> dict:
    """
    Fetch provider credentials and the token-signing secret from AWS Secrets Manager.

    Expects the secret value to be a JSON object keyed by the same names as
    the environment variables it overrides, e.g.:

        {
          "JWT_SECRET": "...",
          "SENDGRID_API_KEY": "...",
          "TWILIO_ACCOUNT_SID": "...",
          "TWILIO_AUTH_TOKEN": "..."
        }

    Returns an empty dict when APP_SECRET_NAME is not set.
    """
    secret_name, region_name = _get_secret_name_and_region()
    if not secret_name:
        return {}

    logger.info(
        "Fetching application secrets from Secrets Manager",
        extra={"secret_name": secret_name, "region": region_name},
    )

    client = boto3.client("secretsmanager", region_name=region_name)

    resp = client.get_secret_value(SecretId=secret_name)
    secret_str = resp.get("SecretString")

    if not secret_str:
        msg = f"Secret '{secret_name}' has no SecretString payload"
        logger.error(msg)
        raise ConfigurationError(msg)

    try:
        data = json.loads(secret_str)
    except json.JSONDecodeError as e:
        logger.error(
            "SecretString is not valid JSON",
            extra={"secret_name": secret_name, "error": str(e)},
        )
        raise ConfigurationError(f"Secret '{secret_name}' is not valid JSON")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Secret '{secret_name}' must be a JSON object")

    # Secrets Manager values are strings; keep them that way for Settings
    return {str(k): str(v) for k, v in data.items() if v is not None}

import os

from utils.logger import log
from utils.responses import success_response


def lambda_handler(event, context):
    http = (event.get("requestContext") or {}).get("http") or {}
    path = event.get("rawPath") or http.get("path") or "/health"
    log("health.check", path=path, method=http.get("method", "GET"))

    if path.rstrip("/").endswith("/version"):
        return success_response({"version": os.getenv("APP_VERSION", "v1")})

    return success_response({"status": "ok"})

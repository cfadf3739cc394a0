from utils.context import get_services
from utils.errors import ConfigurationError, InternalError, ServiceError, ValidationError
from utils.logger import RequestLogger, request_logger
from utils.responses import error_response, parse_body, success_response

MISCONFIGURED = "Server is misconfigured. Please contact administrator."


def handle(event: dict, services, log: RequestLogger) -> dict:
    try:
        payload = parse_body(event)
        username = payload.get("username")
        password = payload.get("password")
        partner = payload.get("partner")
        api_key = payload.get("apiKey")

        if not username or not password or not (partner or api_key):
            log.validation_error(
                "fields",
                "missing_required_fields",
                hasUsername=bool(username),
                hasPassword=bool(password),
                hasPartner=bool(partner),
                hasApiKey=bool(api_key),
            )
            raise ValidationError("Please provide username, password, and partner or apiKey")

        if partner and api_key:
            log.validation_error("partner", "ambiguous_login_mode")
            raise ValidationError("Provide either partner or apiKey, not both")

        gate = services.access_gate
        if partner:
            log.info("login.partner_mode", extra={"fields": {"username": username, "partner": partner}})
            result = gate.login_with_partner(str(username), str(password), str(partner))
        else:
            log.info("login.api_key_mode", extra={"fields": {"username": username}})
            result = gate.login_with_api_key(str(username), str(password), str(api_key))

        log.auth_success(result.user.id, result.user.email)
        log.request_end(200)

        return success_response(
            {
                "message": "Login successful",
                "token": result.token,
                "user": result.user_summary(),
            },
            request_id=log.request_id,
        )

    except ServiceError as e:
        log.request_end(e.status_code, error=e.message)
        return error_response(e, log.request_id)

    except Exception:
        # Store failures land here; never retried
        log.exception("login.unexpected_error")
        log.request_end(500, error="unexpected_error")
        return error_response(InternalError(), log.request_id)


def lambda_handler(event, context):
    log = request_logger("login", event, context)
    log.request_start(endpoint="/v1/auth/login")

    # Misconfiguration is a 500, not a 4xx
    try:
        services = get_services()
    except Exception as e:
        log.error("login.env_error", extra={"fields": {"error": str(e)}}, exc_info=True)
        log.request_end(500, reason="server_misconfigured")
        return error_response(ConfigurationError(MISCONFIGURED), log.request_id)

    return handle(event, services, log)

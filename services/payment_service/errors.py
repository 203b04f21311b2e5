"""
Mercado Pago error translation.

Turns gateway HTTP failures into GatewayError subclasses carrying a
human-readable message, the gateway cause code, the HTTP status our own
callers should see, and whether retrying later can help.
"""
import httpx

from shared.exceptions import StorefrontError

GATEWAY_ERROR_MESSAGES = {
    # Card errors
    "invalid_card_number": "Invalid card number",
    "invalid_expiration_date": "Invalid expiration date",
    "invalid_security_code": "Invalid security code",
    "invalid_issuer": "Invalid card issuer",
    "rejected_insufficient_amount": "Card has insufficient funds",
    "rejected_high_risk": "Payment rejected for security reasons",
    "rejected_duplicated_payment": "Duplicated payment",
    "rejected_call_for_authorize": "Card requires manual authorization",
    "rejected_card_disabled": "Card disabled",
    "rejected_bad_filled_card_number": "Card number badly filled",
    "rejected_bad_filled_date": "Expiration date badly filled",
    "rejected_bad_filled_other": "Card data badly filled",
    "rejected_bad_filled_security_code": "Security code badly filled",
    "rejected_blacklist": "Card is blacklisted",
    "rejected_card_error": "Card error",
    "rejected_max_attempts": "Maximum attempts exceeded",
    # Payer data
    "2067": "Invalid CPF/CNPJ",
    "invalid_identification_number": "Invalid identification number",
    "invalid_identification_type": "Invalid identification type",
    # PIX
    "pix_not_enabled": "PIX is not enabled for this account",
    "pix_invalid_amount": "Invalid amount for PIX",
    # General
    "invalid_parameter": "Invalid parameter",
    "missing_parameter": "Missing required parameter",
    "invalid_request": "Invalid request",
    "not_found": "Resource not found",
}


class GatewayError(StorefrontError):
    """Base class for payment gateway failures."""

    http_status = 502
    retryable = False

    def __init__(self, message: str, code: str | None = None, gateway_status: int | None = None):
        super().__init__(message, details={"code": code, "gateway_status": gateway_status})
        self.code = code
        self.gateway_status = gateway_status


class GatewayUnavailableError(GatewayError):
    """Timeout, connection failure, rate limiting or a 5xx. Safe to retry later."""

    http_status = 503
    retryable = True


class GatewayRequestError(GatewayError):
    """The gateway rejected the request (card declined, invalid payer data...)."""

    http_status = 400


class GatewayCredentialsError(GatewayError):
    """401/403 from the gateway: our credentials are wrong, not the client's request."""

    http_status = 502


def _first_cause(payload) -> dict | None:
    if isinstance(payload, dict):
        causes = payload.get("cause")
        if isinstance(causes, list) and causes and isinstance(causes[0], dict):
            return causes[0]
    return None


def error_from_response(response: httpx.Response) -> GatewayError:
    status = response.status_code
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if status in (401, 403):
        return GatewayCredentialsError(
            "Payment gateway credentials are invalid or expired", code="unauthorized", gateway_status=status
        )

    if status == 429:
        return GatewayUnavailableError(
            "Too many requests to the payment gateway, try again shortly", code="rate_limit", gateway_status=status
        )

    if status >= 500:
        return GatewayUnavailableError(
            "Payment gateway temporarily unavailable", code="server_error", gateway_status=status
        )

    cause = _first_cause(payload)
    if cause is not None:
        code = str(cause.get("code")) if cause.get("code") is not None else None
        message = GATEWAY_ERROR_MESSAGES.get(code) or cause.get("description") or "Payment gateway rejected the request"
        return GatewayRequestError(message, code=code, gateway_status=status)

    message = "Payment gateway rejected the request"
    if isinstance(payload, dict) and payload.get("message"):
        message = str(payload["message"])
    return GatewayRequestError(message, code=None, gateway_status=status)


def error_from_transport(exc: httpx.TransportError) -> GatewayUnavailableError:
    if isinstance(exc, httpx.TimeoutException):
        return GatewayUnavailableError("Payment gateway timed out", code="timeout")
    return GatewayUnavailableError("Could not connect to the payment gateway", code="connection_error")

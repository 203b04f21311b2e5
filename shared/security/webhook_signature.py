"""
Mercado Pago webhook signature verification.

The gateway sends `x-signature: ts=<unix ts>,v1=<hex hmac>` and
`x-request-id`. The signed manifest is
`id:<data.id>;request-id:<x-request-id>;ts:<ts>;`, HMAC-SHA256 keyed with
the webhook secret from the gateway dashboard.
"""
import hashlib
import hmac

import structlog

logger = structlog.get_logger(__name__)


def parse_signature_header(x_signature: str) -> tuple[str, str]:
    """Returns (ts, v1). Missing parts come back as empty strings."""
    ts = ""
    v1 = ""
    for part in x_signature.split(","):
        key, sep, value = part.partition("=")
        if not sep:
            continue
        key = key.strip()
        if key == "ts":
            ts = value.strip()
        elif key == "v1":
            v1 = value.strip()
    return ts, v1


def build_manifest(data_id: str, request_id: str, ts: str) -> str:
    return f"id:{data_id};request-id:{request_id};ts:{ts};"


def sign_manifest(secret: str, manifest: str) -> str:
    return hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_webhook_signature(
    secret: str,
    x_signature: str | None,
    x_request_id: str | None,
    data_id: str | None,
) -> bool:
    if not x_signature or not x_request_id or not data_id:
        logger.warning("webhook_signature_missing_parts")
        return False

    ts, received = parse_signature_header(x_signature)
    if not ts or not received:
        logger.warning("webhook_signature_malformed")
        return False

    expected = sign_manifest(secret, build_manifest(data_id, x_request_id, ts))
    # Use timing-safe comparison to prevent timing attacks
    return hmac.compare_digest(expected, received)

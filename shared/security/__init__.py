from .api_key import resolve_internal_api_key, verify_api_key
from .dependencies import verify_internal_api_key
from .rate_limiter import limiter, PAYMENT_STATUS_RATE_LIMIT
from .webhook_signature import verify_webhook_signature

__all__ = [
    "resolve_internal_api_key",
    "verify_api_key",
    "verify_internal_api_key",
    "limiter",
    "PAYMENT_STATUS_RATE_LIMIT",
    "verify_webhook_signature"
]

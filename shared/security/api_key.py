import secrets
import warnings

INSECURE_DEFAULT_KEY = "insecure-default-change-me"


def resolve_internal_api_key(configured: str) -> str:
    """
    Returns the configured internal key, or an insecure default with a loud
    warning so local development works but production misconfiguration is
    clearly surfaced.
    """
    if configured:
        return configured
    warnings.warn(
        "INTERNAL_API_KEY is not set. Using an insecure default. "
        "Set this env var in production!",
        stacklevel=2,
    )
    return INSECURE_DEFAULT_KEY


def verify_api_key(provided_key: str | None, expected_key: str) -> bool:
    """Verify an API key using constant-time comparison to prevent timing attacks."""
    if not provided_key:
        return False
    return secrets.compare_digest(str(provided_key), str(expected_key))

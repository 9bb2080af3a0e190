"""Security constants for log redaction and error envelopes."""

# Keys redacted from structured logs. Matching is substring based, so
# "x-api-key" and "api_key_hint" are both caught by "api_key"/"key".
SENSITIVE_KEYS: set[str] = {
    # Authentication & Authorization
    "password",
    "secret",
    "token",
    "authorization",
    "api_key",
    "key",
    "jwt",
    "session_id",
    "bearer",
    "cookie",
    # Personal data
    "email",
    "phone",
    "address",
    # Conversation content never leaves the request in logs
    "content",
    "transcript",
    "markdown",
}

# Production error responses only expose these fields
PRODUCTION_ERROR_FIELDS: set[str] = {
    "correlation_id",
    "type",
}

DEVELOPMENT_ERROR_FIELDS: set[str] = PRODUCTION_ERROR_FIELDS | {
    "details",
    "traceback",
    "exception_type",
    "validation_errors",
}


def get_allowed_error_fields(environment: str) -> set[str]:
    """Return the error-envelope fields allowed in ``environment``."""
    if environment == "production":
        return PRODUCTION_ERROR_FIELDS.copy()
    return DEVELOPMENT_ERROR_FIELDS.copy()


def is_sensitive_key(key: str) -> bool:
    """Check whether a log key should be redacted."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in SENSITIVE_KEYS)

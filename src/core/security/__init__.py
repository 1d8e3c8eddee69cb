"""
Security helpers.

Provides redaction of credentials from headers, URLs, diagnostic context
and error messages before they are logged or raised to callers.
"""

from core.security.sanitization import (
    REDACTED,
    SENSITIVE_KEYS,
    redact_headers,
    redact_mapping,
    sanitize_error_message,
    sanitize_url,
)

__all__ = [
    "REDACTED",
    "SENSITIVE_KEYS",
    "redact_headers",
    "redact_mapping",
    "sanitize_url",
    "sanitize_error_message",
]

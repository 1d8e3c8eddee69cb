"""
Redaction of credential-bearing values before they leave the access core.

Covers request headers (service token, Authorization), query parameters in
URLs, and free-form error messages.
"""

import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlparse, urlunparse

REDACTED = "[REDACTED]"

# Header/context keys whose values are credentials (compared lower-cased)
SENSITIVE_KEYS = frozenset(
    {
        "x-kumiho-token",
        "authorization",
        "service_token",
        "user_token",
        "access_token",
        "token",
        "password",
        "secret",
        "api_key",
    }
)

# Query parameters that should never be logged
SENSITIVE_PARAMS = {
    "token",
    "access_token",
    "key",
    "api_key",
    "apikey",
    "secret",
    "password",
    "sig",
    "auth",
    "authorization",
}

SENSITIVE_PATTERNS = [
    (re.compile(r"bearer\s+[a-zA-Z0-9\-_.=]+", re.IGNORECASE), f"Bearer {REDACTED}"),
    (re.compile(r'token=[^&\s"\']+', re.IGNORECASE), f"token={REDACTED}"),
    (re.compile(r'password=[^&\s"\']+', re.IGNORECASE), f"password={REDACTED}"),
    (re.compile(r'secret=[^&\s"\']+', re.IGNORECASE), f"secret={REDACTED}"),
    (re.compile(r'api[_-]?key[=:]\s*[^\s"\'&]+', re.IGNORECASE), f"api_key={REDACTED}"),
    (
        re.compile(r'x-kumiho-token["\']?\s*[:=]\s*["\']?[^\s"\',}]+', re.IGNORECASE),
        f"x-kumiho-token: {REDACTED}",
    ),
]

_URL_PATTERN = re.compile(r'https?://[^\s"\'<>]+')


def redact_headers(headers: Mapping[str, Any] | None) -> dict[str, Any]:
    """Return a copy of headers with credential-bearing values replaced."""
    if not headers:
        return {}
    return {
        key: (REDACTED if key.lower() in SENSITIVE_KEYS and value else value)
        for key, value in headers.items()
    }


def redact_mapping(data: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively redact sensitive keys in a diagnostic context dict."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(key, str) and key.lower() in SENSITIVE_KEYS and value:
            result[key] = REDACTED
        elif isinstance(value, Mapping):
            result[key] = redact_mapping(value)
        else:
            result[key] = value
    return result


def sanitize_url(url: str) -> str:
    """
    Remove sensitive query parameters from URL.

    Returns URL with sensitive parameters replaced with [REDACTED].
    """
    if not url:
        return url

    try:
        parsed = urlparse(url)
    except ValueError:
        return url

    if not parsed.query:
        return url

    sanitized_params = []
    for param in parsed.query.split("&"):
        if "=" in param:
            key, _ = param.split("=", 1)
            if key.lower() in SENSITIVE_PARAMS:
                sanitized_params.append(f"{key}={REDACTED}")
                continue
        sanitized_params.append(param)

    return urlunparse(parsed._replace(query="&".join(sanitized_params)))


def sanitize_error_message(msg: str, max_length: int = 500) -> str:
    """
    Remove potentially sensitive data from error messages.

    Applies pattern-based redaction and truncates to max_length.
    """
    if not msg:
        return msg

    for pattern, replacement in SENSITIVE_PATTERNS:
        msg = pattern.sub(replacement, msg)

    for match in _URL_PATTERN.finditer(msg):
        original_url = match.group(0)
        sanitized = sanitize_url(original_url)
        if sanitized != original_url:
            msg = msg.replace(original_url, sanitized)

    if len(msg) > max_length:
        msg = msg[: max_length - 3] + "..."

    return msg


__all__ = [
    "REDACTED",
    "SENSITIVE_KEYS",
    "redact_headers",
    "redact_mapping",
    "sanitize_url",
    "sanitize_error_message",
]

"""
Bearer token helpers.

Tokens handed to the access core may carry a "Bearer " prefix and may or may
not be JWTs. These helpers normalize them and read (never verify) JWT claims
so a tenant id can be derived when none is configured explicitly.

Example:
    >>> token = strip_bearer("Bearer eyJhbGciOi...")
    >>> extract_tenant_id(token)
    'acme'
"""

import base64
import binascii
import json
import re
from typing import Any

_BEARER_RE = re.compile(r"^Bearer\s+(.+)$", re.IGNORECASE | re.DOTALL)

# Claims checked, in order, when deriving a tenant id from a token
TENANT_CLAIMS = (
    "tenant_id",
    "tenantId",
    "tid",
    "tenant",
    "tenant_slug",
    "tenantSlug",
)


def strip_bearer(token: str | None) -> str:
    """Trim a token and drop a case-insensitive "Bearer " prefix."""
    trimmed = (token or "").strip()
    match = _BEARER_RE.match(trimmed)
    if match:
        return match.group(1).strip()
    return trimmed


def is_jwt_shaped(token: str) -> bool:
    """True when the token has three non-empty dot-delimited segments."""
    parts = token.split(".")
    return len(parts) == 3 and all(parts)


def _b64url_decode(segment: str) -> bytes:
    padded = segment + "=" * (-len(segment) % 4)
    return base64.urlsafe_b64decode(padded)


def decode_jwt_payload(token: str) -> dict[str, Any] | None:
    """
    Decode the payload segment of a JWT without verifying it.

    Returns None if the token has no payload segment or the payload is not
    a base64url-encoded JSON object.
    """
    parts = token.split(".")
    if len(parts) < 2:
        return None
    try:
        payload = json.loads(_b64url_decode(parts[1]).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


def extract_tenant_id(token: str) -> str | None:
    """Return the first non-empty string tenant claim of a JWT, if any."""
    payload = decode_jwt_payload(token)
    if not payload:
        return None
    for claim in TENANT_CLAIMS:
        value = payload.get(claim)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


__all__ = [
    "TENANT_CLAIMS",
    "strip_bearer",
    "is_jwt_shaped",
    "decode_jwt_payload",
    "extract_tenant_id",
]

"""
Request signing: the header set attached to every Kumiho API call.

Headers:
    X-Kumiho-Token     service token (never logged)
    x-correlation-id   caller-supplied or a fresh uuid4
    x-client           kumiho-python
    x-request-time     UTC ISO-8601 with millisecond precision
    Authorization      Bearer <user token>, only when a user token is set
    x-tenant-id        explicit tenant, else derived from the token claims
    x-idempotency-key  write methods only, see stable_idempotency_key()
"""

import hashlib
import json
import re
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from kumiho.credentials import Credentials

CLIENT_ID = "kumiho-python"
IDEMPOTENCY_PREFIX = "kumiho"

# (method, path) pairs for which the upstream rejects an idempotency key
IDEMPOTENCY_SUPPRESSED = frozenset(
    {
        ("POST", "/api/v1/projects"),
        ("POST", "/api/v1/spaces"),
    }
)

_UNSAFE_HEADER_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_DASH_RUNS = re.compile(r"-+")


def sanitize_header_token(value: str, max_len: int) -> str:
    """
    Reduce a value to header-safe characters.

    Keeps [A-Za-z0-9._-], replaces everything else with '-', collapses
    runs of '-', trims leading/trailing '-', then truncates to max_len.
    """
    sanitized = _UNSAFE_HEADER_CHARS.sub("-", value)
    sanitized = _DASH_RUNS.sub("-", sanitized).strip("-")
    return sanitized[:max_len]


def _canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def stable_idempotency_key(
    correlation_id: str,
    method: str,
    path: str,
    params: Any = None,
    body: Any = None,
) -> str:
    """
    Derive a deterministic idempotency key.

    Identical (method, path, params, body) under the same correlation id
    always yield the same key, so retries of one logical call collapse
    server side. The raw correlation id is part of the hashed document; the
    readable prefix is truncated and lossy.
    """
    document = {"corr": correlation_id, "method": method, "path": path, "qs": params, "body": body}
    digest = hashlib.sha256(_canonical_json(document).encode("utf-8")).hexdigest()[:24]
    corr = sanitize_header_token(correlation_id, 32) or "corr"
    return f"{IDEMPOTENCY_PREFIX}-{corr}-{digest}"


def is_write_method(method: str) -> bool:
    return method.upper() != "GET"


def request_time() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


@dataclass(frozen=True)
class SignedHeaders:
    """Headers for one logical call plus the flags used for diagnostics."""

    headers: dict[str, str] = field(repr=False)
    correlation_id: str
    idempotency_key: str | None = None

    def describe(self, credentials: Credentials) -> dict[str, str]:
        """Which optional headers were set, without any token values."""
        return {
            "tenant_header": "set" if "x-tenant-id" in self.headers else "unset",
            "user_token_header": "set" if "Authorization" in self.headers else "unset",
            "service_token_jwt": "yes" if credentials.service_token_is_jwt else "no",
            "idempotency_header": "set" if self.idempotency_key else "unset",
        }


class RequestSigner:
    """Builds the signed header set for a request or stream connection."""

    def __init__(self, credentials: Credentials):
        self.credentials = credentials

    def _base_headers(self, correlation_id: str) -> dict[str, str]:
        headers = {
            "X-Kumiho-Token": self.credentials.service_token,
            "x-correlation-id": correlation_id,
            "x-client": CLIENT_ID,
            "x-request-time": request_time(),
        }
        if self.credentials.user_token:
            headers["Authorization"] = f"Bearer {self.credentials.user_token}"
        if self.credentials.tenant_id:
            headers["x-tenant-id"] = self.credentials.tenant_id
        return headers

    def sign(
        self,
        method: str,
        path: str,
        params: Any = None,
        body: Any = None,
        correlation_id: str | None = None,
        idempotency_key: str | None = None,
    ) -> SignedHeaders:
        method = method.upper()
        correlation_id = correlation_id or str(uuid.uuid4())
        headers = self._base_headers(correlation_id)

        key = None
        if is_write_method(method) and (method, path) not in IDEMPOTENCY_SUPPRESSED:
            key = idempotency_key or stable_idempotency_key(
                correlation_id, method, path, params, body
            )
            headers["x-idempotency-key"] = key

        return SignedHeaders(headers=headers, correlation_id=correlation_id, idempotency_key=key)

    def headers_for_stream(self, correlation_id: str | None = None) -> SignedHeaders:
        correlation_id = correlation_id or str(uuid.uuid4())
        headers = self._base_headers(correlation_id)
        headers["Accept"] = "text/event-stream"
        return SignedHeaders(headers=headers, correlation_id=correlation_id)

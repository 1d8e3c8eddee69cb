"""
Centralized classification of failed request attempts.

A failed attempt is either an HTTP response with a non-2xx status
(HttpFailure) or a transport failure where no response was received
(TransportFailure). classify_failure() is a total function over both and
normalizes the heterogeneous upstream error shapes into a ClassifiedError.

Upstream error body shape:
    {"error": {"code": ..., "message": ..., "retryable": ..., "retry_after_ms": ...},
     "correlation_id": ...}
"""

import asyncio
import errno
import json
import socket
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import aiohttp

from core.types import ErrorCategory

# Native transport codes that indicate a transient network condition
TRANSIENT_NETWORK_CODES = frozenset(
    {
        "ETIMEDOUT",
        "ECONNRESET",
        "EPIPE",
        "ENOTFOUND",
        "EAI_AGAIN",
        "ECONNABORTED",
    }
)

_ERRNO_CODES = {
    errno.ETIMEDOUT: "ETIMEDOUT",
    errno.ECONNRESET: "ECONNRESET",
    errno.EPIPE: "EPIPE",
    errno.ECONNABORTED: "ECONNABORTED",
    errno.ECONNREFUSED: "ECONNREFUSED",
}


@dataclass(frozen=True)
class HttpFailure:
    """An attempt that received an HTTP response with a non-2xx status."""

    status: int
    headers: Mapping[str, Any] = field(default_factory=dict)
    body: Any = None


@dataclass(frozen=True)
class TransportFailure:
    """An attempt that never received an HTTP response."""

    code: str | None
    message: str = ""


AttemptFailure = HttpFailure | TransportFailure


@dataclass(frozen=True)
class ClassifiedError:
    """Normalized view of one failed attempt."""

    http_status: int | None
    upstream_code: str | None
    upstream_message: str | None
    retryable: bool
    retry_after_ms: int | None
    correlation_id: str

    @property
    def category(self) -> ErrorCategory:
        if self.retryable:
            return ErrorCategory.TRANSIENT
        if self.http_status in (401, 403):
            return ErrorCategory.AUTH
        return ErrorCategory.PERMANENT

    def to_dict(self) -> dict[str, Any]:
        return {
            "status_code": self.http_status,
            "code": self.upstream_code,
            "message": self.upstream_message,
            "retryable": self.retryable,
            "retry_after_ms": self.retry_after_ms,
            "correlation_id": self.correlation_id,
        }


def parse_json_object(value: Any) -> dict[str, Any] | None:
    """Return value as a dict if it is one, or a JSON string/bytes encoding one."""
    if isinstance(value, dict):
        return value
    if isinstance(value, (bytes, bytearray)):
        try:
            value = value.decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed.startswith("{"):
        return None
    try:
        parsed = json.loads(trimmed)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def get_header(headers: Mapping[str, Any] | None, name: str) -> Any:
    """Case-insensitive header lookup that works for plain dicts too."""
    if not headers:
        return None
    direct = headers.get(name)
    if direct is not None:
        return direct
    lower = name.lower()
    for key, value in headers.items():
        if key.lower() == lower:
            return value
    return None


def parse_retry_after_ms(value: Any, now: datetime | None = None) -> int | None:
    """
    Parse a Retry-After header value into milliseconds.

    Accepts integer seconds or an HTTP date. Dates in the past yield 0.
    """
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    if not trimmed:
        return None

    if trimmed.isdigit():
        return int(trimmed) * 1000

    try:
        retry_at = parsedate_to_datetime(trimmed)
    except (TypeError, ValueError):
        return None
    if retry_at is None:
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=UTC)

    now = now or datetime.now(UTC)
    delta_ms = int((retry_at - now).total_seconds() * 1000)
    return max(delta_ms, 0)


def _error_object(body: dict[str, Any] | None) -> dict[str, Any] | None:
    if not body:
        return None
    error = body.get("error")
    return error if isinstance(error, dict) else None


def _retry_after_from_error(error: dict[str, Any] | None) -> int | None:
    if not error:
        return None
    value = error.get("retry_after_ms")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return int(value)


def classify_failure(
    failure: AttemptFailure,
    request_correlation_id: str,
    now: datetime | None = None,
) -> ClassifiedError:
    """
    Classify a failed attempt.

    Rules, in priority order:
        1. body carries error.retryable == true -> retryable
        2. status 429 or >= 500 -> retryable
        3. no status and a transient native network code -> retryable
        4. otherwise not retryable
    """
    if isinstance(failure, TransportFailure):
        return ClassifiedError(
            http_status=None,
            upstream_code=None,
            upstream_message=failure.message or None,
            retryable=failure.code in TRANSIENT_NETWORK_CODES,
            retry_after_ms=None,
            correlation_id=request_correlation_id,
        )

    body = parse_json_object(failure.body)
    error = _error_object(body)

    retryable_from_body = bool(error) and error.get("retryable") is True
    retryable_by_status = failure.status == 429 or failure.status >= 500

    retry_after_ms = _retry_after_from_error(error)
    if retry_after_ms is None:
        retry_after_ms = parse_retry_after_ms(
            get_header(failure.headers, "Retry-After"), now=now
        )

    server_correlation_id = None
    if body and isinstance(body.get("correlation_id"), str) and body["correlation_id"]:
        server_correlation_id = body["correlation_id"]
    else:
        header_value = get_header(failure.headers, "x-correlation-id")
        if isinstance(header_value, str) and header_value:
            server_correlation_id = header_value

    code = error.get("code") if error else None
    message = error.get("message") if error else None

    return ClassifiedError(
        http_status=failure.status,
        upstream_code=code if isinstance(code, str) else None,
        upstream_message=str(message) if message is not None else None,
        retryable=retryable_from_body or retryable_by_status,
        retry_after_ms=retry_after_ms,
        correlation_id=server_correlation_id or request_correlation_id,
    )


def _code_for_os_error(error: OSError) -> str | None:
    if isinstance(error, socket.gaierror):
        return "EAI_AGAIN" if error.errno == socket.EAI_AGAIN else "ENOTFOUND"
    if isinstance(error, (TimeoutError, socket.timeout)):
        return "ETIMEDOUT"
    if isinstance(error, ConnectionResetError):
        return "ECONNRESET"
    if isinstance(error, BrokenPipeError):
        return "EPIPE"
    if isinstance(error, ConnectionAbortedError):
        return "ECONNABORTED"
    if error.errno in _ERRNO_CODES:
        return _ERRNO_CODES[error.errno]
    return None


def transport_code_for(exc: BaseException) -> str:
    """
    Map a Python/aiohttp transport exception to a native network error code.

    Unknown exceptions map to their class name, which is never transient.
    """
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, aiohttp.ServerTimeoutError)):
        return "ETIMEDOUT"

    if isinstance(exc, aiohttp.ClientConnectorError):
        code = _code_for_os_error(exc.os_error)
        if code:
            return code

    if isinstance(exc, aiohttp.ServerDisconnectedError):
        return "ECONNABORTED"

    if isinstance(exc, OSError):
        code = _code_for_os_error(exc)
        if code:
            return code

    cause = exc.__cause__
    if isinstance(cause, OSError):
        code = _code_for_os_error(cause)
        if code:
            return code

    return type(exc).__name__


__all__ = [
    "TRANSIENT_NETWORK_CODES",
    "HttpFailure",
    "TransportFailure",
    "AttemptFailure",
    "ClassifiedError",
    "classify_failure",
    "transport_code_for",
    "parse_retry_after_ms",
    "parse_json_object",
    "get_header",
]

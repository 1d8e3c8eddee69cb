"""
Unified exception hierarchy for the Kumiho access core.

Provides typed exceptions with retry classification:

    KumihoError
    ├── ValidationError        malformed input caught before any I/O
    └── RequestError           a classified request failure
        ├── UpstreamError      non-2xx response from the remote service
        ├── TransportError     no HTTP response obtained (DNS, timeout, reset)
        └── RetryBudgetExceeded  synthetic, raised by the executor itself
"""

import uuid
from typing import Any

from core.errors.classifiers import ClassifiedError
from core.security.sanitization import redact_mapping, sanitize_error_message
from core.types import ErrorCategory

RETRY_BUDGET_EXCEEDED_CODE = "client_retry_budget_exceeded"
RETRY_BUDGET_EXCEEDED_STATUS = 408


class KumihoError(Exception):
    """
    Base exception for all access-core errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging (credentials redacted)
        correlation_id: Request correlation id, generated if not supplied
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
        correlation_id: str | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = redact_mapping(context or {})
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)

    @property
    def is_retryable(self) -> bool:
        return self.category == ErrorCategory.TRANSIENT

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {sanitize_error_message(str(self.cause))}")
        parts.append(f"correlation_id={self.correlation_id}")
        return " | ".join(parts)


class ValidationError(KumihoError):
    """Malformed input detected before any network I/O."""

    category = ErrorCategory.PERMANENT


class RequestError(KumihoError):
    """
    A request failure normalized into a ClassifiedError.

    The request context (method, path, base URL, which optional headers
    were set) is attached for diagnostics. Token values never appear in it.
    """

    def __init__(
        self,
        message: str,
        classified: ClassifiedError,
        request_context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        self.classified = classified
        self.request_context = redact_mapping(request_context or {})
        super().__init__(
            message,
            cause=cause,
            context=self.request_context,
            correlation_id=classified.correlation_id,
        )

    @property
    def category(self) -> ErrorCategory:  # type: ignore[override]
        return self.classified.category

    @property
    def is_retryable(self) -> bool:
        return self.classified.retryable

    @property
    def status_code(self) -> int | None:
        return self.classified.http_status

    @property
    def upstream_code(self) -> str | None:
        return self.classified.upstream_code

    @property
    def upstream_message(self) -> str | None:
        return self.classified.upstream_message

    @property
    def retry_after_ms(self) -> int | None:
        return self.classified.retry_after_ms

    @property
    def description(self) -> str:
        """Pipe-delimited diagnostic string (status, message, correlation id, request context)."""
        c = self.classified
        parts = [
            f"status={c.http_status}" if c.http_status else None,
            f"message={c.upstream_message}" if c.upstream_message else None,
            f"correlation_id={c.correlation_id}",
            "retryable=true" if c.retryable else None,
            f"retry_after_ms={c.retry_after_ms}" if c.retry_after_ms else None,
        ]
        parts.extend(f"{key}={value}" for key, value in self.request_context.items())
        return " | ".join(sanitize_error_message(p) for p in parts if p)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            **self.classified.to_dict(),
            "request": dict(self.request_context),
        }

    def __str__(self) -> str:
        return f"{self.message} | {self.description}"


class UpstreamError(RequestError):
    """Classified failure response from the remote service."""


class TransportError(RequestError):
    """No HTTP response was obtained (DNS failure, timeout, connection reset)."""


class RetryBudgetExceeded(RequestError):
    """The wall-clock retry budget for one logical call ran out."""

    def __init__(
        self,
        budget_ms: int,
        correlation_id: str,
        request_context: dict[str, Any] | None = None,
        attempts: int = 0,
    ):
        self.budget_ms = budget_ms
        self.attempts = attempts
        message = f"Retry budget exceeded ({budget_ms}ms)"
        classified = ClassifiedError(
            http_status=RETRY_BUDGET_EXCEEDED_STATUS,
            upstream_code=RETRY_BUDGET_EXCEEDED_CODE,
            upstream_message=message,
            retryable=False,
            retry_after_ms=None,
            correlation_id=correlation_id,
        )
        super().__init__(
            f"Kumiho API error: {RETRY_BUDGET_EXCEEDED_CODE}",
            classified,
            request_context=request_context,
        )


__all__ = [
    "RETRY_BUDGET_EXCEEDED_CODE",
    "RETRY_BUDGET_EXCEEDED_STATUS",
    "KumihoError",
    "ValidationError",
    "RequestError",
    "UpstreamError",
    "TransportError",
    "RetryBudgetExceeded",
]

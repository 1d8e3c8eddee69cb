"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- KumihoError hierarchy for typed exceptions
- classify_failure() normalizing failed attempts into ClassifiedError
"""

from core.errors.classifiers import (
    TRANSIENT_NETWORK_CODES,
    AttemptFailure,
    ClassifiedError,
    HttpFailure,
    TransportFailure,
    classify_failure,
    parse_retry_after_ms,
    transport_code_for,
)
from core.errors.exceptions import (
    RETRY_BUDGET_EXCEEDED_CODE,
    KumihoError,
    RequestError,
    RetryBudgetExceeded,
    TransportError,
    UpstreamError,
    ValidationError,
)
from core.types import ErrorCategory

__all__ = [
    # Enums
    "ErrorCategory",
    # Exceptions
    "KumihoError",
    "ValidationError",
    "RequestError",
    "UpstreamError",
    "TransportError",
    "RetryBudgetExceeded",
    "RETRY_BUDGET_EXCEEDED_CODE",
    # Classification
    "TRANSIENT_NETWORK_CODES",
    "AttemptFailure",
    "HttpFailure",
    "TransportFailure",
    "ClassifiedError",
    "classify_failure",
    "parse_retry_after_ms",
    "transport_code_for",
]

"""
Core types and protocols used across modules.

This module provides base types, enums, and protocol definitions that are
shared across the core library to ensure consistency and type safety.
"""

from enum import Enum
from typing import Protocol


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    Categories:
        TRANSIENT: Temporary failures that should retry with backoff
                   (e.g., network timeouts, 429/503 errors)
        AUTH: Authentication/authorization failures (401/403); not retried,
              the caller has to fix credentials
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., 404, validation errors, exhausted retry budget)
        UNKNOWN: Unclassified errors
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"


class CredentialSource(Protocol):
    """
    Protocol for credential lookups.

    The host environment owns credential storage; the access core only asks
    for the raw fields and normalizes them itself.
    """

    def get_credentials(self) -> dict[str, str | None]:
        """
        Return the raw credential fields.

        Keys: base_url, service_token, tenant_id, user_token. Missing or
        empty values are allowed; validation happens in the resolver.
        """
        ...


__all__ = [
    "ErrorCategory",
    "CredentialSource",
]

"""
Core library: reusable, service-agnostic components.

Modules:
    auth        - Bearer token normalization and JWT claim lookup
    resilience  - Jittered exponential backoff and per-call retry budgets
    logging     - Structured JSON logging with correlation IDs
    errors      - Error classification and exception hierarchy
    security    - Credential redaction for headers, URLs and messages

Design Principles:
    - No dependency on the Kumiho domain package
    - All modules are independently testable
    - Async-first where applicable
"""

from .types import CredentialSource, ErrorCategory

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
    "CredentialSource",
]

"""
Authentication helpers.

Components:
    - strip_bearer: Normalize tokens that arrive with a "Bearer " prefix
    - is_jwt_shaped: Guardrail for tokens that must be JWTs
    - extract_tenant_id: Derive a tenant id from unverified JWT claims
"""

from .tokens import (
    TENANT_CLAIMS,
    decode_jwt_payload,
    extract_tenant_id,
    is_jwt_shaped,
    strip_bearer,
)

__all__ = [
    "TENANT_CLAIMS",
    "strip_bearer",
    "is_jwt_shaped",
    "decode_jwt_payload",
    "extract_tenant_id",
]

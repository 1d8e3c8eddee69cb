"""
Credential resolution.

The host environment supplies raw credential fields through a
CredentialSource; the resolver normalizes them into an immutable
Credentials value. Normalization happens before any network I/O so
malformed credentials fail fast with a ValidationError.
"""

import logging
import os
from dataclasses import dataclass

from core.auth.tokens import extract_tenant_id, is_jwt_shaped, strip_bearer
from core.errors.exceptions import ValidationError
from core.types import CredentialSource

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.kumiho.cloud"


@dataclass(frozen=True)
class Credentials:
    """
    Normalized credentials for one request or stream connection.

    Attributes:
        base_url: API root without trailing slashes
        service_token: Service token, "Bearer " prefix stripped
        tenant_id: Explicit tenant id, or one derived from the service token
        user_token: Optional end-user JWT, "Bearer " prefix stripped
    """

    base_url: str
    service_token: str
    tenant_id: str | None = None
    user_token: str | None = None

    def __repr__(self) -> str:
        return (
            f"Credentials(base_url={self.base_url!r}, service_token=[REDACTED], "
            f"tenant_id={self.tenant_id!r}, "
            f"user_token={'[REDACTED]' if self.user_token else None})"
        )

    @property
    def service_token_is_jwt(self) -> bool:
        return "." in self.service_token


class EnvCredentialSource:
    """Credential source backed by KUMIHO_* environment variables."""

    def __init__(self, prefix: str = "KUMIHO_"):
        self.prefix = prefix

    def get_credentials(self) -> dict[str, str | None]:
        return {
            "base_url": os.getenv(f"{self.prefix}BASE_URL"),
            "service_token": os.getenv(f"{self.prefix}SERVICE_TOKEN"),
            "tenant_id": os.getenv(f"{self.prefix}TENANT_ID"),
            "user_token": os.getenv(f"{self.prefix}USER_TOKEN"),
        }


class StaticCredentialSource:
    """Credential source over fixed values (tests, embedding applications)."""

    def __init__(
        self,
        service_token: str,
        base_url: str | None = None,
        tenant_id: str | None = None,
        user_token: str | None = None,
    ):
        self._fields = {
            "base_url": base_url,
            "service_token": service_token,
            "tenant_id": tenant_id,
            "user_token": user_token,
        }

    def get_credentials(self) -> dict[str, str | None]:
        return dict(self._fields)


def normalize_base_url(value: str | None) -> str:
    trimmed = (value or "").strip().rstrip("/")
    return trimmed or DEFAULT_BASE_URL


class CredentialResolver:
    """
    Resolves Credentials from a CredentialSource.

    Resolution is repeated on every call so rotated credentials are picked
    up without restarting the consumer or client.
    """

    def __init__(self, source: CredentialSource):
        self.source = source

    def resolve(self) -> Credentials:
        """
        Normalize raw credential fields.

        Raises:
            ValidationError: Missing service token, or a user token that
                is not JWT-shaped
        """
        fields = self.source.get_credentials()

        service_token = strip_bearer(fields.get("service_token"))
        if not service_token:
            raise ValidationError("Missing Kumiho service token")

        user_token = strip_bearer(fields.get("user_token")) or None
        if user_token and not is_jwt_shaped(user_token):
            raise ValidationError(
                "User token must be a JWT (three base64url segments separated by dots), "
                "not a user id"
            )

        explicit_tenant = (fields.get("tenant_id") or "").strip()
        tenant_id = explicit_tenant or extract_tenant_id(service_token)

        credentials = Credentials(
            base_url=normalize_base_url(fields.get("base_url")),
            service_token=service_token,
            tenant_id=tenant_id or None,
            user_token=user_token,
        )
        logger.debug(
            "Resolved Kumiho credentials",
            extra={
                "base_url": credentials.base_url,
                "operation": "resolve_credentials",
            },
        )
        return credentials

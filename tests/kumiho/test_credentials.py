"""Tests for credential sources and resolution."""

import base64
import json

import pytest

from core.errors.exceptions import ValidationError
from kumiho.credentials import (
    DEFAULT_BASE_URL,
    CredentialResolver,
    Credentials,
    EnvCredentialSource,
    StaticCredentialSource,
    normalize_base_url,
)

USER_JWT = "eyJhbGciOiJIUzI1NiJ9.eyJzdWIiOiJ1c2VyIn0.c2ln"


def service_jwt(claims: dict) -> str:
    payload = base64.urlsafe_b64encode(json.dumps(claims).encode()).rstrip(b"=").decode()
    return f"eyJhbGciOiJIUzI1NiJ9.{payload}.c2ln"


class TestNormalizeBaseUrl:

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("https://kumiho.example.com/", "https://kumiho.example.com"),
            ("https://kumiho.example.com///", "https://kumiho.example.com"),
            ("  ", DEFAULT_BASE_URL),
            (None, DEFAULT_BASE_URL),
        ],
    )
    def test_normalize(self, value, expected):
        assert normalize_base_url(value) == expected


class TestCredentialResolver:

    def test_minimal(self):
        credentials = CredentialResolver(StaticCredentialSource("svc-token")).resolve()
        assert credentials == Credentials(base_url=DEFAULT_BASE_URL, service_token="svc-token")
        assert credentials.service_token_is_jwt is False

    def test_missing_service_token(self):
        with pytest.raises(ValidationError, match="Missing Kumiho service token"):
            CredentialResolver(StaticCredentialSource("  ")).resolve()

    def test_bearer_prefixes_stripped(self):
        source = StaticCredentialSource("Bearer svc", user_token=f"bearer {USER_JWT}")
        credentials = CredentialResolver(source).resolve()
        assert credentials.service_token == "svc"
        assert credentials.user_token == USER_JWT

    def test_user_token_must_be_jwt(self):
        source = StaticCredentialSource("svc", user_token="user-42")
        with pytest.raises(ValidationError, match="JWT"):
            CredentialResolver(source).resolve()

    def test_user_token_never_in_error(self):
        source = StaticCredentialSource("svc", user_token="secret-user-value")
        with pytest.raises(ValidationError) as exc_info:
            CredentialResolver(source).resolve()
        assert "secret-user-value" not in str(exc_info.value)

    def test_explicit_tenant_wins(self):
        token = service_jwt({"tenant_id": "from-token"})
        source = StaticCredentialSource(token, tenant_id=" explicit ")
        assert CredentialResolver(source).resolve().tenant_id == "explicit"

    def test_tenant_derived_from_token(self):
        source = StaticCredentialSource(service_jwt({"tid": "acme"}))
        credentials = CredentialResolver(source).resolve()
        assert credentials.tenant_id == "acme"
        assert credentials.service_token_is_jwt is True

    def test_no_tenant(self):
        assert CredentialResolver(StaticCredentialSource("opaque")).resolve().tenant_id is None

    def test_repr_hides_tokens(self):
        credentials = Credentials(
            base_url=DEFAULT_BASE_URL, service_token="svc-secret", user_token=USER_JWT
        )
        assert "svc-secret" not in repr(credentials)
        assert USER_JWT not in repr(credentials)


class TestEnvCredentialSource:

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("KUMIHO_SERVICE_TOKEN", "env-token")
        monkeypatch.setenv("KUMIHO_BASE_URL", "https://kumiho.example.com/")
        credentials = CredentialResolver(EnvCredentialSource()).resolve()
        assert credentials.service_token == "env-token"
        assert credentials.base_url == "https://kumiho.example.com"

    def test_custom_prefix(self, monkeypatch):
        monkeypatch.setenv("ALT_SERVICE_TOKEN", "alt")
        assert EnvCredentialSource("ALT_").get_credentials()["service_token"] == "alt"

    def test_rotation_picked_up(self, monkeypatch):
        resolver = CredentialResolver(EnvCredentialSource())
        monkeypatch.setenv("KUMIHO_SERVICE_TOKEN", "first")
        assert resolver.resolve().service_token == "first"
        monkeypatch.setenv("KUMIHO_SERVICE_TOKEN", "second")
        assert resolver.resolve().service_token == "second"

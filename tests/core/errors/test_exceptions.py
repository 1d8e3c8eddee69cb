"""
Tests for the exception hierarchy.
"""

from core.errors.classifiers import ClassifiedError
from core.errors.exceptions import (
    RETRY_BUDGET_EXCEEDED_CODE,
    RETRY_BUDGET_EXCEEDED_STATUS,
    KumihoError,
    RequestError,
    RetryBudgetExceeded,
    TransportError,
    UpstreamError,
    ValidationError,
)
from core.types import ErrorCategory


def _classified(**overrides) -> ClassifiedError:
    values = {
        "http_status": 404,
        "upstream_code": "not_found",
        "upstream_message": "Item missing",
        "retryable": False,
        "retry_after_ms": None,
        "correlation_id": "corr-123",
    }
    values.update(overrides)
    return ClassifiedError(**values)


class TestKumihoError:

    def test_basic(self):
        error = KumihoError("Something failed")
        assert error.message == "Something failed"
        assert error.category == ErrorCategory.UNKNOWN
        assert error.correlation_id
        assert str(error) == f"Something failed | correlation_id={error.correlation_id}"

    def test_str_includes_supplied_correlation_id(self):
        error = ValidationError("bad input", correlation_id="corr-9")
        assert str(error) == "bad input | correlation_id=corr-9"

    def test_cause_is_sanitized_in_str(self):
        cause = RuntimeError("auth failed for Bearer abc.def.ghi")
        error = KumihoError("Wrapped", cause=cause)
        assert "abc.def.ghi" not in str(error)
        assert "Caused by:" in str(error)

    def test_context_redacted(self):
        error = KumihoError("x", context={"X-Kumiho-Token": "secret-token", "path": "/a"})
        assert error.context["X-Kumiho-Token"] == "[REDACTED]"
        assert error.context["path"] == "/a"

    def test_validation_error_is_permanent(self):
        error = ValidationError("bad input")
        assert error.category == ErrorCategory.PERMANENT
        assert error.is_retryable is False


class TestRequestError:

    def test_properties_delegate_to_classified(self):
        error = UpstreamError("Kumiho API error: not_found", _classified())
        assert error.status_code == 404
        assert error.upstream_code == "not_found"
        assert error.upstream_message == "Item missing"
        assert error.correlation_id == "corr-123"
        assert error.category == ErrorCategory.PERMANENT
        assert error.is_retryable is False

    def test_str_contains_message_and_correlation_id(self):
        error = UpstreamError("Kumiho API error: not_found", _classified())
        text = str(error)
        assert text.startswith("Kumiho API error: not_found")
        assert "correlation_id=corr-123" in text
        assert "status=404" in text

    def test_str_mentions_retryability(self):
        error = TransportError(
            "Kumiho API request failed (ETIMEDOUT)",
            _classified(http_status=None, upstream_code=None, retryable=True),
        )
        assert "retryable=true" in str(error)
        assert error.category == ErrorCategory.TRANSIENT

    def test_request_context_in_description(self):
        error = UpstreamError(
            "Kumiho API error: not_found",
            _classified(),
            request_context={"method": "GET", "path": "/api/v1/items", "tenant_header": "set"},
        )
        assert "method=GET" in error.description
        assert "path=/api/v1/items" in error.description
        assert "tenant_header=set" in error.description

    def test_tokens_never_in_str_or_dict(self):
        error = UpstreamError(
            "Kumiho API error: not_found",
            _classified(),
            request_context={"authorization": "Bearer user.jwt.token", "X-Kumiho-Token": "svc"},
        )
        assert "user.jwt.token" not in str(error)
        assert "svc" not in error.to_dict()["request"].values()

    def test_to_dict(self):
        error = UpstreamError("Kumiho API error: not_found", _classified())
        data = error.to_dict()
        assert data["error"] == "UpstreamError"
        assert data["status_code"] == 404
        assert data["code"] == "not_found"
        assert data["correlation_id"] == "corr-123"

    def test_hierarchy(self):
        assert issubclass(UpstreamError, RequestError)
        assert issubclass(TransportError, RequestError)
        assert issubclass(RetryBudgetExceeded, RequestError)
        assert issubclass(RequestError, KumihoError)


class TestRetryBudgetExceeded:

    def test_synthetic_classification(self):
        error = RetryBudgetExceeded(2000, "corr-9", attempts=3)
        assert error.status_code == RETRY_BUDGET_EXCEEDED_STATUS == 408
        assert error.upstream_code == RETRY_BUDGET_EXCEEDED_CODE
        assert error.is_retryable is False
        assert error.correlation_id == "corr-9"
        assert error.budget_ms == 2000
        assert error.attempts == 3
        assert RETRY_BUDGET_EXCEEDED_CODE in str(error)

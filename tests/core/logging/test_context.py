"""Tests for logging context variables and context managers."""

import asyncio
import logging

import pytest

from core.errors.exceptions import ValidationError
from core.logging.context import clear_log_context, get_log_context, set_log_context
from core.logging.context_managers import LogContext, OperationContext
from core.logging.utilities import log_exception, log_with_context


@pytest.fixture(autouse=True)
def clear_context():
    clear_log_context()
    yield
    clear_log_context()


class TestLogContextVars:

    def test_defaults_empty(self):
        assert get_log_context() == {"correlation_id": "", "trigger_id": "", "stage": ""}

    def test_partial_update(self):
        set_log_context(stage="request")
        set_log_context(correlation_id="corr-1")
        assert get_log_context() == {
            "correlation_id": "corr-1",
            "trigger_id": "",
            "stage": "request",
        }


class TestLogContextManager:

    def test_restores_previous_context(self):
        set_log_context(stage="outer")
        with LogContext(stage="stream", trigger_id="trigger-a"):
            assert get_log_context()["stage"] == "stream"
            assert get_log_context()["trigger_id"] == "trigger-a"
        assert get_log_context()["stage"] == "outer"
        assert get_log_context()["trigger_id"] == ""


class TestOperationContext:

    def test_logs_completion(self, caplog):
        logger = logging.getLogger("test.operation")
        with caplog.at_level(logging.DEBUG, logger="test.operation"):
            with OperationContext(logger, "kumiho_request", api_path="/x") as op:
                op.add_context(attempt=2)

        record = caplog.records[-1]
        assert record.getMessage() == "Completed: kumiho_request"
        assert record.api_path == "/x"
        assert record.attempt == 2
        assert record.duration_ms >= 0

    def test_logs_failure_and_reraises(self, caplog):
        logger = logging.getLogger("test.operation")
        with caplog.at_level(logging.DEBUG, logger="test.operation"):
            with pytest.raises(ValidationError):
                with OperationContext(logger, "kumiho_request"):
                    raise ValidationError("bad input")

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert record.getMessage() == "Failed: kumiho_request"
        assert record.error_category == "permanent"
        assert record.error_type == "ValidationError"

    def test_binds_correlation_id_for_block(self):
        logger = logging.getLogger("test.operation")
        set_log_context(correlation_id="outer")

        with OperationContext(logger, "kumiho_request", correlation_id="corr-7"):
            assert get_log_context()["correlation_id"] == "corr-7"

        assert get_log_context()["correlation_id"] == "outer"

    def test_cancellation_logged_separately(self, caplog):
        logger = logging.getLogger("test.operation")
        with caplog.at_level(logging.DEBUG, logger="test.operation"):
            with pytest.raises(asyncio.CancelledError):
                with OperationContext(logger, "kumiho_request", correlation_id="corr-7"):
                    raise asyncio.CancelledError()

        record = caplog.records[-1]
        assert record.levelno == logging.INFO
        assert record.getMessage() == "Cancelled: kumiho_request"
        assert get_log_context()["correlation_id"] == ""


class TestUtilities:

    def test_log_with_context_drops_reserved_keys(self, caplog):
        logger = logging.getLogger("test.utilities")
        with caplog.at_level(logging.INFO, logger="test.utilities"):
            log_with_context(logger, logging.INFO, "hello", cursor="c1", module="ignored")

        record = caplog.records[-1]
        assert record.cursor == "c1"
        assert record.module != "ignored"

    def test_log_exception_sanitizes_message(self, caplog):
        logger = logging.getLogger("test.utilities")
        with caplog.at_level(logging.INFO, logger="test.utilities"):
            log_exception(
                logger,
                RuntimeError("failed with Bearer secret.jwt.value"),
                "Call failed",
                include_traceback=False,
            )

        record = caplog.records[-1]
        assert "secret.jwt.value" not in record.error_message
        assert record.error_type == "RuntimeError"
        assert record.exc_info is None

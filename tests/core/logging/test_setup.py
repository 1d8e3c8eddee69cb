"""Tests for logging setup."""

import logging
import sys

import pytest

from core.logging.context import clear_log_context, get_log_context
from core.logging.formatters import ConsoleFormatter, JSONFormatter
from core.logging.setup import NOISY_LOGGERS, get_logger, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    clear_log_context()


class TestSetupLogging:

    def test_console_handler_writes_to_stderr(self):
        setup_logging()
        root = logging.getLogger()

        assert len(root.handlers) == 1
        handler = root.handlers[0]
        assert handler.stream is sys.stderr
        assert isinstance(handler.formatter, ConsoleFormatter)

    def test_json_console(self):
        setup_logging(json_format=True)
        assert isinstance(logging.getLogger().handlers[0].formatter, JSONFormatter)

    def test_context_set(self):
        setup_logging(stage="stream", trigger_id="trigger-a")
        context = get_log_context()
        assert context["stage"] == "stream"
        assert context["trigger_id"] == "trigger-a"

    def test_file_handler(self, tmp_path):
        log_file = tmp_path / "logs" / "kumiho.log"
        setup_logging(log_file=log_file)
        root = logging.getLogger()

        assert len(root.handlers) == 2
        assert log_file.parent.exists()
        assert isinstance(root.handlers[1].formatter, JSONFormatter)

    def test_noisy_loggers_suppressed(self):
        setup_logging()
        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_get_logger(self):
        assert get_logger("kumiho.test").name == "kumiho.test"

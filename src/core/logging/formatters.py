"""
Log formatters for JSON and console output.

Both formatters pass the rendered message and any exception text through
sanitize_error_message, so a token that ends up in an f-string or an
upstream error body is redacted before it reaches a handler.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from core.logging.context import get_log_context
from core.security.sanitization import sanitize_error_message, sanitize_url
from core.utils.json_serializers import json_serializer

MAX_MESSAGE_LENGTH = 4000
MAX_STACKTRACE_LENGTH = 16000

# Whitelisted LogRecord extras, mapped to the type they are coerced to
# (None keeps the value as-is)
LOG_FIELDS: dict[str, type | None] = {
    # Correlation
    "correlation_id": None,
    "trigger_id": None,
    "operation": None,
    "duration_ms": float,
    # Request executor
    "http_method": None,
    "api_path": None,
    "http_url": None,
    "base_url": None,
    "http_status": int,
    "status_code": int,
    "attempt": int,
    "max_attempts": int,
    "delay_seconds": float,
    "delay_source": None,
    "total_delay_seconds": float,
    "retry_after_ms": int,
    "budget_ms": int,
    "elapsed_ms": float,
    # Errors
    "error_category": None,
    "error_code": None,
    "error_message": None,
    "error_type": None,
    "transport_code": None,
    "retryable": None,
    # Stream consumer
    "stream_url": None,
    "routing_key": None,
    "routing_key_filter": None,
    "kref": None,
    "kref_filter": None,
    "cursor": None,
    "instance_id": None,
    "connections": int,
    "events_delivered": int,
    "events_filtered": int,
    "events_malformed": int,
    "reconnect_delay_seconds": float,
    "payload_length": int,
    "store_path": None,
}

URL_FIELDS = frozenset({"http_url", "stream_url", "base_url"})
CONTEXT_FIELDS = ("stage", "trigger_id", "correlation_id")


def coerce_field(name: str, value: Any) -> Any:
    """Apply the field's declared type; None when the value does not convert."""
    converter = LOG_FIELDS.get(name)
    if converter is None or value is None:
        return value
    try:
        return converter(value)
    except (TypeError, ValueError):
        return None


def _utc_timestamp() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line: timestamp, level, logger, message, the active
    log context, whitelisted extras and an optional exception block.

    Source location is added for DEBUG and ERROR+ records.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": _utc_timestamp(),
            "level": record.levelname,
            "logger": record.name,
            "message": sanitize_error_message(record.getMessage(), MAX_MESSAGE_LENGTH),
        }

        context = get_log_context()
        entry.update({name: context[name] for name in CONTEXT_FIELDS if context.get(name)})

        if record.levelno == logging.DEBUG or record.levelno >= logging.ERROR:
            entry["file"] = f"{record.filename}:{record.lineno}"

        for name in LOG_FIELDS:
            value = getattr(record, name, None)
            if value is None:
                continue
            value = coerce_field(name, value)
            if name in URL_FIELDS and isinstance(value, str):
                value = sanitize_url(value)
            entry[name] = value

        if record.exc_info:
            entry["exception"] = self._exception_block(record)

        return json.dumps(entry, default=json_serializer, ensure_ascii=False)

    def _exception_block(self, record: logging.LogRecord) -> dict[str, Any]:
        exc_type, exc_value, _ = record.exc_info
        return {
            "type": exc_type.__name__ if exc_type else None,
            "message": (
                sanitize_error_message(str(exc_value), MAX_MESSAGE_LENGTH) if exc_value else None
            ),
            "stacktrace": sanitize_error_message(
                self.formatException(record.exc_info), MAX_STACKTRACE_LENGTH
            ),
        }


class ConsoleFormatter(logging.Formatter):
    """
    Single-line human-readable output for the CLI.

        <time> - <LEVEL> - [stage] - [trigger] - [corr8] [attempt:N] message key=value

    Level names are colored only when stderr is a TTY.
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    # Extras appended as key=value after the message
    SUFFIX_FIELDS = ("http_status", "delay_seconds", "cursor")

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colors = sys.stderr.isatty()

    def format(self, record: logging.LogRecord) -> str:
        context = get_log_context()

        level = record.levelname
        color = self.LEVEL_COLORS.get(record.levelno) if self._use_colors else None
        if color:
            level = f"{color}{level}{self.RESET}"

        head = [datetime.now().strftime("%Y-%m-%d %H:%M:%S"), level]
        head.extend(f"[{context[name]}]" for name in ("stage", "trigger_id") if context.get(name))

        body = []
        correlation_id = getattr(record, "correlation_id", None) or context.get("correlation_id")
        if correlation_id:
            body.append(f"[{correlation_id[:8]}]")
        attempt = getattr(record, "attempt", None)
        if attempt:
            body.append(f"[attempt:{attempt}]")
        body.append(sanitize_error_message(record.getMessage(), MAX_MESSAGE_LENGTH))
        body.extend(
            f"{name}={getattr(record, name)}"
            for name in self.SUFFIX_FIELDS
            if getattr(record, name, None) is not None
        )

        text = f"{' - '.join(head)} - {' '.join(body)}"
        if record.exc_info:
            exc_text = self.formatException(record.exc_info)
            text = f"{text}\n{sanitize_error_message(exc_text, MAX_STACKTRACE_LENGTH)}"
        return text

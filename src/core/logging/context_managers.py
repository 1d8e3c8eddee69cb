"""Context managers for structured logging."""

import logging
import time
from typing import Any, Dict, Optional

from core.logging.context import get_log_context, set_log_context
from core.logging.utilities import log_exception, log_with_context


class LogContext:
    """
    Context manager for temporary log context.

    Usage:
        with LogContext(stage="stream", trigger_id=instance_id):
            # All logs in this block carry stage and trigger_id
            await consumer.run()
    """

    def __init__(
        self,
        correlation_id: Optional[str] = None,
        trigger_id: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        self.new_context = {
            "correlation_id": correlation_id,
            "trigger_id": trigger_id,
            "stage": stage,
        }
        self.old_context: Dict[str, str] = {}

    def __enter__(self) -> "LogContext":
        self.old_context = get_log_context()
        set_log_context(**{k: v for k, v in self.new_context.items() if v is not None})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        set_log_context(
            correlation_id=self.old_context.get("correlation_id", ""),
            trigger_id=self.old_context.get("trigger_id", ""),
            stage=self.old_context.get("stage", ""),
        )
        return False


class OperationContext:
    """
    Timed operation bound to a correlation id.

    While the block runs, correlation_id is set in the log context so every
    record logged inside it (retries, warnings) carries the id. On exit one
    summary record is logged:

        Completed: <operation>   at `level`, promoted to INFO when slow
        Failed: <operation>      at WARNING, with error category
        Cancelled: <operation>   at INFO

    Usage:
        with OperationContext(logger, "kumiho_request", correlation_id=cid,
                              api_path=path) as op:
            op.add_context(attempt=2)
    """

    def __init__(
        self,
        logger: logging.Logger,
        operation: str,
        correlation_id: Optional[str] = None,
        level: int = logging.DEBUG,
        slow_threshold_ms: Optional[float] = 1000.0,
        **context: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.correlation_id = correlation_id
        self.level = level
        self.slow_threshold_ms = slow_threshold_ms
        self.context = context
        self._log_context = LogContext(correlation_id=correlation_id)
        self._start_time: Optional[float] = None

    @property
    def elapsed_ms(self) -> float:
        if self._start_time is None:
            return 0.0
        return (time.perf_counter() - self._start_time) * 1000

    def add_context(self, **kwargs: Any) -> None:
        """Attach fields to the summary record (attempt, http_status, ...)."""
        self.context.update(kwargs)

    def __enter__(self) -> "OperationContext":
        self._log_context.__enter__()
        self._start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration_ms = round(self.elapsed_ms, 2)
        fields = {"duration_ms": duration_ms, "operation": self.operation, **self.context}
        try:
            if exc_val is None:
                level = self.level
                if self.slow_threshold_ms and duration_ms > self.slow_threshold_ms:
                    level = max(level, logging.INFO)
                log_with_context(self.logger, level, f"Completed: {self.operation}", **fields)
            elif isinstance(exc_val, Exception):
                log_exception(
                    self.logger,
                    exc_val,
                    f"Failed: {self.operation}",
                    level=logging.WARNING,
                    include_traceback=False,
                    **fields,
                )
            else:
                log_with_context(self.logger, logging.INFO, f"Cancelled: {self.operation}", **fields)
        finally:
            self._log_context.__exit__(exc_type, exc_val, exc_tb)
        return False

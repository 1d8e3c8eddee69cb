"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
_trigger_id: ContextVar[str] = ContextVar("trigger_id", default="")
_stage_name: ContextVar[str] = ContextVar("stage_name", default="")


def set_log_context(
    correlation_id: Optional[str] = None,
    trigger_id: Optional[str] = None,
    stage: Optional[str] = None,
) -> None:
    if correlation_id is not None:
        _correlation_id.set(correlation_id)
    if trigger_id is not None:
        _trigger_id.set(trigger_id)
    if stage is not None:
        _stage_name.set(stage)


def get_log_context() -> Dict[str, str]:
    return {
        "correlation_id": _correlation_id.get(),
        "trigger_id": _trigger_id.get(),
        "stage": _stage_name.get(),
    }


def clear_log_context() -> None:
    _correlation_id.set("")
    _trigger_id.set("")
    _stage_name.set("")

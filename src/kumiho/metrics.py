"""
Prometheus metrics for the Kumiho access core.

Focused on essential metrics:
- Request attempts and retries
- Stream connections, event outcomes and cursor checkpoints

All metrics live in a dedicated registry so embedding applications can
expose them (or not) without colliding with their own default registry.
"""

import logging

from prometheus_client import CollectorRegistry, Counter, generate_latest

logger = logging.getLogger(__name__)

REGISTRY = CollectorRegistry(auto_describe=True)


# =============================================================================
# Request executor
# =============================================================================

request_attempts_counter = Counter(
    "kumiho_request_attempts_total",
    "Total request attempts by HTTP method and outcome",
    labelnames=["method", "outcome"],
    registry=REGISTRY,
)

request_retries_counter = Counter(
    "kumiho_request_retries_total",
    "Total retries scheduled after a retryable failure",
    labelnames=["method"],
    registry=REGISTRY,
)

# =============================================================================
# Stream consumer
# =============================================================================

stream_events_counter = Counter(
    "kumiho_stream_events_total",
    "Stream payloads by outcome (delivered, filtered, malformed)",
    labelnames=["outcome"],
    registry=REGISTRY,
)

stream_connections_counter = Counter(
    "kumiho_stream_connections_total",
    "Stream connection attempts by result",
    labelnames=["result"],
    registry=REGISTRY,
)

stream_cursor_checkpoints_counter = Counter(
    "kumiho_stream_cursor_checkpoints_total",
    "Total cursor checkpoints written before delivery",
    registry=REGISTRY,
)


# =============================================================================
# Convenience Functions
# =============================================================================


def record_request_attempt(method: str, outcome: str) -> None:
    """Record one request attempt. Outcome: success, retryable, failed."""
    request_attempts_counter.labels(method=method, outcome=outcome).inc()


def record_request_retry(method: str) -> None:
    """Record a scheduled retry."""
    request_retries_counter.labels(method=method).inc()


def record_stream_event(outcome: str) -> None:
    """Record a stream payload outcome."""
    stream_events_counter.labels(outcome=outcome).inc()


def record_stream_connection(result: str) -> None:
    """Record a stream connection result (connected, http_error, error)."""
    stream_connections_counter.labels(result=result).inc()


def record_cursor_checkpoint() -> None:
    stream_cursor_checkpoints_counter.inc()


def render_metrics() -> bytes:
    """Render the registry in the Prometheus text exposition format."""
    return generate_latest(REGISTRY)

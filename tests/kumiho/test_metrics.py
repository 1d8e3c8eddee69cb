"""
Tests for the dedicated Prometheus registry.
"""

from kumiho import metrics


def _sample(name: str, labels: dict | None = None) -> float:
    return metrics.REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetrics:

    def test_request_attempt_counter(self):
        labels = {"method": "GET", "outcome": "success"}
        before = _sample("kumiho_request_attempts_total", labels)
        metrics.record_request_attempt("GET", "success")
        assert _sample("kumiho_request_attempts_total", labels) == before + 1

    def test_stream_counters(self):
        before_event = _sample("kumiho_stream_events_total", {"outcome": "filtered"})
        before_checkpoint = _sample("kumiho_stream_cursor_checkpoints_total")

        metrics.record_stream_event("filtered")
        metrics.record_cursor_checkpoint()

        assert _sample("kumiho_stream_events_total", {"outcome": "filtered"}) == before_event + 1
        assert _sample("kumiho_stream_cursor_checkpoints_total") == before_checkpoint + 1

    def test_render_metrics(self):
        metrics.record_request_retry("POST")
        metrics.record_stream_connection("connected")
        text = metrics.render_metrics().decode("utf-8")
        assert "kumiho_request_retries_total" in text
        assert "kumiho_stream_connections_total" in text

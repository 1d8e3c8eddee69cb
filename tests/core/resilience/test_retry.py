"""
Tests for retry backoff configuration and per-call retry state.
"""

from unittest.mock import patch

import pytest

from core.resilience.retry import RetryConfig, RetryState


class FakeClock:
    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_default_values(self):
        """Defaults: 5 attempts, 1s base, 16s cap, 60s budget."""
        config = RetryConfig()
        assert config.max_attempts == 5
        assert config.base_delay == 1.0
        assert config.max_delay == 16.0
        assert config.exponential_base == 2.0
        assert config.jitter == 0.2
        assert config.budget_seconds == 60.0
        assert config.respect_retry_after is True

    def test_type_conversion_from_strings(self):
        """Config handles string inputs (e.g., from YAML or env)."""
        config = RetryConfig(
            max_attempts="3",
            base_delay="2.5",
            max_delay="60",
            respect_retry_after="false",
        )
        assert config.max_attempts == 3
        assert config.base_delay == 2.5
        assert config.max_delay == 60.0
        assert config.respect_retry_after is False

    def test_invalid_values_rejected(self):
        with pytest.raises(ValueError):
            RetryConfig(max_attempts=0)
        with pytest.raises(ValueError):
            RetryConfig(jitter=1.0)

    def test_nominal_delay_doubles_and_caps(self):
        config = RetryConfig()
        assert [config.nominal_delay(n) for n in range(1, 7)] == [1, 2, 4, 8, 16, 16]

    def test_jitter_bounds(self):
        config = RetryConfig()
        for attempt in range(1, 6):
            nominal = config.nominal_delay(attempt)
            for _ in range(50):
                delay = config.get_delay(attempt)
                assert nominal * 0.8 <= delay <= nominal * 1.2

    def test_jitter_uses_uniform_factor(self):
        config = RetryConfig()
        with patch("core.resilience.retry.random.uniform", return_value=1.1) as uniform:
            assert config.get_delay(3) == pytest.approx(4.4)
        uniform.assert_called_once_with(0.8, 1.2)

    def test_retry_after_extends_delay(self):
        config = RetryConfig()
        with patch("core.resilience.retry.random.uniform", return_value=1.0):
            assert config.get_delay(1, retry_after=5.0) == 5.0
            # A shorter hint never shortens the backoff
            assert config.get_delay(3, retry_after=0.5) == 4.0

    def test_retry_after_ignored_when_disabled(self):
        config = RetryConfig(respect_retry_after=False)
        with patch("core.resilience.retry.random.uniform", return_value=1.0):
            assert config.get_delay(1, retry_after=5.0) == 1.0


class TestRetryState:

    def test_attempt_counting(self):
        state = RetryState(budget_ms=1000, clock=FakeClock())
        assert state.attempt == 0
        assert state.begin_attempt() == 1
        assert state.begin_attempt() == 2

    def test_budget_uses_injected_clock(self):
        clock = FakeClock()
        state = RetryState(budget_ms=2000, clock=clock)
        assert state.budget_exhausted is False

        clock.advance(2.0)
        assert state.elapsed_ms == pytest.approx(2000)
        assert state.budget_exhausted is False

        clock.advance(0.001)
        assert state.budget_exhausted is True

    def test_record_delay(self):
        state = RetryState(budget_ms=1000, clock=FakeClock())
        state.record_delay(0.5)
        state.record_delay(1.25)
        assert state.total_delay == pytest.approx(1.75)

"""
Tests for the shared service building blocks used by the rules service.
"""

from unittest.mock import AsyncMock

import pytest

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException, CircuitBreakerState
from shared.config import get_config
from shared.errors import NotFoundError
from shared.logging import add_correlation_context, clear_context, set_scope_context
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryError, call_with_retry
from shared.tracing import trace_operation


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60, name="test")
        failing = AsyncMock(side_effect=ConnectionError("down"))

        for _ in range(2):
            with pytest.raises(ConnectionError):
                await breaker.call(failing)

        assert breaker.state == CircuitBreakerState.OPEN
        with pytest.raises(CircuitBreakerOpenException):
            await breaker.call(failing)
        assert failing.await_count == 2

    @pytest.mark.asyncio
    async def test_half_open_trial_call_closes(self):
        breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=0, name="test")
        with pytest.raises(ConnectionError):
            await breaker.call(AsyncMock(side_effect=ConnectionError("down")))

        assert await breaker.call(AsyncMock(return_value="ok")) == "ok"
        assert breaker.state == CircuitBreakerState.CLOSED


class TestRetry:
    """Test cases for call_with_retry."""

    @pytest.mark.asyncio
    async def test_succeeds_after_transient_failure(self):
        func = AsyncMock(side_effect=[ConnectionError("blip"), "written"])

        result = await call_with_retry(func, config=RetryConfig(max_attempts=3, base_delay=0, jitter=False))

        assert result == "written"
        assert func.await_count == 2

    @pytest.mark.asyncio
    async def test_exhausted_attempts(self):
        func = AsyncMock(side_effect=ConnectionError("down"))

        with pytest.raises(RetryError) as exc_info:
            await call_with_retry(func, config=RetryConfig(max_attempts=2, base_delay=0, jitter=False))

        assert exc_info.value.attempts == 2
        assert isinstance(exc_info.value.last_exception, ConnectionError)

    @pytest.mark.asyncio
    async def test_unlisted_exceptions_not_retried(self):
        func = AsyncMock(side_effect=ValueError("bad"))

        with pytest.raises(ValueError):
            await call_with_retry(func, exceptions=(ConnectionError,))

        assert func.await_count == 1


class TestConfigAndErrors:
    """Configuration defaults and error responses."""

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("RULES_MAX_RULES_PER_EXECUTION", "10")
        monkeypatch.setenv("RULES_RULE_CACHE_ENABLED", "true")

        config = get_config("rules", 8020)

        assert config.max_rules_per_execution == 10
        assert config.rule_cache_enabled is True
        assert config.rule_store_backend == "memory"

    def test_error_response(self):
        response = NotFoundError("Rule r-1 not found", details={"rule_id": "r-1"}).to_response()

        assert response.code == "NOT_FOUND"
        assert response.details == {"rule_id": "r-1"}
        assert response.trace_id is None

    def test_trace_operation_reraises(self):
        with pytest.raises(KeyError):
            with trace_operation("rules.test", organization_id="org-1", property_id=None):
                raise KeyError("missing")

    def test_scope_context_replaced_on_each_evaluation(self):
        set_scope_context("org-1", "property-1")
        set_scope_context("org-2", None)

        event = add_correlation_context(None, "info", {})
        clear_context()

        assert event["organization_id"] == "org-2"
        assert "property_id" not in event


class TestMetricsCollector:
    """Test cases for MetricsCollector."""

    def test_collectors_are_isolated(self):
        first = MetricsCollector("rules")
        second = MetricsCollector("rules")

        first.increment_counter("rule_fetch_failures_total", reason="timeout")

        assert first.get_metric("rule_fetch_failures_total") is not None
        assert b'rule_fetch_failures_total{reason="timeout"} 1.0' in first.export()
        assert b'reason="timeout"' not in second.export()

    def test_unknown_metric_ignored(self):
        collector = MetricsCollector("rules")

        collector.increment_counter("not_a_metric", label="x")
        collector.set_gauge("performance_queue_depth", 3)

        assert b"performance_queue_depth 3.0" in collector.export()

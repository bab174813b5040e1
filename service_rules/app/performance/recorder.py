"""
Execution recorder: moves per-rule outcomes off the pricing path.
"""

import asyncio
from typing import List, Optional, Tuple

from shared.errors import PerformanceWriteError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryError, call_with_retry
from .aggregator import PerformanceAggregator
from .models import PerformanceDelta, RulePerformance, RulePerformanceMetrics, ExecutionLogEntry
from .store import PerformanceStore
from ..rules.models import RuleExecutionResult


class ExecutionRecorder:
    """Queues execution results and writes them from a background worker."""

    def __init__(
        self,
        store: PerformanceStore,
        metrics: Optional[MetricsCollector] = None,
        queue_size: int = 10000,
        retry_config: Optional[RetryConfig] = None,
        aggregator: Optional[PerformanceAggregator] = None,
        trend_window: int = 20
    ):
        self.store = store
        self.metrics = metrics
        self.retry_config = retry_config or RetryConfig(max_attempts=3, base_delay=0.05, max_delay=1.0)
        self.aggregator = aggregator or PerformanceAggregator()
        self.trend_window = trend_window
        self.logger = get_logger("rules.performance.recorder")

        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.worker_task: Optional[asyncio.Task] = None
        self.running = False
        self.dropped = 0

    async def start(self):
        """Start the background writer."""
        self.running = True
        self.worker_task = asyncio.create_task(self._process_queue())
        self.logger.info("Execution recorder started", queue_size=self.queue.maxsize)

    async def stop(self):
        """Drain pending writes, then stop the writer."""
        if self.worker_task:
            await self.flush()
        self.running = False
        if self.worker_task:
            self.worker_task.cancel()
            try:
                await self.worker_task
            except asyncio.CancelledError:
                pass
            self.worker_task = None
        self.logger.info("Execution recorder stopped", dropped=self.dropped)

    async def flush(self):
        """Wait until every queued result has been written."""
        await self.queue.join()

    def submit(self, result: RuleExecutionResult, revenue_impact: Optional[float] = None) -> bool:
        """Enqueue without blocking; the result is dropped if the queue is full."""
        impact = result.price_delta if revenue_impact is None else revenue_impact
        try:
            self.queue.put_nowait((result, impact))
        except asyncio.QueueFull:
            self.dropped += 1
            self.logger.warning("Execution queue full, dropping result", rule_id=result.rule_id)
            self._record_write("dropped")
            return False
        self._set_queue_depth()
        return True

    async def _process_queue(self):
        while self.running:
            item: Tuple[RuleExecutionResult, float] = await self.queue.get()
            result, impact = item
            try:
                await self.record_execution(result, impact)
            except PerformanceWriteError as e:
                self.logger.error(
                    "Performance write failed",
                    rule_id=result.rule_id,
                    error=e.message,
                    details=e.details
                )
            except Exception as e:
                # Keep the writer alive; an evaluation never waits on it
                self.logger.error(
                    "Unexpected error recording execution",
                    rule_id=result.rule_id,
                    error=str(e),
                    exc_info=True
                )
            finally:
                self.queue.task_done()
                self._set_queue_depth()

    async def record_execution(self, result: RuleExecutionResult,
                               revenue_impact: Optional[float] = None) -> RulePerformance:
        """Append the log entry and upsert the aggregate, retrying each write."""
        impact = result.price_delta if revenue_impact is None else revenue_impact
        entry = ExecutionLogEntry(
            rule_id=result.rule_id,
            success=result.success,
            execution_time_ms=result.execution_time_ms,
            error=result.error,
            result=result.to_dict(),
            context=result.context.to_dict() if result.context is not None else {},
        )
        delta = PerformanceDelta(
            success=result.success,
            execution_time_ms=result.execution_time_ms,
            revenue_impact=impact,
            executed_at=entry.executed_at,
        )

        await self._with_retry(self.store.append_execution, entry)
        performance = await self.upsert_performance(result.rule_id, delta)
        self._record_write("success")
        return performance

    async def upsert_performance(self, rule_id: str, delta: PerformanceDelta) -> RulePerformance:
        return await self._with_retry(self.store.upsert_performance, rule_id, delta)

    async def _with_retry(self, func, *args):
        try:
            return await call_with_retry(
                func, *args,
                config=self.retry_config,
                exceptions=(PerformanceWriteError,)
            )
        except RetryError as e:
            self._record_write("failure")
            last = e.last_exception
            raise PerformanceWriteError(
                str(e),
                details={"attempts": e.attempts, **getattr(last, "details", {})}
            ) from last

    async def get_performance(self, rule_id: str) -> RulePerformanceMetrics:
        performance = await self.store.get_performance(rule_id) or RulePerformance(rule_id=rule_id)
        recent = await self.store.get_executions(rule_id, limit=self.trend_window)
        return self.aggregator.metrics(performance, recent)

    async def get_executions(self, rule_id: str, limit: int = 50, offset: int = 0) -> List[ExecutionLogEntry]:
        return await self.store.get_executions(rule_id, limit=limit, offset=offset)

    def _record_write(self, status: str):
        if self.metrics:
            self.metrics.increment_counter("performance_writes_total", status=status)

    def _set_queue_depth(self):
        if self.metrics:
            self.metrics.set_gauge("performance_queue_depth", self.queue.qsize())

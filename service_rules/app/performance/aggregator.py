"""
Aggregation math for rule performance.
"""

from typing import List, Optional

from .models import RulePerformance, PerformanceDelta, RulePerformanceMetrics, ExecutionLogEntry


class PerformanceAggregator:
    """Pure functions over performance aggregates and execution logs.

    Stores use ``apply`` for their single upsert step; the PostgreSQL
    store expresses the same arithmetic in SQL.
    """

    def __init__(self, min_trend_samples: int = 4, success_rate_threshold: float = 5.0,
                 execution_time_threshold: float = 0.1):
        self.min_trend_samples = min_trend_samples
        self.success_rate_threshold = success_rate_threshold
        self.execution_time_threshold = execution_time_threshold

    @staticmethod
    def apply(current: Optional[RulePerformance], rule_id: str, delta: PerformanceDelta) -> RulePerformance:
        """Fold one execution into the aggregate, returning a new aggregate."""
        current = current or RulePerformance(rule_id=rule_id)
        total = current.total_executions + 1

        # Incremental running average; n=1 yields the execution time itself
        avg_time = (current.avg_execution_time_ms * (total - 1) + delta.execution_time_ms) / total

        last_executed_at = delta.executed_at
        if current.last_executed_at and current.last_executed_at > last_executed_at:
            last_executed_at = current.last_executed_at

        return RulePerformance(
            rule_id=rule_id,
            total_executions=total,
            successful_executions=current.successful_executions + (1 if delta.success else 0),
            failed_executions=current.failed_executions + (0 if delta.success else 1),
            avg_execution_time_ms=avg_time,
            total_revenue_impact=current.total_revenue_impact + delta.revenue_impact,
            last_executed_at=last_executed_at,
        )

    @staticmethod
    def success_rate(performance: RulePerformance) -> float:
        if performance.total_executions == 0:
            return 0.0
        return round(performance.successful_executions / performance.total_executions * 100, 2)

    @staticmethod
    def avg_revenue_impact(performance: RulePerformance) -> float:
        if performance.total_executions == 0:
            return 0.0
        return round(performance.total_revenue_impact / performance.total_executions, 2)

    def trend(self, entries: List[ExecutionLogEntry]) -> str:
        """Compare the older and the recent half of the execution log.

        A success-rate shift beyond the threshold decides first; otherwise
        execution time moving by more than the relative threshold does.
        """
        if len(entries) < self.min_trend_samples:
            return "stable"

        ordered = sorted(entries, key=lambda e: e.executed_at)
        middle = len(ordered) // 2
        older, recent = ordered[:middle], ordered[middle:]

        older_rate = sum(1 for e in older if e.success) / len(older) * 100
        recent_rate = sum(1 for e in recent if e.success) / len(recent) * 100
        if recent_rate - older_rate > self.success_rate_threshold:
            return "improving"
        if older_rate - recent_rate > self.success_rate_threshold:
            return "declining"

        older_time = sum(e.execution_time_ms for e in older) / len(older)
        recent_time = sum(e.execution_time_ms for e in recent) / len(recent)
        if older_time > 0:
            change = (recent_time - older_time) / older_time
            if change < -self.execution_time_threshold:
                return "improving"
            if change > self.execution_time_threshold:
                return "declining"
        return "stable"

    def metrics(self, performance: RulePerformance, entries: List[ExecutionLogEntry]) -> RulePerformanceMetrics:
        return RulePerformanceMetrics(
            rule_id=performance.rule_id,
            total_executions=performance.total_executions,
            successful_executions=performance.successful_executions,
            failed_executions=performance.failed_executions,
            avg_execution_time_ms=round(performance.avg_execution_time_ms, 3),
            total_revenue_impact=round(performance.total_revenue_impact, 2),
            last_executed_at=performance.last_executed_at,
            success_rate=self.success_rate(performance),
            avg_revenue_impact_per_execution=self.avg_revenue_impact(performance),
            performance_trend=self.trend(entries),
        )

"""
Performance tracking data models.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ..rules.models import utcnow


@dataclass
class RulePerformance:
    """Running per-rule aggregate."""
    rule_id: str
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    avg_execution_time_ms: float = 0.0
    total_revenue_impact: float = 0.0
    last_executed_at: Optional[datetime] = None


@dataclass(frozen=True)
class PerformanceDelta:
    """One execution's contribution to a RulePerformance aggregate."""
    success: bool
    execution_time_ms: float
    revenue_impact: float = 0.0
    executed_at: datetime = field(default_factory=utcnow)


@dataclass
class RulePerformanceMetrics:
    """Read model returned to callers."""
    rule_id: str
    total_executions: int
    successful_executions: int
    failed_executions: int
    avg_execution_time_ms: float
    total_revenue_impact: float
    last_executed_at: Optional[datetime]
    success_rate: float
    avg_revenue_impact_per_execution: float
    performance_trend: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "total_executions": self.total_executions,
            "successful_executions": self.successful_executions,
            "failed_executions": self.failed_executions,
            "avg_execution_time_ms": self.avg_execution_time_ms,
            "total_revenue_impact": self.total_revenue_impact,
            "last_executed_at": self.last_executed_at.isoformat() if self.last_executed_at else None,
            "success_rate": self.success_rate,
            "avg_revenue_impact_per_execution": self.avg_revenue_impact_per_execution,
            "performance_trend": self.performance_trend,
        }


@dataclass(frozen=True)
class ExecutionLogEntry:
    """Immutable record of one rule execution."""
    rule_id: str
    success: bool
    execution_time_ms: float
    executed_at: datetime = field(default_factory=utcnow)
    error: Optional[str] = None
    result: Dict[str, Any] = field(default_factory=dict)
    context: Dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "executed_at": self.executed_at.isoformat(),
            "success": self.success,
            "execution_time_ms": self.execution_time_ms,
            "error": self.error,
            "result": self.result,
            "context": self.context,
        }

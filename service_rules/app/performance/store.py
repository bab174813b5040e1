"""
Storage for execution logs and per-rule performance aggregates.
"""

import json
import threading
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from typing import Deque, Dict, List, Optional

import asyncpg

from shared.errors import PerformanceWriteError, ServiceError
from shared.logging import get_logger
from .aggregator import PerformanceAggregator
from .models import RulePerformance, PerformanceDelta, ExecutionLogEntry


class PerformanceStore(ABC):
    """Append-only execution log plus atomically upserted aggregates."""

    async def start(self):
        """Open connections. Override in subclasses."""

    async def stop(self):
        """Close connections. Override in subclasses."""

    @abstractmethod
    async def append_execution(self, entry: ExecutionLogEntry):
        """Append an execution log entry."""

    @abstractmethod
    async def upsert_performance(self, rule_id: str, delta: PerformanceDelta) -> RulePerformance:
        """Fold one execution into the aggregate in a single atomic step."""

    @abstractmethod
    async def get_performance(self, rule_id: str) -> Optional[RulePerformance]:
        """Current aggregate, or None if the rule never executed."""

    @abstractmethod
    async def get_executions(self, rule_id: str, limit: int = 50, offset: int = 0) -> List[ExecutionLogEntry]:
        """Execution history, newest first."""


class InMemoryPerformanceStore(PerformanceStore):
    """Process-local store; the upsert runs under a lock."""

    def __init__(self, max_log_entries_per_rule: int = 1000):
        self.max_log_entries_per_rule = max_log_entries_per_rule
        self._lock = threading.Lock()
        self._performance: Dict[str, RulePerformance] = {}
        self._executions: Dict[str, Deque[ExecutionLogEntry]] = defaultdict(
            lambda: deque(maxlen=self.max_log_entries_per_rule)
        )

    async def append_execution(self, entry: ExecutionLogEntry):
        with self._lock:
            self._executions[entry.rule_id].append(entry)

    async def upsert_performance(self, rule_id: str, delta: PerformanceDelta) -> RulePerformance:
        with self._lock:
            updated = PerformanceAggregator.apply(self._performance.get(rule_id), rule_id, delta)
            self._performance[rule_id] = updated
            return updated

    async def get_performance(self, rule_id: str) -> Optional[RulePerformance]:
        return self._performance.get(rule_id)

    async def get_executions(self, rule_id: str, limit: int = 50, offset: int = 0) -> List[ExecutionLogEntry]:
        with self._lock:
            entries = list(self._executions.get(rule_id, ()))
        entries.sort(key=lambda e: e.executed_at, reverse=True)
        return entries[offset:offset + limit]


class PostgresPerformanceStore(PerformanceStore):
    """PostgreSQL store; counters and running average are computed in SQL."""

    def __init__(self, dsn: str, pool: Optional[asyncpg.Pool] = None):
        self.dsn = dsn
        self.logger = get_logger("rules.performance.postgres")
        self.pool: Optional[asyncpg.Pool] = pool

    async def start(self):
        try:
            if self.pool is None:
                self.pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=1,
                    max_size=5,
                    command_timeout=10
                )
            await self._create_tables()
            self.logger.info("PostgreSQL performance store started")
        except (OSError, asyncpg.PostgresError) as e:
            self.logger.error("Failed to start PostgreSQL performance store", error=str(e))
            raise ServiceError("Failed to start performance store", details={"error": str(e)})

    async def stop(self):
        if self.pool:
            await self.pool.close()
            self.logger.info("PostgreSQL performance store stopped")

    async def _create_tables(self):
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS rule_performance (
                    rule_id VARCHAR(64) PRIMARY KEY,
                    total_executions INTEGER NOT NULL DEFAULT 0,
                    successful_executions INTEGER NOT NULL DEFAULT 0,
                    failed_executions INTEGER NOT NULL DEFAULT 0,
                    avg_execution_time_ms DOUBLE PRECISION NOT NULL DEFAULT 0,
                    total_revenue_impact DOUBLE PRECISION NOT NULL DEFAULT 0,
                    last_executed_at TIMESTAMP WITH TIME ZONE
                );
            """)
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS rule_execution_log (
                    id VARCHAR(64) PRIMARY KEY,
                    rule_id VARCHAR(64) NOT NULL,
                    executed_at TIMESTAMP WITH TIME ZONE NOT NULL,
                    success BOOLEAN NOT NULL,
                    execution_time_ms DOUBLE PRECISION NOT NULL,
                    error TEXT,
                    result JSONB NOT NULL DEFAULT '{}',
                    context JSONB NOT NULL DEFAULT '{}'
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_rule_execution_log_rule
                ON rule_execution_log(rule_id, executed_at DESC);
            """)

    async def append_execution(self, entry: ExecutionLogEntry):
        try:
            async with self.pool.acquire() as conn:
                await conn.execute("""
                    INSERT INTO rule_execution_log (
                        id, rule_id, executed_at, success, execution_time_ms, error, result, context
                    ) VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8::jsonb)
                    ON CONFLICT (id) DO NOTHING
                """,
                    entry.id, entry.rule_id, entry.executed_at, entry.success,
                    entry.execution_time_ms, entry.error,
                    json.dumps(entry.result), json.dumps(entry.context)
                )
        except (OSError, asyncpg.PostgresError) as e:
            raise PerformanceWriteError(
                "Failed to append execution log entry",
                details={"rule_id": entry.rule_id, "error": str(e)}
            )

    async def upsert_performance(self, rule_id: str, delta: PerformanceDelta) -> RulePerformance:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow("""
                    INSERT INTO rule_performance AS rp (
                        rule_id, total_executions, successful_executions, failed_executions,
                        avg_execution_time_ms, total_revenue_impact, last_executed_at
                    ) VALUES ($1, 1, $2, $3, $4, $5, $6)
                    ON CONFLICT (rule_id) DO UPDATE SET
                        total_executions = rp.total_executions + 1,
                        successful_executions = rp.successful_executions + EXCLUDED.successful_executions,
                        failed_executions = rp.failed_executions + EXCLUDED.failed_executions,
                        avg_execution_time_ms = (rp.avg_execution_time_ms * rp.total_executions
                                                 + EXCLUDED.avg_execution_time_ms) / (rp.total_executions + 1),
                        total_revenue_impact = rp.total_revenue_impact + EXCLUDED.total_revenue_impact,
                        last_executed_at = GREATEST(rp.last_executed_at, EXCLUDED.last_executed_at)
                    RETURNING *
                """,
                    rule_id, 1 if delta.success else 0, 0 if delta.success else 1,
                    delta.execution_time_ms, delta.revenue_impact, delta.executed_at
                )
        except (OSError, asyncpg.PostgresError) as e:
            raise PerformanceWriteError(
                "Failed to upsert rule performance",
                details={"rule_id": rule_id, "error": str(e)}
            )
        return self._row_to_performance(row)

    async def get_performance(self, rule_id: str) -> Optional[RulePerformance]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM rule_performance WHERE rule_id = $1", rule_id)
        return self._row_to_performance(row) if row else None

    async def get_executions(self, rule_id: str, limit: int = 50, offset: int = 0) -> List[ExecutionLogEntry]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT * FROM rule_execution_log
                WHERE rule_id = $1
                ORDER BY executed_at DESC
                LIMIT $2 OFFSET $3
            """, rule_id, limit, offset)
        return [
            ExecutionLogEntry(
                id=row["id"],
                rule_id=row["rule_id"],
                executed_at=row["executed_at"],
                success=row["success"],
                execution_time_ms=row["execution_time_ms"],
                error=row["error"],
                result=_load_json(row["result"]),
                context=_load_json(row["context"]),
            )
            for row in rows
        ]

    def _row_to_performance(self, row) -> RulePerformance:
        return RulePerformance(
            rule_id=row["rule_id"],
            total_executions=row["total_executions"],
            successful_executions=row["successful_executions"],
            failed_executions=row["failed_executions"],
            avg_execution_time_ms=row["avg_execution_time_ms"],
            total_revenue_impact=row["total_revenue_impact"],
            last_executed_at=row["last_executed_at"],
        )


def _load_json(value):
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value or {}

"""
PostgreSQL persistence layer for business rules.
"""

import json
from typing import Any, List, Optional

import asyncpg

from shared.errors import ServiceError, ValidationError
from shared.logging import get_logger
from .base import RuleStore
from ..rules.models import BusinessRule, RuleCategory


_COLUMNS = """
    rule_id, organization_id, property_id, name, description, category,
    priority, is_active, is_ai_generated, conditions, actions, metadata,
    created_by, updated_by, created_at, updated_at
"""


class PostgresRuleStore(RuleStore):
    """Rule store over a ``business_rules`` table."""

    def __init__(self, dsn: str, pool: Optional[asyncpg.Pool] = None):
        self.dsn = dsn
        self.logger = get_logger("rules.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = pool

    async def start(self):
        """Start the persistence layer."""
        try:
            if self.pool is None:
                self.pool = await asyncpg.create_pool(
                    self.dsn,
                    min_size=2,
                    max_size=10,
                    command_timeout=30
                )
            await self._create_tables()
            self.logger.info("PostgreSQL rule store started")
        except (OSError, asyncpg.PostgresError) as e:
            self.logger.error("Failed to start PostgreSQL rule store", error=str(e))
            raise ServiceError("Failed to start rule store", details={"error": str(e)})

    async def stop(self):
        if self.pool:
            await self.pool.close()
            self.logger.info("PostgreSQL rule store stopped")

    async def _create_tables(self):
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS business_rules (
                    rule_id VARCHAR(64) PRIMARY KEY,
                    organization_id VARCHAR(255) NOT NULL,
                    property_id VARCHAR(255),
                    name VARCHAR(255) NOT NULL,
                    description TEXT,
                    category VARCHAR(32) NOT NULL,
                    priority INTEGER NOT NULL DEFAULT 100,
                    is_active BOOLEAN NOT NULL DEFAULT TRUE,
                    is_ai_generated BOOLEAN NOT NULL DEFAULT FALSE,
                    conditions JSONB NOT NULL DEFAULT '[]',
                    actions JSONB NOT NULL DEFAULT '[]',
                    metadata JSONB NOT NULL DEFAULT '{}',
                    created_by VARCHAR(255),
                    updated_by VARCHAR(255),
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
                    updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_business_rules_scope
                ON business_rules(organization_id, property_id, is_active);
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_business_rules_order
                ON business_rules(priority ASC, created_at DESC);
            """)

    async def get_rules_by_scope(
        self,
        organization_id: str,
        property_id: Optional[str] = None,
        category: Optional[RuleCategory] = None,
        active_only: bool = True
    ) -> List[BusinessRule]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(f"""
                SELECT {_COLUMNS} FROM business_rules
                WHERE organization_id = $1
                  AND (property_id IS NULL OR property_id = $2)
                  AND ($3::text IS NULL OR category = $3)
                  AND (NOT $4 OR is_active = TRUE)
                ORDER BY priority ASC, created_at DESC
            """, organization_id, property_id, category.value if category else None, active_only)
        return self._rows_to_rules(rows)

    async def list_rules(
        self,
        organization_id: str,
        property_id: Optional[str] = None,
        category: Optional[RuleCategory] = None,
        is_active: Optional[bool] = None
    ) -> List[BusinessRule]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(f"""
                SELECT {_COLUMNS} FROM business_rules
                WHERE organization_id = $1
                  AND ($2::text IS NULL OR property_id = $2)
                  AND ($3::text IS NULL OR category = $3)
                  AND ($4::boolean IS NULL OR is_active = $4)
                ORDER BY priority ASC, created_at DESC
            """, organization_id, property_id, category.value if category else None, is_active)
        return self._rows_to_rules(rows)

    async def get_rule(self, rule_id: str) -> Optional[BusinessRule]:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM business_rules WHERE rule_id = $1", rule_id
            )
        return self._row_to_rule(row) if row else None

    async def save_rule(self, rule: BusinessRule) -> BusinessRule:
        data = rule.to_dict()
        async with self.pool.acquire() as conn:
            await conn.execute("""
                INSERT INTO business_rules (
                    rule_id, organization_id, property_id, name, description, category,
                    priority, is_active, is_ai_generated, conditions, actions, metadata,
                    created_by, updated_by, created_at, updated_at
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10::jsonb, $11::jsonb,
                          $12::jsonb, $13, $14, $15, $16)
                ON CONFLICT (rule_id) DO UPDATE SET
                    property_id = EXCLUDED.property_id,
                    name = EXCLUDED.name,
                    description = EXCLUDED.description,
                    category = EXCLUDED.category,
                    priority = EXCLUDED.priority,
                    is_active = EXCLUDED.is_active,
                    is_ai_generated = EXCLUDED.is_ai_generated,
                    conditions = EXCLUDED.conditions,
                    actions = EXCLUDED.actions,
                    metadata = EXCLUDED.metadata,
                    updated_by = EXCLUDED.updated_by,
                    updated_at = EXCLUDED.updated_at
            """,
                rule.rule_id, rule.organization_id, rule.property_id, rule.name,
                rule.description, rule.category.value, rule.priority, rule.is_active,
                rule.is_ai_generated, json.dumps(data["conditions"]), json.dumps(data["actions"]),
                json.dumps(data["metadata"]), rule.created_by, rule.updated_by,
                rule.created_at, rule.updated_at
            )
        self.logger.info("Rule saved", rule_id=rule.rule_id, name=rule.name)
        return rule

    async def delete_rule(self, rule_id: str) -> bool:
        async with self.pool.acquire() as conn:
            result = await conn.execute("DELETE FROM business_rules WHERE rule_id = $1", rule_id)
        deleted = result == "DELETE 1"
        if deleted:
            self.logger.info("Rule deleted", rule_id=rule_id)
        return deleted

    async def health_check(self) -> str:
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return "ok"
        except (OSError, asyncpg.PostgresError) as e:
            self.logger.warning("Rule store health check failed", error=str(e))
            return "error"

    def _rows_to_rules(self, rows) -> List[BusinessRule]:
        """Parse rows one at a time; a malformed stored rule is logged and skipped."""
        rules = []
        for row in rows:
            try:
                rules.append(self._row_to_rule(row))
            except (ValidationError, ValueError, TypeError, KeyError) as e:
                self.logger.error(
                    "Skipping malformed stored rule",
                    rule_id=row["rule_id"],
                    organization_id=row["organization_id"],
                    error=str(e)
                )
        return rules

    def _row_to_rule(self, row) -> BusinessRule:
        return BusinessRule.from_dict({
            "rule_id": row["rule_id"],
            "organization_id": row["organization_id"],
            "property_id": row["property_id"],
            "name": row["name"],
            "description": row["description"],
            "category": row["category"],
            "priority": row["priority"],
            "is_active": row["is_active"],
            "is_ai_generated": row["is_ai_generated"],
            "conditions": _load_json(row["conditions"]),
            "actions": _load_json(row["actions"]),
            "metadata": _load_json(row["metadata"]),
            "created_by": row["created_by"],
            "updated_by": row["updated_by"],
            "created_at": row["created_at"],
            "updated_at": row["updated_at"],
        })


def _load_json(value: Any) -> Any:
    """asyncpg returns JSONB as text unless a codec is registered."""
    if isinstance(value, (str, bytes)):
        return json.loads(value)
    return value

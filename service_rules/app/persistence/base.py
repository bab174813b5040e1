"""
Rule store interface.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from shared.errors import NotFoundError
from ..rules.models import BusinessRule, RuleCategory, utcnow


class RuleStore(ABC):
    """Persistence for business rules.

    Returned rules are detached copies: mutating them never changes what
    the store, or a concurrently running evaluation, sees.
    """

    async def start(self):
        """Open connections. Override in subclasses."""

    async def stop(self):
        """Close connections. Override in subclasses."""

    @abstractmethod
    async def get_rules_by_scope(
        self,
        organization_id: str,
        property_id: Optional[str] = None,
        category: Optional[RuleCategory] = None,
        active_only: bool = True
    ) -> List[BusinessRule]:
        """Rules applicable to a scope, ordered by priority then newest first.

        Organization-wide rules (no property) apply to every property.
        """

    @abstractmethod
    async def list_rules(
        self,
        organization_id: str,
        property_id: Optional[str] = None,
        category: Optional[RuleCategory] = None,
        is_active: Optional[bool] = None
    ) -> List[BusinessRule]:
        """Filtered listing for management screens; no property means every property."""

    @abstractmethod
    async def get_rule(self, rule_id: str) -> Optional[BusinessRule]:
        """Load one rule."""

    @abstractmethod
    async def save_rule(self, rule: BusinessRule) -> BusinessRule:
        """Insert or replace a rule."""

    @abstractmethod
    async def delete_rule(self, rule_id: str) -> bool:
        """Delete a rule; False if it did not exist."""

    async def create_rule(self, rule: BusinessRule) -> BusinessRule:
        return await self.save_rule(rule)

    async def update_rule(self, rule: BusinessRule) -> BusinessRule:
        existing = await self.get_rule(rule.rule_id)
        if existing is None:
            raise NotFoundError(f"Rule {rule.rule_id} not found", details={"rule_id": rule.rule_id})
        rule.created_at = existing.created_at
        rule.created_by = existing.created_by
        rule.updated_at = utcnow()
        return await self.save_rule(rule)

    async def toggle_rule(self, rule_id: str, is_active: bool,
                          updated_by: Optional[str] = None) -> BusinessRule:
        rule = await self.get_rule(rule_id)
        if rule is None:
            raise NotFoundError(f"Rule {rule_id} not found", details={"rule_id": rule_id})
        rule.is_active = is_active
        if updated_by:
            rule.updated_by = updated_by
        rule.updated_at = utcnow()
        return await self.save_rule(rule)

    async def health_check(self) -> str:
        return "ok"

"""
In-memory rule store for tests and local runs.
"""

import copy
from typing import Dict, List, Optional

from shared.logging import get_logger
from .base import RuleStore
from ..rules.models import BusinessRule, RuleCategory, evaluation_order_key


class InMemoryRuleStore(RuleStore):
    """Rule store backed by a dict keyed on rule id."""

    def __init__(self):
        self.logger = get_logger("rules.persistence.memory")
        self._rules: Dict[str, BusinessRule] = {}

    async def get_rules_by_scope(
        self,
        organization_id: str,
        property_id: Optional[str] = None,
        category: Optional[RuleCategory] = None,
        active_only: bool = True
    ) -> List[BusinessRule]:
        rules = [
            rule for rule in self._rules.values()
            if rule.applies_to(organization_id, property_id)
            and (not active_only or rule.is_active)
            and (category is None or rule.category == category)
        ]
        rules.sort(key=evaluation_order_key)
        return copy.deepcopy(rules)

    async def list_rules(
        self,
        organization_id: str,
        property_id: Optional[str] = None,
        category: Optional[RuleCategory] = None,
        is_active: Optional[bool] = None
    ) -> List[BusinessRule]:
        rules = [
            rule for rule in self._rules.values()
            if rule.organization_id == organization_id
            and (property_id is None or rule.property_id == property_id)
            and (category is None or rule.category == category)
            and (is_active is None or rule.is_active == is_active)
        ]
        rules.sort(key=evaluation_order_key)
        return copy.deepcopy(rules)

    async def get_rule(self, rule_id: str) -> Optional[BusinessRule]:
        rule = self._rules.get(rule_id)
        return copy.deepcopy(rule) if rule else None

    async def save_rule(self, rule: BusinessRule) -> BusinessRule:
        self._rules[rule.rule_id] = copy.deepcopy(rule)
        self.logger.debug("Rule saved", rule_id=rule.rule_id, name=rule.name)
        return copy.deepcopy(rule)

    async def delete_rule(self, rule_id: str) -> bool:
        return self._rules.pop(rule_id, None) is not None

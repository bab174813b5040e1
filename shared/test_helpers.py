"""
Test helper functions and factory methods for the property rules platform.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from service_rules.app.rules.models import (
    BusinessRule, RuleAction, RuleCondition, RuleExecutionContext, RuleExecutionResult
)


DEFAULT_ORGANIZATION = "org-1"
DEFAULT_PROPERTY = "property-1"
DEFAULT_ROOM_TYPE = "room-type-deluxe"

# 2025-06-07 is a Saturday in summer
SATURDAY = date(2025, 6, 7)
WEDNESDAY = date(2025, 6, 11)


class TestDataFactory:
    """Factory for creating test data."""

    __test__ = False

    @staticmethod
    def create_condition(type: str = "occupancy", operator: str = "greater_than",
                         value: Any = 80, field: Optional[str] = None) -> RuleCondition:
        return RuleCondition(type=type, operator=operator, value=value, field=field)

    @staticmethod
    def create_action(type: str = "multiply_price", value: Any = 1.2,
                      target: Optional[str] = None) -> RuleAction:
        return RuleAction(type=type, value=value, target=target)

    @staticmethod
    def create_rule(
        name: str = "Test Rule",
        conditions: Optional[List[RuleCondition]] = None,
        actions: Optional[List[RuleAction]] = None,
        priority: int = 100,
        organization_id: str = DEFAULT_ORGANIZATION,
        property_id: Optional[str] = None,
        is_active: bool = True,
        category: str = "PRICING",
        created_at: Optional[datetime] = None,
        rule_id: Optional[str] = None
    ) -> BusinessRule:
        rule = BusinessRule(
            organization_id=organization_id,
            name=name,
            conditions=conditions if conditions is not None else [TestDataFactory.create_condition()],
            actions=actions if actions is not None else [TestDataFactory.create_action()],
            priority=priority,
            property_id=property_id,
            is_active=is_active,
            category=category,
            created_by="tester",
        )
        if created_at is not None:
            rule.created_at = created_at
            rule.updated_at = created_at
        if rule_id is not None:
            rule.rule_id = rule_id
        return rule

    @staticmethod
    def create_rule_payload(**overrides) -> Dict[str, Any]:
        """Raw rule mapping as sent to the API."""
        payload = {
            "name": "High Occupancy Markup",
            "organization_id": DEFAULT_ORGANIZATION,
            "created_by": "tester",
            "category": "PRICING",
            "priority": 10,
            "conditions": [{"type": "occupancy", "operator": "greater_than", "value": 90}],
            "actions": [{"type": "multiply_price", "value": 1.2}],
        }
        payload.update(overrides)
        return payload

    @staticmethod
    def create_context(
        current_price: float = 100.0,
        stay_date: date = WEDNESDAY,
        organization_id: str = DEFAULT_ORGANIZATION,
        property_id: Optional[str] = DEFAULT_PROPERTY,
        **kwargs
    ) -> RuleExecutionContext:
        return RuleExecutionContext(
            organization_id=organization_id,
            stay_date=stay_date,
            current_price=current_price,
            property_id=property_id,
            room_type_id=kwargs.pop("room_type_id", DEFAULT_ROOM_TYPE),
            **kwargs
        )

    @staticmethod
    def create_execution_result(
        rule_id: str = "rule-1",
        success: bool = True,
        execution_time_ms: float = 10.0,
        price_before: float = 100.0,
        price_after: float = 120.0
    ) -> RuleExecutionResult:
        return RuleExecutionResult(
            rule_id=rule_id,
            rule_name="Test Rule",
            executed=True,
            success=success,
            conditions_matched=True,
            execution_time_ms=execution_time_ms,
            error=None if success else "Action 'multiply_price' requires a numeric value",
            price_before=price_before,
            price_after=price_after,
        )


def staggered_timestamps(count: int, start: Optional[datetime] = None) -> List[datetime]:
    """Increasing creation timestamps one minute apart."""
    start = start or datetime(2025, 1, 1, tzinfo=timezone.utc)
    return [start + timedelta(minutes=i) for i in range(count)]

"""
Condition evaluation for the Rules Service.
"""

from typing import Any, Dict, Iterable

from shared.errors import ConditionEvaluationError
from shared.logging import get_logger
from .models import (
    RuleCondition, ConditionType, ConditionOperator, RuleExecutionContext,
    ScalarValue, ListValue, RangeValue, is_number
)


# Context attribute read by each condition type unless the condition
# names an explicit field.
DEFAULT_FIELDS: Dict[ConditionType, str] = {
    ConditionType.OCCUPANCY: "occupancy_rate",
    ConditionType.ADVANCE_BOOKING: "advance_booking_days",
    ConditionType.DAY_OF_WEEK: "day_of_week",
    ConditionType.SEASON: "season",
    ConditionType.DEMAND: "demand_score",
    ConditionType.COMPETITOR_PRICE: "average_competitor_price",
    ConditionType.WEATHER: "weather_forecast",
    ConditionType.EVENT: "local_events",
    ConditionType.ROOM_TYPE: "room_type_id",
    ConditionType.BOOKING_SOURCE: "booking_source",
    ConditionType.GUEST_TYPE: "guest_type",
    ConditionType.LENGTH_OF_STAY: "length_of_stay",
    ConditionType.TIME_OF_DAY: "time_of_day",
    ConditionType.MARKET_SEGMENT: "market_segment",
}


class ConditionEvaluator:
    """Evaluates conditions against an execution context."""

    def __init__(self):
        self.logger = get_logger("rules.conditions")

    def resolve_field(self, condition: RuleCondition) -> str:
        return condition.field or DEFAULT_FIELDS[condition.type]

    def resolve_value(self, condition: RuleCondition, context: RuleExecutionContext) -> Any:
        """Read the context value a condition targets."""
        field_name = self.resolve_field(condition)
        try:
            return context.get_field(field_name)
        except KeyError:
            raise ConditionEvaluationError(
                f"Unresolvable context field '{field_name}'",
                details={"field": field_name, "condition_type": condition.type.value}
            )

    def matches(self, conditions: Iterable[RuleCondition], context: RuleExecutionContext) -> bool:
        """All conditions must hold. Errors propagate to the caller."""
        for condition in conditions:
            if not self.evaluate(condition, context):
                return False
        return True

    def evaluate(self, condition: RuleCondition, context: RuleExecutionContext) -> bool:
        """Evaluate a single condition."""
        actual = self.resolve_value(condition, context)

        # Absent optional facts never satisfy a condition
        if actual is None:
            return False

        operator = condition.operator
        value = condition.value

        if operator == ConditionOperator.EQUALS:
            return _normalize(actual) == _normalize(value.dump())

        elif operator == ConditionOperator.NOT_EQUALS:
            return _normalize(actual) != _normalize(value.dump())

        elif operator == ConditionOperator.GREATER_THAN:
            left, right = self._numeric_operands(condition, actual)
            return left > right

        elif operator == ConditionOperator.LESS_THAN:
            left, right = self._numeric_operands(condition, actual)
            return left < right

        elif operator == ConditionOperator.GREATER_THAN_OR_EQUAL:
            left, right = self._numeric_operands(condition, actual)
            return left >= right

        elif operator == ConditionOperator.LESS_THAN_OR_EQUAL:
            left, right = self._numeric_operands(condition, actual)
            return left <= right

        elif operator == ConditionOperator.BETWEEN:
            return self._in_range(condition, actual)

        elif operator == ConditionOperator.NOT_BETWEEN:
            return not self._in_range(condition, actual)

        elif operator == ConditionOperator.IN:
            return self._is_member(condition, actual)

        elif operator == ConditionOperator.NOT_IN:
            return not self._is_member(condition, actual)

        elif operator == ConditionOperator.CONTAINS:
            return self._contains(condition, actual)

        elif operator == ConditionOperator.NOT_CONTAINS:
            return not self._contains(condition, actual)

        elif operator == ConditionOperator.STARTS_WITH:
            return self._string_operand(condition, actual).startswith(value.dump())

        elif operator == ConditionOperator.ENDS_WITH:
            return self._string_operand(condition, actual).endswith(value.dump())

        raise ConditionEvaluationError(
            f"Unsupported operator '{operator}'",
            details={"operator": str(operator)}
        )

    def _numeric_operands(self, condition: RuleCondition, actual: Any):
        expected = condition.value.dump() if isinstance(condition.value, ScalarValue) else None
        if not is_number(actual) or not is_number(expected):
            raise self._type_mismatch(condition, actual, "numeric")
        return actual, expected

    def _in_range(self, condition: RuleCondition, actual: Any) -> bool:
        if not isinstance(condition.value, RangeValue):
            raise self._type_mismatch(condition, actual, "range")
        if not is_number(actual):
            raise self._type_mismatch(condition, actual, "numeric")
        return condition.value.contains(actual)

    def _is_member(self, condition: RuleCondition, actual: Any) -> bool:
        if not isinstance(condition.value, ListValue):
            raise self._type_mismatch(condition, actual, "list")
        candidates = [_normalize(item) for item in condition.value.items]
        if isinstance(actual, (list, tuple, set, frozenset)):
            # List-valued facts (e.g. local events) match on any element
            return any(_normalize(item) in candidates for item in actual)
        return _normalize(actual) in candidates

    def _contains(self, condition: RuleCondition, actual: Any) -> bool:
        expected = condition.value.dump()
        if isinstance(actual, str):
            if not isinstance(expected, str):
                raise self._type_mismatch(condition, actual, "string")
            return expected in actual
        if isinstance(actual, (list, tuple, set, frozenset)):
            return _normalize(expected) in [_normalize(item) for item in actual]
        raise self._type_mismatch(condition, actual, "string or list")

    def _string_operand(self, condition: RuleCondition, actual: Any) -> str:
        if not isinstance(actual, str):
            raise self._type_mismatch(condition, actual, "string")
        return actual

    def _type_mismatch(self, condition: RuleCondition, actual: Any, expected: str) -> ConditionEvaluationError:
        return ConditionEvaluationError(
            f"Operator '{condition.operator.value}' requires {expected} operands",
            details={
                "condition_type": condition.type.value,
                "field": self.resolve_field(condition),
                "actual_type": type(actual).__name__,
            }
        )


def _normalize(value: Any) -> Any:
    """Tuples and lists compare equal; everything else compares as-is."""
    if isinstance(value, tuple):
        return [_normalize(v) for v in value]
    if isinstance(value, list):
        return [_normalize(v) for v in value]
    return value

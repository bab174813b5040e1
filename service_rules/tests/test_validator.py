"""
Unit tests for rule draft validation.
"""

import pytest

from service_rules.app.rules.validator import RuleValidator
from shared.errors import ValidationError
from shared.test_helpers import TestDataFactory


class TestRuleValidator:
    """Test cases for RuleValidator."""

    @pytest.fixture
    def validator(self):
        return RuleValidator()

    def test_valid_rule(self, validator):
        result = validator.validate(TestDataFactory.create_rule_payload())

        assert result.is_valid is True
        assert result.errors == []
        assert result.warnings == []

    def test_required_fields(self, validator):
        result = validator.validate({"conditions": [], "actions": []})

        assert result.is_valid is False
        assert "Rule name is required" in result.errors
        assert "Organization ID is required" in result.errors
        assert "Creator is required" in result.errors
        assert "At least one condition is required" in result.errors
        assert "At least one action is required" in result.errors

    def test_creator_optional_when_not_required(self):
        payload = TestDataFactory.create_rule_payload(created_by=None)

        assert RuleValidator(require_creator=False).validate(payload).is_valid is True

    def test_unknown_category_and_bad_priority(self, validator):
        result = validator.validate(TestDataFactory.create_rule_payload(category="SURCHARGE", priority="high"))

        assert "Unknown category 'SURCHARGE'" in result.errors
        assert "Priority must be an integer" in result.errors

    def test_priority_out_of_range_warns(self, validator):
        result = validator.validate(TestDataFactory.create_rule_payload(priority=5000))

        assert result.is_valid is True
        assert result.warnings == ["Priority should be between 1 and 1000"]

    def test_condition_problems_reported(self, validator):
        result = validator.validate(TestDataFactory.create_rule_payload(conditions=[
            {"type": "moon_phase", "operator": "equals", "value": "full"},
            {"type": "occupancy", "operator": "approximately", "value": 80},
            {"type": "occupancy", "operator": "between", "value": 80},
            {"type": "occupancy", "operator": "greater_than"},
        ]))

        assert result.is_valid is False
        assert "Condition 1: unknown condition type 'moon_phase'" in result.errors
        assert "Condition 2: unknown operator 'approximately'" in result.errors
        assert any(e.startswith("Condition 3:") and "range" in e for e in result.errors)
        assert "Condition 4: value is required" in result.errors

    def test_custom_field_warns(self, validator):
        result = validator.validate(TestDataFactory.create_rule_payload(conditions=[
            {"type": "guest_type", "operator": "equals", "value": "gold", "field": "loyalty_tier"},
        ]))

        assert result.is_valid is True
        assert "loyalty_tier" in result.warnings[0]

    def test_action_problems_reported(self, validator):
        result = validator.validate(TestDataFactory.create_rule_payload(actions=[
            {"type": "teleport", "value": 1},
            {"type": "multiply_price", "value": "double"},
            {"type": "set_availability", "value": 1.5},
            {"type": "set_restriction", "value": True},
            {"type": "add_amount"},
        ]))

        assert result.errors == [
            "Action 1: unknown action type 'teleport'",
            "Action 2: multiply_price requires a finite numeric value",
            "Action 3: set_availability requires a whole number",
            "Action 4: set_restriction requires an object value",
            "Action 5: value is required",
        ]

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_action_values_rejected(self, validator, value):
        result = validator.validate(TestDataFactory.create_rule_payload(actions=[
            {"type": "multiply_price", "value": value},
            {"type": "add_availability", "value": value},
        ]))

        assert result.is_valid is False
        assert result.errors == [
            "Action 1: multiply_price requires a finite numeric value",
            "Action 2: add_availability requires a whole number",
        ]

    def test_non_finite_range_bounds_rejected(self, validator):
        result = validator.validate(TestDataFactory.create_rule_payload(conditions=[
            {"type": "occupancy", "operator": "between", "value": [0, float("inf")]},
        ]))

        assert result.is_valid is False
        assert result.errors[0].startswith("Condition 1:")
        assert "finite" in result.errors[0]

    def test_complexity_suggestions(self, validator):
        condition = {"type": "occupancy", "operator": "greater_than", "value": 10}
        action = {"type": "add_amount", "value": 1}
        result = validator.validate(TestDataFactory.create_rule_payload(
            conditions=[condition] * 6, actions=[action] * 4
        ))

        assert result.is_valid is True
        assert len(result.suggestions) == 2

    def test_validate_or_raise(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            validator.validate_or_raise(TestDataFactory.create_rule_payload(name=""))

        assert exc_info.value.details["errors"] == ["Rule name is required"]

"""
Unit tests for rule data models.
"""

from datetime import date

import pytest

from service_rules.app.rules.models import (
    BusinessRule, ListValue, RangeValue, RuleCondition, RuleExecutionContext,
    ScalarValue, evaluation_order_key
)
from shared.errors import ValidationError
from shared.test_helpers import TestDataFactory, SATURDAY, WEDNESDAY, staggered_timestamps


class TestConditionValues:
    """Condition values are checked against the operator at construction."""

    def test_scalar_for_equality(self):
        condition = RuleCondition(type="season", operator="equals", value="summer")

        assert isinstance(condition.value, ScalarValue)

    def test_list_for_membership(self):
        condition = RuleCondition(type="day_of_week", operator="in", value=["saturday"])

        assert isinstance(condition.value, ListValue)
        assert condition.to_dict()["value"] == ["saturday"]

    def test_range_from_mapping_or_pair(self):
        from_mapping = RuleCondition(type="occupancy", operator="between", value={"min": 10, "max": 20})
        from_pair = RuleCondition(type="occupancy", operator="between", value=[10, 20])

        assert from_mapping.value == from_pair.value == RangeValue(min=10, max=20)

    @pytest.mark.parametrize("operator,value", [
        ("between", 5),
        ("between", [20, 10]),
        ("in", "saturday"),
        ("greater_than", "high"),
        ("starts_with", 3),
        ("equals", ["a", "b"]),
    ])
    def test_ill_typed_values_rejected(self, operator, value):
        with pytest.raises(ValidationError):
            RuleCondition(type="occupancy", operator=operator, value=value)

    def test_unknown_operator_rejected(self):
        with pytest.raises(ValidationError):
            RuleCondition(type="occupancy", operator="roughly", value=3)


class TestExecutionContext:
    """Test cases for RuleExecutionContext."""

    def test_derives_temporal_fields(self):
        context = TestDataFactory.create_context(stay_date=SATURDAY)

        assert context.day_of_week == "saturday"
        assert context.is_weekend is True
        assert context.season == "summer"
        assert context.base_price == context.current_price

    def test_weekday_is_not_weekend(self):
        context = TestDataFactory.create_context(stay_date=WEDNESDAY)

        assert context.day_of_week == "wednesday"
        assert context.is_weekend is False

    @pytest.mark.parametrize("month,season", [(1, "winter"), (4, "spring"), (7, "summer"), (10, "autumn"), (12, "winter")])
    def test_season_boundaries(self, month, season):
        context = TestDataFactory.create_context(stay_date=date(2025, month, 15))

        assert context.season == season

    def test_is_immutable(self):
        context = TestDataFactory.create_context()

        with pytest.raises(Exception):
            context.current_price = 1.0
        with pytest.raises(TypeError):
            context.extra["key"] = "value"

    def test_from_dict_accepts_date_alias_and_extra(self):
        context = RuleExecutionContext.from_dict({
            "organization_id": "org-1",
            "date": "2025-06-07",
            "current_price": 100,
            "loyalty_tier": "gold",
        })

        assert context.stay_date == SATURDAY
        assert context.get_field("loyalty_tier") == "gold"
        assert context.to_dict()["stay_date"] == "2025-06-07"


class TestBusinessRule:
    """Test cases for BusinessRule."""

    def test_dict_round_trip(self):
        rule = TestDataFactory.create_rule(
            conditions=[RuleCondition(type="occupancy", operator="between", value=[50, 90])],
            property_id="property-1"
        )

        restored = BusinessRule.from_dict(rule.to_dict())

        assert restored.to_dict() == rule.to_dict()

    def test_organization_wide_rule_applies_to_every_property(self):
        rule = TestDataFactory.create_rule(property_id=None)

        assert rule.applies_to("org-1", "property-9")
        assert not rule.applies_to("org-2", "property-9")

    def test_order_key_priority_then_newest(self):
        older, newer = staggered_timestamps(2)
        first = TestDataFactory.create_rule(priority=1, created_at=older)
        tie_old = TestDataFactory.create_rule(priority=5, created_at=older)
        tie_new = TestDataFactory.create_rule(priority=5, created_at=newer)

        ordered = sorted([tie_old, tie_new, first], key=evaluation_order_key)

        assert ordered == [first, tie_new, tie_old]

"""
Unit tests for pricing integration.
"""

from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from service_rules.app.persistence.memory import InMemoryRuleStore
from service_rules.app.pricing.integration import PriceQuoteRequest, PricingIntegrationService, SCENARIOS
from service_rules.app.pricing.providers import StaticPricingDataProvider
from service_rules.app.rules.engine import RuleEngine
from service_rules.app.rules.models import RuleAction, RuleCondition
from service_rules.app.rules.samples import install_sample_rules
from shared.errors import NotFoundError, ServiceError
from shared.test_helpers import TestDataFactory, DEFAULT_ROOM_TYPE, SATURDAY

TODAY = date(2025, 6, 2)


def _request(**overrides):
    values = {
        "organization_id": "org-1",
        "property_id": "property-1",
        "room_type_id": DEFAULT_ROOM_TYPE,
        "stay_date": SATURDAY,
    }
    values.update(overrides)
    return PriceQuoteRequest(**values)


class TestPricingIntegrationService:
    """Test cases for PricingIntegrationService."""

    @pytest.fixture
    def store(self):
        return InMemoryRuleStore()

    @pytest.fixture
    def recorder(self):
        return MagicMock()

    @pytest.fixture
    def provider(self):
        provider = AsyncMock()
        provider.get_base_price.return_value = 100.0
        provider.get_occupancy_rate.return_value = 95.0
        provider.get_demand_score.return_value = 70.0
        provider.get_competitor_prices.return_value = [95.0, 105.0]
        return provider

    @pytest.fixture
    def service(self, store, provider, recorder):
        engine = RuleEngine(store, recorder=recorder)
        return PricingIntegrationService(engine, provider, today=lambda: TODAY)

    @pytest.mark.asyncio
    async def test_enhanced_price_uses_provider_facts(self, service, store):
        await store.create_rule(TestDataFactory.create_rule(
            conditions=[RuleCondition("occupancy", "greater_than", 90)],
            actions=[RuleAction("multiply_price", 1.2)],
        ))

        result = await service.calculate_enhanced_price(_request())

        assert result.original_price == 100.0
        assert result.final_price == 120.0
        assert result.context.advance_booking_days == 5
        assert result.context.average_competitor_price == 100.0
        assert result.context.demand_score == 70.0
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_overrides_skip_provider(self, service, provider):
        result = await service.calculate_enhanced_price(
            _request(occupancy_override=10.0, demand_override=20.0, advance_booking_days=60)
        )

        provider.get_occupancy_rate.assert_not_called()
        provider.get_demand_score.assert_not_called()
        assert result.context.occupancy_rate == 10.0
        assert result.context.advance_booking_days == 60

    @pytest.mark.asyncio
    async def test_failed_facts_fall_back_to_defaults(self, service, provider):
        provider.get_occupancy_rate.side_effect = ConnectionError("timeout")
        provider.get_competitor_prices.side_effect = ConnectionError("timeout")

        result = await service.calculate_enhanced_price(_request())

        assert result.context.occupancy_rate == 50.0
        assert result.context.competitor_prices == ()
        assert result.warnings == [
            "Using default occupancy rate: provider unavailable",
            "Using default competitor prices: provider unavailable",
        ]

    @pytest.mark.asyncio
    async def test_base_price_failure(self, service, provider):
        provider.get_base_price.side_effect = OSError("connection refused")

        with pytest.raises(ServiceError):
            await service.calculate_enhanced_price(_request())

    @pytest.mark.asyncio
    async def test_unknown_room_type_propagates(self, service, provider):
        provider.get_base_price.side_effect = NotFoundError("Room type missing")

        with pytest.raises(NotFoundError):
            await service.calculate_enhanced_price(_request())

    @pytest.mark.asyncio
    async def test_pricing_comparison(self, service, store):
        rule = await store.create_rule(TestDataFactory.create_rule(name="Markup"))

        comparison = await service.get_pricing_comparison(_request())

        assert comparison["base_price"] == 100.0
        assert comparison["enhanced_price"] == 120.0
        assert comparison["price_difference"] == 20.0
        assert comparison["price_difference_percentage"] == 20.0
        assert comparison["applied_rules"] == [
            {"rule_id": rule.rule_id, "name": "Markup", "executed": True, "success": True}
        ]

    @pytest.mark.asyncio
    async def test_scenarios_are_not_recorded(self, store, recorder):
        await install_sample_rules(store, "org-1", "tester")
        engine = RuleEngine(store, recorder=recorder)
        service = PricingIntegrationService(engine, StaticPricingDataProvider(), today=lambda: TODAY)

        results = await service.test_rules_with_scenarios("org-1", "property-1", DEFAULT_ROOM_TYPE)

        assert [r["scenario"] for r in results] == [s.name for s in SCENARIOS]
        assert results[0]["date"] == "2025-06-14"
        assert "Weekend High Demand Pricing" in results[0]["applied_rules"]
        assert all(r["rule_results"] for r in results)
        assert all(r["base_price"] == 2000.0 for r in results)
        recorder.submit.assert_not_called()

    @pytest.mark.asyncio
    async def test_extended_stay_scenario(self, store, recorder):
        await store.create_rule(TestDataFactory.create_rule(
            name="Extended Stay",
            conditions=[RuleCondition("length_of_stay", "greater_than", 7)],
            actions=[RuleAction("multiply_price", 0.8)],
        ))
        engine = RuleEngine(store, recorder=recorder)
        service = PricingIntegrationService(engine, StaticPricingDataProvider(), today=lambda: TODAY)

        results = await service.test_rules_with_scenarios("org-1", "property-1", DEFAULT_ROOM_TYPE)

        by_name = {r["scenario"]: r for r in results}
        extended = by_name["Extended Corporate Stay"]
        assert extended["enhanced_price"] == 1600.0
        assert extended["applied_rules"] == ["Extended Stay"]
        assert by_name["Midweek Baseline"]["actual_result"] == "no change"
        assert by_name["Midweek Baseline"]["matches_expectation"] is True

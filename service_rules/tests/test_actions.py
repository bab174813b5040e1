"""
Unit tests for action application and side-effect dispatch.
"""

from unittest.mock import MagicMock

import httpx
import pytest

from service_rules.app.notifications.dispatcher import (
    LoggingDispatcher, WebhookDispatcher, create_dispatcher
)
from service_rules.app.rules.actions import ActionApplier, WorkingState
from service_rules.app.rules.models import ActionType, RuleAction
from shared.errors import ExternalServiceError
from shared.test_helpers import TestDataFactory


class TestPriceActions:
    """Price mutations and clamping."""

    @pytest.fixture
    def applier(self):
        return ActionApplier()

    @pytest.fixture
    def state(self):
        return WorkingState(price=100.0)

    def test_multiply_add_subtract(self, applier, state):
        applier.apply(RuleAction("multiply_price", 1.2), state)
        applier.apply(RuleAction("add_amount", 30), state)
        result = applier.apply(RuleAction("subtract_amount", 50), state)

        assert result.success is True
        assert result.original_value == pytest.approx(150.0)
        assert state.price == pytest.approx(100.0)

    def test_set_price(self, applier, state):
        result = applier.apply(RuleAction("set_price", 250), state)

        assert result.new_value == 250.0
        assert state.price == 250.0

    def test_numeric_string_value_is_accepted(self, applier, state):
        result = applier.apply(RuleAction("multiply_price", "1.5"), state)

        assert result.success is True
        assert state.price == pytest.approx(150.0)

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), "nan", "-inf", "Infinity"])
    def test_non_finite_value_fails_action(self, applier, state, value):
        result = applier.apply(RuleAction("multiply_price", value), state)

        assert result.success is False
        assert "finite" in result.error
        assert state.price == 100.0
        assert isinstance(result.original_value, str)

    def test_non_finite_floor_leaves_state_untouched(self, applier, state):
        state.begin_rule()
        result = applier.apply(RuleAction("set_minimum_price", float("inf")), state)

        assert result.success is False
        assert state.min_price is None
        assert state.finalize_price() == 100.0

    def test_overflowing_price_fails_and_keeps_prior_price(self, applier, state):
        applier.apply(RuleAction("set_price", 1e308), state)
        result = applier.apply(RuleAction("multiply_price", 10), state)

        assert result.success is False
        assert "non-finite price" in result.error
        assert state.price == 1e308

    def test_price_never_negative(self, applier, state):
        applier.apply(RuleAction("subtract_amount", 500), state)

        assert state.price == 0.0

    def test_minimum_clamps_later_actions_of_same_rule(self, applier, state):
        state.begin_rule()
        applier.apply(RuleAction("set_minimum_price", 90), state)
        applier.apply(RuleAction("multiply_price", 0.5), state)

        assert state.price == 90.0

    def test_minimum_does_not_clamp_next_rule(self, applier, state):
        state.begin_rule()
        applier.apply(RuleAction("set_minimum_price", 90), state)
        state.begin_rule()
        applier.apply(RuleAction("multiply_price", 0.5), state)

        assert state.price == 50.0
        # Re-applied when the evaluation finishes
        assert state.finalize_price() == 90.0

    def test_maximum_raises_existing_price_down(self, applier, state):
        state.begin_rule()
        result = applier.apply(RuleAction("set_maximum_price", 80), state)

        assert result.new_value == 80.0
        assert state.finalize_price() == 80.0

    def test_maximum_wins_when_below_minimum(self):
        state = WorkingState(price=100.0, min_price=150.0, max_price=120.0)

        assert state.finalize_price() == 120.0

    def test_non_numeric_value_fails_without_raising(self, applier, state):
        result = applier.apply(RuleAction("multiply_price", "lots"), state)

        assert result.success is False
        assert "numeric" in result.error
        assert state.price == 100.0

    def test_bool_is_not_numeric(self, applier, state):
        result = applier.apply(RuleAction("add_amount", True), state)

        assert result.success is False


class TestAvailabilityAndRestrictions:
    """Availability counts and restriction flags."""

    @pytest.fixture
    def applier(self):
        return ActionApplier()

    def test_availability_operations(self, applier):
        state = WorkingState(price=100.0, availability=5)

        applier.apply(RuleAction("add_availability", 3), state)
        applier.apply(RuleAction("subtract_availability", 2), state)

        assert state.availability == 6

    def test_availability_floors_at_zero(self, applier):
        state = WorkingState(price=100.0, availability=1)

        applier.apply(RuleAction("subtract_availability", 4), state)

        assert state.availability == 0

    def test_missing_availability_counts_as_zero(self, applier):
        state = WorkingState(price=100.0)

        applier.apply(RuleAction("add_availability", 2), state)

        assert state.availability == 2

    def test_fractional_availability_rejected(self, applier):
        state = WorkingState(price=100.0, availability=3)

        result = applier.apply(RuleAction("set_availability", 2.5), state)

        assert result.success is False
        assert state.availability == 3

    def test_set_restriction_merges(self, applier):
        state = WorkingState(price=100.0)

        applier.apply(RuleAction("set_restriction", {"closed_to_arrival": True}), state)
        result = applier.apply(RuleAction("set_restriction", {"min_length_of_stay": 2}), state)

        assert result.success is True
        assert state.restrictions == {"closed_to_arrival": True, "min_length_of_stay": 2}

    @pytest.mark.parametrize("value", [
        {"closed_to_arrival": "yes"},
        {"min_length_of_stay": -1},
        {"free_breakfast": True},
        {},
        "closed",
    ])
    def test_invalid_restrictions_rejected(self, applier, value):
        state = WorkingState(price=100.0)

        result = applier.apply(RuleAction("set_restriction", value), state)

        assert result.success is False
        assert state.restrictions == {}


class TestSideEffectActions:
    """Notification, automation and log actions."""

    def test_dispatch_returns_correlation_id(self):
        dispatcher = MagicMock()
        dispatcher.dispatch.return_value = "corr-1"
        applier = ActionApplier(dispatcher)
        rule = TestDataFactory.create_rule(rule_id="rule-7")
        context = TestDataFactory.create_context()

        result = applier.apply(
            RuleAction("send_notification", "Price raised", target="revenue-team"),
            WorkingState(price=120.0), rule, context
        )

        assert result.success is True
        assert result.correlation_id == "corr-1"
        action_type, payload = dispatcher.dispatch.call_args.args
        assert action_type == ActionType.SEND_NOTIFICATION
        assert payload["rule_id"] == "rule-7"
        assert payload["target"] == "revenue-team"
        assert payload["current_price"] == 120.0
        assert payload["stay_date"] == context.stay_date.isoformat()

    def test_dispatch_failure_fails_only_the_action(self):
        dispatcher = MagicMock()
        dispatcher.dispatch.side_effect = RuntimeError("queue full")
        applier = ActionApplier(dispatcher)
        state = WorkingState(price=100.0)

        result = applier.apply(RuleAction("trigger_automation", "restock"), state)

        assert result.success is False
        assert "queue full" in result.error
        assert state.price == 100.0

    def test_logging_dispatcher_is_default(self):
        applier = ActionApplier()

        result = applier.apply(RuleAction("log_event", "audit"), WorkingState(price=1.0))

        assert isinstance(applier.dispatcher, LoggingDispatcher)
        assert result.correlation_id


class TestWebhookDispatcher:
    """Test cases for WebhookDispatcher."""

    def test_factory_selects_dispatcher(self):
        assert isinstance(create_dispatcher(None), LoggingDispatcher)
        assert isinstance(create_dispatcher("http://hooks.local/rules"), WebhookDispatcher)

    def test_dispatch_without_loop_raises(self):
        dispatcher = WebhookDispatcher("http://hooks.local/rules")

        with pytest.raises(ExternalServiceError):
            dispatcher.dispatch(ActionType.LOG_EVENT, {"value": "x"})

    @pytest.mark.asyncio
    async def test_posts_in_background(self):
        received = []

        def handler(request):
            received.append(request)
            return httpx.Response(202)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        dispatcher = WebhookDispatcher("http://hooks.local/rules", client=client)

        correlation_id = dispatcher.dispatch(ActionType.SEND_NOTIFICATION, {"value": "hello"})
        await dispatcher.close()

        assert len(received) == 1
        assert correlation_id in received[0].content.decode()

    @pytest.mark.asyncio
    async def test_delivery_errors_are_contained(self):
        def handler(request):
            return httpx.Response(500)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        dispatcher = WebhookDispatcher("http://hooks.local/rules", client=client)

        assert dispatcher.dispatch(ActionType.LOG_EVENT, {"value": "x"})
        await dispatcher.close()

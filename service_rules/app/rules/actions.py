"""
Action application for the Rules Service.

Actions mutate a ``WorkingState`` threaded through every matching rule of
one evaluation. Price floors and ceilings set by a rule clamp that rule's
own later price actions; the most recent floor and ceiling seen across the
run are re-applied once more when the evaluation finishes.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from shared.errors import ActionApplicationError
from shared.logging import get_logger
from .models import (
    ActionType, ActionResult, RuleAction, BusinessRule, RuleExecutionContext,
    SIDE_EFFECT_ACTIONS, is_finite_number, is_number, to_jsonable
)
from ..notifications.dispatcher import ActionDispatcher, LoggingDispatcher


RESTRICTION_FLAGS = ("closed_to_arrival", "closed_to_departure")
RESTRICTION_LIMITS = ("min_length_of_stay", "max_length_of_stay")


@dataclass
class WorkingState:
    """Mutable pricing/availability/restriction state for one evaluation."""
    price: float
    availability: Optional[int] = None
    restrictions: Dict[str, Any] = field(default_factory=dict)
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    rule_min_price: Optional[float] = None
    rule_max_price: Optional[float] = None

    @classmethod
    def from_context(cls, context: RuleExecutionContext) -> "WorkingState":
        return cls(price=float(context.current_price), availability=context.available_rooms)

    def begin_rule(self):
        """Floors and ceilings only clamp actions of the rule that set them."""
        self.rule_min_price = None
        self.rule_max_price = None

    def clamp(self, price: float) -> float:
        if self.rule_min_price is not None:
            price = max(price, self.rule_min_price)
        if self.rule_max_price is not None:
            price = min(price, self.rule_max_price)
        return max(0.0, price)

    def finalize_price(self) -> float:
        """Zero floor, then the last-seen minimum, then the last-seen maximum."""
        price = max(0.0, self.price)
        if self.min_price is not None:
            price = max(price, self.min_price)
        if self.max_price is not None:
            price = min(price, self.max_price)
        return max(0.0, price)


class ActionApplier:
    """Applies rule actions to a working state."""

    def __init__(self, dispatcher: Optional[ActionDispatcher] = None):
        self.dispatcher = dispatcher or LoggingDispatcher()
        self.logger = get_logger("rules.actions")

    def apply(
        self,
        action: RuleAction,
        state: WorkingState,
        rule: Optional[BusinessRule] = None,
        context: Optional[RuleExecutionContext] = None
    ) -> ActionResult:
        """Apply one action; failures are reported in the result, never raised."""
        try:
            if action.type in SIDE_EFFECT_ACTIONS:
                return self._dispatch(action, state, rule, context)
            return self._apply_state_action(action, state)
        except ActionApplicationError as e:
            self.logger.warning(
                "Action application failed",
                action_type=action.type.value,
                rule_id=rule.rule_id if rule else None,
                error=e.message
            )
            return ActionResult(
                action_type=action.type,
                success=False,
                original_value=_reportable(action.value),
                new_value=None,
                error=e.message
            )

    def _apply_state_action(self, action: RuleAction, state: WorkingState) -> ActionResult:
        action_type = action.type

        if action_type == ActionType.MULTIPLY_PRICE:
            return self._set_price(action, state, state.price * self._number(action))

        elif action_type == ActionType.ADD_AMOUNT:
            return self._set_price(action, state, state.price + self._number(action))

        elif action_type == ActionType.SUBTRACT_AMOUNT:
            return self._set_price(action, state, state.price - self._number(action))

        elif action_type == ActionType.SET_PRICE:
            return self._set_price(action, state, self._number(action))

        elif action_type == ActionType.SET_MINIMUM_PRICE:
            floor = self._number(action)
            state.rule_min_price = floor
            state.min_price = floor
            return self._set_price(action, state, state.price)

        elif action_type == ActionType.SET_MAXIMUM_PRICE:
            ceiling = self._number(action)
            state.rule_max_price = ceiling
            state.max_price = ceiling
            return self._set_price(action, state, state.price)

        elif action_type == ActionType.SET_AVAILABILITY:
            return self._set_availability(action, state, self._integer(action))

        elif action_type == ActionType.ADD_AVAILABILITY:
            return self._set_availability(action, state, (state.availability or 0) + self._integer(action))

        elif action_type == ActionType.SUBTRACT_AVAILABILITY:
            return self._set_availability(action, state, (state.availability or 0) - self._integer(action))

        elif action_type == ActionType.SET_RESTRICTION:
            original = dict(state.restrictions)
            state.restrictions.update(self._restrictions(action))
            return ActionResult(
                action_type=action_type,
                success=True,
                original_value=original,
                new_value=dict(state.restrictions)
            )

        raise ActionApplicationError(f"Unsupported action type '{action_type}'")

    def _set_price(self, action: RuleAction, state: WorkingState, price: float) -> ActionResult:
        if not math.isfinite(price):
            raise ActionApplicationError(
                f"Action '{action.type.value}' produced a non-finite price",
                details={"price": state.price}
            )
        original = state.price
        state.price = state.clamp(price)
        return ActionResult(
            action_type=action.type,
            success=True,
            original_value=original,
            new_value=state.price
        )

    def _set_availability(self, action: RuleAction, state: WorkingState, availability: int) -> ActionResult:
        original = state.availability
        state.availability = max(0, availability)
        return ActionResult(
            action_type=action.type,
            success=True,
            original_value=original,
            new_value=state.availability
        )

    def _dispatch(
        self,
        action: RuleAction,
        state: WorkingState,
        rule: Optional[BusinessRule],
        context: Optional[RuleExecutionContext]
    ) -> ActionResult:
        payload = {
            "value": to_jsonable(action.value),
            "target": action.target,
            "rule_id": rule.rule_id if rule else None,
            "rule_name": rule.name if rule else None,
            "current_price": state.price,
        }
        if context is not None:
            payload.update({
                "organization_id": context.organization_id,
                "property_id": context.property_id,
                "room_type_id": context.room_type_id,
                "stay_date": context.stay_date.isoformat(),
            })

        try:
            correlation_id = self.dispatcher.dispatch(action.type, payload)
        except Exception as e:
            # Side effects never roll back pricing; only this action fails
            self.logger.warning(
                "Side-effect dispatch failed",
                action_type=action.type.value,
                rule_id=payload["rule_id"],
                error=str(e)
            )
            return ActionResult(
                action_type=action.type,
                success=False,
                original_value=payload["value"],
                error=f"Dispatch failed: {e}"
            )

        return ActionResult(
            action_type=action.type,
            success=True,
            original_value=payload["value"],
            new_value=None,
            correlation_id=correlation_id
        )

    def _number(self, action: RuleAction) -> float:
        value = action.value
        if is_number(value) or isinstance(value, str):
            try:
                number = float(value)
            except (ValueError, OverflowError):
                number = None
            if number is not None and math.isfinite(number):
                return number
        raise ActionApplicationError(
            f"Action '{action.type.value}' requires a finite numeric value",
            details={"value": _reportable(value)}
        )

    def _integer(self, action: RuleAction) -> int:
        number = self._number(action)
        if not number.is_integer():
            raise ActionApplicationError(
                f"Action '{action.type.value}' requires a whole number",
                details={"value": to_jsonable(action.value)}
            )
        return int(number)

    def _restrictions(self, action: RuleAction) -> Dict[str, Any]:
        value = action.value
        if not isinstance(value, dict) or not value:
            raise ActionApplicationError(
                "set_restriction requires a mapping of restriction fields",
                details={"value": to_jsonable(value)}
            )

        restrictions: Dict[str, Any] = {}
        for key, item in value.items():
            if key in RESTRICTION_FLAGS:
                if not isinstance(item, bool):
                    raise ActionApplicationError(
                        f"Restriction '{key}' must be a boolean",
                        details={"field": key, "value": to_jsonable(item)}
                    )
                restrictions[key] = item
            elif key in RESTRICTION_LIMITS:
                if item is not None and (not is_finite_number(item) or item < 0 or item != int(item)):
                    raise ActionApplicationError(
                        f"Restriction '{key}' must be a non-negative whole number",
                        details={"field": key, "value": to_jsonable(item)}
                    )
                restrictions[key] = int(item) if item is not None else None
            else:
                raise ActionApplicationError(
                    f"Unknown restriction field '{key}'",
                    details={"field": key}
                )
        return restrictions


def _reportable(value: Any) -> Any:
    """JSON-safe echo of an action value; NaN and infinities become strings."""
    if isinstance(value, float) and not math.isfinite(value):
        return str(value)
    return to_jsonable(value)

"""
Rule data models for the Rules Service.

Domain objects are plain dataclasses; the API layer converts to and from
them in ``app.schemas``. Condition values are a small tagged union
(scalar / list / range) checked against the operator when the condition is
constructed, so evaluation never sees a range where it expects a scalar.
"""

import math
import uuid
from dataclasses import dataclass, field, fields
from datetime import date, datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Dict, Any, Optional, List, Mapping, Tuple, Union

from shared.errors import ValidationError


class RuleCategory(str, Enum):
    """Rule categories."""
    PRICING = "PRICING"
    AVAILABILITY = "AVAILABILITY"
    RESTRICTIONS = "RESTRICTIONS"


class ConditionType(str, Enum):
    """Condition types; each maps to a default context field."""
    OCCUPANCY = "occupancy"
    ADVANCE_BOOKING = "advance_booking"
    DAY_OF_WEEK = "day_of_week"
    SEASON = "season"
    DEMAND = "demand"
    COMPETITOR_PRICE = "competitor_price"
    WEATHER = "weather"
    EVENT = "event"
    ROOM_TYPE = "room_type"
    BOOKING_SOURCE = "booking_source"
    GUEST_TYPE = "guest_type"
    LENGTH_OF_STAY = "length_of_stay"
    TIME_OF_DAY = "time_of_day"
    MARKET_SEGMENT = "market_segment"


class ConditionOperator(str, Enum):
    """Condition operators."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    BETWEEN = "between"
    NOT_BETWEEN = "not_between"
    IN = "in"
    NOT_IN = "not_in"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"


class ActionType(str, Enum):
    """Action types."""
    MULTIPLY_PRICE = "multiply_price"
    ADD_AMOUNT = "add_amount"
    SUBTRACT_AMOUNT = "subtract_amount"
    SET_PRICE = "set_price"
    SET_MINIMUM_PRICE = "set_minimum_price"
    SET_MAXIMUM_PRICE = "set_maximum_price"
    SET_AVAILABILITY = "set_availability"
    ADD_AVAILABILITY = "add_availability"
    SUBTRACT_AVAILABILITY = "subtract_availability"
    SET_RESTRICTION = "set_restriction"
    SEND_NOTIFICATION = "send_notification"
    TRIGGER_AUTOMATION = "trigger_automation"
    LOG_EVENT = "log_event"


ORDERING_OPERATORS = frozenset({
    ConditionOperator.GREATER_THAN,
    ConditionOperator.LESS_THAN,
    ConditionOperator.GREATER_THAN_OR_EQUAL,
    ConditionOperator.LESS_THAN_OR_EQUAL,
})
RANGE_OPERATORS = frozenset({ConditionOperator.BETWEEN, ConditionOperator.NOT_BETWEEN})
MEMBERSHIP_OPERATORS = frozenset({ConditionOperator.IN, ConditionOperator.NOT_IN})
PREFIX_SUFFIX_OPERATORS = frozenset({ConditionOperator.STARTS_WITH, ConditionOperator.ENDS_WITH})

PRICE_ACTIONS = frozenset({
    ActionType.MULTIPLY_PRICE,
    ActionType.ADD_AMOUNT,
    ActionType.SUBTRACT_AMOUNT,
    ActionType.SET_PRICE,
    ActionType.SET_MINIMUM_PRICE,
    ActionType.SET_MAXIMUM_PRICE,
})
AVAILABILITY_ACTIONS = frozenset({
    ActionType.SET_AVAILABILITY,
    ActionType.ADD_AVAILABILITY,
    ActionType.SUBTRACT_AVAILABILITY,
})
SIDE_EFFECT_ACTIONS = frozenset({
    ActionType.SEND_NOTIFICATION,
    ActionType.TRIGGER_AUTOMATION,
    ActionType.LOG_EVENT,
})

DAYS_OF_WEEK = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_number(value: Any) -> bool:
    """True for int/float operands; bool is deliberately not numeric."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_finite_number(value: Any) -> bool:
    """True for int/float operands that are neither NaN nor infinite."""
    return is_number(value) and (isinstance(value, int) or math.isfinite(value))


def to_jsonable(value: Any) -> Any:
    """Convert dataclass payload values into JSON-compatible primitives."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in value]
    return value


def parse_enum(enum_cls, raw: Any, label: str):
    if isinstance(raw, enum_cls):
        return raw
    try:
        return enum_cls(raw)
    except ValueError:
        raise ValidationError(
            f"Unknown {label}: {raw!r}",
            details={"field": label, "value": raw}
        )


def _parse_datetime(raw: Any) -> Optional[datetime]:
    if raw is None or isinstance(raw, datetime):
        return raw
    return datetime.fromisoformat(str(raw))


# Condition values

@dataclass(frozen=True)
class ScalarValue:
    """Single operand for equality, ordering and string operators."""
    value: Union[str, int, float, bool]

    def dump(self) -> Any:
        return self.value


@dataclass(frozen=True)
class ListValue:
    """Candidate set for in / not_in."""
    items: Tuple[Any, ...]

    def dump(self) -> Any:
        return list(self.items)


@dataclass(frozen=True)
class RangeValue:
    """Inclusive numeric range for between / not_between."""
    min: float
    max: float

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    def dump(self) -> Any:
        return {"min": self.min, "max": self.max}


ConditionValue = Union[ScalarValue, ListValue, RangeValue]


def parse_condition_value(operator: ConditionOperator, raw: Any) -> ConditionValue:
    """Build the value variant the operator requires, or raise ValidationError."""
    if isinstance(raw, (ScalarValue, ListValue, RangeValue)):
        raw = raw.dump()

    if raw is None:
        raise ValidationError("Condition value is required", details={"operator": operator.value})

    if operator in RANGE_OPERATORS:
        if isinstance(raw, Mapping) and "min" in raw and "max" in raw:
            low, high = raw["min"], raw["max"]
        elif isinstance(raw, (list, tuple)) and len(raw) == 2:
            low, high = raw
        else:
            raise ValidationError(
                f"Operator '{operator.value}' requires a [min, max] range",
                details={"operator": operator.value, "value": raw}
            )
        if not (is_finite_number(low) and is_finite_number(high)):
            raise ValidationError(
                f"Operator '{operator.value}' requires finite numeric range bounds",
                details={"operator": operator.value, "value": raw}
            )
        if low > high:
            raise ValidationError(
                "Range minimum must not exceed maximum",
                details={"operator": operator.value, "value": raw}
            )
        return RangeValue(min=low, max=high)

    if operator in MEMBERSHIP_OPERATORS:
        if not isinstance(raw, (list, tuple, set, frozenset)):
            raise ValidationError(
                f"Operator '{operator.value}' requires a list of values",
                details={"operator": operator.value, "value": raw}
            )
        return ListValue(items=tuple(raw))

    if isinstance(raw, (Mapping, list, tuple, set)):
        raise ValidationError(
            f"Operator '{operator.value}' requires a scalar value",
            details={"operator": operator.value, "value": to_jsonable(raw)}
        )
    if operator in ORDERING_OPERATORS and not is_number(raw):
        raise ValidationError(
            f"Operator '{operator.value}' requires a numeric value",
            details={"operator": operator.value, "value": raw}
        )
    if operator in PREFIX_SUFFIX_OPERATORS and not isinstance(raw, str):
        raise ValidationError(
            f"Operator '{operator.value}' requires a string value",
            details={"operator": operator.value, "value": raw}
        )
    return ScalarValue(value=raw)


@dataclass
class RuleCondition:
    """Predicate evaluated against an execution context."""
    type: ConditionType
    operator: ConditionOperator
    value: ConditionValue
    field: Optional[str] = None

    def __post_init__(self):
        self.type = parse_enum(ConditionType, self.type, "condition type")
        self.operator = parse_enum(ConditionOperator, self.operator, "operator")
        self.value = parse_condition_value(self.operator, self.value)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RuleCondition":
        return cls(
            type=data.get("type"),
            operator=data.get("operator"),
            value=data.get("value"),
            field=data.get("field"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "type": self.type.value,
            "operator": self.operator.value,
            "value": self.value.dump(),
        }
        if self.field:
            data["field"] = self.field
        return data


@dataclass
class RuleAction:
    """Mutation applied to the working pricing/availability/restriction state."""
    type: ActionType
    value: Any
    target: Optional[str] = None

    def __post_init__(self):
        self.type = parse_enum(ActionType, self.type, "action type")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RuleAction":
        return cls(type=data.get("type"), value=data.get("value"), target=data.get("target"))

    def to_dict(self) -> Dict[str, Any]:
        data = {"type": self.type.value, "value": to_jsonable(self.value)}
        if self.target:
            data["target"] = self.target
        return data


@dataclass
class BusinessRule:
    """Configurable condition/action rule."""
    organization_id: str
    name: str
    conditions: List[RuleCondition] = field(default_factory=list)
    actions: List[RuleAction] = field(default_factory=list)
    rule_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    description: Optional[str] = None
    category: RuleCategory = RuleCategory.PRICING
    priority: int = 100
    is_active: bool = True
    is_ai_generated: bool = False
    property_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.category = parse_enum(RuleCategory, self.category, "category")

    def applies_to(self, organization_id: str, property_id: Optional[str]) -> bool:
        """Organization must match; a rule without property applies organization-wide."""
        if self.organization_id != organization_id:
            return False
        return self.property_id is None or self.property_id == property_id

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BusinessRule":
        kwargs: Dict[str, Any] = {
            "organization_id": data.get("organization_id"),
            "name": data.get("name"),
            "conditions": [RuleCondition.from_dict(c) for c in data.get("conditions") or []],
            "actions": [RuleAction.from_dict(a) for a in data.get("actions") or []],
            "description": data.get("description"),
            "category": data.get("category") or RuleCategory.PRICING,
            "priority": data.get("priority", 100),
            "is_active": data.get("is_active", True),
            "is_ai_generated": data.get("is_ai_generated", False),
            "property_id": data.get("property_id"),
            "metadata": dict(data.get("metadata") or {}),
            "created_by": data.get("created_by"),
            "updated_by": data.get("updated_by"),
        }
        if data.get("rule_id"):
            kwargs["rule_id"] = data["rule_id"]
        for stamp in ("created_at", "updated_at"):
            if data.get(stamp):
                kwargs[stamp] = _parse_datetime(data[stamp])
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "priority": self.priority,
            "is_active": self.is_active,
            "is_ai_generated": self.is_ai_generated,
            "organization_id": self.organization_id,
            "property_id": self.property_id,
            "conditions": [c.to_dict() for c in self.conditions],
            "actions": [a.to_dict() for a in self.actions],
            "metadata": to_jsonable(self.metadata),
            "created_by": self.created_by,
            "updated_by": self.updated_by,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


def evaluation_order_key(rule: BusinessRule) -> Tuple[int, float]:
    """Priority ascending, ties broken by newest created first."""
    return (rule.priority, -rule.created_at.timestamp())


def season_for(day: date) -> str:
    month = day.month
    if 3 <= month <= 5:
        return "spring"
    if 6 <= month <= 8:
        return "summer"
    if 9 <= month <= 11:
        return "autumn"
    return "winter"


def time_of_day_for(moment: datetime) -> str:
    hour = moment.hour
    if 5 <= hour < 12:
        return "morning"
    if 12 <= hour < 17:
        return "afternoon"
    if 17 <= hour < 22:
        return "evening"
    return "night"


@dataclass(frozen=True)
class RuleExecutionContext:
    """Immutable snapshot of the facts a rule set is evaluated against.

    Derived temporal fields (day of week, weekend flag, season) and the
    average competitor price are filled in from ``stay_date`` and
    ``competitor_prices`` when not supplied explicitly.
    """
    organization_id: str
    stay_date: date
    current_price: float
    base_price: Optional[float] = None
    property_id: Optional[str] = None
    room_type_id: Optional[str] = None
    room_id: Optional[str] = None
    day_of_week: Optional[str] = None
    is_weekend: Optional[bool] = None
    season: Optional[str] = None
    advance_booking_days: Optional[int] = None
    length_of_stay: Optional[int] = None
    guest_type: Optional[str] = None
    booking_source: Optional[str] = None
    market_segment: Optional[str] = None
    time_of_day: Optional[str] = None
    occupancy_rate: Optional[float] = None
    demand_score: Optional[float] = None
    competitor_prices: Tuple[float, ...] = ()
    average_competitor_price: Optional[float] = None
    weather_forecast: Optional[str] = None
    local_events: Tuple[str, ...] = ()
    available_rooms: Optional[int] = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        set_ = object.__setattr__
        set_(self, "competitor_prices", tuple(self.competitor_prices or ()))
        set_(self, "local_events", tuple(self.local_events or ()))
        set_(self, "extra", MappingProxyType(dict(self.extra or {})))

        if isinstance(self.stay_date, date):
            if self.day_of_week is None:
                set_(self, "day_of_week", DAYS_OF_WEEK[self.stay_date.weekday()])
            if self.is_weekend is None:
                set_(self, "is_weekend", self.stay_date.weekday() >= 5)
            if self.season is None:
                set_(self, "season", season_for(self.stay_date))
        if self.base_price is None:
            set_(self, "base_price", self.current_price)
        if self.average_competitor_price is None and self.competitor_prices:
            set_(self, "average_competitor_price",
                 sum(self.competitor_prices) / len(self.competitor_prices))

    def has_field(self, name: str) -> bool:
        return name in CONTEXT_FIELDS or name in self.extra

    def get_field(self, name: str) -> Any:
        """Resolve a context attribute or custom ``extra`` key; KeyError if unknown."""
        if name in CONTEXT_FIELDS:
            return getattr(self, name)
        if name in self.extra:
            return self.extra[name]
        raise KeyError(name)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RuleExecutionContext":
        known = {k: v for k, v in data.items() if k in CONTEXT_FIELDS}
        if "stay_date" not in known and "date" in data:
            known["stay_date"] = data["date"]
        extra = dict(data.get("extra") or {})
        extra.update({
            k: v for k, v in data.items()
            if k not in CONTEXT_FIELDS and k not in ("extra", "date")
        })
        stay_date = known.get("stay_date")
        if isinstance(stay_date, str):
            known["stay_date"] = date.fromisoformat(stay_date[:10])
        return cls(extra=extra, **known)

    def to_dict(self) -> Dict[str, Any]:
        data = {name: to_jsonable(getattr(self, name)) for name in CONTEXT_FIELDS}
        data["extra"] = to_jsonable(self.extra)
        return data


CONTEXT_FIELDS = tuple(f.name for f in fields(RuleExecutionContext) if f.name != "extra")


@dataclass
class ActionResult:
    """Outcome of a single action."""
    action_type: ActionType
    success: bool
    original_value: Any = None
    new_value: Any = None
    error: Optional[str] = None
    correlation_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_type": self.action_type.value,
            "success": self.success,
            "original_value": to_jsonable(self.original_value),
            "new_value": to_jsonable(self.new_value),
            "error": self.error,
            "correlation_id": self.correlation_id,
        }


@dataclass
class RuleExecutionResult:
    """Per-rule outcome of one evaluation."""
    rule_id: str
    rule_name: str
    executed: bool
    success: bool
    conditions_matched: bool
    execution_time_ms: float = 0.0
    actions_applied: List[ActionResult] = field(default_factory=list)
    error: Optional[str] = None
    price_before: Optional[float] = None
    price_after: Optional[float] = None
    context: Optional[RuleExecutionContext] = None

    @property
    def price_delta(self) -> float:
        if self.price_before is None or self.price_after is None:
            return 0.0
        return self.price_after - self.price_before

    def to_dict(self, include_context: bool = False) -> Dict[str, Any]:
        data = {
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "executed": self.executed,
            "success": self.success,
            "conditions_matched": self.conditions_matched,
            "execution_time_ms": self.execution_time_ms,
            "actions_applied": [a.to_dict() for a in self.actions_applied],
            "error": self.error,
            "price_before": self.price_before,
            "price_after": self.price_after,
        }
        if include_context and self.context is not None:
            data["context"] = self.context.to_dict()
        return data


@dataclass
class PricingResult:
    """Final priced result of a rule-set evaluation."""
    original_price: float
    final_price: float
    price_change: float
    price_change_percentage: float
    applied_rules: List[RuleExecutionResult]
    rule_results: List[RuleExecutionResult]
    total_execution_time_ms: float
    context: RuleExecutionContext
    final_availability: Optional[int] = None
    restrictions: Dict[str, Any] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_price": self.original_price,
            "final_price": self.final_price,
            "price_change": self.price_change,
            "price_change_percentage": self.price_change_percentage,
            "applied_rules": [r.to_dict() for r in self.applied_rules],
            "rule_results": [r.to_dict() for r in self.rule_results],
            "total_execution_time_ms": self.total_execution_time_ms,
            "final_availability": self.final_availability,
            "restrictions": to_jsonable(self.restrictions),
            "warnings": list(self.warnings),
            "context": self.context.to_dict(),
        }

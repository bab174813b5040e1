"""
Structural validation of rule drafts before they are persisted.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from shared.errors import ValidationError
from .models import (
    RuleCategory, ConditionType, ConditionOperator, ActionType,
    PRICE_ACTIONS, AVAILABILITY_ACTIONS, CONTEXT_FIELDS,
    parse_condition_value, is_finite_number
)


MIN_PRIORITY = 1
MAX_PRIORITY = 1000
MAX_SUGGESTED_CONDITIONS = 5
MAX_SUGGESTED_ACTIONS = 3


@dataclass
class ValidationResult:
    """Outcome of validating a rule draft."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
            "suggestions": list(self.suggestions),
        }


def _enum_values(enum_cls) -> List[str]:
    return [member.value for member in enum_cls]


class RuleValidator:
    """Validates raw rule mappings (API payloads, imports)."""

    def __init__(self, require_creator: bool = True):
        self.require_creator = require_creator

    def validate(self, draft: Mapping[str, Any]) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        suggestions: List[str] = []

        if not str(draft.get("name") or "").strip():
            errors.append("Rule name is required")
        if not draft.get("organization_id"):
            errors.append("Organization ID is required")
        if self.require_creator and not draft.get("created_by"):
            errors.append("Creator is required")

        category = draft.get("category")
        if category is not None and category not in _enum_values(RuleCategory):
            errors.append(f"Unknown category '{category}'")

        priority = draft.get("priority")
        if priority is not None:
            if not isinstance(priority, int) or isinstance(priority, bool):
                errors.append("Priority must be an integer")
            elif priority < MIN_PRIORITY or priority > MAX_PRIORITY:
                warnings.append(f"Priority should be between {MIN_PRIORITY} and {MAX_PRIORITY}")

        conditions = draft.get("conditions") or []
        actions = draft.get("actions") or []
        if not isinstance(conditions, list) or not conditions:
            errors.append("At least one condition is required")
            conditions = []
        if not isinstance(actions, list) or not actions:
            errors.append("At least one action is required")
            actions = []

        for index, condition in enumerate(conditions, start=1):
            self._validate_condition(index, condition, errors, warnings)
        for index, action in enumerate(actions, start=1):
            self._validate_action(index, action, errors)

        if len(conditions) > MAX_SUGGESTED_CONDITIONS:
            suggestions.append("Consider splitting complex rules with many conditions into simpler rules")
        if len(actions) > MAX_SUGGESTED_ACTIONS:
            suggestions.append("Rules with many actions can be hard to reason about; consider separate rules")

        return ValidationResult(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            suggestions=suggestions
        )

    def validate_or_raise(self, draft: Mapping[str, Any]) -> ValidationResult:
        result = self.validate(draft)
        if not result.is_valid:
            raise ValidationError(
                "Rule validation failed",
                details={"errors": result.errors, "warnings": result.warnings}
            )
        return result

    def _validate_condition(self, index: int, condition: Any, errors: List[str], warnings: List[str]):
        label = f"Condition {index}"
        if not isinstance(condition, Mapping):
            errors.append(f"{label}: must be an object")
            return

        condition_type = condition.get("type")
        operator = condition.get("operator")
        if not condition_type:
            errors.append(f"{label}: type is required")
        elif condition_type not in _enum_values(ConditionType):
            errors.append(f"{label}: unknown condition type '{condition_type}'")
        if not operator:
            errors.append(f"{label}: operator is required")
        elif operator not in _enum_values(ConditionOperator):
            errors.append(f"{label}: unknown operator '{operator}'")
            operator = None
        if condition.get("value") is None:
            errors.append(f"{label}: value is required")
        elif operator:
            try:
                parse_condition_value(ConditionOperator(operator), condition["value"])
            except ValidationError as e:
                errors.append(f"{label}: {e.message}")

        field_name = condition.get("field")
        if field_name is not None:
            if not isinstance(field_name, str) or not field_name:
                errors.append(f"{label}: field must be a non-empty string")
            elif field_name not in CONTEXT_FIELDS:
                warnings.append(f"{label}: '{field_name}' is not a standard context field and must be supplied as a custom field")

    def _validate_action(self, index: int, action: Any, errors: List[str]):
        label = f"Action {index}"
        if not isinstance(action, Mapping):
            errors.append(f"{label}: must be an object")
            return

        action_type = action.get("type")
        value = action.get("value")
        if not action_type:
            errors.append(f"{label}: type is required")
            action_type = None
        elif action_type not in _enum_values(ActionType):
            errors.append(f"{label}: unknown action type '{action_type}'")
            action_type = None
        if value is None:
            errors.append(f"{label}: value is required")
            return

        if action_type is None:
            return
        action_type = ActionType(action_type)
        if action_type in PRICE_ACTIONS and not is_finite_number(value):
            errors.append(f"{label}: {action_type.value} requires a finite numeric value")
        elif action_type in AVAILABILITY_ACTIONS and (not is_finite_number(value) or value != int(value)):
            errors.append(f"{label}: {action_type.value} requires a whole number")
        elif action_type == ActionType.SET_RESTRICTION and not isinstance(value, Mapping):
            errors.append(f"{label}: set_restriction requires an object value")

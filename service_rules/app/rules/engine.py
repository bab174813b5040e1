"""
Rule evaluation engine for the Rules Service.

One evaluation fetches the applicable rule snapshot once, then runs every
rule synchronously in priority order against an immutable context.
Matching rules mutate a shared working state; a rule that fails is
recorded in the trace and evaluation moves on to the next one.
"""

import asyncio
import math
import time
from typing import List, Optional, Tuple, Union

from shared.circuit_breaker import CircuitBreaker, CircuitBreakerOpenException
from shared.errors import ContextError, ConditionEvaluationError, RuleFetchError
from shared.logging import get_logger, set_scope_context
from shared.tracing import trace_operation
from shared.metrics import MetricsCollector
from .actions import ActionApplier, WorkingState
from .conditions import ConditionEvaluator
from .models import (
    BusinessRule, RuleCategory, RuleExecutionContext, RuleExecutionResult,
    PricingResult, evaluation_order_key, is_number, parse_enum
)
from ..persistence.base import RuleStore
from ..performance.recorder import ExecutionRecorder


class RuleEngine:
    """Rule evaluation engine."""

    def __init__(
        self,
        store: RuleStore,
        evaluator: Optional[ConditionEvaluator] = None,
        applier: Optional[ActionApplier] = None,
        recorder: Optional[ExecutionRecorder] = None,
        metrics: Optional[MetricsCollector] = None,
        fetch_timeout: float = 0.5,
        max_rules: int = 50,
        track_performance: bool = True,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        self.store = store
        self.evaluator = evaluator or ConditionEvaluator()
        self.applier = applier or ActionApplier()
        self.recorder = recorder
        self.metrics = metrics
        self.fetch_timeout = fetch_timeout
        self.max_rules = max_rules
        self.track_performance = track_performance
        self.circuit_breaker = circuit_breaker or CircuitBreaker(name="rule_store")
        self.logger = get_logger("rules.engine")

    async def get_applicable_rules(
        self,
        organization_id: str,
        property_id: Optional[str] = None,
        category: Optional[RuleCategory] = None
    ) -> List[BusinessRule]:
        """Active rules for a scope in evaluation order; empty if the store is unavailable."""
        rules, _ = await self._fetch_rules(organization_id, property_id, category)
        return rules

    async def evaluate_rules(
        self,
        context: RuleExecutionContext,
        category: Union[RuleCategory, str, None] = None,
        record: bool = True
    ) -> PricingResult:
        """Evaluate the applicable rules against a context.

        Raises ContextError only when the context itself is unusable; rule
        content problems surface in ``rule_results`` and ``warnings``.
        """
        self._validate_context(context)
        if category is not None:
            category = parse_enum(RuleCategory, category, "category")

        started = time.perf_counter()
        set_scope_context(context.organization_id, context.property_id)

        original_price = float(context.current_price)
        with trace_operation("rules.fetch", organization_id=context.organization_id,
                             property_id=context.property_id):
            rules, warnings = await self._fetch_rules(context.organization_id, context.property_id, category)

        state = WorkingState.from_context(context)
        with trace_operation("rules.execute", rule_count=len(rules)):
            rule_results = [self._execute_rule(rule, context, state) for rule in rules]

        final_price = round(state.finalize_price(), 2)
        price_change = round(final_price - original_price, 2)
        price_change_percentage = round(price_change / original_price * 100, 2) if original_price > 0 else 0.0
        applied_rules = [r for r in rule_results if r.executed]
        failed = [r for r in rule_results if not r.success]
        for result in failed:
            warnings.append(f"Rule '{result.rule_name}' failed: {result.error}")

        duration = time.perf_counter() - started
        category_label = category.value if category else "ALL"
        outcome = "applied" if applied_rules else "no_match"
        if self.metrics:
            self.metrics.increment_counter("rule_evaluations_total", category=category_label, outcome=outcome)
            self.metrics.observe_histogram("rule_evaluation_duration_seconds", duration, category=category_label)

        self.logger.info(
            "Rules evaluated",
            category=category_label,
            rules_evaluated=len(rule_results),
            rules_applied=len(applied_rules),
            rules_failed=len(failed),
            original_price=original_price,
            final_price=final_price,
            duration_ms=round(duration * 1000, 3)
        )

        if record and self.track_performance and self.recorder is not None:
            for result in rule_results:
                self.recorder.submit(result, result.price_delta)

        return PricingResult(
            original_price=original_price,
            final_price=final_price,
            price_change=price_change,
            price_change_percentage=price_change_percentage,
            applied_rules=applied_rules,
            rule_results=rule_results,
            total_execution_time_ms=round(duration * 1000, 3),
            context=context,
            final_availability=state.availability,
            restrictions=dict(state.restrictions),
            warnings=warnings,
        )

    def _validate_context(self, context: RuleExecutionContext):
        if not isinstance(context, RuleExecutionContext):
            raise ContextError("Execution context is required")
        if not context.organization_id:
            raise ContextError("organization_id is required", details={"field": "organization_id"})
        if context.stay_date is None:
            raise ContextError("date is required", details={"field": "date"})
        price = context.current_price
        if not is_number(price) or not math.isfinite(price) or price < 0:
            raise ContextError(
                "current_price must be a non-negative number",
                details={"field": "current_price", "value": price if is_number(price) else str(price)}
            )

    async def _fetch_rules(
        self,
        organization_id: str,
        property_id: Optional[str],
        category: Optional[RuleCategory]
    ) -> Tuple[List[BusinessRule], List[str]]:
        warnings: List[str] = []
        try:
            rules = await self.circuit_breaker.call(self._load_rules, organization_id, property_id, category)
        except CircuitBreakerOpenException as e:
            return [], self._fail_open("circuit_open", str(e), organization_id, warnings)
        except asyncio.TimeoutError:
            return [], self._fail_open(
                "timeout", f"Rule fetch exceeded {self.fetch_timeout}s", organization_id, warnings
            )
        except Exception as e:
            # Pricing must always answer; the store fault is logged and counted
            return [], self._fail_open("error", str(e), organization_id, warnings)

        # Re-check scope in process; the store snapshot is trusted for content only
        rules = [
            rule for rule in rules
            if rule.is_active
            and rule.applies_to(organization_id, property_id)
            and (category is None or rule.category == category)
        ]
        rules.sort(key=evaluation_order_key)

        if len(rules) > self.max_rules:
            warnings.append(
                f"{len(rules)} applicable rules; only the first {self.max_rules} were evaluated"
            )
            self.logger.warning(
                "Rule set truncated",
                organization_id=organization_id,
                applicable=len(rules),
                limit=self.max_rules
            )
            rules = rules[:self.max_rules]
        return rules, warnings

    async def _load_rules(self, organization_id, property_id, category) -> List[BusinessRule]:
        return await asyncio.wait_for(
            self.store.get_rules_by_scope(organization_id, property_id, category, active_only=True),
            timeout=self.fetch_timeout
        )

    def _fail_open(self, reason: str, message: str, organization_id: str, warnings: List[str]) -> List[str]:
        error = RuleFetchError(message, details={"reason": reason, "organization_id": organization_id})
        self.logger.error(
            "Rule fetch failed, evaluating with no rules",
            code=error.code,
            reason=reason,
            error=message,
            organization_id=organization_id
        )
        if self.metrics:
            self.metrics.increment_counter("rule_fetch_failures_total", reason=reason)
        warnings.append("Rules unavailable; price returned without rule adjustments")
        return warnings

    def _execute_rule(
        self,
        rule: BusinessRule,
        context: RuleExecutionContext,
        state: WorkingState
    ) -> RuleExecutionResult:
        state.begin_rule()
        started = time.perf_counter()
        price_before = state.price

        try:
            matched = self.evaluator.matches(rule.conditions, context)
        except ConditionEvaluationError as e:
            self.logger.warning(
                "Condition evaluation failed",
                rule_id=rule.rule_id,
                rule_name=rule.name,
                error=e.message,
                details=e.details
            )
            self._record_failure("condition")
            return RuleExecutionResult(
                rule_id=rule.rule_id,
                rule_name=rule.name,
                executed=False,
                success=False,
                conditions_matched=False,
                execution_time_ms=_elapsed_ms(started),
                error=e.message,
                price_before=price_before,
                price_after=state.price,
                context=context,
            )

        if not matched:
            return RuleExecutionResult(
                rule_id=rule.rule_id,
                rule_name=rule.name,
                executed=False,
                success=True,
                conditions_matched=False,
                execution_time_ms=_elapsed_ms(started),
                price_before=price_before,
                price_after=state.price,
                context=context,
            )

        # Every action is attempted; earlier successes are never rolled back
        actions_applied = [self.applier.apply(action, state, rule, context) for action in rule.actions]
        errors = [a.error for a in actions_applied if not a.success]
        if errors:
            self._record_failure("action")

        self.logger.debug(
            "Rule applied",
            rule_id=rule.rule_id,
            rule_name=rule.name,
            price_before=price_before,
            price_after=state.price
        )
        return RuleExecutionResult(
            rule_id=rule.rule_id,
            rule_name=rule.name,
            executed=True,
            success=not errors,
            conditions_matched=True,
            execution_time_ms=_elapsed_ms(started),
            actions_applied=actions_applied,
            error="; ".join(errors) if errors else None,
            price_before=price_before,
            price_after=state.price,
            context=context,
        )

    def _record_failure(self, stage: str):
        if self.metrics:
            self.metrics.increment_counter("rule_failures_total", stage=stage)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 3)

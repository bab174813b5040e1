"""
Rules service for the property rules platform.
"""

from typing import Any, Dict, Optional

from fastapi import Body, Query

from shared.base_service import BaseService
from shared.circuit_breaker import CircuitBreaker
from shared.config import ServiceConfig
from shared.errors import NotFoundError, ServiceError, ValidationError, RulesPlatformException
from shared.retry import RetryConfig

from .cache.redis_cache import CachedRuleStore, RuleCache
from .notifications.dispatcher import ActionDispatcher, create_dispatcher
from .performance.recorder import ExecutionRecorder
from .performance.store import InMemoryPerformanceStore, PerformanceStore, PostgresPerformanceStore
from .persistence import InMemoryRuleStore, PostgresRuleStore, RuleStore
from .pricing.integration import PricingIntegrationService
from .pricing.providers import PricingDataProvider, PostgresPricingDataProvider, StaticPricingDataProvider
from .rules.actions import ActionApplier
from .rules.engine import RuleEngine
from .rules.models import BusinessRule, RuleCategory, RuleExecutionContext, parse_enum, utcnow
from .rules.samples import install_sample_rules
from .rules.validator import RuleValidator
from .schemas import (
    BulkOperationRequest, EvaluateRequest, InstallSamplesRequest, PriceQuoteModel,
    RuleCreateRequest, RuleListResponse, RuleUpdateRequest, ScenarioTestRequest, ToggleRequest
)

# Explicit nulls in an update clear these; elsewhere they are ignored
CLEARABLE_RULE_FIELDS = ("property_id", "description")


class RulesService(BaseService):
    """Rules service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        rule_store: Optional[RuleStore] = None,
        performance_store: Optional[PerformanceStore] = None,
        provider: Optional[PricingDataProvider] = None,
        dispatcher: Optional[ActionDispatcher] = None
    ):
        super().__init__("rules", 8020, config)

        self.validator = RuleValidator()
        self.update_validator = RuleValidator(require_creator=False)

        self.rule_store = rule_store or self._create_rule_store()
        self.performance_store = performance_store or self._create_performance_store()
        self.provider = provider or self._create_provider()
        self.dispatcher = dispatcher or create_dispatcher(
            self.config.notification_webhook_url,
            timeout=self.config.notification_timeout_seconds
        )

        self.recorder = ExecutionRecorder(
            self.performance_store,
            metrics=self.metrics,
            queue_size=self.config.performance_queue_size,
            retry_config=RetryConfig(max_attempts=self.config.performance_write_retries, base_delay=0.05)
        )
        self.engine = RuleEngine(
            self.rule_store,
            applier=ActionApplier(self.dispatcher),
            recorder=self.recorder,
            metrics=self.metrics,
            fetch_timeout=self.config.rule_fetch_timeout_seconds,
            max_rules=self.config.max_rules_per_execution,
            track_performance=self.config.enable_performance_tracking,
            circuit_breaker=CircuitBreaker(
                failure_threshold=self.config.rule_store_failure_threshold,
                recovery_timeout=self.config.rule_store_recovery_timeout,
                name="rule_store"
            )
        )
        self.pricing = PricingIntegrationService(
            self.engine,
            self.provider,
            default_occupancy_rate=self.config.default_occupancy_rate,
            default_demand_score=self.config.default_demand_score
        )

        self._setup_rules_routes()

    def _create_rule_store(self) -> RuleStore:
        backend = self.config.rule_store_backend
        if backend == "postgres":
            store: RuleStore = PostgresRuleStore(self.config.postgres_dsn)
        elif backend == "memory":
            store = InMemoryRuleStore()
        else:
            raise ServiceError(f"Unknown rule store backend '{backend}'")

        if self.config.rule_cache_enabled:
            store = CachedRuleStore(store, RuleCache(self.config.redis_url, self.config.rule_cache_ttl_seconds))
        return store

    def _create_performance_store(self) -> PerformanceStore:
        if self.config.rule_store_backend == "postgres":
            return PostgresPerformanceStore(self.config.postgres_dsn)
        return InMemoryPerformanceStore()

    def _create_provider(self) -> PricingDataProvider:
        if self.config.rule_store_backend == "postgres":
            return PostgresPricingDataProvider(self.config.postgres_dsn)
        return StaticPricingDataProvider(
            occupancy_rate=self.config.default_occupancy_rate,
            demand_score=self.config.default_demand_score
        )

    async def _get_rule_or_404(self, rule_id: str) -> BusinessRule:
        rule = await self.rule_store.get_rule(rule_id)
        if rule is None:
            raise NotFoundError(f"Rule {rule_id} not found", details={"rule_id": rule_id})
        return rule

    def _setup_rules_routes(self):
        """Set up rules-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "rules",
                "message": "Property Rules Platform - Rules Service",
                "version": "1.0.0",
                "capabilities": ["rule_engine", "pricing_integration", "performance_tracking"]
            }

        @self.app.post("/rules/evaluate")
        async def evaluate_rules(request: EvaluateRequest):
            """Evaluate the applicable rules against an execution context."""
            context = RuleExecutionContext.from_dict(request.context.model_dump())
            result = await self.engine.evaluate_rules(context, request.category, record=request.record)
            return result.to_dict()

        @self.app.post("/pricing/quote")
        async def pricing_quote(request: PriceQuoteModel):
            """Enhanced price quote for a room type and date."""
            result = await self.pricing.calculate_enhanced_price(request.to_request())
            return result.to_dict()

        @self.app.post("/pricing/comparison")
        async def pricing_comparison(request: PriceQuoteModel):
            """Base price versus rule-adjusted price."""
            return await self.pricing.get_pricing_comparison(request.to_request())

        @self.app.post("/pricing/scenarios")
        async def pricing_scenarios(request: ScenarioTestRequest):
            """Run active rules against synthetic booking scenarios."""
            scenarios = await self.pricing.test_rules_with_scenarios(
                request.organization_id, request.property_id, request.room_type_id
            )
            return {"scenarios": scenarios, "total": len(scenarios)}

        @self.app.get("/rules", response_model=RuleListResponse)
        async def list_rules(
            organization_id: str = Query(..., description="Organization ID"),
            property_id: Optional[str] = Query(None, description="Filter by property"),
            category: Optional[str] = Query(None, description="Filter by category"),
            is_active: Optional[bool] = Query(None, description="Filter by active flag")
        ):
            """List rules for an organization."""
            rules = await self.rule_store.list_rules(
                organization_id,
                property_id=property_id,
                category=parse_enum(RuleCategory, category, "category") if category else None,
                is_active=is_active
            )
            return RuleListResponse(rules=[rule.to_dict() for rule in rules], total=len(rules))

        @self.app.post("/rules", status_code=201)
        async def create_rule(request: RuleCreateRequest):
            """Validate and create a rule."""
            draft = request.model_dump()
            validation = self.validator.validate_or_raise(draft)
            draft["updated_by"] = draft["created_by"]
            rule = await self.rule_store.create_rule(BusinessRule.from_dict(draft))
            self.logger.info("Rule created", rule_id=rule.rule_id, name=rule.name,
                             organization_id=rule.organization_id)
            return {"rule": rule.to_dict(), "validation": validation.to_dict()}

        @self.app.post("/rules/validate")
        async def validate_rule(draft: Dict[str, Any] = Body(...)):
            """Validate a rule draft without saving it."""
            return self.validator.validate(draft).to_dict()

        @self.app.post("/rules/bulk")
        async def bulk_operation(request: BulkOperationRequest):
            """Apply one operation to many rules; failures are reported per rule."""
            if request.operation == "update_priority" and request.priority is None:
                raise ValidationError("priority is required for update_priority")

            succeeded = []
            failed = []
            for rule_id in request.rule_ids:
                try:
                    await self._apply_bulk_operation(request, rule_id)
                    succeeded.append(rule_id)
                except RulesPlatformException as e:
                    failed.append({"rule_id": rule_id, "code": e.code, "error": e.message})

            self.logger.info("Bulk rule operation", operation=request.operation,
                             succeeded=len(succeeded), failed=len(failed))
            return {"operation": request.operation, "succeeded": succeeded, "failed": failed}

        @self.app.post("/rules/samples", status_code=201)
        async def install_samples(request: InstallSamplesRequest):
            """Install the sample rule set for an organization."""
            rules = await install_sample_rules(
                self.rule_store, request.organization_id, request.created_by, request.property_id
            )
            return {"rules": [rule.to_dict() for rule in rules], "total": len(rules)}

        @self.app.get("/rules/{rule_id}")
        async def get_rule(rule_id: str):
            """Get a rule by ID."""
            return (await self._get_rule_or_404(rule_id)).to_dict()

        @self.app.put("/rules/{rule_id}")
        async def update_rule(rule_id: str, request: RuleUpdateRequest):
            """Validate and update a rule."""
            existing = await self._get_rule_or_404(rule_id)
            draft = existing.to_dict()
            draft.update({
                key: value for key, value in request.model_dump(exclude_unset=True).items()
                if value is not None or key in CLEARABLE_RULE_FIELDS
            })
            validation = self.update_validator.validate_or_raise(draft)
            rule = await self.rule_store.update_rule(BusinessRule.from_dict(draft))
            self.logger.info("Rule updated", rule_id=rule_id)
            return {"rule": rule.to_dict(), "validation": validation.to_dict()}

        @self.app.delete("/rules/{rule_id}")
        async def delete_rule(rule_id: str):
            """Delete a rule."""
            if not await self.rule_store.delete_rule(rule_id):
                raise NotFoundError(f"Rule {rule_id} not found", details={"rule_id": rule_id})
            self.logger.info("Rule deleted", rule_id=rule_id)
            return {"deleted": True, "rule_id": rule_id}

        @self.app.post("/rules/{rule_id}/toggle")
        async def toggle_rule(rule_id: str, request: Optional[ToggleRequest] = None):
            """Activate or deactivate a rule; flips it when no state is given."""
            request = request or ToggleRequest()
            is_active = request.is_active
            if is_active is None:
                is_active = not (await self._get_rule_or_404(rule_id)).is_active
            rule = await self.rule_store.toggle_rule(rule_id, is_active, request.updated_by)
            return rule.to_dict()

        @self.app.get("/rules/{rule_id}/performance")
        async def rule_performance(rule_id: str):
            """Aggregated performance for a rule."""
            metrics = await self.recorder.get_performance(rule_id)
            return metrics.to_dict()

        @self.app.get("/rules/{rule_id}/executions")
        async def rule_executions(
            rule_id: str,
            limit: int = Query(50, ge=1, le=500),
            offset: int = Query(0, ge=0)
        ):
            """Execution history for a rule, newest first."""
            entries = await self.recorder.get_executions(rule_id, limit=limit, offset=offset)
            return {
                "rule_id": rule_id,
                "executions": [entry.to_dict() for entry in entries],
                "limit": limit,
                "offset": offset
            }

    async def _apply_bulk_operation(self, request: BulkOperationRequest, rule_id: str):
        if request.operation == "delete":
            if not await self.rule_store.delete_rule(rule_id):
                raise NotFoundError(f"Rule {rule_id} not found", details={"rule_id": rule_id})
        elif request.operation in ("activate", "deactivate"):
            await self.rule_store.toggle_rule(rule_id, request.operation == "activate", request.updated_by)
        else:
            rule = await self._get_rule_or_404(rule_id)
            rule.priority = request.priority
            rule.updated_at = utcnow()
            if request.updated_by:
                rule.updated_by = request.updated_by
            await self.rule_store.update_rule(rule)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check rules service dependencies."""
        return {
            "rule_store": await self.rule_store.health_check(),
            "rule_store_circuit": self.engine.circuit_breaker.state.value,
            "performance_queue_depth": str(self.recorder.queue.qsize())
        }

    async def start(self):
        """Start rules service components."""
        await self.rule_store.start()
        await self.performance_store.start()
        await self.provider.start()
        if self.config.enable_performance_tracking:
            await self.recorder.start()
        self.logger.info(
            "Rules service started",
            backend=self.config.rule_store_backend,
            cache_enabled=self.config.rule_cache_enabled
        )

    async def stop(self):
        """Stop rules service components."""
        await self.recorder.stop()
        await self.dispatcher.close()
        await self.provider.stop()
        await self.performance_store.stop()
        await self.rule_store.stop()
        self.logger.info("Rules service stopped")


def create_app():
    """Create rules service application."""
    service = RulesService()
    return service.app


if __name__ == "__main__":
    service = RulesService()
    service.run()

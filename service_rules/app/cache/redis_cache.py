"""
Redis caching layer for rule snapshots.
"""

import json
from typing import List, Optional

import redis.asyncio as redis

from shared.errors import ServiceError, ValidationError
from shared.logging import get_logger
from ..persistence.base import RuleStore
from ..rules.models import BusinessRule, RuleCategory


class RuleCache:
    """Caches the active rule set of an organization/property/category scope."""

    RULES_PREFIX = "rules:"

    def __init__(self, redis_url: str, ttl_seconds: int = 300, client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.ttl_seconds = ttl_seconds
        self.logger = get_logger("rules.cache.redis")
        self.redis: Optional[redis.Redis] = client

    async def start(self):
        """Start the Redis cache."""
        try:
            if self.redis is None:
                self.redis = redis.from_url(
                    self.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=True,
                    health_check_interval=30
                )
            await self.redis.ping()
            self.logger.info("Redis rule cache started")
        except (redis.RedisError, OSError) as e:
            self.logger.error("Failed to start Redis rule cache", error=str(e))
            raise ServiceError("Failed to start rule cache", details={"error": str(e)})

    async def stop(self):
        if self.redis:
            await self.redis.aclose()
            self.logger.info("Redis rule cache stopped")

    def _scope_key(self, organization_id: str, property_id: Optional[str],
                   category: Optional[RuleCategory]) -> str:
        return (
            f"{self.RULES_PREFIX}{organization_id}:"
            f"{property_id or '*'}:{category.value if category else '*'}"
        )

    async def get_rules(
        self,
        organization_id: str,
        property_id: Optional[str] = None,
        category: Optional[RuleCategory] = None
    ) -> Optional[List[BusinessRule]]:
        """Cached rule snapshot, or None on miss or cache failure."""
        cache_key = self._scope_key(organization_id, property_id, category)
        try:
            cached = await self.redis.get(cache_key)
        except redis.RedisError as e:
            self.logger.warning("Error reading rule cache", cache_key=cache_key, error=str(e))
            return None

        if not cached:
            return None

        try:
            rules = [BusinessRule.from_dict(item) for item in json.loads(cached)]
        except (ValidationError, ValueError, TypeError, KeyError) as e:
            # Corrupt or outdated payload; drop it and reload from the store
            self.logger.warning("Discarding unreadable rule cache entry", cache_key=cache_key, error=str(e))
            await self._delete(cache_key)
            return None

        self.logger.debug("Rule cache hit", cache_key=cache_key, rule_count=len(rules))
        return rules

    async def set_rules(
        self,
        organization_id: str,
        property_id: Optional[str],
        category: Optional[RuleCategory],
        rules: List[BusinessRule]
    ) -> bool:
        cache_key = self._scope_key(organization_id, property_id, category)
        try:
            await self.redis.setex(
                cache_key,
                self.ttl_seconds,
                json.dumps([rule.to_dict() for rule in rules])
            )
            return True
        except redis.RedisError as e:
            self.logger.warning("Error writing rule cache", cache_key=cache_key, error=str(e))
            return False

    async def invalidate_organization(self, organization_id: str) -> int:
        """Drop every cached scope of an organization."""
        pattern = f"{self.RULES_PREFIX}{organization_id}:*"
        deleted = 0
        try:
            async for key in self.redis.scan_iter(match=pattern):
                deleted += await self.redis.delete(key)
        except redis.RedisError as e:
            self.logger.warning("Error invalidating rule cache", organization_id=organization_id, error=str(e))
        self.logger.debug("Rule cache invalidated", organization_id=organization_id, keys=deleted)
        return deleted

    async def _delete(self, cache_key: str):
        try:
            await self.redis.delete(cache_key)
        except redis.RedisError as e:
            self.logger.warning("Error deleting rule cache entry", cache_key=cache_key, error=str(e))

    async def health_check(self) -> str:
        try:
            await self.redis.ping()
            return "ok"
        except redis.RedisError:
            return "error"


class CachedRuleStore(RuleStore):
    """Read-through cache in front of a rule store.

    Only the evaluation path (active rules by scope) is cached; every
    mutation invalidates the owning organization.
    """

    def __init__(self, store: RuleStore, cache: RuleCache):
        self.store = store
        self.cache = cache
        self.logger = get_logger("rules.cache.store")

    async def start(self):
        await self.store.start()
        await self.cache.start()

    async def stop(self):
        await self.cache.stop()
        await self.store.stop()

    async def get_rules_by_scope(
        self,
        organization_id: str,
        property_id: Optional[str] = None,
        category: Optional[RuleCategory] = None,
        active_only: bool = True
    ) -> List[BusinessRule]:
        if not active_only:
            return await self.store.get_rules_by_scope(
                organization_id, property_id, category, active_only=False
            )

        cached = await self.cache.get_rules(organization_id, property_id, category)
        if cached is not None:
            return cached

        rules = await self.store.get_rules_by_scope(organization_id, property_id, category)
        await self.cache.set_rules(organization_id, property_id, category, rules)
        return rules

    async def list_rules(self, organization_id, property_id=None, category=None, is_active=None):
        return await self.store.list_rules(organization_id, property_id, category, is_active)

    async def get_rule(self, rule_id: str) -> Optional[BusinessRule]:
        return await self.store.get_rule(rule_id)

    async def save_rule(self, rule: BusinessRule) -> BusinessRule:
        saved = await self.store.save_rule(rule)
        await self.cache.invalidate_organization(rule.organization_id)
        return saved

    async def delete_rule(self, rule_id: str) -> bool:
        rule = await self.store.get_rule(rule_id)
        deleted = await self.store.delete_rule(rule_id)
        if rule is not None:
            await self.cache.invalidate_organization(rule.organization_id)
        return deleted

    async def health_check(self) -> str:
        return await self.store.health_check()

"""
Pricing data providers: base prices and market facts for a room type/date.
"""

from abc import ABC, abstractmethod
from datetime import date, timedelta
from typing import Dict, List, Optional

import asyncpg

from shared.errors import NotFoundError, ServiceError
from shared.logging import get_logger


class PricingDataProvider(ABC):
    """Source of the facts a price quote is built from."""

    async def start(self):
        """Open connections. Override in subclasses."""

    async def stop(self):
        """Close connections. Override in subclasses."""

    @abstractmethod
    async def get_base_price(self, room_type_id: str, stay_date: date) -> float:
        """Base nightly price before rules."""

    @abstractmethod
    async def get_occupancy_rate(self, property_id: str, stay_date: date) -> float:
        """Occupied rooms as a percentage of all rooms."""

    @abstractmethod
    async def get_demand_score(self, property_id: str, stay_date: date) -> float:
        """Demand on a 0-100 scale."""

    @abstractmethod
    async def get_competitor_prices(self, property_id: str, room_type_id: str, stay_date: date) -> List[float]:
        """Competitor nightly rates for the same date."""


class StaticPricingDataProvider(PricingDataProvider):
    """Fixed prices and market facts for local runs without a database."""

    def __init__(
        self,
        base_prices: Optional[Dict[str, float]] = None,
        default_base_price: float = 2000.0,
        occupancy_rate: float = 50.0,
        demand_score: float = 50.0,
        competitor_prices: Optional[List[float]] = None
    ):
        self.base_prices = dict(base_prices or {})
        self.default_base_price = default_base_price
        self.occupancy_rate = occupancy_rate
        self.demand_score = demand_score
        self.competitor_prices = list(competitor_prices or [])

    async def get_base_price(self, room_type_id: str, stay_date: date) -> float:
        return self.base_prices.get(room_type_id, self.default_base_price)

    async def get_occupancy_rate(self, property_id: str, stay_date: date) -> float:
        return self.occupancy_rate

    async def get_demand_score(self, property_id: str, stay_date: date) -> float:
        return self.demand_score

    async def get_competitor_prices(self, property_id: str, room_type_id: str, stay_date: date) -> List[float]:
        return list(self.competitor_prices)


class PostgresPricingDataProvider(PricingDataProvider):
    """Reads rates, rooms and reservations from the property database."""

    DEMAND_LOOKBACK_DAYS = 30

    def __init__(self, dsn: str, pool: Optional[asyncpg.Pool] = None):
        self.dsn = dsn
        self.logger = get_logger("rules.pricing.provider")
        self.pool: Optional[asyncpg.Pool] = pool

    async def start(self):
        try:
            if self.pool is None:
                self.pool = await asyncpg.create_pool(self.dsn, min_size=1, max_size=5, command_timeout=10)
            self.logger.info("PostgreSQL pricing provider started")
        except (OSError, asyncpg.PostgresError) as e:
            self.logger.error("Failed to start PostgreSQL pricing provider", error=str(e))
            raise ServiceError("Failed to start pricing provider", details={"error": str(e)})

    async def stop(self):
        if self.pool:
            await self.pool.close()

    async def get_base_price(self, room_type_id: str, stay_date: date) -> float:
        """Daily override, else weekday/weekend price times any seasonal multiplier."""
        async with self.pool.acquire() as conn:
            room_type = await conn.fetchrow("""
                SELECT base_price, weekday_price, weekend_price
                FROM room_types WHERE id = $1
            """, room_type_id)
            if room_type is None:
                raise NotFoundError(f"Room type {room_type_id} not found", details={"room_type_id": room_type_id})

            override = await conn.fetchval("""
                SELECT base_price FROM daily_rates
                WHERE room_type_id = $1 AND date = $2
                LIMIT 1
            """, room_type_id, stay_date)
            if override is not None:
                return float(override)

            multiplier = await conn.fetchval("""
                SELECT multiplier FROM seasonal_rates
                WHERE room_type_id = $1 AND start_date <= $2 AND end_date >= $2
                ORDER BY start_date DESC
                LIMIT 1
            """, room_type_id, stay_date)

        if stay_date.weekday() >= 5:
            price = room_type["weekend_price"] or room_type["base_price"]
        else:
            price = room_type["weekday_price"] or room_type["base_price"]

        if multiplier is not None and price:
            return float(price) * float(multiplier)
        return float(price or room_type["base_price"])

    async def get_occupancy_rate(self, property_id: str, stay_date: date) -> float:
        async with self.pool.acquire() as conn:
            total_rooms = await conn.fetchval(
                "SELECT COUNT(*) FROM rooms WHERE property_id = $1", property_id
            )
            if not total_rooms:
                return 0.0
            occupied = await conn.fetchval("""
                SELECT COUNT(*) FROM reservations r
                JOIN rooms rm ON rm.id = r.room_id
                WHERE rm.property_id = $1
                  AND r.check_in <= $2 AND r.check_out > $2
                  AND r.status IN ('CONFIRMED', 'IN_HOUSE')
            """, property_id, stay_date)
        return round(occupied / total_rooms * 100, 2)

    async def get_demand_score(self, property_id: str, stay_date: date) -> float:
        """Two points per booking created in the lookback window, capped at 100."""
        since = stay_date - timedelta(days=self.DEMAND_LOOKBACK_DAYS)
        async with self.pool.acquire() as conn:
            bookings = await conn.fetchval("""
                SELECT COUNT(*) FROM reservations r
                JOIN rooms rm ON rm.id = r.room_id
                WHERE rm.property_id = $1
                  AND r.created_at >= $2
                  AND r.status <> 'CANCELLED'
            """, property_id, since)
        return float(min(100, bookings * 2))

    async def get_competitor_prices(self, property_id: str, room_type_id: str, stay_date: date) -> List[float]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch("""
                SELECT price FROM competitor_rates
                WHERE property_id = $1 AND date = $2
                  AND (room_type_id IS NULL OR room_type_id = $3)
            """, property_id, stay_date, room_type_id)
        return [float(row["price"]) for row in rows]

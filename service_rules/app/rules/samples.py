"""
Starter pricing rules for new organizations.
"""

import copy
from typing import Any, Dict, List, Optional

from .models import BusinessRule


SAMPLE_RULES: List[Dict[str, Any]] = [
    {
        "name": "Weekend High Demand Pricing",
        "description": "Increase prices by 25% on weekends when occupancy is above 80%",
        "category": "PRICING",
        "priority": 10,
        "is_active": True,
        "conditions": [
            {"type": "day_of_week", "operator": "in", "value": ["saturday", "sunday"]},
            {"type": "occupancy", "operator": "greater_than", "value": 80},
        ],
        "actions": [{"type": "multiply_price", "value": 1.25}],
        "metadata": {"purpose": "Capitalize on high weekend demand", "group": "revenue_optimization"},
    },
    {
        "name": "Last Minute Booking Discount",
        "description": "Apply 15% discount for bookings made within 3 days when occupancy is below 60%",
        "category": "PRICING",
        "priority": 20,
        "is_active": True,
        "conditions": [
            {"type": "advance_booking", "operator": "less_than_or_equal", "value": 3},
            {"type": "occupancy", "operator": "less_than", "value": 60},
        ],
        "actions": [{"type": "multiply_price", "value": 0.85}],
        "metadata": {"purpose": "Fill empty rooms with last-minute discounts", "group": "occupancy_optimization"},
    },
    {
        "name": "Early Bird Discount",
        "description": "Apply 10% discount for bookings made more than 30 days in advance",
        "category": "PRICING",
        "priority": 30,
        "is_active": True,
        "conditions": [{"type": "advance_booking", "operator": "greater_than", "value": 30}],
        "actions": [{"type": "multiply_price", "value": 0.90}],
        "metadata": {"purpose": "Encourage early bookings for better cash flow", "group": "cash_flow_optimization"},
    },
    {
        "name": "High Demand Surge Pricing",
        "description": "Increase prices by 40% when occupancy exceeds 90%",
        "category": "PRICING",
        "priority": 5,
        "is_active": True,
        "conditions": [{"type": "occupancy", "operator": "greater_than", "value": 90}],
        "actions": [{"type": "multiply_price", "value": 1.40}],
        "metadata": {"purpose": "Maximize revenue during peak demand", "group": "revenue_optimization"},
    },
    {
        # Disabled until competitor rates are being collected
        "name": "Competitive Price Matching",
        "description": "Match competitor prices when they are 5% or more below our price",
        "category": "PRICING",
        "priority": 15,
        "is_active": False,
        "conditions": [{"type": "competitor_price", "operator": "less_than", "value": 0.95}],
        "actions": [{"type": "multiply_price", "value": 0.98}],
        "metadata": {"purpose": "Stay competitive while maintaining margin", "group": "competitive_strategy"},
    },
    {
        "name": "Extended Stay Discount",
        "description": "Apply 20% discount for stays longer than 7 nights",
        "category": "PRICING",
        "priority": 25,
        "is_active": True,
        "conditions": [{"type": "length_of_stay", "operator": "greater_than", "value": 7}],
        "actions": [{"type": "multiply_price", "value": 0.80}],
        "metadata": {"purpose": "Encourage longer stays for better occupancy", "group": "occupancy_optimization"},
    },
    {
        "name": "Low Season Pricing",
        "description": "Reduce prices by 15% during low season (summer months)",
        "category": "PRICING",
        "priority": 35,
        "is_active": True,
        "conditions": [{"type": "season", "operator": "equals", "value": "summer"}],
        "actions": [{"type": "multiply_price", "value": 0.85}],
        "metadata": {"purpose": "Attract guests during traditionally slow period", "group": "seasonal_optimization"},
    },
    {
        "name": "Corporate Rate Discount",
        "description": "Apply 12% discount for corporate bookings",
        "category": "PRICING",
        "priority": 40,
        "is_active": True,
        "conditions": [{"type": "guest_type", "operator": "equals", "value": "corporate"}],
        "actions": [{"type": "multiply_price", "value": 0.88}],
        "metadata": {"purpose": "Maintain corporate relationships with competitive rates", "group": "customer_segment"},
    },
    {
        "name": "Direct Booking Incentive",
        "description": "Apply 8% discount for direct bookings to reduce OTA commissions",
        "category": "PRICING",
        "priority": 45,
        "is_active": True,
        "conditions": [{"type": "booking_source", "operator": "equals", "value": "direct"}],
        "actions": [{"type": "multiply_price", "value": 0.92}],
        "metadata": {"purpose": "Encourage direct bookings to reduce commission costs", "group": "channel_optimization"},
    },
    {
        "name": "Minimum Price Floor",
        "description": "Ensure prices never go below 1500 per night",
        "category": "PRICING",
        "priority": 1,
        "is_active": True,
        # occupancy >= 0 holds for every context that reports occupancy
        "conditions": [{"type": "occupancy", "operator": "greater_than_or_equal", "value": 0}],
        "actions": [{"type": "set_minimum_price", "value": 1500}],
        "metadata": {"purpose": "Protect profit margins with minimum price floor", "group": "profit_protection"},
    },
]


def sample_rules_by_group(group: str) -> List[Dict[str, Any]]:
    """Samples whose metadata group or category matches."""
    return [
        copy.deepcopy(rule) for rule in SAMPLE_RULES
        if rule["metadata"].get("group") == group or rule["category"] == group
    ]


def active_sample_rules() -> List[Dict[str, Any]]:
    return [copy.deepcopy(rule) for rule in SAMPLE_RULES if rule["is_active"]]


def build_sample_rules(
    organization_id: str,
    created_by: str,
    property_id: Optional[str] = None
) -> List[BusinessRule]:
    """Fresh BusinessRule instances for an organization (new ids each call)."""
    rules = []
    for template in SAMPLE_RULES:
        data = copy.deepcopy(template)
        data.update({
            "organization_id": organization_id,
            "property_id": property_id,
            "created_by": created_by,
            "updated_by": created_by,
        })
        rules.append(BusinessRule.from_dict(data))
    return rules


async def install_sample_rules(store, organization_id: str, created_by: str,
                               property_id: Optional[str] = None) -> List[BusinessRule]:
    """Persist the sample set through a RuleStore."""
    return [
        await store.create_rule(rule)
        for rule in build_sample_rules(organization_id, created_by, property_id)
    ]

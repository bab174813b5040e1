"""
Request and response models for the Rules Service API.
"""

from datetime import date
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .pricing.integration import PriceQuoteRequest
from .rules.models import RuleCategory


class ExecutionContextModel(BaseModel):
    """Execution context as accepted over HTTP."""
    model_config = ConfigDict(populate_by_name=True)

    organization_id: str = Field(..., description="Organization ID")
    stay_date: date = Field(..., alias="date", description="Stay date")
    current_price: float = Field(..., description="Price before rules")
    base_price: Optional[float] = Field(None, description="Reference base price")
    property_id: Optional[str] = Field(None, description="Property ID")
    room_type_id: Optional[str] = Field(None, description="Room type ID")
    room_id: Optional[str] = Field(None, description="Room ID")
    advance_booking_days: Optional[int] = None
    length_of_stay: Optional[int] = None
    guest_type: Optional[str] = None
    booking_source: Optional[str] = None
    market_segment: Optional[str] = None
    time_of_day: Optional[str] = None
    occupancy_rate: Optional[float] = None
    demand_score: Optional[float] = None
    competitor_prices: List[float] = Field(default_factory=list)
    weather_forecast: Optional[str] = None
    local_events: List[str] = Field(default_factory=list)
    available_rooms: Optional[int] = None
    extra: Dict[str, Any] = Field(default_factory=dict, description="Custom context fields")


class EvaluateRequest(BaseModel):
    """Request model for a direct rule evaluation."""
    context: ExecutionContextModel
    category: Optional[RuleCategory] = Field(None, description="Restrict to one rule category")
    record: bool = Field(True, description="Record per-rule performance")


class PriceQuoteModel(BaseModel):
    """Request model for enhanced price quotes and comparisons."""
    model_config = ConfigDict(populate_by_name=True)

    organization_id: str
    property_id: str
    room_type_id: str
    stay_date: date = Field(..., alias="date")
    length_of_stay: int = Field(1, ge=1)
    guest_type: Optional[str] = None
    booking_source: str = "direct"
    market_segment: Optional[str] = None
    advance_booking_days: Optional[int] = None
    occupancy_override: Optional[float] = Field(None, ge=0, le=100)
    demand_override: Optional[float] = Field(None, ge=0, le=100)
    available_rooms: Optional[int] = None
    extra: Dict[str, Any] = Field(default_factory=dict)

    def to_request(self) -> PriceQuoteRequest:
        return PriceQuoteRequest(**self.model_dump())


class ScenarioTestRequest(BaseModel):
    """Request model for scenario testing."""
    organization_id: str
    property_id: str
    room_type_id: str


class RuleCreateRequest(BaseModel):
    """Request model for creating a rule.

    Conditions and actions stay loosely typed here; the rule validator
    reports every problem at once instead of failing on the first.
    """
    name: str = Field(..., description="Rule name")
    organization_id: str = Field(..., description="Organization ID")
    description: Optional[str] = Field(None, description="Rule description")
    category: str = Field("PRICING", description="PRICING | AVAILABILITY | RESTRICTIONS")
    priority: int = Field(100, description="Lower values evaluate first")
    is_active: bool = True
    is_ai_generated: bool = False
    property_id: Optional[str] = Field(None, description="Property ID; omit for organization-wide")
    conditions: List[Dict[str, Any]] = Field(default_factory=list)
    actions: List[Dict[str, Any]] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_by: Optional[str] = Field(None, description="Creator user ID")


class RuleUpdateRequest(BaseModel):
    """Request model for updating a rule."""
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    priority: Optional[int] = None
    is_active: Optional[bool] = None
    property_id: Optional[str] = None
    conditions: Optional[List[Dict[str, Any]]] = None
    actions: Optional[List[Dict[str, Any]]] = None
    metadata: Optional[Dict[str, Any]] = None
    updated_by: Optional[str] = None


class ToggleRequest(BaseModel):
    """Request model for toggling a rule; omit is_active to flip it."""
    is_active: Optional[bool] = None
    updated_by: Optional[str] = None


class BulkOperationRequest(BaseModel):
    """Request model for bulk rule operations."""
    operation: Literal["activate", "deactivate", "delete", "update_priority"]
    rule_ids: List[str] = Field(..., min_length=1)
    priority: Optional[int] = Field(None, description="Required for update_priority")
    updated_by: Optional[str] = None


class InstallSamplesRequest(BaseModel):
    """Request model for installing the sample rule set."""
    organization_id: str
    created_by: str
    property_id: Optional[str] = None


class RuleListResponse(BaseModel):
    """Response model for rule list."""
    rules: List[Dict[str, Any]]
    total: int

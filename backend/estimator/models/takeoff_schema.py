"""Request / response models for the takeoff and detection routes."""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from estimator.models.domain import LineItem
from estimator.services.pricing_config import BurdenRates, PricingMethodology


class LineItemIn(BaseModel):
    id: Optional[str] = None
    description: str = ""
    item_type: Optional[str] = None      # material | labor | overhead | paint; inferred when absent
    quantity: float = 0.0
    unit: str = "EA"
    material_unit_cost: float = 0.0
    labor_unit_cost: float = 0.0
    equipment_unit_cost: float = 0.0
    section_id: Optional[str] = None
    presentation_group: Optional[str] = None
    sort_order: int = 0
    is_deleted: bool = False

    def to_domain(self, fallback_id: str) -> LineItem:
        data = self.model_dump()
        data["id"] = self.id or fallback_id
        return LineItem.from_dict(data)


class CalculateRequest(BaseModel):
    """Stateless pricing of an ad-hoc line item list."""
    line_items: List[LineItemIn]
    markup_percent: Optional[float] = None
    labor_markup_percent: Optional[float] = None
    burden_rates: Optional[BurdenRates] = None
    methodology: PricingMethodology = PricingMethodology.LEGACY
    insurance_rate_per_1000: Optional[float] = None
    squares: Optional[float] = None


class SaveLineItemsRequest(BaseModel):
    expected_version: int = Field(..., description="Takeoff version the edits were made against")
    line_items: List[LineItemIn]


class RedetectRequest(BaseModel):
    min_confidence: float = Field(0.0, ge=0.0, le=1.0)


class DetectionsResponse(BaseModel):
    job_id: str
    detection_source: str
    unavailable_tiers: List[str] = []
    pages: List[Dict[str, Any]] = []

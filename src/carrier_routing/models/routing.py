from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field, asdict
from typing import Any, List, Optional

from carrier_routing.models.shipping import Dimensions, RateQuote


@dataclass(frozen=True)
class EligibilityResult:
    eligible: bool
    reasons: List[str] = field(default_factory=list)
    weight_lbs: float = 0.0
    dimensions: Optional[Dimensions] = None   # inches
    zone: Optional[int] = None


@dataclass(frozen=True)
class RoutingDecision:
    """Outcome of one routing pass. `quote` is None when nothing could be quoted."""
    quote: Optional[RateQuote]
    reason: str
    use_discount: bool = False
    savings: float = 0.0
    savings_percentage: float = 0.0
    discount_quote: Optional[RateQuote] = None
    competitor_quote: Optional[RateQuote] = None
    decided_at: Optional[dt.datetime] = None

    def __post_init__(self) -> None:
        if not (self.reason or "").strip():
            raise ValueError("RoutingDecision.reason must not be empty")

    @property
    def is_actionable(self) -> bool:
        return self.quote is not None

    @property
    def carrier(self) -> Optional[str]:
        return self.quote.carrier_id if self.quote else None

    @property
    def adapter_id(self) -> Optional[str]:
        return self.quote.adapter_id if self.quote else None

    @property
    def cost(self) -> Optional[float]:
        return self.quote.amount if self.quote else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "carrier": self.carrier,
            "adapter_id": self.adapter_id,
            "service": self.quote.service_name if self.quote else None,
            "cost": self.cost,
            "reason": self.reason,
            "use_discount": self.use_discount,
            "savings": self.savings,
            "savings_percentage": self.savings_percentage,
            "discount_quote": self.discount_quote.to_dict() if self.discount_quote else None,
            "competitor_quote": self.competitor_quote.to_dict() if self.competitor_quote else None,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
        }


@dataclass(frozen=True)
class RoutingAnalytics:
    """Flat record written for every routing decision, shipped or not."""
    order_number: str
    routed_to: Optional[str]
    reason: str
    discount_rate: Optional[float]
    fedex_rate: Optional[float]
    usps_rate: Optional[float]
    cheapest_competitor: Optional[str]
    actual_cost: Optional[float]
    alternative_cost: Optional[float]
    saved_amount: float
    weight_oz: float
    zone: Optional[int]
    shipment_created: bool
    organization_id: Optional[int] = None
    created_at: Optional[dt.datetime] = None

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["created_at"] = self.created_at.isoformat() if self.created_at else None
        return out

# src/carrier_routing/rules/eligibility.py
from __future__ import annotations

import logging

from carrier_routing.models import Dimensions, EligibilityResult, OrderData, RoutingRules
from carrier_routing.rules.zones import coarse_zone

log = logging.getLogger("carrier_routing.rules.eligibility")

FALLBACK_WEIGHT_OZ = 8.0

# (max item count, box) - the first bucket that fits wins
BOX_BUCKETS: tuple[tuple[int, Dimensions], ...] = (
    (2, Dimensions(10, 8, 4)),
    (5, Dimensions(12, 10, 6)),
)
LARGE_BOX = Dimensions(16, 12, 8)


def total_weight_oz(order: OrderData) -> float:
    """Sum of item weight x quantity in ounces, FALLBACK_WEIGHT_OZ when nothing is weighed."""
    total = sum(i.weight.to_oz() * int(i.quantity) for i in order.items if i.weight is not None)
    return round(total, 3) if total > 0 else FALLBACK_WEIGHT_OZ


def estimate_dimensions(order: OrderData) -> Dimensions:
    if order.dimensions is not None:
        return order.dimensions.to_inches()
    count = order.item_count
    for max_items, box in BOX_BUCKETS:
        if count <= max_items:
            return box
    return LARGE_BOX


class EligibilityChecker:
    """Pure check of an order against the discount carrier's weight/size/zone envelope."""

    def __init__(self, rules: RoutingRules | None = None) -> None:
        self.rules = rules or RoutingRules()

    def check(self, order: OrderData) -> EligibilityResult:
        r = self.rules
        weight_lbs = round(total_weight_oz(order) / 16.0, 3)
        dims = estimate_dimensions(order)
        zone = coarse_zone(order.ship_to.postal_code)

        reasons: list[str] = []
        if weight_lbs > r.max_weight_lbs:
            reasons.append(f"Package weight {weight_lbs:g} lbs exceeds maximum {r.max_weight_lbs:g} lbs")
        if dims.length > r.max_length_in:
            reasons.append(f"Package length {dims.length:g}in exceeds maximum {r.max_length_in:g}in")
        if dims.width > r.max_width_in:
            reasons.append(f"Package width {dims.width:g}in exceeds maximum {r.max_width_in:g}in")
        if dims.height > r.max_height_in:
            reasons.append(f"Package height {dims.height:g}in exceeds maximum {r.max_height_in:g}in")
        if zone > r.max_zone:
            reasons.append(f"Destination zone {zone} is outside the service area (max zone {r.max_zone})")

        if reasons:
            log.debug("Order %s ineligible: %s", order.order_number, "; ".join(reasons))

        return EligibilityResult(
            eligible=not reasons,
            reasons=reasons,
            weight_lbs=weight_lbs,
            dimensions=dims,
            zone=zone,
        )

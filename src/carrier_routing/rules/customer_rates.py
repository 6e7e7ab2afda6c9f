# src/carrier_routing/rules/customer_rates.py
from __future__ import annotations

from typing import Dict, Mapping, Optional, Sequence

from carrier_routing.models.shipping import kg_to_lb

# Weight breakpoints in pounds (upper bound of each bracket).
BREAKPOINTS_LB: tuple[float, ...] = (
    0.25, 0.44, 0.625, 1, 1.65, 2.2, 3.3, 4.4, 5.5, 6.6, 8.8, 11, 13.2, 15.4, 17.6, 19.8,
)

# Zone 0 is pickup-only and stops at 2.2 lb.
_ZONE_PRICES: Dict[int, Sequence[float]] = {
    0: (1.95, 2.15, 2.40, 2.90, 3.50, 4.10),
    1: (2.35, 2.60, 2.85, 3.40, 4.10, 4.85, 6.10, 7.25, 8.40, 9.55, 11.60, 13.70, 15.80, 17.90, 20.00, 22.10),
    2: (2.55, 2.80, 3.05, 3.65, 4.40, 5.20, 6.55, 7.80, 9.05, 10.30, 12.50, 14.75, 17.00, 19.25, 21.50, 23.75),
    3: (2.75, 3.00, 3.25, 3.90, 4.70, 5.55, 7.00, 8.35, 9.70, 11.05, 13.40, 15.80, 18.20, 20.60, 23.00, 25.40),
    4: (2.95, 3.20, 3.45, 4.15, 5.00, 5.90, 7.45, 8.90, 10.35, 11.80, 14.30, 16.85, 19.40, 21.95, 24.50, 27.05),
    5: (3.15, 3.45, 3.75, 4.45, 5.35, 6.30, 7.95, 9.50, 11.05, 12.60, 15.30, 18.00, 20.70, 23.40, 26.10, 28.80),
    6: (3.35, 3.70, 4.05, 4.80, 5.75, 6.75, 8.50, 10.15, 11.80, 13.45, 16.35, 19.25, 22.15, 25.05, 27.95, 30.85),
    7: (3.60, 3.95, 4.35, 5.15, 6.20, 7.25, 9.10, 10.85, 12.60, 14.35, 17.45, 20.55, 23.65, 26.75, 29.85, 32.95),
    8: (3.85, 4.25, 4.70, 5.55, 6.70, 7.80, 9.75, 11.60, 13.45, 15.30, 18.60, 21.90, 25.20, 28.50, 31.80, 35.10),
}

DEFAULT_RATES: Dict[int, Dict[float, float]] = {
    zone: dict(zip(BREAKPOINTS_LB, prices)) for zone, prices in _ZONE_PRICES.items()
}

# Zones whose table ends at their last breakpoint instead of extending its price.
TRUNCATED_ZONES = frozenset({0})


class CustomerRateTable:
    """
    Flat customer price per (zone, weight bracket).

    lookup() returns the price of the first breakpoint >= weight (lb). Above the
    last breakpoint the last price applies, except in truncated zones where the
    weight is not quotable. None always means "not quotable", never free.
    """

    def __init__(
        self,
        rates: Optional[Mapping[int, Mapping[float, float]]] = None,
        *,
        truncated_zones: frozenset[int] = TRUNCATED_ZONES,
    ) -> None:
        source = DEFAULT_RATES if rates is None else rates
        self._rates: Dict[int, list[tuple[float, float]]] = {
            int(z): sorted((float(bp), float(p)) for bp, p in table.items())
            for z, table in source.items()
        }
        self._truncated = truncated_zones

    @property
    def zones(self) -> list[int]:
        return sorted(self._rates)

    def max_weight_lb(self, zone: int) -> Optional[float]:
        table = self._rates.get(zone)
        return table[-1][0] if table else None

    def lookup(self, zone: int, weight_kg: float) -> Optional[float]:
        if weight_kg is None or weight_kg <= 0:
            return None
        return self.lookup_lb(zone, kg_to_lb(weight_kg))

    def lookup_lb(self, zone: int, weight_lb: float) -> Optional[float]:
        """Same as lookup() for callers already working in pounds."""
        table = self._rates.get(zone)
        if not table or weight_lb is None or weight_lb <= 0:
            return None
        for breakpoint, price in table:
            if breakpoint >= weight_lb:
                return price
        return None if zone in self._truncated else table[-1][1]


def profit_margin(internal_cost: float, customer_price: float) -> dict[str, float]:
    """Margin of a customer price over the carrier's internal cost."""
    if internal_cost <= 0:
        raise ValueError("internal_cost must be positive")
    amount = round(customer_price - internal_cost, 2)
    return {
        "amount": amount,
        "percentage": round(amount / internal_cost * 100, 1),
    }

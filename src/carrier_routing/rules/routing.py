# src/carrier_routing/rules/routing.py
from __future__ import annotations

import datetime as dt
import logging
import math
from typing import Iterable, List, Optional, Sequence

from carrier_routing.models import EligibilityResult, RateQuote, RoutingDecision, RoutingRules

log = logging.getLogger("carrier_routing.rules.routing")


def _speed_key(q: RateQuote) -> float:
    d = q.delivery_days
    return d if d is not None else math.inf


def cheapest(quotes: Iterable[RateQuote]) -> Optional[RateQuote]:
    """Lowest amount; ties go to the faster quote, then to input order."""
    ranked = sorted(enumerate(quotes), key=lambda iq: (iq[1].amount, _speed_key(iq[1]), iq[0]))
    return ranked[0][1] if ranked else None


def _pct(part: float, whole: float) -> float:
    return round(part / whole * 100, 1) if whole > 0 else 0.0


def _money(x: float) -> str:
    return f"${x:.2f}"


class RoutingDecisionEngine:
    """
    Chooses between the discount carrier and market carriers.

    Rule order matters: eligibility, missing quotes, then speed advantage
    before the savings threshold.
    """

    def __init__(self, rules: RoutingRules | None = None, *, clock=None) -> None:
        self.rules = rules or RoutingRules()
        self._clock = clock

    def _now(self) -> Optional[dt.datetime]:
        return self._clock.now() if self._clock is not None else None

    def decide(self, quotes: Sequence[RateQuote], eligibility: EligibilityResult) -> RoutingDecision:
        discount: Optional[RateQuote] = next((q for q in quotes if q.is_discount), None)
        competitors: List[RateQuote] = [q for q in quotes if not q.is_discount]
        best = cheapest(competitors)
        now = self._now()

        if not eligibility.eligible:
            causes = "; ".join(eligibility.reasons) or "order is outside the discount carrier's envelope"
            if best is None:
                return RoutingDecision(
                    quote=None,
                    reason=f"Not eligible for discount carrier ({causes}) and no competitor rates available",
                    discount_quote=discount,
                    decided_at=now,
                )
            return RoutingDecision(
                quote=best,
                reason=f"Not eligible for discount carrier: {causes}",
                discount_quote=discount,
                competitor_quote=best,
                decided_at=now,
            )

        if discount is None:
            if best is None:
                return RoutingDecision(
                    quote=None,
                    reason="No discount rate available and no competitor rates available",
                    decided_at=now,
                )
            return RoutingDecision(
                quote=best,
                reason="No discount rate available",
                competitor_quote=best,
                decided_at=now,
            )

        if best is None:
            return RoutingDecision(
                quote=discount,
                reason="No competitor rates available",
                use_discount=True,
                discount_quote=discount,
                decided_at=now,
            )

        savings = round(best.amount - discount.amount, 2)
        speed_advantage: Optional[int] = None
        if best.delivery_days is not None and discount.delivery_days is not None:
            speed_advantage = best.delivery_days - discount.delivery_days

        if speed_advantage is not None and speed_advantage >= self.rules.speed_advantage_threshold_days:
            if savings >= 0:
                money = f"and saves {_money(savings)}"
            else:
                money = f"for {_money(-savings)} more"
            reason = (
                f"Discount carrier is {speed_advantage} days faster than "
                f"{best.carrier_name} {best.service_name} {money}"
            )
            return RoutingDecision(
                quote=discount,
                reason=reason,
                use_discount=True,
                savings=savings,
                savings_percentage=_pct(savings, best.amount),
                discount_quote=discount,
                competitor_quote=best,
                decided_at=now,
            )

        if savings >= self.rules.min_savings_threshold:
            pct = _pct(savings, best.amount)
            return RoutingDecision(
                quote=discount,
                reason=(
                    f"Discount carrier saves {_money(savings)} ({pct:.1f}%) vs "
                    f"{best.carrier_name} {best.service_name}"
                ),
                use_discount=True,
                savings=savings,
                savings_percentage=pct,
                discount_quote=discount,
                competitor_quote=best,
                decided_at=now,
            )

        competitor_saving = round(discount.amount - best.amount, 2)
        pct = _pct(competitor_saving, discount.amount)
        if competitor_saving > 0:
            reason = (
                f"{best.carrier_name} {best.service_name} saves {_money(competitor_saving)} "
                f"({pct:.1f}%) vs discount carrier"
            )
        else:
            reason = (
                f"Discount carrier savings {_money(savings)} below threshold "
                f"{_money(self.rules.min_savings_threshold)}; using {best.carrier_name} {best.service_name}"
            )
        log.debug("Competitor %s selected: %s", best.carrier_id, reason)
        return RoutingDecision(
            quote=best,
            reason=reason,
            savings=competitor_saving,
            savings_percentage=pct,
            discount_quote=discount,
            competitor_quote=best,
            decided_at=now,
        )

import pytest

from carrier_routing.models import DeliveryWindow, EligibilityResult, RateQuote, RoutingDecision, RoutingRules
from carrier_routing.rules.routing import RoutingDecisionEngine, cheapest
from carrier_routing.utils.clock import ManualClock

ELIGIBLE = EligibilityResult(eligible=True, weight_lbs=0.5, zone=3)
INELIGIBLE = EligibilityResult(eligible=False, reasons=["Package weight 60 lbs exceeds maximum 50 lbs"])


def _q(carrier, amount, days=None, *, discount=False, service="Ground"):
    return RateQuote(
        carrier_id=carrier,
        carrier_name=carrier.upper(),
        service_name=service,
        service_code=f"{carrier}_{service.lower()}",
        amount=amount,
        adapter_id="discount" if discount else "shipengine",
        delivery=DeliveryWindow.parse(days),
        is_discount=discount,
        source="table" if discount else "live",
    )


def test_cheapest_breaks_ties_on_speed_then_order():
    a = _q("usps", 8.0, "5")
    b = _q("ups", 8.0, "3")
    c = _q("fedex", 8.0, "3")
    assert cheapest([a, b, c]) is b
    assert cheapest([]) is None


def test_faster_discount_wins_even_when_dearer():
    d = _q("discount", 10.0, "2 days", discount=True)
    c = _q("usps", 8.0, "5")
    decision = RoutingDecisionEngine().decide([d, c], ELIGIBLE)

    assert decision.use_discount
    assert decision.quote is d
    assert decision.savings == -2.0
    assert "3 days faster" in decision.reason
    assert "$2.00 more" in decision.reason


def test_small_savings_below_threshold_uses_competitor():
    d = _q("discount", 9.00, discount=True)
    c = _q("usps", 9.50)
    decision = RoutingDecisionEngine().decide([d, c], ELIGIBLE)

    assert not decision.use_discount
    assert decision.quote is c
    assert "below threshold $1.00" in decision.reason


def test_savings_reason_names_amount_and_percent():
    d = _q("discount", 3.25, "2 days", discount=True)
    c = _q("usps", 12.50, "3-5", service="Ground Advantage")
    decision = RoutingDecisionEngine().decide([d, c], ELIGIBLE)

    assert decision.use_discount
    assert decision.savings == 9.25
    assert decision.savings_percentage == 74.0
    assert decision.reason == "Discount carrier saves $9.25 (74.0%) vs USPS Ground Advantage"


def test_cheaper_competitor_reason():
    d = _q("discount", 6.00, "4", discount=True)
    c = _q("usps", 4.00, "4")
    decision = RoutingDecisionEngine().decide([d, c], ELIGIBLE)

    assert decision.quote is c
    assert decision.savings == 2.0
    assert decision.reason.startswith("USPS Ground saves $2.00")


def test_ineligible_never_picks_discount():
    d = _q("discount", 1.00, "1", discount=True)
    c = _q("fedex", 20.00, "5")
    decision = RoutingDecisionEngine().decide([d, c], INELIGIBLE)

    assert decision.quote is c
    assert not decision.use_discount
    assert "exceeds maximum" in decision.reason


def test_ineligible_without_competitors_is_not_actionable():
    decision = RoutingDecisionEngine().decide([_q("discount", 1.0, discount=True)], INELIGIBLE)
    assert decision.quote is None
    assert not decision.is_actionable
    assert decision.cost is None


def test_missing_sides():
    engine = RoutingDecisionEngine()
    d = _q("discount", 5.0, discount=True)
    c = _q("usps", 5.0)

    only_discount = engine.decide([d], ELIGIBLE)
    assert only_discount.use_discount and only_discount.reason == "No competitor rates available"

    only_market = engine.decide([c], ELIGIBLE)
    assert only_market.quote is c and only_market.reason == "No discount rate available"

    nothing = engine.decide([], ELIGIBLE)
    assert nothing.quote is None


def test_threshold_from_rules_and_clock_stamp():
    clock = ManualClock()
    engine = RoutingDecisionEngine(RoutingRules(min_savings_threshold=0.25), clock=clock)
    decision = engine.decide([_q("discount", 9.0, discount=True), _q("usps", 9.5)], ELIGIBLE)

    assert decision.use_discount
    assert decision.decided_at == clock.now()
    assert decision.to_dict()["carrier"] == "discount"


def test_decision_requires_reason():
    with pytest.raises(ValueError):
        RoutingDecision(quote=None, reason="  ")

import requests

from carrier_routing.api.discount import DiscountCarrierAdapter, DiscountCarrierConfig
from carrier_routing.api.shipengine import ShipEngineAdapter, ShipEngineConfig
from carrier_routing.io.audit import MemoryAuditSink
from carrier_routing.models import Address, AuditEntry, OrderData, OrderItem, RoutingAnalytics, Weight
from carrier_routing.pipelines.executor import ResilientExecutor
from carrier_routing.pipelines.order_router import OrderRouter
from carrier_routing.pipelines.rate_normalizer import RateNormalizer
from carrier_routing.utils.clock import ManualClock


class FakeResponse:
    def __init__(self, status_code=200, body=None):
        self.status_code = status_code
        self._body = body
        self.text = ""

    def json(self):
        return self._body


class FakeTransport:
    timeout = 5

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, *, headers=None, data=None, json=None, params=None):
        self.calls.append(url)
        r = self.responses.pop(0)
        if isinstance(r, Exception):
            raise r
        return r

    def get(self, url, *, headers=None, params=None):
        return self.post(url)


ORIGIN = Address(name="Warehouse", street1="1 Airport Rd", city="Jamaica", state="NY", postal_code="11430")


def _order(oz=9):
    return OrderData(
        order_number="E2E-1",
        ship_to=Address(name="Ann Lee", street1="1 Main St", city="Chicago", state="IL",
                        postal_code="60601", phone="(312) 555-1234"),
        items=[OrderItem(name="Mug", quantity=1, weight=Weight(oz, "oz"))],
    )


def _wire(discount_responses, shipengine_responses):
    clock = ManualClock()
    sink = MemoryAuditSink()
    discount_t = FakeTransport(*discount_responses)
    shipengine_t = FakeTransport(*shipengine_responses)
    discount = ResilientExecutor(
        DiscountCarrierAdapter(DiscountCarrierConfig(client_code="C1", api_key="K1"), ORIGIN, discount_t,
                               clock=clock),
        audit_sink=sink, clock=clock,
    )
    shipengine = ResilientExecutor(
        ShipEngineAdapter(ShipEngineConfig(api_key="se-key"), ORIGIN, shipengine_t),
        audit_sink=sink, clock=clock,
    )
    router = OrderRouter(
        normalizer=RateNormalizer([shipengine], origin=ORIGIN, audit_sink=sink, clock=clock),
        executors={"discount": discount, "shipengine": shipengine},
        analytics_sink=sink,
        clock=clock,
    )
    return router, clock, sink, discount_t


def test_unreachable_market_uses_fallback_and_discount_wins():
    router, clock, sink, discount_t = _wire(
        [
            FakeResponse(200, {"code": 0, "message": "获取单号中"}),
            FakeResponse(200, {"code": 1, "data": {"trackingNo": "GV100200", "labelPath": "L"}}),
        ],
        [requests.exceptions.ConnectionError("connection refused")],
    )

    outcome = router.route(_order())

    d = outcome.decision
    assert d.use_discount
    assert d.cost == 3.25
    assert d.savings == 9.25
    assert d.savings_percentage == 74.0
    assert d.reason == "Discount carrier saves $9.25 (74.0%) vs USPS Ground Advantage"
    assert outcome.eligibility.zone == 4
    assert d.quote.zone == 3

    assert outcome.success
    assert outcome.attempts == 2
    assert clock.sleeps == [2.0]
    assert outcome.shipment.tracking_number == "QP100200"
    assert len(discount_t.calls) == 2

    assert len(sink.by_action("shipengine_rate_fallback")) == 1
    assert [e.success for e in sink.by_action("discount_create_shipment")] == [False, True]
    analytics = [e for e in sink.entries if isinstance(e, RoutingAnalytics)]
    assert len(analytics) == 1
    a = analytics[0]
    assert (a.usps_rate, a.fedex_rate, a.saved_amount) == (12.5, 15.75, 9.25)
    assert a.cheapest_competitor == "USPS"
    assert a.shipment_created


def test_live_market_rates_carry_margin():
    rates = {"rate_response": {"rates": [
        {"rate_id": "se-1", "carrier_code": "usps", "carrier_friendly_name": "USPS",
         "service_type": "USPS Ground Advantage", "service_code": "usps_ground_advantage",
         "shipping_amount": {"currency": "usd", "amount": 7.8}},
    ]}}
    router, _, sink, discount_t = _wire([], [FakeResponse(200, rates)])

    outcome = router.route(_order(), execute=False)

    live = [q for q in outcome.quotes if not q.is_discount]
    assert [(q.amount, q.base_amount) for q in live] == [(8.19, 7.8)]
    assert outcome.decision.use_discount
    assert outcome.decision.savings == 4.94
    assert discount_t.calls == []
    assert sink.by_action("shipengine_rate_fallback") == []
    assert all(e.success for e in sink.entries if isinstance(e, AuditEntry))


def test_heavy_order_routes_to_cheapest_competitor_without_shipping():
    router, _, _, discount_t = _wire([], [requests.exceptions.Timeout("read timed out")])

    outcome = router.route(_order(oz=60 * 16), execute=False)

    assert not outcome.eligibility.eligible
    assert not outcome.decision.use_discount
    assert outcome.decision.carrier == "usps"
    assert outcome.decision.cost == 12.5
    assert outcome.decision.reason.startswith("Not eligible for discount carrier")
    assert discount_t.calls == []

import pytest

from carrier_routing.api.fedex import FedExAdapter, FedExAuth, FedExConfig
from carrier_routing.errors import OperationNotSupported
from carrier_routing.models import (
    Address,
    Dimensions,
    OrderData,
    OrderItem,
    PackageSpec,
    RateQuoteRequest,
    Weight,
)
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
        self.calls.append({"url": url, "headers": headers, "data": data, "json": json})
        return self.responses.pop(0)

    def get(self, url, *, headers=None, params=None):
        raise AssertionError("FedEx adapter only POSTs")


ORIGIN = Address(name="Warehouse", street1="1 Airport Rd", city="Jamaica", state="NY", postal_code="11430")
DEST = Address(name="Ann", street1="1 Main St", city="Chicago", state="IL", postal_code="60601")
TOKEN = FakeResponse(200, {"access_token": "tok", "expires_in": 3600})


def _adapter(*responses, clock=None):
    t = FakeTransport(*responses)
    adapter = FedExAdapter(
        FedExAuth("id", "secret", token_url="https://fedex.test/oauth/token"),
        FedExConfig(base_url="https://fedex.test", account_number="510087"),
        ORIGIN,
        t,
        clock=clock or ManualClock(),
    )
    return adapter, t


def _request():
    return RateQuoteRequest(ORIGIN, DEST, PackageSpec(Weight(9, "oz"), Dimensions(10, 8, 4)))


RATES = {"output": {"rateReplyDetails": [{
    "serviceType": "FEDEX_GROUND", "serviceName": "FedEx Ground",
    "ratedShipmentDetails": [{"totalNetCharge": 14.1}],
    "commit": {"transitDays": {"minimumTransitTime": "TWO_DAYS"}},
}]}}


def test_token_is_cached_until_near_expiry():
    clock = ManualClock()
    adapter, t = _adapter(TOKEN, FakeResponse(200, RATES), FakeResponse(200, RATES),
                          FakeResponse(200, {"access_token": "tok2", "expires_in": 3600}),
                          FakeResponse(200, RATES), clock=clock)

    adapter.get_rates(_request())
    adapter.get_rates(_request())
    assert [c["url"] for c in t.calls].count("https://fedex.test/oauth/token") == 1
    assert t.calls[0]["data"]["grant_type"] == "client_credentials"
    assert t.calls[1]["headers"]["Authorization"] == "Bearer tok"

    clock.advance(3595)
    adapter.get_rates(_request())
    assert t.calls[3]["url"] == "https://fedex.test/oauth/token"
    assert t.calls[4]["headers"]["Authorization"] == "Bearer tok2"


def test_rates_request_and_parse():
    adapter, t = _adapter(TOKEN, FakeResponse(200, RATES))
    raw = adapter.get_rates(_request())

    body = t.calls[1]["json"]
    assert t.calls[1]["url"] == "https://fedex.test/rate/v1/rates/quotes"
    assert body["accountNumber"] == {"value": "510087"}
    item = body["requestedShipment"]["requestedPackageLineItems"][0]
    assert item["weight"] == {"units": "LB", "value": 0.562}

    quotes = adapter.parse_rates(raw)
    assert [(q.service_code, q.amount, q.delivery_days) for q in quotes] == [("FEDEX_GROUND", 14.1, 2)]


def test_failed_token_short_circuits_operation():
    adapter, t = _adapter(FakeResponse(401, {"errors": [{"code": "NOT.AUTHORIZED"}]}))
    raw = adapter.track_shipment("7946")

    assert len(t.calls) == 1
    assert raw == {"status": 401, "data": {"message": "FedEx authentication failed"}}
    assert not adapter.is_successful_response(raw)
    assert adapter.extract_error_message(raw) == "FedEx authentication failed"


def test_errors_in_a_200_body_are_failures():
    adapter, _ = _adapter(TOKEN, FakeResponse(200, {"errors": [{"code": "SERVICE.UNAVAILABLE", "message": ""}]}))
    raw = adapter.track_shipment("7946")
    assert not adapter.is_successful_response(raw)
    assert adapter.extract_error_message(raw) == "SERVICE.UNAVAILABLE"


def test_create_shipment_parses_piece_tracking_number():
    ship = {"output": {"transactionShipments": [{
        "masterTrackingNumber": "794600000000",
        "pieceResponses": [{"trackingNumber": "794611111111",
                            "packageDocuments": [{"url": "https://fedex.test/label.pdf"}]}],
    }]}}
    adapter, t = _adapter(TOKEN, FakeResponse(200, ship))
    order = OrderData("A-1", DEST, [OrderItem("Mug", 2, Weight(8, "oz"))])

    raw = adapter.create_shipment(order, reference="A-1-1-x")

    shipment = t.calls[1]["json"]["requestedShipment"]
    assert shipment["serviceType"] == "FEDEX_GROUND"
    assert shipment["requestedPackageLineItems"][0]["weight"]["value"] == 1.0
    assert shipment["requestedPackageLineItems"][0]["customerReferences"][0]["value"] == "A-1-1-x"
    assert adapter.parse_shipment(raw) == {
        "tracking_number": "794611111111",
        "label_reference": "https://fedex.test/label.pdf",
    }


def test_print_label_is_not_supported():
    adapter, _ = _adapter()
    with pytest.raises(OperationNotSupported):
        adapter.print_label(["7946"])
    assert adapter.supports("get_rates")
    assert not adapter.supports("validate_address")


def test_fallback_quote():
    adapter, _ = _adapter()
    (q,) = adapter.fallback_quotes(_request())
    assert (q.carrier_id, q.amount, q.source) == ("fedex", 15.75, "fallback")

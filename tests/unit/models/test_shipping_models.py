import datetime as dt

import pytest

from carrier_routing.models import (
    Address,
    DeliveryWindow,
    Dimensions,
    OrderData,
    OrderItem,
    RateQuote,
    TrackingEvent,
    Weight,
)


def _order():
    return OrderData(
        order_number="A-100",
        order_id="9001",
        ship_to=Address(name="Ann", street1="1 Main St", city="Chicago", state="IL", postal_code="60601"),
        items=[OrderItem(name="Mug", quantity=2, weight=Weight(4.5, "oz"), sku="MUG-1")],
        dimensions=Dimensions(10, 8, 4),
        organization_id=7,
    )


def test_weight_conversions():
    w = Weight(9, "oz")
    assert w.to_kg() == 0.255
    assert Weight(w.to_kg(), "kg").to_lb() == 0.562
    assert Weight(1, "lb").to_oz() == 16.0
    assert Weight(2, "pounds").unit == "lb"


def test_weight_rejects_non_positive_and_unknown_units():
    with pytest.raises(ValueError):
        Weight(0, "oz")
    with pytest.raises(ValueError):
        Weight(3, "stone")


def test_dimensions_convert_between_units():
    d = Dimensions(10, 5, 2, "in").to_cm()
    assert d.unit == "cm"
    assert d.length == 25.4
    assert d.to_inches().length == 10.0

    with pytest.raises(ValueError):
        Dimensions(10, -1, 2)


def test_order_item_quantity_must_be_positive():
    with pytest.raises(ValueError):
        OrderItem(name="x", quantity=0)


def test_order_round_trips_through_dict():
    order = _order()
    again = OrderData.from_dict(order.to_dict())

    assert again == order
    assert again.item_count == 2


def test_order_from_shipstation_shape():
    order = OrderData.from_dict({
        "orderId": 55,
        "orderNumber": "SS-55",
        "shipTo": {"name": "Bo", "street1": "2 Elm", "city": "Austin", "state": "TX",
                   "postalCode": "73301", "country": "us"},
        "items": [{"name": "Tee", "quantity": 3, "weight": {"value": 5, "units": "ounces"}}],
    })

    assert order.order_number == "SS-55"
    assert order.order_id == "55"
    assert order.ship_to.postal_code == "73301"
    assert order.ship_to.country == "US"
    assert order.items[0].weight == Weight(5, "oz")
    assert order.item_count == 3


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("3-5", DeliveryWindow(3, 5)),
        ("2 days", DeliveryWindow(2, 2)),
        ("1-3 business days", DeliveryWindow(1, 3)),
        (4, DeliveryWindow(4, 4)),
        (None, None),
        ("soon", None),
    ],
)
def test_delivery_window_parse(raw, expected):
    assert DeliveryWindow.parse(raw) == expected


def test_rate_quote_dict_round_trip_keeps_window():
    q = RateQuote(
        carrier_id="usps", carrier_name="USPS", service_name="Ground Advantage",
        service_code="usps_ground_advantage", amount=12.5, adapter_id="shipengine",
        delivery=DeliveryWindow(3, 5), source="fallback",
    )
    d = q.to_dict()
    assert d["delivery_days"] == "3-5"
    assert "delivery" not in d

    again = RateQuote.from_dict(d)
    assert again == q
    assert again.delivery_days == 3
    assert again.is_fallback


def test_tracking_event_to_dict_serializes_timestamp():
    ts = dt.datetime(2024, 1, 2, 3, 4, tzinfo=dt.timezone.utc)
    e = TrackingEvent("TN1", "in_transit", "Departed", "fedex", ts, raw_status="DP")
    assert e.to_dict()["timestamp"] == "2024-01-02T03:04:00+00:00"

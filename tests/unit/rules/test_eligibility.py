from carrier_routing.models import Address, Dimensions, OrderData, OrderItem, RoutingRules, Weight
from carrier_routing.rules.eligibility import (
    FALLBACK_WEIGHT_OZ,
    LARGE_BOX,
    EligibilityChecker,
    estimate_dimensions,
    total_weight_oz,
)


def _order(items, postal="60601", dims=None):
    return OrderData(
        order_number="E-1",
        ship_to=Address(name="Ann", street1="1 Main St", city="Chicago", state="IL", postal_code=postal),
        items=items,
        dimensions=dims,
    )


def test_total_weight_sums_quantity_and_falls_back():
    o = _order([OrderItem("a", 2, Weight(4, "oz")), OrderItem("b", 1, Weight(1, "lb"))])
    assert total_weight_oz(o) == 24.0
    assert total_weight_oz(_order([OrderItem("a", 3)])) == FALLBACK_WEIGHT_OZ


def test_box_estimate_by_item_count():
    assert estimate_dimensions(_order([OrderItem("a", 2)])) == Dimensions(10, 8, 4)
    assert estimate_dimensions(_order([OrderItem("a", 5)])) == Dimensions(12, 10, 6)
    assert estimate_dimensions(_order([OrderItem("a", 6)])) == LARGE_BOX


def test_explicit_dimensions_are_used_in_inches():
    o = _order([OrderItem("a")], dims=Dimensions(25.4, 25.4, 25.4, "cm"))
    assert estimate_dimensions(o) == Dimensions(10.0, 10.0, 10.0, "in")


def test_small_parcel_is_eligible():
    result = EligibilityChecker().check(_order([OrderItem("mug", 1, Weight(9, "oz"))]))
    assert result.eligible
    assert result.reasons == []
    assert result.weight_lbs == 0.562
    assert result.zone == 4


def test_every_violation_is_reported():
    o = _order([OrderItem("anvil", 1, Weight(60, "lb"))], postal="90210", dims=Dimensions(30, 20, 14))
    result = EligibilityChecker(RoutingRules(max_zone=5)).check(o)

    assert not result.eligible
    assert len(result.reasons) == 5
    assert "weight" in result.reasons[0]
    assert "length" in result.reasons[1]
    assert "zone 6" in result.reasons[4]


def test_limits_are_inclusive():
    o = _order([OrderItem("box", 1, Weight(50, "lb"))], dims=Dimensions(24, 18, 12))
    assert EligibilityChecker().check(o).eligible

import pytest

from carrier_routing.rules.customer_rates import (
    BREAKPOINTS_LB,
    CustomerRateTable,
    profit_margin,
)


def test_nine_ounces_zone_three_prices_at_quarter_bracket():
    table = CustomerRateTable()
    # 9 oz -> 0.255 kg -> 0.562 lb -> 0.625 bracket
    assert table.lookup(3, 0.255) == 3.25
    assert table.lookup_lb(3, 0.625) == 3.25


def test_breakpoint_is_inclusive():
    table = CustomerRateTable()
    assert table.lookup_lb(1, 0.25) == 2.35
    assert table.lookup_lb(1, 0.26) == 2.60


def test_above_last_breakpoint_keeps_last_price():
    table = CustomerRateTable()
    assert table.lookup_lb(3, 30) == 25.40


def test_zone_zero_stops_at_two_point_two_pounds():
    table = CustomerRateTable()
    assert table.lookup_lb(0, 2.2) == 4.10
    assert table.lookup_lb(0, 2.21) is None
    assert table.max_weight_lb(0) == 2.2


def test_not_quotable_is_none_never_zero():
    table = CustomerRateTable()
    assert table.lookup(3, 0) is None
    assert table.lookup(3, -1) is None
    assert table.lookup(42, 1.0) is None


def test_prices_rise_with_zone_and_weight():
    table = CustomerRateTable()
    for bp in BREAKPOINTS_LB:
        prices = [table.lookup_lb(z, bp) for z in range(1, 9)]
        assert prices == sorted(prices)
        assert len(set(prices)) == len(prices)
    for z in range(1, 9):
        prices = [table.lookup_lb(z, bp) for bp in BREAKPOINTS_LB]
        assert prices == sorted(prices)


def test_custom_table_is_sorted_by_breakpoint():
    table = CustomerRateTable({1: {2.0: 5.0, 1.0: 3.0}}, truncated_zones=frozenset({1}))
    assert table.zones == [1]
    assert table.lookup_lb(1, 0.5) == 3.0
    assert table.lookup_lb(1, 1.5) == 5.0
    assert table.lookup_lb(1, 2.5) is None


def test_profit_margin():
    assert profit_margin(2.50, 3.25) == {"amount": 0.75, "percentage": 30.0}
    with pytest.raises(ValueError):
        profit_margin(0, 1)

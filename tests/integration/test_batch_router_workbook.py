from pathlib import Path

import pandas as pd
import pytest
from openpyxl import load_workbook

from carrier_routing.io.audit import MemoryAuditSink
from carrier_routing.io.paths import derive_output_paths
from carrier_routing.models import Address
from carrier_routing.pipelines.batch_router import BatchRouter, order_from_row
from carrier_routing.pipelines.order_router import OrderRouter
from carrier_routing.pipelines.rate_normalizer import RateNormalizer
from carrier_routing.utils.clock import ManualClock


class Logger:
    def __init__(self):
        self.warnings = []

    def info(self, *a): pass
    def debug(self, *a): pass
    def error(self, *a): pass
    def exception(self, *a): pass

    def warning(self, msg, *args):
        self.warnings.append(msg % args)


ORIGIN = Address(name="Warehouse", street1="1 Airport Rd", city="Jamaica", state="NY", postal_code="11430")


def _router(sink=None):
    clock = ManualClock()
    return OrderRouter(
        normalizer=RateNormalizer([], origin=ORIGIN, clock=clock),
        analytics_sink=sink,
        clock=clock,
    )


def _row(order, postal, oz, **extra):
    row = {
        "Order Number": order,
        "Recipient": "Ann Lee",
        "Street 1": "1 Main St",
        "City": "Chicago",
        "State": "IL",
        "Postal Code": postal,
        "Phone": "3125551234",
        "Weight (oz)": oz,
    }
    row.update(extra)
    return row


def _write(path: Path, rows):
    pd.DataFrame(rows).to_excel(path, index=False)
    return path


def test_workbook_is_routed_with_summary(tmp_path):
    src = _write(tmp_path / "orders.xlsx", [
        _row("00042", "60601", 9),
        _row(None, "60601", 9),
        _row("00043", "60601", 9, **{"Quantity": 3}),
        _row("00044", "60601", 60 * 16),
    ])
    sink = MemoryAuditSink()
    logger = Logger()
    routed, _ = derive_output_paths(src)

    result = BatchRouter(logger, _router(sink)).process(src, routed)

    assert result["output_path"] == str(routed)
    assert result["rows"] == 4
    assert result["errors"] == 2
    assert result["executed"] is False
    assert result["by_carrier"] == [
        {"Carrier": "Discount Carrier", "Orders": 2, "TotalCost": 6.5, "TotalSavings": 0.0},
    ]
    # one analytics record per routed order; the blank row never reaches the router
    assert len(sink.entries) == 3
    assert logger.warnings == ["Row 2 skipped: Order Number is blank"]

    out = pd.read_excel(routed, sheet_name="Routed", engine="openpyxl",
                        dtype={"Order Number": str, "Postal Code": str})
    assert list(out.columns[-14:]) == [
        "RoutedCarrier", "Service", "Cost", "DiscountRate", "CheapestCompetitor", "CompetitorRate",
        "Savings", "SavingsPct", "Zone", "Eligible", "Reason", "AddressWarnings", "TrackingNumber", "Error",
    ]
    assert out.loc[0, "Order Number"] == "00042"
    assert out.loc[0, "RoutedCarrier"] == "Discount Carrier"
    assert out.loc[0, "Cost"] == 3.25
    assert out.loc[0, "Zone"] == 3
    assert out.loc[0, "Eligible"] == 1
    assert out.loc[1, "Error"] == "Order Number is blank"
    assert pd.isna(out.loc[3, "RoutedCarrier"])
    assert out.loc[3, "Eligible"] == 0
    assert out.loc[3, "Reason"].startswith("Not eligible for discount carrier")
    assert isinstance(out.loc[3, "Error"], str) and out.loc[3, "Error"]

    summary = pd.read_excel(routed, sheet_name="Summary", engine="openpyxl")
    assert list(summary.columns) == ["Carrier", "Orders", "TotalCost", "TotalSavings"]


def test_identifiers_stay_text_with_leading_zeros(tmp_path):
    src = _write(tmp_path / "zeros.xlsx", [_row("00042", "02134", 9, City="Boston", State="MA")])
    routed, _ = derive_output_paths(src)

    BatchRouter(Logger(), _router()).process(src, routed)

    ws = load_workbook(routed)["Routed"]
    header = [c.value for c in ws[1]]
    order_cell = ws.cell(row=2, column=header.index("Order Number") + 1)
    postal_cell = ws.cell(row=2, column=header.index("Postal Code") + 1)
    assert (order_cell.value, order_cell.number_format) == ("00042", "@")
    assert (postal_cell.value, postal_cell.number_format) == ("02134", "@")


def test_missing_required_columns_raise(tmp_path):
    src = _write(tmp_path / "bad.xlsx", [{"Order Number": "1", "City": "Chicago"}])
    with pytest.raises(ValueError, match="Street 1"):
        BatchRouter(Logger(), _router()).process(src, tmp_path / "out.xlsx")
    assert not (tmp_path / "out.xlsx").exists()


def test_missing_input_raises_file_not_found(tmp_path):
    with pytest.raises(FileNotFoundError):
        BatchRouter(Logger(), _router()).process(tmp_path / "nope.xlsx", tmp_path / "out.xlsx")


def test_order_from_row_pads_numeric_zip_and_spreads_weight():
    order = order_from_row(_row(1001.0, 2134.0, 12, Quantity=4, **{
        "Length (in)": 10, "Width (in)": 8, "Height (in)": 4}))

    assert order.order_number == "1001"
    assert order.ship_to.postal_code == "02134"
    assert order.items[0].quantity == 4
    assert order.items[0].weight.value == 3.0
    assert order.dimensions.length == 10

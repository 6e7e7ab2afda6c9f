from __future__ import annotations

import datetime as dt
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from openpyxl import load_workbook

from carrier_routing.io import schema as S
from carrier_routing.models import Address, Dimensions, OrderData, OrderItem, Weight
from carrier_routing.pipelines.order_router import OrderRouter, RoutingOutcome


def _blank(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, (float, np.floating)) and np.isnan(v):
        return True
    return isinstance(v, str) and v.strip() in ("", "nan", "None")


def _text(v: Any) -> Optional[str]:
    if _blank(v):
        return None
    if isinstance(v, (float, np.floating)) and float(v).is_integer():
        return str(int(v))
    return str(v).strip()


def _number(v: Any) -> Optional[float]:
    if _blank(v):
        return None
    return float(str(v).replace(",", ""))


def _postal(v: Any, country: str) -> str:
    s = _text(v) or ""
    # Excel drops leading zeros from ZIPs stored as numbers
    if country == "US" and s.isdigit() and len(s) < 5:
        s = s.zfill(5)
    return s


def order_from_row(row: Dict[str, Any]) -> OrderData:
    """One workbook row -> OrderData. Raises ValueError on unusable values."""
    order_number = _text(row.get(S.COL_ORDER_NUMBER))
    if not order_number:
        raise ValueError("Order Number is blank")

    country = (_text(row.get(S.COL_COUNTRY)) or "US").upper()
    ship_to = Address(
        name=_text(row.get(S.COL_NAME)) or "",
        street1=_text(row.get(S.COL_STREET1)) or "",
        street2=_text(row.get(S.COL_STREET2)),
        city=_text(row.get(S.COL_CITY)) or "",
        state=_text(row.get(S.COL_STATE)) or "",
        postal_code=_postal(row.get(S.COL_POSTAL_CODE), country),
        country=country,
        phone=_text(row.get(S.COL_PHONE)),
    )

    weight_oz = _number(row.get(S.COL_WEIGHT_OZ))
    quantity = int(_number(row.get(S.COL_QUANTITY)) or 1)
    # Weight column is the package total; spread it over the units
    item_weight = Weight(round(weight_oz / quantity, 3), "oz") if weight_oz else None
    items = [OrderItem(name=f"Order {order_number}", quantity=quantity, weight=item_weight)]

    dims = [_number(row.get(c)) for c in (S.COL_LENGTH, S.COL_WIDTH, S.COL_HEIGHT)]
    dimensions = Dimensions(*dims, "in") if all(d is not None for d in dims) else None

    return OrderData(order_number=order_number, ship_to=ship_to, items=items, dimensions=dimensions)


def _routing_columns(outcome: RoutingOutcome) -> Dict[str, Any]:
    d = outcome.decision
    a = outcome.analytics
    competitor = d.competitor_quote
    return {
        "RoutedCarrier": d.quote.carrier_name if d.quote else "",
        "Service": d.quote.service_name if d.quote else "",
        "Cost": d.cost,
        "DiscountRate": a.discount_rate,
        "CheapestCompetitor": a.cheapest_competitor or "",
        "CompetitorRate": competitor.amount if competitor else None,
        "Savings": a.saved_amount,
        "SavingsPct": d.savings_percentage if d.use_discount else 0.0,
        "Zone": a.zone,
        "Eligible": int(outcome.eligibility.eligible),
        "Reason": d.reason,
        "AddressWarnings": "; ".join(outcome.warnings),
        "TrackingNumber": outcome.shipment.tracking_number if outcome.shipment else "",
        "Error": outcome.merchant_message or "",
    }


def _empty_columns(error: str) -> Dict[str, Any]:
    out: Dict[str, Any] = {c: None for c in S.OUTPUT_ROUTING_COLUMNS}
    out.update({"RoutedCarrier": "", "Service": "", "Reason": "", "CheapestCompetitor": "",
                "AddressWarnings": "", "TrackingNumber": "", "Eligible": 0, "Savings": 0.0, "Error": error})
    return out


class BatchRouter:
    """Routes every row of an orders workbook and writes Routed + Summary sheets."""

    def __init__(self, logger, router: OrderRouter, *, execute: bool = False) -> None:
        self.logger = logger
        self.router = router
        self.execute = execute

    def process(self, input_path: Path, routed_path: Path) -> dict[str, Any]:
        input_path = Path(input_path)
        routed_path = Path(routed_path)

        if not input_path.exists():
            self.logger.error("Input file does not exist: %s", input_path)
            raise FileNotFoundError(input_path)

        df_in = self._read_input(input_path)
        missing = [c for c in S.REQUIRED_INPUT_COLUMNS if c not in df_in.columns]
        if missing:
            raise ValueError(f"Input workbook is missing required column(s): {', '.join(missing)}")

        df_out = self.route_frame(df_in)
        summary = self.summarize(df_out)

        routed_path.parent.mkdir(parents=True, exist_ok=True)
        self._write_workbook(routed_path, df_out, summary)
        self.logger.info("Wrote routed workbook → %s", routed_path)

        errors = int((df_out["Error"].astype("string").fillna("") != "").sum())
        return {
            "output_path": str(routed_path),
            "timestamp_utc": dt.datetime.now(dt.timezone.utc).isoformat(),
            "rows": len(df_out),
            "errors": errors,
            "executed": self.execute,
            "by_carrier": summary.to_dict(orient="records"),
        }

    def _read_input(self, input_path: Path) -> pd.DataFrame:
        text_cols = {c: str for c in (S.COL_ORDER_NUMBER, S.COL_POSTAL_CODE, S.COL_PHONE)}
        df = pd.read_excel(input_path, sheet_name=0, engine="openpyxl", dtype=text_cols)
        self.logger.debug("Opened input workbook: %s (rows=%d, cols=%d)",
                          input_path.name, len(df), len(df.columns))
        return df

    def route_frame(self, df_in: pd.DataFrame) -> pd.DataFrame:
        rows: List[Dict[str, Any]] = []
        for idx, row in enumerate(df_in.to_dict(orient="records"), start=1):
            try:
                order = order_from_row(row)
            except ValueError as ex:
                self.logger.warning("Row %d skipped: %s", idx, ex)
                rows.append(_empty_columns(str(ex)))
                continue
            try:
                outcome = self.router.route(order, execute=self.execute)
            except Exception as ex:
                self.logger.exception("Row %d (order %s) failed: %s", idx, order.order_number, ex)
                rows.append(_empty_columns(f"Routing failed: {ex}"))
                continue
            rows.append(_routing_columns(outcome))

        routed = pd.DataFrame(rows, columns=S.OUTPUT_ROUTING_COLUMNS, index=df_in.index)
        df_out = df_in.copy()
        for col in S.OUTPUT_ROUTING_COLUMNS:
            df_out[col] = routed[col]
        self.logger.info("Routed %d row(s)", len(df_out))
        return df_out

    @staticmethod
    def summarize(df_out: pd.DataFrame) -> pd.DataFrame:
        if df_out.empty:
            return pd.DataFrame(columns=S.SUMMARY_COLUMNS)
        routed = df_out[df_out["RoutedCarrier"].astype("string").fillna("") != ""]
        if routed.empty:
            return pd.DataFrame(columns=S.SUMMARY_COLUMNS)
        g = routed.groupby("RoutedCarrier", sort=True)
        summary = pd.DataFrame({
            "Carrier": list(g.groups.keys()),
            "Orders": g.size().to_numpy(),
            "TotalCost": g["Cost"].sum().round(2).to_numpy(),
            "TotalSavings": g["Savings"].sum().round(2).to_numpy(),
        })
        return summary[S.SUMMARY_COLUMNS]

    def _write_workbook(self, routed_path: Path, df_out: pd.DataFrame, summary: pd.DataFrame) -> None:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore")
            with pd.ExcelWriter(routed_path, engine="openpyxl", mode="w") as xw:
                df_out.to_excel(xw, sheet_name=S.ROUTED_SHEET, index=False, na_rep="")
                summary.to_excel(xw, sheet_name=S.SUMMARY_SHEET, index=False, na_rep="")

        # Keep identifiers as Excel text so leading zeros survive a re-open.
        wb = load_workbook(routed_path)
        ws = wb[S.ROUTED_SHEET]
        header = [c.value for c in ws[1]]
        for name in (S.COL_ORDER_NUMBER, S.COL_POSTAL_CODE, "TrackingNumber"):
            if name not in header:
                continue
            col_idx = header.index(name) + 1
            for r in range(2, ws.max_row + 1):
                cell = ws.cell(row=r, column=col_idx)
                if cell.value is not None:
                    cell.value = str(cell.value)
                cell.number_format = "@"
        wb.save(routed_path)

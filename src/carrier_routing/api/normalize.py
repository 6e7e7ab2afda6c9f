# src/carrier_routing/api/normalize.py
from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from carrier_routing.models import DeliveryWindow, RateQuote, TrackingEvent, QUOTE_SOURCE_LIVE
from carrier_routing.rules.status_mapper import StatusMapper

_MAPPER = StatusMapper()


def parse_timestamp(value: Any) -> Optional[dt.datetime]:
    """Carrier timestamp (ISO string, 'YYYY-MM-DD HH:MM:SS', epoch ms) -> aware UTC datetime."""
    if value in (None, ""):
        return None
    if isinstance(value, dt.datetime):
        return value.astimezone(dt.timezone.utc) if value.tzinfo else value.replace(tzinfo=dt.timezone.utc)
    if isinstance(value, (int, float)):
        ts = pd.to_datetime(value, unit="ms", utc=True, errors="coerce")
    else:
        ts = pd.to_datetime(str(value), utc=True, errors="coerce")
    if ts is None or pd.isna(ts):
        return None
    return ts.to_pydatetime()


def newest_first(events: Iterable[TrackingEvent]) -> List[TrackingEvent]:
    return sorted(events, key=lambda e: e.timestamp, reverse=True)


def _currency(value: Any) -> str:
    if isinstance(value, dict) and value.get("currency"):
        return str(value["currency"]).upper()
    return "USD"


def _money(value: Any) -> Optional[float]:
    if isinstance(value, dict):
        value = value.get("amount")
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return None
    return round(amount, 2) if amount > 0 else None


# --- Discount carrier ------------------------------------------------------------

def discount_tracking_details(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    """fromDetail rows from either `data: {...}` or `data: [{...}]`."""
    data = payload.get("data") if isinstance(payload, dict) else None
    if isinstance(data, list):
        rows: List[Dict[str, Any]] = []
        for d in data:
            if isinstance(d, dict) and isinstance(d.get("fromDetail"), list):
                rows.extend(x for x in d["fromDetail"] if isinstance(x, dict))
        return rows
    if isinstance(data, dict) and isinstance(data.get("fromDetail"), list):
        return [x for x in data["fromDetail"] if isinstance(x, dict)]
    return []


def normalize_discount_tracking(
    tracking_number: str,
    payload: Dict[str, Any],
    *,
    carrier: str = "discount",
    now: Optional[dt.datetime] = None,
    mapper: StatusMapper = _MAPPER,
) -> List[TrackingEvent]:
    events = [
        mapper.to_event(
            carrier,
            tracking_number,
            row.get("pathCode"),
            raw_description=row.get("pathInfo"),
            location=str(row.get("pathAddr") or ""),
            timestamp=parse_timestamp(row.get("pathTime")),
            now=now,
        )
        for row in discount_tracking_details(payload)
    ]
    return newest_first(events)


# --- FedEx ---------------------------------------------------------------------

def _fedex_track_results(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    out = payload.get("output", payload)
    if not isinstance(out, dict):
        return []
    results: List[Dict[str, Any]] = []
    for cr in out.get("completeTrackResults") or []:
        if not isinstance(cr, dict):
            continue
        for tr in cr.get("trackResults") or []:
            if isinstance(tr, dict):
                results.append(tr)
    return results


def _fedex_location(loc: Any) -> str:
    if not isinstance(loc, dict):
        return ""
    addr = loc.get("scanLocation") or loc
    if not isinstance(addr, dict):
        return ""
    parts = [addr.get("city"), addr.get("stateOrProvinceCode"), addr.get("countryCode")]
    return ", ".join(str(p) for p in parts if p)


def normalize_fedex_tracking(
    tracking_number: str,
    payload: Dict[str, Any],
    *,
    now: Optional[dt.datetime] = None,
    mapper: StatusMapper = _MAPPER,
) -> List[TrackingEvent]:
    """
    Timeline from FedEx Track API output.

    scanEvents are preferred; when a result has none, latestStatusDetail
    becomes a single event. A flat {code, description} shape is accepted last.
    """
    events: List[TrackingEvent] = []
    for tr in _fedex_track_results(payload):
        scans = tr.get("scanEvents") or []
        for ev in scans:
            if not isinstance(ev, dict):
                continue
            code = ev.get("derivedStatusCode") or ev.get("eventType")
            events.append(mapper.to_event(
                "fedex", tracking_number, code,
                raw_description=ev.get("eventDescription") or ev.get("derivedStatus"),
                location=_fedex_location(ev),
                timestamp=parse_timestamp(ev.get("date")),
                now=now,
            ))
        if not scans:
            lsd = tr.get("latestStatusDetail") or {}
            if isinstance(lsd, dict) and (lsd.get("code") or lsd.get("derivedCode")):
                events.append(mapper.to_event(
                    "fedex", tracking_number, lsd.get("derivedCode") or lsd.get("code"),
                    raw_description=lsd.get("description") or lsd.get("statusByLocale"),
                    location=_fedex_location(lsd),
                    now=now,
                ))

    if not events and isinstance(payload, dict) and payload.get("code"):
        events.append(mapper.to_event(
            "fedex", tracking_number, payload.get("derivedCode") or payload.get("code"),
            raw_description=payload.get("description") or payload.get("statusByLocale"),
            now=now,
        ))
    return newest_first(events)


def normalize_fedex_rates(payload: Dict[str, Any], *, adapter_id: str = "fedex") -> List[RateQuote]:
    out = payload.get("output", payload) if isinstance(payload, dict) else {}
    quotes: List[RateQuote] = []
    for detail in (out or {}).get("rateReplyDetails") or []:
        if not isinstance(detail, dict):
            continue
        amount = None
        for shipment in detail.get("ratedShipmentDetails") or []:
            if isinstance(shipment, dict):
                amount = _money(shipment.get("totalNetCharge") or shipment.get("totalNetFedExCharge"))
                if amount is not None:
                    break
        if amount is None:
            continue
        days = _fedex_transit(detail.get("commit"))
        quotes.append(RateQuote(
            carrier_id="fedex",
            carrier_name="FedEx",
            service_name=str(detail.get("serviceName") or detail.get("serviceType") or "FedEx"),
            service_code=str(detail.get("serviceType") or ""),
            amount=amount,
            base_amount=amount,
            adapter_id=adapter_id,
            delivery=DeliveryWindow.parse(_transit_days(days)),
            source=QUOTE_SOURCE_LIVE,
        ))
    return quotes


_TRANSIT_WORDS = {
    "ONE_DAY": 1, "TWO_DAYS": 2, "THREE_DAYS": 3, "FOUR_DAYS": 4, "FIVE_DAYS": 5,
    "SIX_DAYS": 6, "SEVEN_DAYS": 7,
}


def _transit_days(value: Any) -> Any:
    if isinstance(value, str) and value.upper() in _TRANSIT_WORDS:
        return _TRANSIT_WORDS[value.upper()]
    return value


def _fedex_transit(commit: Any) -> Any:
    if not isinstance(commit, dict):
        return None
    transit = commit.get("transitDays")
    if isinstance(transit, dict):
        transit = transit.get("minimumTransitTime") or transit.get("description")
    return transit


# --- ShipEngine ------------------------------------------------------------------

def normalize_shipengine_rates(payload: Dict[str, Any], *, adapter_id: str = "shipengine") -> List[RateQuote]:
    """rate_response.rates (snake_case wire) or rateResponse.rates (camelCase)."""
    body = payload.get("data", payload) if isinstance(payload, dict) else {}
    if not isinstance(body, dict):
        return []
    rr = body.get("rate_response") or body.get("rateResponse") or body
    rates = rr.get("rates") if isinstance(rr, dict) else None

    quotes: List[RateQuote] = []
    for r in rates or []:
        if not isinstance(r, dict):
            continue
        amount = _money(r.get("shipping_amount") or r.get("shippingAmount"))
        if amount is None:
            continue
        carrier_code = str(r.get("carrier_code") or r.get("carrierCode") or "").lower()
        days = r.get("delivery_days", r.get("deliveryDays"))
        if days is None:
            days = r.get("carrier_delivery_days") or r.get("carrierDeliveryDays")
        quotes.append(RateQuote(
            carrier_id=carrier_code or adapter_id,
            carrier_name=str(r.get("carrier_friendly_name") or r.get("carrierFriendlyName") or carrier_code),
            service_name=str(r.get("service_type") or r.get("serviceType") or ""),
            service_code=str(r.get("service_code") or r.get("serviceCode") or ""),
            amount=amount,
            base_amount=amount,
            currency=_currency(r.get("shipping_amount") or r.get("shippingAmount")),
            adapter_id=adapter_id,
            delivery=DeliveryWindow.parse(days),
            source=QUOTE_SOURCE_LIVE,
            rate_id=r.get("rate_id") or r.get("rateId"),
        ))
    return quotes


def normalize_shipengine_tracking(
    tracking_number: str,
    payload: Dict[str, Any],
    *,
    now: Optional[dt.datetime] = None,
    mapper: StatusMapper = _MAPPER,
) -> List[TrackingEvent]:
    body = payload.get("data", payload) if isinstance(payload, dict) else {}
    if not isinstance(body, dict):
        return []
    events: List[TrackingEvent] = []
    for ev in body.get("events") or []:
        if not isinstance(ev, dict):
            continue
        loc = ", ".join(str(p) for p in (ev.get("city_locality"), ev.get("state_province")) if p)
        events.append(mapper.to_event(
            "shipengine", tracking_number, ev.get("status_code"),
            raw_description=ev.get("description"),
            location=loc,
            timestamp=parse_timestamp(ev.get("occurred_at")),
            now=now,
        ))
    if not events and body.get("status_code"):
        events.append(mapper.to_event(
            "shipengine", tracking_number, body.get("status_code"),
            raw_description=body.get("status_description"),
            timestamp=parse_timestamp(body.get("actual_delivery_date")),
            now=now,
        ))
    return newest_first(events)

# src/carrier_routing/rules/status_mapper.py
from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Dict, Optional, Tuple

from carrier_routing.models import TrackingEvent


class TrackingStatus(str, Enum):
    LABEL_CREATED = "label_created"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    DELIVERY_ATTEMPTED = "delivery_attempted"
    EXCEPTION = "exception"
    RETURNED = "returned"
    CANCELLED = "cancelled"


S = TrackingStatus

# carrier -> raw code -> (status, description)
_DISCOUNT_CODES: Dict[str, Tuple[TrackingStatus, str]] = {
    "100": (S.LABEL_CREATED, "Order received"),
    "110": (S.LABEL_CREATED, "Order processing"),
    "120": (S.LABEL_CREATED, "Parcel data received"),
    "200": (S.PICKED_UP, "Package picked up"),
    "210": (S.PICKED_UP, "Departed from origin facility"),
    "220": (S.IN_TRANSIT, "In transit to destination country"),
    "230": (S.IN_TRANSIT, "Arrived at sorting facility"),
    "300": (S.IN_TRANSIT, "Departed from sorting facility"),
    "310": (S.IN_TRANSIT, "In transit"),
    "315": (S.IN_TRANSIT, "Order received"),
    "320": (S.IN_TRANSIT, "Customs processing"),
    "330": (S.IN_TRANSIT, "Customs cleared"),
    "340": (S.IN_TRANSIT, "Arrived in destination country"),
    "350": (S.IN_TRANSIT, "Departed from destination facility"),
    "400": (S.IN_TRANSIT, "Arrived at local facility"),
    "410": (S.IN_TRANSIT, "Customs inspection"),
    "420": (S.IN_TRANSIT, "Customs cleared"),
    "430": (S.IN_TRANSIT, "Forwarded to local delivery"),
    "500": (S.OUT_FOR_DELIVERY, "Out for delivery"),
    "510": (S.OUT_FOR_DELIVERY, "Out for delivery - second attempt"),
    "520": (S.DELIVERY_ATTEMPTED, "Delivery attempted - recipient not available"),
    "600": (S.DELIVERED, "Delivered"),
    "610": (S.DELIVERED, "Delivered - signed for"),
    "700": (S.EXCEPTION, "Exception - contact carrier"),
    "800": (S.RETURNED, "Return to sender"),
    "900": (S.CANCELLED, "Order cancelled"),
}

_FEDEX_CODES: Dict[str, Tuple[TrackingStatus, str]] = {
    "OC": (S.LABEL_CREATED, "Shipment information sent to FedEx"),
    "LP": (S.LABEL_CREATED, "Label printed"),
    "PU": (S.PICKED_UP, "Picked up"),
    "PX": (S.PICKED_UP, "Picked up"),
    "AR": (S.IN_TRANSIT, "Arrived at FedEx location"),
    "DP": (S.IN_TRANSIT, "Departed FedEx location"),
    "IT": (S.IN_TRANSIT, "In transit"),
    "AF": (S.IN_TRANSIT, "At local FedEx facility"),
    "OD": (S.OUT_FOR_DELIVERY, "On FedEx vehicle for delivery"),
    "DL": (S.DELIVERED, "Delivered"),
    "DLV": (S.DELIVERED, "Delivered"),
    "DEL": (S.DELIVERED, "Delivered"),
    "DE": (S.EXCEPTION, "Delivery exception"),
    "SE": (S.EXCEPTION, "Shipment exception"),
    "EX": (S.EXCEPTION, "Exception"),
    "EXC": (S.EXCEPTION, "Exception"),
    "CD": (S.EXCEPTION, "Clearance delay"),
    "RS": (S.RETURNED, "Returned to shipper"),
    "RTS": (S.RETURNED, "Returned to shipper"),
    "CA": (S.CANCELLED, "Shipment cancelled"),
}

_SHIPENGINE_CODES: Dict[str, Tuple[TrackingStatus, str]] = {
    "AC": (S.LABEL_CREATED, "Accepted"),
    "NY": (S.LABEL_CREATED, "Not yet in system"),
    "SP": (S.PICKED_UP, "Picked up"),
    "IT": (S.IN_TRANSIT, "In transit"),
    "UN": (S.IN_TRANSIT, "Status unknown"),
    "AT": (S.DELIVERY_ATTEMPTED, "Delivery attempt"),
    "DE": (S.DELIVERED, "Delivered"),
    "EX": (S.EXCEPTION, "Exception"),
}

CARRIER_TABLES: Dict[str, Dict[str, Tuple[TrackingStatus, str]]] = {
    "discount": _DISCOUNT_CODES,
    "fedex": _FEDEX_CODES,
    "shipengine": _SHIPENGINE_CODES,
}

DISPLAY_INFO: Dict[TrackingStatus, Dict[str, str]] = {
    S.LABEL_CREATED: {"display": "Label Created", "color": "blue",
                      "customer_message": "Your order is being prepared for shipment"},
    S.PICKED_UP: {"display": "Picked Up", "color": "orange",
                  "customer_message": "Package has been picked up by carrier"},
    S.IN_TRANSIT: {"display": "In Transit", "color": "blue",
                   "customer_message": "Package is on its way to destination"},
    S.OUT_FOR_DELIVERY: {"display": "Out for Delivery", "color": "green",
                         "customer_message": "Package is out for delivery today"},
    S.DELIVERED: {"display": "Delivered", "color": "green",
                  "customer_message": "Package has been successfully delivered"},
    S.DELIVERY_ATTEMPTED: {"display": "Delivery Attempted", "color": "yellow",
                           "customer_message": "Delivery was attempted but unsuccessful"},
    S.EXCEPTION: {"display": "Exception", "color": "red",
                  "customer_message": "There is an issue with your shipment"},
    S.RETURNED: {"display": "Returned", "color": "red",
                 "customer_message": "Package is being returned to sender"},
    S.CANCELLED: {"display": "Cancelled", "color": "gray",
                  "customer_message": "Shipment has been cancelled"},
}

_ACTIVE = frozenset({S.LABEL_CREATED, S.PICKED_UP, S.IN_TRANSIT, S.OUT_FOR_DELIVERY, S.DELIVERY_ATTEMPTED})
_PROBLEM = frozenset({S.EXCEPTION, S.DELIVERY_ATTEMPTED})
_FINAL = frozenset({S.DELIVERED, S.RETURNED, S.CANCELLED})


def _coerce(status) -> TrackingStatus:
    return status if isinstance(status, TrackingStatus) else TrackingStatus(str(status))


def is_delivered(status) -> bool:
    return _coerce(status) is S.DELIVERED


def is_active(status) -> bool:
    return _coerce(status) in _ACTIVE


def is_problem(status) -> bool:
    return _coerce(status) in _PROBLEM


def is_final(status) -> bool:
    return _coerce(status) in _FINAL


class StatusMapper:
    """
    Static raw-code -> TrackingStatus lookup per carrier.

    Unknown codes (and unknown carriers) map to IN_TRANSIT; callers should
    branch on the predicates, not on the enum value.
    """

    def __init__(self, tables: Optional[Dict[str, Dict[str, Tuple[TrackingStatus, str]]]] = None) -> None:
        self._tables = {k.lower(): v for k, v in (tables or CARRIER_TABLES).items()}

    def map(self, carrier: str, raw_code: Optional[str], raw_description: Optional[str] = None
            ) -> Tuple[TrackingStatus, str]:
        table = self._tables.get((carrier or "").lower(), {})
        code = (str(raw_code).strip().upper() if raw_code is not None else "")
        hit = table.get(code)
        if hit is None:
            return S.IN_TRANSIT, (raw_description or "Status update")
        return hit

    def to_event(
        self,
        carrier: str,
        tracking_number: str,
        raw_code: Optional[str],
        *,
        raw_description: Optional[str] = None,
        location: str = "",
        timestamp: Optional[dt.datetime] = None,
        now: Optional[dt.datetime] = None,
    ) -> TrackingEvent:
        status, description = self.map(carrier, raw_code, raw_description)
        ts = timestamp or now or dt.datetime.now(dt.timezone.utc)
        return TrackingEvent(
            tracking_number=tracking_number,
            status=status.value,
            description=description,
            carrier=carrier,
            timestamp=ts,
            location=location or "",
            raw_status=str(raw_code) if raw_code is not None else None,
        )

    is_delivered = staticmethod(is_delivered)
    is_active = staticmethod(is_active)
    is_problem = staticmethod(is_problem)
    is_final = staticmethod(is_final)

    @staticmethod
    def display_info(status) -> Dict[str, str]:
        return dict(DISPLAY_INFO[_coerce(status)])

# src/carrier_routing/models/shipping.py
from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

# --- Unit conversion ---------------------------------------------------------

OZ_TO_KG = 0.0283495
KG_TO_LB = 2.20462
LB_TO_OZ = 16.0
IN_TO_CM = 2.54

_WEIGHT_UNITS = {"oz", "lb", "kg", "g"}
_LENGTH_UNITS = {"in", "cm"}

_UNIT_ALIASES = {
    "ounce": "oz", "ounces": "oz",
    "pound": "lb", "pounds": "lb", "lbs": "lb",
    "kilogram": "kg", "kilograms": "kg",
    "gram": "g", "grams": "g",
    "inch": "in", "inches": "in",
    "centimeter": "cm", "centimeters": "cm",
}


def _unit(raw: str, allowed: set[str]) -> str:
    u = (raw or "").strip().lower()
    u = _UNIT_ALIASES.get(u, u)
    if u not in allowed:
        raise ValueError(f"Unsupported unit: {raw!r}")
    return u


def oz_to_kg(oz: float) -> float:
    return round(oz * OZ_TO_KG, 3)


def kg_to_lb(kg: float) -> float:
    return round(kg * KG_TO_LB, 3)


def lb_to_kg(lb: float) -> float:
    return round(lb / KG_TO_LB, 3)


def in_to_cm(inches: float) -> float:
    return round(inches * IN_TO_CM, 2)


def cm_to_in(cm: float) -> float:
    return round(cm / IN_TO_CM, 2)


@dataclass(frozen=True)
class Weight:
    value: float
    unit: str = "oz"

    def __post_init__(self) -> None:
        object.__setattr__(self, "unit", _unit(self.unit, _WEIGHT_UNITS))
        if not self.value or float(self.value) <= 0:
            raise ValueError(f"Weight must be positive, got {self.value!r}")

    def to_oz(self) -> float:
        if self.unit == "oz":
            return float(self.value)
        if self.unit == "lb":
            return round(self.value * LB_TO_OZ, 3)
        if self.unit == "g":
            return round(self.value / 1000.0 / OZ_TO_KG, 3)
        return round(self.value / OZ_TO_KG, 3)

    def to_kg(self) -> float:
        if self.unit == "kg":
            return round(float(self.value), 3)
        if self.unit == "g":
            return round(self.value / 1000.0, 3)
        if self.unit == "lb":
            return lb_to_kg(self.value)
        return oz_to_kg(self.value)

    def to_lb(self) -> float:
        if self.unit == "lb":
            return round(float(self.value), 3)
        if self.unit == "oz":
            return round(self.value / LB_TO_OZ, 3)
        return kg_to_lb(self.to_kg())


@dataclass(frozen=True)
class Dimensions:
    length: float
    width: float
    height: float
    unit: str = "in"

    def __post_init__(self) -> None:
        object.__setattr__(self, "unit", _unit(self.unit, _LENGTH_UNITS))
        for name in ("length", "width", "height"):
            v = getattr(self, name)
            if v is None or float(v) <= 0:
                raise ValueError(f"Dimension {name} must be positive, got {v!r}")

    def to_inches(self) -> "Dimensions":
        if self.unit == "in":
            return self
        return Dimensions(cm_to_in(self.length), cm_to_in(self.width), cm_to_in(self.height), "in")

    def to_cm(self) -> "Dimensions":
        if self.unit == "cm":
            return self
        return Dimensions(in_to_cm(self.length), in_to_cm(self.width), in_to_cm(self.height), "cm")


@dataclass(frozen=True)
class PackageSpec:
    weight: Weight
    dimensions: Dimensions

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# --- Addresses & orders ------------------------------------------------------

@dataclass(frozen=True)
class Address:
    name: str
    street1: str
    city: str
    state: str
    postal_code: str
    country: str = "US"
    street2: Optional[str] = None
    company: Optional[str] = None
    phone: Optional[str] = None
    residential: Optional[bool] = None

    @property
    def street_lines(self) -> List[str]:
        return [s for s in (self.street1, self.street2) if s]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Address":
        """Accepts snake_case keys or the ShipStation camelCase shape."""
        def pick(*keys, default=None):
            for k in keys:
                if d.get(k) not in (None, ""):
                    return d.get(k)
            return default

        residential = pick("residential", "addressVerified_residential")
        return cls(
            name=str(pick("name", default="")),
            company=pick("company"),
            street1=str(pick("street1", "address_line1", "addressLine1", default="")),
            street2=pick("street2", "address_line2", "addressLine2"),
            city=str(pick("city", default="")),
            state=str(pick("state", "region", "stateProvince", default="")),
            postal_code=str(pick("postal_code", "postalCode", default="")),
            country=str(pick("country", "country_code", "countryCode", default="US")).upper(),
            phone=pick("phone"),
            residential=residential if isinstance(residential, bool) else None,
        )


@dataclass(frozen=True)
class OrderItem:
    name: str
    quantity: int = 1
    weight: Optional[Weight] = None   # per unit
    sku: Optional[str] = None
    unit_price: Optional[float] = None

    def __post_init__(self) -> None:
        if int(self.quantity) < 1:
            raise ValueError(f"Item quantity must be at least 1, got {self.quantity!r}")


@dataclass(frozen=True)
class OrderData:
    order_number: str
    ship_to: Address
    items: List[OrderItem] = field(default_factory=list)
    order_id: Optional[str] = None
    dimensions: Optional[Dimensions] = None
    organization_id: Optional[int] = None
    customer_email: Optional[str] = None
    order_total: Optional[float] = None

    @property
    def item_count(self) -> int:
        return sum(int(i.quantity) for i in self.items) or 1

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "OrderData":
        """Build from either `to_dict()` output or a ShipStation order body."""
        ship_to = d.get("ship_to") or d.get("shipTo") or {}
        items: List[OrderItem] = []
        for raw in d.get("items") or []:
            w = raw.get("weight")
            weight = None
            if isinstance(w, dict) and w.get("value"):
                weight = Weight(float(w["value"]), w.get("unit") or w.get("units") or "oz")
            items.append(OrderItem(
                name=str(raw.get("name") or "Item"),
                quantity=int(raw.get("quantity") or 1),
                weight=weight,
                sku=raw.get("sku"),
                unit_price=raw.get("unit_price", raw.get("unitPrice")),
            ))

        dims = d.get("dimensions")
        dimensions = None
        if isinstance(dims, dict) and dims.get("length"):
            dimensions = Dimensions(
                float(dims["length"]), float(dims["width"]), float(dims["height"]),
                dims.get("unit") or dims.get("units") or "in",
            )

        order_id = d.get("order_id", d.get("orderId"))
        return cls(
            order_number=str(d.get("order_number") or d.get("orderNumber") or order_id or ""),
            order_id=str(order_id) if order_id is not None else None,
            ship_to=Address.from_dict(ship_to),
            items=items,
            dimensions=dimensions,
            organization_id=d.get("organization_id", d.get("organizationId")),
            customer_email=d.get("customer_email", d.get("customerEmail")),
            order_total=d.get("order_total", d.get("orderTotal")),
        )


# --- Quotes ------------------------------------------------------------------

_DAYS_RE = re.compile(r"(\d+)\s*(?:-|to|–)?\s*(\d+)?")


@dataclass(frozen=True)
class DeliveryWindow:
    min_days: int
    max_days: int

    @classmethod
    def parse(cls, raw: Any) -> Optional["DeliveryWindow"]:
        """Parse '3-5', '2 days', '1-3 business days' or an int. None when unknown."""
        if raw is None or isinstance(raw, bool):
            return None
        if isinstance(raw, (int, float)):
            n = int(raw)
            return cls(n, n) if n >= 0 else None
        m = _DAYS_RE.search(str(raw))
        if not m:
            return None
        lo = int(m.group(1))
        hi = int(m.group(2)) if m.group(2) else lo
        return cls(min(lo, hi), max(lo, hi))

    def __str__(self) -> str:
        if self.min_days == self.max_days:
            return f"{self.min_days}"
        return f"{self.min_days}-{self.max_days}"


QUOTE_SOURCE_TABLE = "table"
QUOTE_SOURCE_LIVE = "live"
QUOTE_SOURCE_FALLBACK = "fallback"


@dataclass(frozen=True)
class RateQuote:
    carrier_id: str
    carrier_name: str
    service_name: str
    service_code: str
    amount: float
    adapter_id: str
    currency: str = "USD"
    delivery: Optional[DeliveryWindow] = None
    zone: Optional[int] = None
    source: str = QUOTE_SOURCE_LIVE
    base_amount: Optional[float] = None
    is_discount: bool = False
    rate_id: Optional[str] = None

    @property
    def delivery_days(self) -> Optional[int]:
        return self.delivery.min_days if self.delivery else None

    @property
    def is_fallback(self) -> bool:
        return self.source == QUOTE_SOURCE_FALLBACK

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["delivery_days"] = str(self.delivery) if self.delivery else None
        out.pop("delivery", None)
        return out

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RateQuote":
        return cls(
            carrier_id=str(d["carrier_id"]),
            carrier_name=str(d.get("carrier_name") or d["carrier_id"]),
            service_name=str(d.get("service_name") or ""),
            service_code=str(d.get("service_code") or ""),
            amount=float(d["amount"]),
            adapter_id=str(d.get("adapter_id") or d["carrier_id"]),
            currency=str(d.get("currency") or "USD"),
            delivery=DeliveryWindow.parse(d.get("delivery_days")),
            zone=d.get("zone"),
            source=str(d.get("source") or QUOTE_SOURCE_LIVE),
            base_amount=d.get("base_amount"),
            is_discount=bool(d.get("is_discount", False)),
            rate_id=d.get("rate_id"),
        )


@dataclass(frozen=True)
class RateQuoteRequest:
    origin: Address
    destination: Address
    package: PackageSpec
    service_level: str = "ground"


# --- Shipments & tracking ----------------------------------------------------

@dataclass(frozen=True)
class ShipmentRecord:
    order_number: str
    carrier: str
    tracking_number: str
    reference: str
    status: str
    weight: Weight
    dimensions: Dimensions
    label_reference: Optional[str] = None
    order_id: Optional[str] = None
    created_at: Optional[dt.datetime] = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TrackingEvent:
    tracking_number: str
    status: str
    description: str
    carrier: str
    timestamp: dt.datetime
    location: str = ""
    raw_status: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["timestamp"] = self.timestamp.isoformat()
        return out


@dataclass(frozen=True)
class WebhookUpdate:
    """What the webhook collaborator hands over for one carrier status push."""
    tracking_number: str
    raw_status: str
    description: str = ""
    location: str = ""
    # datetime (naive means UTC), ISO or "YYYY-MM-DD HH:MM:SS" text, or epoch ms
    timestamp: Any = None


# --- Audit -------------------------------------------------------------------

@dataclass(frozen=True)
class AuditEntry:
    action: str
    resource: str
    success: bool
    duration_ms: int
    timestamp: dt.datetime
    resource_id: Optional[str] = None
    request: Any = None
    response: Any = None
    error: Optional[str] = None
    organization_id: Optional[int] = None
    user_id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        out = asdict(self)
        out["timestamp"] = self.timestamp.isoformat()
        return out

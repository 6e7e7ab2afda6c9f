# src/carrier_routing/rules/address_validator.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationError, field_validator

from carrier_routing.models import Address, OrderData, Weight
from carrier_routing.rules.eligibility import estimate_dimensions, total_weight_oz

log = logging.getLogger("carrier_routing.rules.address_validator")

US_ZIP_RE = re.compile(r"^\d{5}(-\d{4})?$")
US_PHONE_RE = re.compile(r"^\+?1?[2-9]\d{2}[2-9]\d{2}\d{4}$")
CA_POSTAL_RE = re.compile(r"^[A-Z]\d[A-Z] ?\d[A-Z]\d$")
_PHONE_PUNCT_RE = re.compile(r"[\s\-().]")

PO_BOX_PATTERNS = (
    re.compile(r"p\.?\s*o\.?\s*box", re.I),
    re.compile(r"post\s*office\s*box", re.I),
    re.compile(r"postal\s*box", re.I),
    re.compile(r"\bpmb\b", re.I),
    re.compile(r"\bpo\b", re.I),
)
MILITARY_PATTERNS = (
    re.compile(r"\b(apo|fpo|dpo)\b", re.I),
    re.compile(r"embassy|consulate", re.I),
)
PO_BOX_ONLY_ZIPS = frozenset({"10001", "10008", "10009", "10010", "10011", "10012", "10013", "10014"})


# --- Structural schemas ---------------------------------------------------------

class _BaseAddressSchema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    name: str = Field(min_length=1)
    company: Optional[str] = None
    street1: str = Field(min_length=1)
    street2: Optional[str] = None
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    postal_code: str = Field(min_length=1)
    country: str = Field(min_length=2, max_length=2)
    phone: Optional[str] = None
    residential: Optional[bool] = None


class USAddressSchema(_BaseAddressSchema):
    state: str = Field(min_length=2)
    country: Literal["US"]

    @field_validator("postal_code")
    @classmethod
    def _zip(cls, v: str) -> str:
        if not US_ZIP_RE.match(v):
            raise ValueError("bad zip")
        return v

    @field_validator("phone")
    @classmethod
    def _phone(cls, v: Optional[str]) -> Optional[str]:
        if v and not US_PHONE_RE.match(_PHONE_PUNCT_RE.sub("", v)):
            raise ValueError("bad phone")
        return v


class CAAddressSchema(_BaseAddressSchema):
    state: str = Field(min_length=2)
    country: Literal["CA"]

    @field_validator("postal_code")
    @classmethod
    def _postal(cls, v: str) -> str:
        if not CA_POSTAL_RE.match(v.upper()):
            raise ValueError("bad postal code")
        return v


class InternationalAddressSchema(_BaseAddressSchema):
    pass


_MESSAGES: Dict[str, Dict[str, str]] = {
    "US": {
        "state": "State must be 2 characters (e.g., CA, NY)",
        "postal_code": "Invalid US ZIP code format",
        "phone": "Invalid US phone number",
    },
    "CA": {
        "state": "Province is required",
        "postal_code": "Invalid Canadian postal code format",
    },
    "*": {
        "name": "Recipient name is required",
        "street1": "Street address is required",
        "city": "City is required",
        "state": "State/Province is required",
        "postal_code": "Postal code is required",
        "country": "Country code must be 2 characters",
        "phone": "Invalid phone number",
    },
}


class OrderItemSchema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1)
    quantity: int = Field(ge=1)
    unit_weight_kg: Optional[float] = Field(default=None, ge=0.01)


class OrderSchema(BaseModel):
    """Business envelope the discount carrier accepts for label creation (metric)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    order_number: str = Field(min_length=1)
    customer_email: Optional[EmailStr] = None
    items: List[OrderItemSchema] = Field(min_length=1)
    weight_kg: float = Field(ge=0.05)
    length_cm: float = Field(ge=1)
    width_cm: float = Field(ge=1)
    height_cm: float = Field(ge=1)

    @field_validator("customer_email", mode="before")
    @classmethod
    def _blank_email(cls, v):
        return v or None


_ORDER_MESSAGES: Dict[str, str] = {
    "order_number": "Order number is required",
    "customer_email": "Valid email address is required",
    "items": "At least one item is required",
    "name": "Item name is required",
    "quantity": "Quantity must be at least 1",
    "unit_weight_kg": "Item weight must be at least 0.01 kg",
    "weight_kg": "Total weight must be at least 50g",
    "length_cm": "Length must be at least 1cm",
    "width_cm": "Width must be at least 1cm",
    "height_cm": "Height must be at least 1cm",
}


def order_fields(order: OrderData) -> dict:
    dims = estimate_dimensions(order).to_cm()
    return {
        "order_number": order.order_number,
        "customer_email": order.customer_email,
        "items": [
            {
                "name": i.name,
                "quantity": i.quantity,
                "unit_weight_kg": i.weight.to_kg() if i.weight is not None else None,
            }
            for i in order.items
        ],
        "weight_kg": Weight(total_weight_oz(order), "oz").to_kg() if order.items else 0.0,
        "length_cm": dims.length,
        "width_cm": dims.width,
        "height_cm": dims.height,
    }


def schema_for(country: str) -> Type[_BaseAddressSchema]:
    c = (country or "").upper()
    if c == "US":
        return USAddressSchema
    if c == "CA":
        return CAAddressSchema
    return InternationalAddressSchema


# --- Validator ------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class AddressValidator:
    """Structural (country schema) plus business checks: PO boxes, military, completeness."""

    def __init__(self, po_box_only_zips: frozenset[str] = PO_BOX_ONLY_ZIPS) -> None:
        self._po_box_zips = po_box_only_zips

    def validate(self, address: Address) -> ValidationResult:
        errors: list[str] = []
        warnings: list[str] = []

        self._check_structure(address, errors)
        self._check_po_box(address, errors)
        self._check_high_risk(address, warnings)
        self._check_completeness(address, warnings)

        if errors:
            log.debug("Address rejected (%s): %s", address.postal_code, "; ".join(errors))
        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    @staticmethod
    def validate_order(order: OrderData) -> ValidationResult:
        """Items, quantities, weight floor, box size and contact email of a shippable order."""
        errors: list[str] = []
        try:
            OrderSchema.model_validate(order_fields(order))
        except ValidationError as e:
            for err in e.errors():
                names = [p for p in err.get("loc", ()) if isinstance(p, str)]
                msg = _ORDER_MESSAGES.get(names[-1] if names else "") or err.get("msg", "Invalid order")
                if msg not in errors:
                    errors.append(msg)
        if errors:
            log.debug("Order %s rejected: %s", order.order_number, "; ".join(errors))
        return ValidationResult(valid=not errors, errors=errors)

    @staticmethod
    def _check_structure(address: Address, errors: list[str]) -> None:
        country = (address.country or "").upper()
        schema = schema_for(country)
        try:
            schema.model_validate(address.to_dict())
        except ValidationError as e:
            specific = _MESSAGES.get(country, {})
            for err in e.errors():
                fld = str(err["loc"][0]) if err.get("loc") else ""
                msg = specific.get(fld) or _MESSAGES["*"].get(fld) or err.get("msg", "Invalid address")
                if msg not in errors:
                    errors.append(msg)

    def _check_po_box(self, address: Address, errors: list[str]) -> None:
        lines = " ".join(address.street_lines)
        if is_po_box(lines):
            errors.append("PO Box addresses are not supported")
        if (address.country or "").upper() == "US" and (address.postal_code or "").strip() in self._po_box_zips:
            errors.append("This ZIP code is designated for PO Boxes only and cannot be shipped to")

    @staticmethod
    def _check_high_risk(address: Address, warnings: list[str]) -> None:
        text = " ".join(s for s in (address.street1, address.street2, address.city) if s)
        if any(p.search(text) for p in MILITARY_PATTERNS):
            warnings.append("Military or diplomatic addresses may have special shipping requirements")

    @staticmethod
    def _check_completeness(address: Address, warnings: list[str]) -> None:
        if not address.phone:
            warnings.append("Phone number recommended for delivery notifications")
        if address.residential is None:
            warnings.append("Residential/commercial designation not specified")
        if not address.company and not address.residential:
            warnings.append("Consider marking as residential if no company name provided")


def is_po_box(text: Optional[str]) -> bool:
    return bool(text) and any(p.search(text) for p in PO_BOX_PATTERNS)

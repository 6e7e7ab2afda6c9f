from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from carrier_routing.api.adapters import CarrierAdapter, register_adapter
from carrier_routing.api.normalize import normalize_discount_tracking
from carrier_routing.api.transport import RequestsTransport, Transport, clip, response_json
from carrier_routing.models import Address, OrderData, PackageSpec, RateQuote, TrackingEvent, Weight
from carrier_routing.rules.eligibility import estimate_dimensions, total_weight_oz
from carrier_routing.utils.clock import Clock, SystemClock

CARRIER_PREFIX = "GV"
DISPLAY_PREFIX = "QP"
SUCCESS_CODES = (1, 200)


def to_display_tracking(tracking_number: str) -> str:
    """Carrier-issued GV... number -> the QP... number shown to merchants."""
    if tracking_number and tracking_number.startswith(CARRIER_PREFIX):
        return DISPLAY_PREFIX + tracking_number[len(CARRIER_PREFIX):]
    return tracking_number


def to_carrier_tracking(tracking_number: str) -> str:
    if tracking_number and tracking_number.startswith(DISPLAY_PREFIX):
        return CARRIER_PREFIX + tracking_number[len(DISPLAY_PREFIX):]
    return tracking_number


def sign(client_code: str, api_key: str) -> str:
    return hashlib.md5((client_code + api_key).encode("utf-8")).hexdigest().lower()


@dataclass
class DiscountCarrierConfig:
    client_code: str
    api_key: str
    base_url: str = "https://api.jygjexp.com/v1"
    channel_code: str = "US001"
    from_address_id: str = "JFK"
    timeout: float = 60


@register_adapter("discount")
class DiscountCarrierAdapter(CarrierAdapter):
    """
    Discount carrier: JSON bodies answered with {"code": 1, "message", "data"}.

    Requests carry code/apiKey/timestamp/sign headers where sign is
    md5(code + apiKey). Tracking numbers are exchanged in GV form and shown
    to merchants in QP form.
    """

    carrier_id = "discount"
    carrier_name = "Discount Carrier"
    is_discount = True

    def __init__(
        self,
        cfg: DiscountCarrierConfig,
        shipper: Address,
        transport: Optional[Transport] = None,
        *,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.cfg = cfg
        self.shipper = shipper
        self.transport = transport or RequestsTransport(timeout=cfg.timeout)
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger("carrier_routing.api.discount")

    @classmethod
    def from_env(cls, env_cfg, origin: Address) -> "DiscountCarrierAdapter":
        return cls(
            DiscountCarrierConfig(
                client_code=env_cfg.DISCOUNT_CLIENT_CODE,
                api_key=env_cfg.DISCOUNT_API_KEY,
                base_url=env_cfg.DISCOUNT_BASE_URL,
                channel_code=env_cfg.DISCOUNT_CHANNEL_CODE,
            ),
            origin,
        )

    # --- HTTP --------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "code": self.cfg.client_code,
            "apiKey": self.cfg.api_key,
            "timestamp": self.clock.now().strftime("%Y-%m-%d %H:%M:%S"),
            "sign": sign(self.cfg.client_code, self.cfg.api_key),
        }

    def _url(self, path: str) -> str:
        return self.cfg.base_url.rstrip("/") + path

    def _post(self, path: str, body: Any, headers: Optional[Dict[str, str]] = None) -> Any:
        url = self._url(path)
        self.logger.debug("Discount POST %s request_body=%s", url, clip(body))
        resp = self.transport.post(url, headers=headers or self._headers(), json=body)
        payload = response_json(resp)
        status = getattr(resp, "status_code", None)
        self.logger.debug("Discount POST %s status=%s response_body=%s", url, status, clip(payload))
        if not isinstance(payload, dict):
            return {"code": 0, "message": str(payload or "Empty response"), "status": status}
        if status is not None and status >= 400:
            payload.setdefault("status", status)
        return payload

    # --- Operations ----------------------------------------------------------------

    def build_order_body(self, order: OrderData, reference: str) -> Dict[str, Any]:
        to = order.ship_to
        weight_kg = Weight(total_weight_oz(order), "oz").to_kg()
        dims = estimate_dimensions(order).to_cm()
        items = [
            {
                "ename": item.name,
                "sku": item.sku or item.name,
                "price": float(item.unit_price or 0),
                "quantity": int(item.quantity),
                "weight": item.weight.to_kg() if item.weight else weight_kg,
                "unitCode": "PCE",
            }
            for item in order.items
        ] or [{"ename": "Merchandise", "sku": "ITEM", "price": 0.0, "quantity": 1,
               "weight": weight_kg, "unitCode": "PCE"}]
        return {
            "channelCode": self.cfg.channel_code,
            "referenceNo": reference,
            "productType": 1,
            "pweight": weight_kg,
            "pieces": 1,
            "insured": 0,
            "consigneeName": to.name,
            "consigneeCompany": to.company or "",
            "consigneeCountryCode": to.country,
            "consigneeProvince": to.state,
            "consigneeCity": to.city,
            "consigneeAddress": " ".join(to.street_lines),
            "consigneePostcode": to.postal_code,
            "consigneePhone": to.phone or "",
            "consigneeEmail": order.customer_email or "",
            "shipperName": self.shipper.name,
            "shipperCompany": self.shipper.company or "",
            "shipperCountryCode": self.shipper.country,
            "shipperProvince": self.shipper.state,
            "shipperCity": self.shipper.city,
            "shipperAddress": " ".join(self.shipper.street_lines),
            "shipperPostcode": self.shipper.postal_code,
            "shipperPhone": self.shipper.phone or "",
            "fromAddressId": self.cfg.from_address_id,
            "apiOrderItemList": items,
            "apiOrderVolumeList": [{
                "length": dims.length, "width": dims.width, "height": dims.height,
                "quantity": 1, "rweight": weight_kg, "bagNum": "1",
            }],
        }

    def create_shipment(self, order: OrderData, *, reference: str, quote: Optional[RateQuote] = None) -> Any:
        return self._post("/api/orderNew/createOrder", self.build_order_body(order, reference))

    def track_shipment(self, tracking_number: str) -> Any:
        return self._post("/api/tracking/query/trackInfo",
                          {"trackingNumber": [to_carrier_tracking(tracking_number)]})

    def print_label(self, tracking_numbers: Sequence[str]) -> Any:
        return self._post("/api/orderNew/printOrder", [to_carrier_tracking(t) for t in tracking_numbers])

    def validate_address(self, address: Address) -> Any:
        return self._post("/api/orderNew/verify", {
            "postCode": address.postal_code,
            "countryCode": address.country,
            "provinceCode": address.state,
            "city": address.city,
        })

    def check_coverage(self, address: Address, package: PackageSpec) -> Any:
        dims = package.dimensions.to_cm()
        body = {
            "channelCode": [self.cfg.channel_code],
            "length": dims.length,
            "width": dims.width,
            "height": dims.height,
            "weight": package.weight.to_kg(),
            "postCode": address.postal_code,
            "iso2": address.country,
            "fromAddressId": self.cfg.from_address_id,
        }
        return self._post("/outerApi/costCal", body, headers={"Content-Type": "application/json",
                                                                "apikey": self.cfg.api_key})

    # --- Response interpretation -----------------------------------------------------

    @staticmethod
    def _row_error(raw: Dict[str, Any]) -> Optional[str]:
        data = raw.get("data")
        if isinstance(data, list) and data and isinstance(data[0], dict):
            msg = data[0].get("errMsg")
            return str(msg) if msg else None
        return None

    def is_successful_response(self, raw: Any) -> bool:
        if not isinstance(raw, dict) or raw.get("code") not in SUCCESS_CODES:
            return False
        return self._row_error(raw) is None

    def extract_error_message(self, raw: Any) -> str:
        if isinstance(raw, dict):
            row = self._row_error(raw)
            if row:
                return row
        return super().extract_error_message(raw)

    def parse_shipment(self, raw: Any) -> Dict[str, Optional[str]]:
        data = raw.get("data") if isinstance(raw, dict) else None
        if not isinstance(data, dict):
            return {"tracking_number": None, "label_reference": None}
        tn = data.get("trackingNo")
        return {
            "tracking_number": to_display_tracking(str(tn)) if tn else None,
            "label_reference": data.get("labelPath"),
        }

    def parse_tracking_events(self, tracking_number: str, raw: Any) -> List[TrackingEvent]:
        return normalize_discount_tracking(
            to_display_tracking(tracking_number), raw if isinstance(raw, dict) else {},
            carrier=self.carrier_id, now=self.clock.now(),
        )

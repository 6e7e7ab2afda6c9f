from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from carrier_routing.api.adapters import CarrierAdapter, register_adapter
from carrier_routing.api.normalize import normalize_shipengine_rates, normalize_shipengine_tracking
from carrier_routing.api.transport import RequestsTransport, Transport, clip, response_json
from carrier_routing.models import (
    Address,
    DeliveryWindow,
    OrderData,
    RateQuote,
    RateQuoteRequest,
    TrackingEvent,
    QUOTE_SOURCE_FALLBACK,
)
from carrier_routing.rules.eligibility import estimate_dimensions, total_weight_oz
from carrier_routing.utils.clock import Clock, SystemClock

# (carrier_id, carrier_name, service_name, service_code, amount, days)
FALLBACK_RATES = (
    ("usps", "USPS", "Ground Advantage", "usps_ground_advantage", 12.50, "3-5"),
    ("fedex", "FedEx", "Ground", "fedex_ground", 15.75, "2-3"),
    ("ups", "UPS", "Ground", "ups_ground", 14.25, "2-4"),
)


def _address_body(a: Address, residential: str) -> Dict[str, Any]:
    return {
        "name": a.name,
        "company_name": a.company,
        "phone": a.phone or "",
        "address_line1": a.street1,
        "address_line2": a.street2,
        "city_locality": a.city,
        "state_province": a.state,
        "postal_code": a.postal_code,
        "country_code": a.country or "US",
        "address_residential_indicator": residential,
    }


def _residential(a: Address) -> str:
    if a.residential is None:
        return "unknown"
    return "yes" if a.residential else "no"


@dataclass
class ShipEngineConfig:
    api_key: str
    base_url: str = "https://api.shipengine.com/v1"
    carrier_ids: List[str] = field(default_factory=list)
    default_carrier_code: str = "usps"
    timeout: float = 30


@register_adapter("shipengine")
class ShipEngineAdapter(CarrierAdapter):
    """Market-rate aggregator. Responses are wrapped as {"status": http_status, "data": body}."""

    carrier_id = "shipengine"
    carrier_name = "ShipEngine"

    def __init__(
        self,
        cfg: ShipEngineConfig,
        ship_from: Address,
        transport: Optional[Transport] = None,
        *,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.cfg = cfg
        self.ship_from = ship_from
        self.transport = transport or RequestsTransport(timeout=cfg.timeout)
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger("carrier_routing.api.shipengine")

    @classmethod
    def from_env(cls, env_cfg, origin: Address) -> Optional["ShipEngineAdapter"]:
        if not env_cfg.SHIPENGINE_API_KEY:
            return None
        return cls(ShipEngineConfig(api_key=env_cfg.SHIPENGINE_API_KEY, base_url=env_cfg.SHIPENGINE_BASE_URL), origin)

    def _headers(self) -> Dict[str, str]:
        return {"API-Key": self.cfg.api_key, "Content-Type": "application/json"}

    def _url(self, path: str) -> str:
        return self.cfg.base_url.rstrip("/") + path

    def _wrap(self, method: str, url: str, resp) -> Dict[str, Any]:
        body = response_json(resp)
        status = getattr(resp, "status_code", None)
        self.logger.debug("ShipEngine %s %s status=%s response_body=%s", method, url, status, clip(body))
        return {"status": status, "data": body}

    def _post(self, path: str, body: Any) -> Dict[str, Any]:
        url = self._url(path)
        self.logger.debug("ShipEngine POST %s request_body=%s", url, clip(body))
        return self._wrap("POST", url, self.transport.post(url, headers=self._headers(), json=body))

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = self._url(path)
        return self._wrap("GET", url, self.transport.get(url, headers=self._headers(), params=params))

    # --- Operations ----------------------------------------------------------------

    def _shipment_body(self, ship_to: Address, weight_oz: float, dims) -> Dict[str, Any]:
        return {
            "ship_to": _address_body(ship_to, _residential(ship_to)),
            "ship_from": _address_body(self.ship_from, "no"),
            "packages": [{
                "weight": {"value": weight_oz, "unit": "ounce"},
                "dimensions": {"unit": "inch", "length": dims.length, "width": dims.width,
                               "height": dims.height},
            }],
        }

    def get_rates(self, request: RateQuoteRequest) -> Any:
        shipment = self._shipment_body(
            request.destination, request.package.weight.to_oz(), request.package.dimensions.to_inches())
        shipment["ship_from"] = _address_body(request.origin, "no")
        body: Dict[str, Any] = {"shipment": shipment}
        if self.cfg.carrier_ids:
            body["rate_options"] = {"carrier_ids": list(self.cfg.carrier_ids)}
        return self._post("/rates", body)

    def create_shipment(self, order: OrderData, *, reference: str, quote: Optional[RateQuote] = None) -> Any:
        if quote is not None and quote.rate_id:
            return self._post(f"/labels/rates/{quote.rate_id}", {"label_format": "pdf", "label_layout": "4x6"})
        shipment = self._shipment_body(order.ship_to, total_weight_oz(order), estimate_dimensions(order))
        shipment["service_code"] = quote.service_code if quote else "usps_ground_advantage"
        shipment["external_shipment_id"] = reference
        return self._post("/labels", {"shipment": shipment, "label_format": "pdf"})

    def track_shipment(self, tracking_number: str) -> Any:
        return self._get("/tracking", {"carrier_code": self.cfg.default_carrier_code,
                                       "tracking_number": tracking_number})

    def print_label(self, tracking_numbers: Sequence[str]) -> Any:
        return self._get("/labels", {"tracking_number": ",".join(tracking_numbers)})

    def validate_address(self, address: Address) -> Any:
        return self._post("/addresses/validate", [_address_body(address, _residential(address))])

    # --- Response interpretation -----------------------------------------------------

    def is_successful_response(self, raw: Any) -> bool:
        status = self.extract_status(raw)
        return status is not None and 200 <= status < 300

    def extract_error_message(self, raw: Any) -> str:
        data = raw.get("data") if isinstance(raw, dict) else None
        if isinstance(data, dict):
            errors = data.get("errors")
            if isinstance(errors, list) and errors and isinstance(errors[0], dict):
                return str(errors[0].get("message") or "ShipEngine error")
            return super().extract_error_message(data)
        if isinstance(data, str) and data:
            return data
        return f"ShipEngine request failed (status {self.extract_status(raw)})"

    def parse_rates(self, raw: Any, request: Optional[RateQuoteRequest] = None) -> List[RateQuote]:
        return normalize_shipengine_rates(raw if isinstance(raw, dict) else {}, adapter_id=self.adapter_id)

    def parse_shipment(self, raw: Any) -> Dict[str, Optional[str]]:
        data = raw.get("data") if isinstance(raw, dict) else None
        if not isinstance(data, dict):
            return {"tracking_number": None, "label_reference": None}
        download = data.get("label_download") or {}
        return {
            "tracking_number": data.get("tracking_number"),
            "label_reference": download.get("href") or download.get("pdf") if isinstance(download, dict) else None,
        }

    def parse_tracking_events(self, tracking_number: str, raw: Any) -> List[TrackingEvent]:
        return normalize_shipengine_tracking(
            tracking_number, raw if isinstance(raw, dict) else {}, now=self.clock.now())

    def fallback_quotes(self, request: RateQuoteRequest) -> List[RateQuote]:
        return [
            RateQuote(
                carrier_id=cid,
                carrier_name=name,
                service_name=service,
                service_code=code,
                amount=amount,
                base_amount=amount,
                adapter_id=self.adapter_id,
                delivery=DeliveryWindow.parse(days),
                source=QUOTE_SOURCE_FALLBACK,
            )
            for cid, name, service, code, amount, days in FALLBACK_RATES
        ]

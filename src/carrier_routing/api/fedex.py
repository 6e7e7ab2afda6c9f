from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
import logging

from carrier_routing.api.adapters import CarrierAdapter, register_adapter
from carrier_routing.api.normalize import normalize_fedex_rates, normalize_fedex_tracking
from carrier_routing.api.transport import RequestsTransport, Transport, clip, response_json
from carrier_routing.errors import OperationNotSupported
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


@dataclass
class FedExConfig:
    base_url: str
    account_number: str = ""
    timeout: float = 30


@dataclass
class FedExAuth:
    client_id: str
    client_secret: str
    token_url: str


def _party(a: Address) -> Dict[str, Any]:
    return {
        "contact": {"personName": a.name, "companyName": a.company or "", "phoneNumber": a.phone or ""},
        "address": {
            "streetLines": a.street_lines,
            "city": a.city,
            "stateOrProvinceCode": a.state,
            "postalCode": a.postal_code,
            "countryCode": a.country or "US",
            "residential": bool(a.residential),
        },
    }


@register_adapter("fedex")
class FedExAdapter(CarrierAdapter):
    """FedEx REST APIs (OAuth client credentials, rate quotes, track, ship).

    The OAuth token is cached until 10 seconds before expiry. Operation
    responses are wrapped as {"status": http_status, "data": body}; a failed
    token request is reported as status 401 without calling the operation.
    """

    carrier_id = "fedex"
    carrier_name = "FedEx"

    def __init__(
        self,
        auth: FedExAuth,
        cfg: FedExConfig,
        ship_from: Address,
        transport: Optional[Transport] = None,
        *,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.auth = auth
        self.cfg = cfg
        self.ship_from = ship_from
        self.transport = transport or RequestsTransport(timeout=cfg.timeout)
        self.clock = clock or SystemClock()
        self._token: Optional[str] = None
        self._token_expires_at: float = 0.0
        self.logger: logging.Logger = logger or logging.getLogger("carrier_routing.api.fedex")

    @classmethod
    def from_env(cls, env_cfg, origin: Address) -> Optional["FedExAdapter"]:
        if not (env_cfg.FEDEX_CLIENT_ID and env_cfg.FEDEX_CLIENT_SECRET):
            return None
        base = env_cfg.FEDEX_BASE_URL.rstrip("/")
        return cls(
            FedExAuth(env_cfg.FEDEX_CLIENT_ID, env_cfg.FEDEX_CLIENT_SECRET, token_url=f"{base}/oauth/token"),
            FedExConfig(base_url=base, account_number=env_cfg.FEDEX_ACCOUNT_NUMBER),
            origin,
        )

    # --- Auth ----------------------------------------------------------------------

    def authenticate(self) -> Optional[str]:
        """Return a cached token or request a new one (form-encoded client credentials)."""
        now = self.clock.monotonic()
        if self._token and now < self._token_expires_at - 10:
            return self._token

        data = {
            "grant_type": "client_credentials",
            "client_id": self.auth.client_id,
            "client_secret": self.auth.client_secret,
        }
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        self.logger.debug("Requesting FedEx OAuth token from %s", self.auth.token_url)

        resp = self.transport.post(self.auth.token_url, headers=headers, data=data)
        status = getattr(resp, "status_code", None)
        body = response_json(resp)
        token = body.get("access_token") if isinstance(body, dict) else None
        if status is None or status >= 400 or not token:
            self.logger.warning("FedEx token request returned error status=%s response_body=%s",
                                status, clip(body, 2000))
            self._token = None
            self._token_expires_at = 0.0
            return None

        expires_in = int(body.get("expires_in", 3600))
        self._token = token
        self._token_expires_at = self.clock.monotonic() + expires_in
        self.logger.debug("FedEx token acquired (expires_in=%s status=%s)", expires_in, status)
        return self._token

    def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        token = self.authenticate()
        if not token:
            return {"status": 401, "data": {"message": "FedEx authentication failed"}}

        endpoint = self.cfg.base_url.rstrip("/") + path
        headers = {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}
        self.logger.debug("FedEx POST endpoint=%s request_body=%s", endpoint, clip(body))
        resp = self.transport.post(endpoint, headers=headers, json=body)
        status = getattr(resp, "status_code", None)
        payload = response_json(resp)
        self.logger.debug("FedEx POST endpoint=%s status=%s response_body=%s", endpoint, status, clip(payload))
        return {"status": status, "data": payload}

    # --- Operations ----------------------------------------------------------------

    def _package(self, weight_lb: float, dims) -> Dict[str, Any]:
        return {
            "weight": {"units": "LB", "value": weight_lb},
            "dimensions": {"length": dims.length, "width": dims.width, "height": dims.height, "units": "IN"},
        }

    def get_rates(self, request: RateQuoteRequest) -> Any:
        body = {
            "accountNumber": {"value": self.cfg.account_number},
            "requestedShipment": {
                "shipper": _party(request.origin),
                "recipient": _party(request.destination),
                "pickupType": "DROPOFF_AT_FEDEX_LOCATION",
                "rateRequestType": ["ACCOUNT"],
                "requestedPackageLineItems": [
                    self._package(request.package.weight.to_lb(), request.package.dimensions.to_inches())
                ],
            },
        }
        return self._post("/rate/v1/rates/quotes", body)

    def create_shipment(self, order: OrderData, *, reference: str, quote: Optional[RateQuote] = None) -> Any:
        weight_lb = round(total_weight_oz(order) / 16.0, 3)
        body = {
            "labelResponseOptions": "URL_ONLY",
            "accountNumber": {"value": self.cfg.account_number},
            "requestedShipment": {
                "shipper": _party(self.ship_from),
                "recipients": [_party(order.ship_to)],
                "serviceType": quote.service_code if quote and quote.service_code else "FEDEX_GROUND",
                "packagingType": "YOUR_PACKAGING",
                "pickupType": "DROPOFF_AT_FEDEX_LOCATION",
                "shippingChargesPayment": {"paymentType": "SENDER"},
                "labelSpecification": {"imageType": "PDF", "labelStockType": "PAPER_4X6"},
                "requestedPackageLineItems": [{
                    **self._package(weight_lb, estimate_dimensions(order)),
                    "customerReferences": [{"customerReferenceType": "CUSTOMER_REFERENCE", "value": reference}],
                }],
            },
        }
        return self._post("/ship/v1/shipments", body)

    def track_shipment(self, tracking_number: str) -> Any:
        body = {
            "includeDetailedScans": True,
            "trackingInfo": [{"trackingNumberInfo": {"trackingNumber": tracking_number}}],
        }
        return self._post("/track/v1/trackingnumbers", body)

    def print_label(self, tracking_numbers: Sequence[str]) -> Any:
        raise OperationNotSupported("FedEx labels are returned by create_shipment")

    # --- Response interpretation -----------------------------------------------------

    def is_successful_response(self, raw: Any) -> bool:
        status = self.extract_status(raw)
        if status is None or not 200 <= status < 300:
            return False
        data = raw.get("data")
        return not (isinstance(data, dict) and data.get("errors"))

    def extract_error_message(self, raw: Any) -> str:
        data = raw.get("data") if isinstance(raw, dict) else None
        if isinstance(data, dict):
            errors = data.get("errors")
            if isinstance(errors, list) and errors and isinstance(errors[0], dict):
                return str(errors[0].get("message") or errors[0].get("code") or "FedEx error")
            return super().extract_error_message(data)
        return f"FedEx request failed (status {self.extract_status(raw)})"

    def parse_rates(self, raw: Any, request: Optional[RateQuoteRequest] = None) -> List[RateQuote]:
        data = raw.get("data") if isinstance(raw, dict) else None
        return normalize_fedex_rates(data if isinstance(data, dict) else {}, adapter_id=self.adapter_id)

    def parse_shipment(self, raw: Any) -> Dict[str, Optional[str]]:
        data = raw.get("data") if isinstance(raw, dict) else None
        out = data.get("output", {}) if isinstance(data, dict) else {}
        for shipment in out.get("transactionShipments") or []:
            for piece in shipment.get("pieceResponses") or []:
                docs = piece.get("packageDocuments") or [{}]
                return {
                    "tracking_number": piece.get("trackingNumber") or shipment.get("masterTrackingNumber"),
                    "label_reference": docs[0].get("url"),
                }
        return {"tracking_number": None, "label_reference": None}

    def parse_tracking_events(self, tracking_number: str, raw: Any) -> List[TrackingEvent]:
        data = raw.get("data") if isinstance(raw, dict) else None
        return normalize_fedex_tracking(tracking_number, data if isinstance(data, dict) else {},
                                        now=self.clock.now())

    def fallback_quotes(self, request: RateQuoteRequest) -> List[RateQuote]:
        return [RateQuote(
            carrier_id="fedex",
            carrier_name="FedEx",
            service_name="Ground",
            service_code="FEDEX_GROUND",
            amount=15.75,
            base_amount=15.75,
            adapter_id=self.adapter_id,
            delivery=DeliveryWindow.parse("2-3"),
            source=QUOTE_SOURCE_FALLBACK,
        )]

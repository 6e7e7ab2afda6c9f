# src/carrier_routing/api/adapters.py
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Type

from carrier_routing.errors import OperationNotSupported
from carrier_routing.models import Address, OrderData, PackageSpec, RateQuote, RateQuoteRequest, TrackingEvent

logger = logging.getLogger("carrier_routing.api.adapters")

OPERATIONS = (
    "create_shipment",
    "track_shipment",
    "print_label",
    "validate_address",
    "check_coverage",
    "get_rates",
)
OPTIONAL_OPERATIONS = frozenset({"validate_address", "check_coverage", "get_rates"})


class CarrierAdapter(ABC):
    """
    Contract every carrier integration satisfies.

    Operation methods perform the carrier call and return the carrier's raw
    response; they may raise on transport failure. Interpreting that response
    is left to `is_successful_response`, `extract_error_message` and the
    `parse_*` helpers so callers never branch on carrier identity.
    """

    adapter_id: str = ""
    carrier_id: str = ""
    carrier_name: str = ""
    is_discount: bool = False

    # --- Operations ------------------------------------------------------------

    @abstractmethod
    def create_shipment(self, order: OrderData, *, reference: str, quote: Optional[RateQuote] = None) -> Any:
        ...

    @abstractmethod
    def track_shipment(self, tracking_number: str) -> Any:
        ...

    @abstractmethod
    def print_label(self, tracking_numbers: Sequence[str]) -> Any:
        ...

    def validate_address(self, address: Address) -> Any:
        raise OperationNotSupported(f"{self.adapter_id} does not validate addresses")

    def check_coverage(self, address: Address, package: PackageSpec) -> Any:
        raise OperationNotSupported(f"{self.adapter_id} does not check coverage")

    def get_rates(self, request: RateQuoteRequest) -> Any:
        raise OperationNotSupported(f"{self.adapter_id} does not quote rates")

    @classmethod
    def from_env(cls, env_cfg: Any, origin: Address) -> Optional["CarrierAdapter"]:
        """Adapter configured from the app environment, or None when its credentials are absent."""
        return None

    # --- Response interpretation ---------------------------------------------

    @abstractmethod
    def is_successful_response(self, raw: Any) -> bool:
        ...

    def extract_error_message(self, raw: Any) -> str:
        if isinstance(raw, dict):
            for key in ("message", "error", "errMsg", "msg"):
                val = raw.get(key)
                if isinstance(val, str) and val:
                    return val
                if isinstance(val, dict) and val.get("message"):
                    return str(val["message"])
        if isinstance(raw, str) and raw:
            return raw
        return "Unknown carrier error"

    def extract_status(self, raw: Any) -> Optional[int]:
        """HTTP-like status carried by the raw response, if any."""
        if isinstance(raw, dict):
            status = raw.get("status")
            if isinstance(status, int):
                return status
        return None

    def parse_rates(self, raw: Any, request: Optional[RateQuoteRequest] = None) -> List[RateQuote]:
        return []

    def parse_tracking_events(self, tracking_number: str, raw: Any) -> List[TrackingEvent]:
        return []

    def parse_shipment(self, raw: Any) -> Dict[str, Optional[str]]:
        """{'tracking_number': ..., 'label_reference': ...} from a create response."""
        return {"tracking_number": None, "label_reference": None}

    def fallback_quotes(self, request: RateQuoteRequest) -> List[RateQuote]:
        """Conservative quotes used when live rating fails. Empty means no fallback."""
        return []

    def supports(self, operation: str) -> bool:
        if operation not in OPERATIONS:
            return False
        if operation not in OPTIONAL_OPERATIONS:
            return True
        return getattr(type(self), operation) is not getattr(CarrierAdapter, operation)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(adapter_id={self.adapter_id!r})"


# --- Registry ------------------------------------------------------------------

_ADAPTER_REGISTRY: Dict[str, Type[CarrierAdapter]] = {}


def register_adapter(adapter_id: str):
    """Class decorator recording an adapter implementation under `adapter_id`."""
    def decorator(cls: Type[CarrierAdapter]) -> Type[CarrierAdapter]:
        cls.adapter_id = adapter_id
        _ADAPTER_REGISTRY[adapter_id] = cls
        logger.debug("Registered carrier adapter %s -> %s", adapter_id, cls.__name__)
        return cls
    return decorator


def registered_adapters() -> Dict[str, Type[CarrierAdapter]]:
    return dict(_ADAPTER_REGISTRY)

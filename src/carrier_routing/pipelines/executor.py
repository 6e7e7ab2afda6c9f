# src/carrier_routing/pipelines/executor.py
from __future__ import annotations

import logging
import random
import string
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from carrier_routing.api.adapters import OPTIONAL_OPERATIONS, CarrierAdapter
from carrier_routing.errors import StandardizedError, classify, is_allocation_pending
from carrier_routing.errors import merchant_message as _merchant_message
from carrier_routing.io.audit import AuditSink, safe_write, sanitize_payload, sanitize_response
from carrier_routing.models import (
    Address,
    AuditEntry,
    Dimensions,
    OrderData,
    PackageSpec,
    RateQuote,
    RateQuoteRequest,
    ShipmentRecord,
    Weight,
)
from carrier_routing.rules.eligibility import estimate_dimensions, total_weight_oz
from carrier_routing.utils.clock import Clock, SystemClock, epoch_ms

INLINE_MAX_ATTEMPTS = 5
INLINE_DELAY_SECONDS = 2.0
RETRY_MAX_ATTEMPTS = 3
REFERENCE_SUFFIX_LEN = 9
_REFERENCE_ALPHABET = string.ascii_lowercase + string.digits

# operation -> audited resource name
_RESOURCES = {
    "create_shipment": "shipment",
    "track_shipment": "tracking",
    "print_label": "label",
    "validate_address": "address",
    "check_coverage": "coverage",
    "get_rates": "rates",
}


@dataclass(frozen=True)
class CarrierResult:
    success: bool
    data: Any = None
    error: Optional[StandardizedError] = None
    raw: Any = None
    attempts: int = 1


def _package_from_dict(d: Dict[str, Any]) -> PackageSpec:
    w, dims = d["weight"], d["dimensions"]
    return PackageSpec(
        weight=Weight(float(w["value"]), w.get("unit", "oz")),
        dimensions=Dimensions(float(dims["length"]), float(dims["width"]), float(dims["height"]),
                              dims.get("unit", "in")),
    )


class ResilientExecutor:
    """
    Runs one adapter's operations and turns every outcome into a CarrierResult.

    Every attempt is audited (sanitized request and response, duration from the
    injected clock). Failures are classified into a StandardizedError; retryable
    ones are handed to the retry queue as `<adapter_id>_<operation>` jobs, except
    rate lookups, which callers replace with fallback quotes instead.
    """

    def __init__(
        self,
        adapter: CarrierAdapter,
        *,
        audit_sink: Optional[AuditSink] = None,
        retry_queue: Any = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        organization_id: Optional[int] = None,
        user_id: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
        inline_max_attempts: int = INLINE_MAX_ATTEMPTS,
        inline_delay: float = INLINE_DELAY_SECONDS,
        retry_max_attempts: int = RETRY_MAX_ATTEMPTS,
    ) -> None:
        self.adapter = adapter
        self.audit_sink = audit_sink
        self.retry_queue = retry_queue
        self.clock = clock or SystemClock()
        self.rng = rng or random.Random()
        self.organization_id = organization_id
        self.user_id = user_id
        self.logger = logger or logging.getLogger("carrier_routing.pipelines.executor")
        self.inline_max_attempts = max(1, int(inline_max_attempts))
        self.inline_delay = inline_delay
        self.retry_max_attempts = retry_max_attempts

    @property
    def adapter_id(self) -> str:
        return self.adapter.adapter_id

    def job_type(self, operation: str) -> str:
        return f"{self.adapter_id}_{operation}"

    # --- Core ----------------------------------------------------------------------

    def _attempt(
        self,
        operation: str,
        call: Callable[[], Any],
        *,
        request: Any = None,
        resource_id: Optional[str] = None,
        parse: Optional[Callable[[Any], Any]] = None,
    ) -> CarrierResult:
        start = self.clock.monotonic()
        raw: Any = None
        data: Any = None
        error: Optional[StandardizedError] = None
        details = {"operation": operation, "carrier": self.adapter_id}

        try:
            raw = call()
            if self.adapter.is_successful_response(raw):
                data = parse(raw) if parse else raw
            else:
                error = classify(
                    message=self.adapter.extract_error_message(raw),
                    status=self.adapter.extract_status(raw),
                    now=self.clock.now(),
                    details=details,
                )
        except Exception as ex:  # adapter failures become StandardizedError values
            error = classify(exc=ex, now=self.clock.now(), details=details)

        duration_ms = int(round((self.clock.monotonic() - start) * 1000))
        success = error is None
        if success:
            self.logger.info("%s %s succeeded in %dms", self.adapter_id, operation, duration_ms)
        else:
            self.logger.warning("%s %s failed in %dms code=%s class=%s retryable=%s: %s",
                                self.adapter_id, operation, duration_ms, error.code,
                                error.error_class.value if error.error_class else None,
                                error.retryable, error.raw_message)

        safe_write(self.audit_sink, AuditEntry(
            action=self.job_type(operation),
            resource=_RESOURCES.get(operation, operation),
            resource_id=resource_id,
            success=success,
            duration_ms=duration_ms,
            timestamp=self.clock.now(),
            request=sanitize_payload(request),
            response=sanitize_response(raw),
            error=None if success else error.message,
            organization_id=self.organization_id,
            user_id=self.user_id,
        ), self.logger)

        return CarrierResult(success=success, data=data, error=error, raw=raw)

    def _enqueue(self, operation: str, payload: Dict[str, Any], error: StandardizedError) -> None:
        if self.retry_queue is None:
            return
        try:
            self.retry_queue.enqueue(
                self.job_type(operation),
                {"operation": operation, "carrier": self.adapter_id, "payload": payload},
                max_attempts=self.retry_max_attempts,
                organization_id=self.organization_id,
                last_error=error.message,
            )
        except Exception as ex:  # queue persistence failure must not mask the result
            self.logger.warning("Could not enqueue %s retry for %s: %s", operation, self.adapter_id, ex)

    def _finish(self, operation: str, result: CarrierResult, payload: Dict[str, Any], enqueue: bool) -> CarrierResult:
        if enqueue and not result.success and result.error is not None and result.error.retryable \
                and operation != "get_rates":
            self._enqueue(operation, payload, result.error)
        return result

    # --- Operations ------------------------------------------------------------------

    def new_reference(self, order_number: str, attempt: int) -> str:
        suffix = "".join(self.rng.choice(_REFERENCE_ALPHABET) for _ in range(REFERENCE_SUFFIX_LEN))
        return f"{order_number}-{epoch_ms(self.clock)}-{attempt}-{suffix}"

    def create_shipment(self, order: OrderData, *, quote: Optional[RateQuote] = None,
                        enqueue: bool = True) -> CarrierResult:
        """
        Create a shipment, retrying inline (fixed delay, fresh reference each time)
        only while the carrier reports it is still allocating a tracking number.
        On success `data` is a ShipmentRecord.
        """
        def to_record(reference: str):
            def parse(raw: Any) -> ShipmentRecord:
                info = self.adapter.parse_shipment(raw)
                tn = info.get("tracking_number")
                if not tn:
                    raise ValueError("Carrier response did not include a tracking number")
                return ShipmentRecord(
                    order_number=order.order_number,
                    order_id=order.order_id,
                    carrier=quote.carrier_id if quote else self.adapter.carrier_id,
                    tracking_number=str(tn),
                    reference=reference,
                    status="label_created",
                    weight=Weight(total_weight_oz(order), "oz"),
                    dimensions=estimate_dimensions(order),
                    label_reference=info.get("label_reference"),
                    created_at=self.clock.now(),
                )
            return parse

        result = CarrierResult(success=False)
        attempt = 0
        for attempt in range(1, self.inline_max_attempts + 1):
            reference = self.new_reference(order.order_number, attempt)
            result = self._attempt(
                "create_shipment",
                lambda: self.adapter.create_shipment(order, reference=reference, quote=quote),
                request={"order": order, "reference": reference},
                resource_id=order.order_number,
                parse=to_record(reference),
            )
            if result.success or not is_allocation_pending(result.error.raw_message if result.error else None):
                break
            if attempt < self.inline_max_attempts:
                self.logger.info("Tracking number allocation pending for %s; retrying in %ss (attempt %d/%d)",
                                 order.order_number, self.inline_delay, attempt, self.inline_max_attempts)
                self.clock.sleep(self.inline_delay)

        result = CarrierResult(success=result.success, data=result.data, error=result.error,
                               raw=result.raw, attempts=attempt)
        payload = {"order": order.to_dict(), "quote": quote.to_dict() if quote else None}
        return self._finish("create_shipment", result, payload, enqueue)

    def track_shipment(self, tracking_number: str, *, enqueue: bool = True) -> CarrierResult:
        result = self._attempt(
            "track_shipment",
            lambda: self.adapter.track_shipment(tracking_number),
            request={"tracking_number": tracking_number},
            resource_id=tracking_number,
            parse=lambda raw: self.adapter.parse_tracking_events(tracking_number, raw),
        )
        return self._finish("track_shipment", result, {"tracking_number": tracking_number}, enqueue)

    def print_label(self, tracking_numbers: Sequence[str], *, enqueue: bool = True) -> CarrierResult:
        tns = list(tracking_numbers)
        result = self._attempt(
            "print_label",
            lambda: self.adapter.print_label(tns),
            request={"tracking_numbers": tns},
            resource_id=",".join(tns),
        )
        return self._finish("print_label", result, {"tracking_numbers": tns}, enqueue)

    def validate_address(self, address: Address, *, enqueue: bool = True) -> CarrierResult:
        result = self._attempt(
            "validate_address",
            lambda: self.adapter.validate_address(address),
            request={"address": address},
            resource_id=address.postal_code,
        )
        return self._finish("validate_address", result, {"address": address.to_dict()}, enqueue)

    def check_coverage(self, address: Address, package: PackageSpec, *, enqueue: bool = True) -> CarrierResult:
        result = self._attempt(
            "check_coverage",
            lambda: self.adapter.check_coverage(address, package),
            request={"address": address, "package": package},
            resource_id=address.postal_code,
        )
        payload = {"address": address.to_dict(), "package": package.to_dict()}
        return self._finish("check_coverage", result, payload, enqueue)

    def get_rates(self, request: RateQuoteRequest) -> CarrierResult:
        """Live rates; `data` is a list of RateQuote. Never enqueued."""
        def parse(raw: Any) -> List[RateQuote]:
            return self.adapter.parse_rates(raw, request)

        return self._attempt(
            "get_rates",
            lambda: self.adapter.get_rates(request),
            request={"destination": request.destination, "package": request.package,
                     "service_level": request.service_level},
            resource_id=request.destination.postal_code,
            parse=parse,
        )

    # --- Durable retry replay ----------------------------------------------------------

    def replay(self, job_payload: Dict[str, Any]) -> bool:
        """Run a queued operation once more without re-enqueueing. True on success."""
        operation = job_payload.get("operation")
        p = job_payload.get("payload") or {}
        if operation == "create_shipment":
            quote = RateQuote.from_dict(p["quote"]) if p.get("quote") else None
            result = self.create_shipment(OrderData.from_dict(p["order"]), quote=quote, enqueue=False)
        elif operation == "track_shipment":
            result = self.track_shipment(p["tracking_number"], enqueue=False)
        elif operation == "print_label":
            result = self.print_label(p["tracking_numbers"], enqueue=False)
        elif operation == "validate_address":
            result = self.validate_address(Address.from_dict(p["address"]), enqueue=False)
        elif operation == "check_coverage":
            result = self.check_coverage(Address.from_dict(p["address"]), _package_from_dict(p["package"]),
                                         enqueue=False)
        else:
            raise ValueError(f"Unsupported retry operation: {operation!r}")
        return result.success

    @staticmethod
    def merchant_message(error: StandardizedError) -> str:
        return _merchant_message(error)


def register_executor_handlers(queue: Any, executor: ResilientExecutor) -> List[str]:
    """Register `executor.replay` for each of its retryable job types. Returns the job types."""
    job_types = []
    for operation in ("create_shipment", "track_shipment", "print_label", "validate_address", "check_coverage"):
        if operation in OPTIONAL_OPERATIONS and not executor.adapter.supports(operation):
            continue
        jt = executor.job_type(operation)
        queue.register(jt, executor.replay)
        job_types.append(jt)
    return job_types

# src/carrier_routing/pipelines/rate_normalizer.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import List, Optional, Sequence

from carrier_routing.io.audit import AuditSink, safe_write
from carrier_routing.models import (
    Address,
    AuditEntry,
    DeliveryWindow,
    OrderData,
    PackageSpec,
    RateQuote,
    RateQuoteRequest,
    Weight,
    QUOTE_SOURCE_LIVE,
    QUOTE_SOURCE_TABLE,
)
from carrier_routing.pipelines.executor import ResilientExecutor
from carrier_routing.rules.customer_rates import CustomerRateTable
from carrier_routing.rules.eligibility import estimate_dimensions, total_weight_oz
from carrier_routing.rules.zones import PostalZoneMapper
from carrier_routing.utils.clock import Clock, SystemClock

DISCOUNT_ADAPTER_ID = "discount"
DISCOUNT_CARRIER_NAME = "Discount Carrier"
DISCOUNT_SERVICE_NAME = "Standard Ground"
DISCOUNT_SERVICE_CODE = "US001"
DEFAULT_MARGIN_PERCENTAGE = 5.0


def apply_margin(quote: RateQuote, margin_percentage: float) -> RateQuote:
    """Live market quote with the margin buffer added; base_amount keeps the carrier's price."""
    base = quote.base_amount if quote.base_amount is not None else quote.amount
    return replace(quote, base_amount=base, amount=round(base * (1 + margin_percentage / 100.0), 2))


class RateNormalizer:
    """
    Builds the comparable quote set for one order.

    The discount quote comes from the customer rate table (no network call);
    market quotes are fetched concurrently, one thread per market executor, and
    joined before returning. A market carrier that fails, or answers with no
    usable rates, contributes its fallback quotes instead.
    """

    def __init__(
        self,
        market_executors: Sequence[ResilientExecutor] = (),
        *,
        origin: Address,
        rate_table: Optional[CustomerRateTable] = None,
        zone_mapper: Optional[PostalZoneMapper] = None,
        margin_percentage: float = DEFAULT_MARGIN_PERCENTAGE,
        audit_sink: Optional[AuditSink] = None,
        clock: Optional[Clock] = None,
        logger: Optional[logging.Logger] = None,
        discount_adapter_id: str = DISCOUNT_ADAPTER_ID,
        service_level: str = "ground",
    ) -> None:
        self.market_executors = list(market_executors)
        self.origin = origin
        self.rate_table = rate_table or CustomerRateTable()
        self.zone_mapper = zone_mapper or PostalZoneMapper()
        self.margin_percentage = margin_percentage
        self.audit_sink = audit_sink
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger("carrier_routing.pipelines.rate_normalizer")
        self.discount_adapter_id = discount_adapter_id
        self.service_level = service_level

    # --- Discount quote ----------------------------------------------------------------

    def discount_quote(self, order: OrderData) -> Optional[RateQuote]:
        zone = self.zone_mapper.get_zone(order.ship_to.postal_code)
        weight_kg = Weight(total_weight_oz(order), "oz").to_kg()
        price = self.rate_table.lookup(zone, weight_kg)
        if price is None:
            self.logger.info("No customer rate for order %s (zone=%s weight_kg=%s)",
                             order.order_number, zone, weight_kg)
            return None
        return RateQuote(
            carrier_id=DISCOUNT_ADAPTER_ID,
            carrier_name=DISCOUNT_CARRIER_NAME,
            service_name=DISCOUNT_SERVICE_NAME,
            service_code=DISCOUNT_SERVICE_CODE,
            amount=price,
            base_amount=price,
            adapter_id=self.discount_adapter_id,
            delivery=DeliveryWindow.parse(self.zone_mapper.get_delivery_time(zone)),
            zone=zone,
            source=QUOTE_SOURCE_TABLE,
            is_discount=True,
        )

    # --- Market quotes -------------------------------------------------------------------

    def build_request(self, order: OrderData) -> RateQuoteRequest:
        return RateQuoteRequest(
            origin=self.origin,
            destination=order.ship_to,
            package=PackageSpec(Weight(total_weight_oz(order), "oz"), estimate_dimensions(order)),
            service_level=self.service_level,
        )

    def _audit_fallback(self, executor: ResilientExecutor, request: RateQuoteRequest, why: str,
                        count: int) -> None:
        safe_write(self.audit_sink, AuditEntry(
            action=f"{executor.adapter_id}_rate_fallback",
            resource="rates",
            resource_id=request.destination.postal_code,
            success=False,
            duration_ms=0,
            timestamp=self.clock.now(),
            request={"postal_code": request.destination.postal_code,
                     "weight_oz": request.package.weight.to_oz()},
            response={"fallback_quotes": count},
            error=why,
            organization_id=executor.organization_id,
            user_id=executor.user_id,
        ), self.logger)

    def _fetch(self, executor: ResilientExecutor, request: RateQuoteRequest) -> List[RateQuote]:
        result = executor.get_rates(request)
        live = [q for q in (result.data or []) if not q.is_discount] if result.success else []
        if live:
            return [apply_margin(q, self.margin_percentage) if q.source == QUOTE_SOURCE_LIVE else q
                    for q in live]

        why = result.error.message if result.error else "Carrier returned no rates"
        fallback = executor.adapter.fallback_quotes(request)
        self.logger.warning("Using %d fallback quote(s) for %s: %s", len(fallback), executor.adapter_id, why)
        self._audit_fallback(executor, request, why, len(fallback))
        return list(fallback)

    def market_quotes(self, request: RateQuoteRequest) -> List[RateQuote]:
        if not self.market_executors:
            return []
        with ThreadPoolExecutor(max_workers=len(self.market_executors),
                                thread_name_prefix="rates") as pool:
            futures = [pool.submit(self._fetch, ex, request) for ex in self.market_executors]
            out: List[RateQuote] = []
            for f in futures:
                out.extend(f.result())
        return out

    def quotes_for(self, order: OrderData, *, include_discount: bool = True) -> List[RateQuote]:
        """Discount quote (when quotable) followed by market quotes in executor order."""
        quotes: List[RateQuote] = []
        if include_discount:
            dq = self.discount_quote(order)
            if dq is not None:
                quotes.append(dq)
        quotes.extend(self.market_quotes(self.build_request(order)))
        self.logger.debug("Order %s: %d quote(s)", order.order_number, len(quotes))
        return quotes

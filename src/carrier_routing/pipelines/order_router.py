# src/carrier_routing/pipelines/order_router.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from carrier_routing.errors import ErrorClass, ErrorCode, StandardizedError, merchant_message
from carrier_routing.io.audit import AuditSink, safe_write
from carrier_routing.models import (
    EligibilityResult,
    OrderData,
    RateQuote,
    RoutingAnalytics,
    RoutingDecision,
    ShipmentRecord,
)
from carrier_routing.pipelines.executor import ResilientExecutor
from carrier_routing.pipelines.rate_normalizer import RateNormalizer
from carrier_routing.rules.address_validator import AddressValidator, ValidationResult, is_po_box
from carrier_routing.rules.eligibility import EligibilityChecker, total_weight_oz
from carrier_routing.rules.routing import RoutingDecisionEngine, cheapest
from carrier_routing.utils.clock import Clock, SystemClock


@dataclass(frozen=True)
class RoutingOutcome:
    order_number: str
    eligibility: EligibilityResult
    address: ValidationResult
    quotes: List[RateQuote]
    decision: RoutingDecision
    analytics: RoutingAnalytics
    shipment: Optional[ShipmentRecord] = None
    error: Optional[StandardizedError] = None
    attempts: int = 0
    executed: bool = False

    @property
    def success(self) -> bool:
        return self.error is None and self.decision.is_actionable

    @property
    def merchant_message(self) -> Optional[str]:
        return merchant_message(self.error) if self.error else None

    @property
    def warnings(self) -> List[str]:
        return list(self.address.warnings)


def _rate_of(quotes: List[RateQuote], carrier_id: str) -> Optional[float]:
    best = cheapest(q for q in quotes if q.carrier_id == carrier_id and not q.is_discount)
    return best.amount if best else None


def build_analytics(
    order: OrderData,
    decision: RoutingDecision,
    quotes: List[RateQuote],
    eligibility: EligibilityResult,
    *,
    shipment_created: bool,
    now: Any = None,
) -> RoutingAnalytics:
    competitor = decision.competitor_quote or cheapest(q for q in quotes if not q.is_discount)
    discount = decision.discount_quote or next((q for q in quotes if q.is_discount), None)
    actual = decision.cost
    if decision.use_discount:
        alternative = competitor.amount if competitor else None
    else:
        alternative = discount.amount if discount else None
    saved = round(alternative - actual, 2) if (alternative is not None and actual is not None) else 0.0
    return RoutingAnalytics(
        order_number=order.order_number,
        routed_to=decision.carrier,
        reason=decision.reason,
        discount_rate=discount.amount if discount else None,
        fedex_rate=_rate_of(quotes, "fedex"),
        usps_rate=_rate_of(quotes, "usps"),
        cheapest_competitor=competitor.carrier_name if competitor else None,
        actual_cost=actual,
        alternative_cost=alternative,
        saved_amount=saved,
        weight_oz=total_weight_oz(order),
        zone=discount.zone if discount and discount.zone is not None else eligibility.zone,
        shipment_created=shipment_created,
        organization_id=order.organization_id,
        created_at=now,
    )


def order_error(result: ValidationResult, now: Any = None) -> Optional[StandardizedError]:
    if result.valid:
        return None
    return StandardizedError(
        code=int(ErrorCode.VALIDATION_ERROR),
        message="; ".join(result.errors),
        retryable=False,
        timestamp=now,
        details={"errors": list(result.errors)},
    )


def address_error(result: ValidationResult, now: Any = None) -> Optional[StandardizedError]:
    if result.valid:
        return None
    po_box = any(is_po_box(e) or "PO Box" in e for e in result.errors)
    return StandardizedError(
        code=int(ErrorCode.BAD_REQUEST),
        message="; ".join(result.errors),
        retryable=False,
        error_class=ErrorClass.PO_BOX_NOT_SUPPORTED if po_box else ErrorClass.INVALID_ADDRESS,
        timestamp=now,
        details={"errors": list(result.errors)},
    )


@dataclass
class OrderRouter:
    """
    One full routing pass for an order: address check, eligibility, quotes,
    decision, then shipment creation on the winning adapter.

    A RoutingAnalytics record is written for every pass, including passes
    where nothing was quotable or shipment creation failed.
    """

    normalizer: RateNormalizer
    executors: Mapping[str, ResilientExecutor] = field(default_factory=dict)
    checker: EligibilityChecker = field(default_factory=EligibilityChecker)
    engine: RoutingDecisionEngine = field(default_factory=RoutingDecisionEngine)
    validator: AddressValidator = field(default_factory=AddressValidator)
    analytics_sink: Optional[AuditSink] = None
    clock: Clock = field(default_factory=SystemClock)
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("carrier_routing.pipelines.order_router"))

    def decide(self, order: OrderData):
        eligibility = self.checker.check(order)
        quotes = self.normalizer.quotes_for(order)
        decision = self.engine.decide(quotes, eligibility)
        return eligibility, quotes, decision

    def route(self, order: OrderData, *, execute: bool = True) -> RoutingOutcome:
        now = self.clock.now()
        address = self.validator.validate(order.ship_to)
        eligibility, quotes, decision = self.decide(order)
        self.logger.info("Order %s -> %s: %s", order.order_number, decision.carrier or "none", decision.reason)

        shipment: Optional[ShipmentRecord] = None
        error = address_error(address, now)
        order_problem = None if error else order_error(self.validator.validate_order(order), now)
        attempts = 0
        executed = False

        if error is not None:
            self.logger.warning("Order %s not shipped, address rejected: %s", order.order_number, error.message)
        elif order_problem is not None:
            error = order_problem
            self.logger.warning("Order %s not shipped, order rejected: %s", order.order_number, error.message)
        elif not decision.is_actionable:
            error = StandardizedError(
                code=int(ErrorCode.VALIDATION_ERROR),
                message=decision.reason,
                retryable=False,
                error_class=ErrorClass.COVERAGE_NOT_AVAILABLE if not eligibility.eligible else None,
                timestamp=now,
            )
        elif execute:
            executor = self.executors.get(decision.adapter_id or "")
            if executor is None:
                error = StandardizedError(
                    code=int(ErrorCode.NOT_IMPLEMENTED),
                    message=f"No executor configured for adapter {decision.adapter_id!r}",
                    retryable=False,
                    timestamp=now,
                )
                self.logger.error("Order %s: %s", order.order_number, error.message)
            else:
                result = executor.create_shipment(order, quote=decision.quote)
                executed = True
                attempts = result.attempts
                if result.success:
                    shipment = result.data
                    self.logger.info("Order %s shipped with %s tracking=%s", order.order_number,
                                     shipment.carrier, shipment.tracking_number)
                else:
                    error = result.error

        analytics = build_analytics(order, decision, quotes, eligibility,
                                    shipment_created=shipment is not None, now=now)
        safe_write(self.analytics_sink, analytics, self.logger)

        return RoutingOutcome(
            order_number=order.order_number,
            eligibility=eligibility,
            address=address,
            quotes=quotes,
            decision=decision,
            analytics=analytics,
            shipment=shipment,
            error=error,
            attempts=attempts,
            executed=executed,
        )

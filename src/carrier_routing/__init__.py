# src/carrier_routing/__init__.py
from .pipelines.order_router import OrderRouter, RoutingOutcome
from .pipelines.rate_normalizer import RateNormalizer
from .pipelines.executor import CarrierResult, ResilientExecutor
from .pipelines.retry_queue import RetryQueue, RetryScheduler
from .pipelines.batch_router import BatchRouter
from .pipelines.tracking import TrackingService
from .rules.routing import RoutingDecisionEngine
from .rules.eligibility import EligibilityChecker
from .rules.customer_rates import CustomerRateTable
from .rules.address_validator import AddressValidator
from .rules.status_mapper import StatusMapper, TrackingStatus

__all__ = [
    "OrderRouter",
    "RoutingOutcome",
    "RateNormalizer",
    "CarrierResult",
    "ResilientExecutor",
    "RetryQueue",
    "RetryScheduler",
    "BatchRouter",
    "TrackingService",
    "RoutingDecisionEngine",
    "EligibilityChecker",
    "CustomerRateTable",
    "AddressValidator",
    "StatusMapper",
    "TrackingStatus",
]

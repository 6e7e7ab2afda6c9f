from .env_cfg import EnvCfg, RoutingRules
from .shipping import (
    Address,
    AuditEntry,
    DeliveryWindow,
    Dimensions,
    OrderData,
    OrderItem,
    PackageSpec,
    RateQuote,
    RateQuoteRequest,
    ShipmentRecord,
    TrackingEvent,
    WebhookUpdate,
    Weight,
    QUOTE_SOURCE_FALLBACK,
    QUOTE_SOURCE_LIVE,
    QUOTE_SOURCE_TABLE,
)
from .routing import EligibilityResult, RoutingAnalytics, RoutingDecision

__all__ = [
    "EnvCfg",
    "RoutingRules",
    "Address",
    "AuditEntry",
    "DeliveryWindow",
    "Dimensions",
    "OrderData",
    "OrderItem",
    "PackageSpec",
    "RateQuote",
    "RateQuoteRequest",
    "ShipmentRecord",
    "TrackingEvent",
    "WebhookUpdate",
    "Weight",
    "QUOTE_SOURCE_FALLBACK",
    "QUOTE_SOURCE_LIVE",
    "QUOTE_SOURCE_TABLE",
    "EligibilityResult",
    "RoutingAnalytics",
    "RoutingDecision",
]

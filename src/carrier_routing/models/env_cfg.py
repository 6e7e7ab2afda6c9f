from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class EnvCfg:
    """Carrier credentials and endpoints resolved by get_app_env()."""
    DISCOUNT_CLIENT_CODE: str = ""
    DISCOUNT_API_KEY: str = ""
    DISCOUNT_BASE_URL: str = "https://api.jygjexp.com/v1"
    DISCOUNT_CHANNEL_CODE: str = "US001"
    SHIPENGINE_API_KEY: str = ""
    SHIPENGINE_BASE_URL: str = "https://api.shipengine.com/v1"
    FEDEX_CLIENT_ID: str = ""
    FEDEX_CLIENT_SECRET: str = ""
    FEDEX_ACCOUNT_NUMBER: str = ""
    FEDEX_BASE_URL: str = "https://apis.fedex.com"


@dataclass(frozen=True)
class RoutingRules:
    """Thresholds shared by eligibility, normalization and the decision engine."""
    margin_percentage: float = 5.0
    max_weight_lbs: float = 50.0
    max_length_in: float = 24.0
    max_width_in: float = 18.0
    max_height_in: float = 12.0
    max_zone: int = 6
    speed_advantage_threshold_days: int = 2
    min_savings_threshold: float = 1.00

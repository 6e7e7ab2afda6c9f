# src/carrier_routing/config/env.py
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional, Tuple, Dict

from carrier_routing.models import Address, EnvCfg, RoutingRules

try:
    from dotenv import dotenv_values, load_dotenv, find_dotenv  # type: ignore
except Exception as e:  # pragma: no cover
    raise RuntimeError(
        "Missing dependency 'python-dotenv'. Install it with:\n"
        "  pip install python-dotenv"
    ) from e


# --- Public contract ---------------------------------------------------------

class EnvError(RuntimeError):
    """Raised when required environment variables are missing or malformed."""


# Only the discount carrier is mandatory; market carriers fall back to canned quotes.
REQUIRED_KEYS: Tuple[str, ...] = (
    "DISCOUNT_CLIENT_CODE",
    "DISCOUNT_API_KEY",
)

_OPTIONAL_KEYS: Tuple[str, ...] = (
    "DISCOUNT_BASE_URL",
    "DISCOUNT_CHANNEL_CODE",
    "SHIPENGINE_API_KEY",
    "SHIPENGINE_BASE_URL",
    "FEDEX_CLIENT_ID",
    "FEDEX_CLIENT_SECRET",
    "FEDEX_ACCOUNT_NUMBER",
    "FEDEX_BASE_URL",
)


def load_project_dotenv(start: Optional[Path] = None, *, override: bool = False) -> Path:
    """
    Load variables from the nearest `.env` (python-dotenv search from CWD, then
    a manual upward walk from `start`). Existing env vars win unless `override`.
    Returns the resolved path, or Path() when nothing was found.
    """
    start_path = Path.cwd() if start is None else Path(start)

    dotenv_str = find_dotenv(filename=".env", usecwd=True)
    dotenv_path = Path(dotenv_str) if dotenv_str else Path()

    if not dotenv_str:
        for p in (start_path, *start_path.parents):
            candidate = p / ".env"
            if candidate.exists():
                dotenv_path = candidate
                break

    if not dotenv_path.exists() or dotenv_path.is_dir():
        return Path()

    load_dotenv(dotenv_path=dotenv_path, override=override)
    return dotenv_path.resolve()


def env(name: str, *, default: Optional[str] = None, required: bool = False, cast=None):
    """
    Accessor used throughout the package.

    - `required=True` and missing -> KeyError(name).
    - `cast` is applied to the raw string; cast errors propagate.
    - Missing and not required -> `default` (uncast).
    """
    raw = os.getenv(name)
    if raw is None or raw == "":
        if required:
            raise KeyError(name)
        return default

    if cast is not None:
        return cast(raw)
    return raw


# --- Internal helpers --------------------------------------------------------

def _file_pairs(path: Path) -> Dict[str, str]:
    """KEY=value pairs python-dotenv reads from `path`; bare keys without a value are dropped."""
    return {k: v for k, v in dotenv_values(path).items() if v is not None}


def _number(name: str, default: float, cast=float):
    try:
        return env(name, default=default, cast=cast)
    except ValueError as e:
        raise EnvError(f"Environment variable {name} must be numeric: {os.getenv(name)!r}") from e


# --- Main loader APIs --------------------------------------------------------

def load_env(
    dotenv_path: Optional[Path] = None,
    *,
    override: bool = False,
    required_keys: Tuple[str, ...] = (),
    strict: bool = False,
) -> Dict[str, str]:
    """
    Load a .env file into the process environment and return the pairs it held.

    - `dotenv_path` given: load exactly that file (silently skipped if absent).
    - Otherwise auto-discover via `load_project_dotenv`.
    - `strict=True` checks `required_keys` in os.environ afterwards (EnvError).
    """
    loaded: Dict[str, str] = {}

    if dotenv_path:
        path = Path(dotenv_path)
        if path.exists():
            load_dotenv(dotenv_path=path, override=override)
            loaded = _file_pairs(path)
    else:
        path = load_project_dotenv(override=override)
        if path and path.exists():
            loaded = _file_pairs(path)

    if strict and required_keys:
        missing = [k for k in required_keys if not os.getenv(k)]
        if missing:
            raise EnvError(
                f"Missing required environment variable(s): {', '.join(missing)}")

    return loaded


def get_app_env(
    dotenv_path: Path | str | None = ".env",
    *,
    strict: bool = True,
    logger: Optional[logging.Logger] = None,
) -> EnvCfg:
    """
    Load carrier credentials and return a typed EnvCfg.

    `dotenv_path=None` searches for the nearest .env instead. With `strict=True` the
    discount carrier credentials must be present. Which known keys came from
    the file, and which the process environment shadowed, is logged (names only).
    """
    log = logger or logging.getLogger("carrier_routing.config.env")
    from_file = load_env(
        Path(dotenv_path) if dotenv_path else None,
        override=False,
        required_keys=REQUIRED_KEYS,
        strict=strict,
    )

    known = REQUIRED_KEYS + _OPTIONAL_KEYS
    file_keys = [k for k in known if from_file.get(k)]
    shadowed = [k for k in file_keys if os.getenv(k) != from_file[k]]
    if file_keys:
        log.info("Env file defines: %s", ", ".join(file_keys))
    if shadowed:
        log.info("Process environment overrides env file for: %s", ", ".join(shadowed))

    defaults = EnvCfg()
    values = {k: os.getenv(k) or getattr(defaults, k) for k in known}
    return EnvCfg(**values)


def get_routing_rules() -> RoutingRules:
    """Routing thresholds from the environment; unset keys keep RoutingRules defaults."""
    d = RoutingRules()
    return RoutingRules(
        margin_percentage=_number("RATE_MARGIN_PERCENTAGE", d.margin_percentage),
        max_weight_lbs=_number("MAX_WEIGHT_LBS", d.max_weight_lbs),
        max_length_in=_number("MAX_LENGTH_INCHES", d.max_length_in),
        max_width_in=_number("MAX_WIDTH_INCHES", d.max_width_in),
        max_height_in=_number("MAX_HEIGHT_INCHES", d.max_height_in),
        max_zone=_number("MAX_SERVICE_ZONE", d.max_zone, cast=int),
        speed_advantage_threshold_days=_number(
            "SPEED_ADVANTAGE_THRESHOLD", d.speed_advantage_threshold_days, cast=int),
        min_savings_threshold=_number("MIN_SAVINGS_THRESHOLD", d.min_savings_threshold),
    )


def get_origin_address() -> Address:
    """Warehouse address used as the rate-quote origin (ORIGIN_* keys)."""
    return Address(
        name=env("ORIGIN_NAME", default="Warehouse"),
        company=env("ORIGIN_COMPANY"),
        street1=env("ORIGIN_STREET1", default="1 Airport Rd"),
        city=env("ORIGIN_CITY", default="Jamaica"),
        state=env("ORIGIN_STATE", default="NY"),
        postal_code=env("ORIGIN_POSTAL_CODE", default="11430"),
        country=env("ORIGIN_COUNTRY", default="US"),
        phone=env("ORIGIN_PHONE"),
    )


__all__ = [
    "EnvError",
    "REQUIRED_KEYS",
    "load_project_dotenv",
    "load_env",
    "env",
    "get_app_env",
    "get_routing_rules",
    "get_origin_address",
]

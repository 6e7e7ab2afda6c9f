# src/carrier_routing/errors.py
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Optional

import requests


class ErrorCode(IntEnum):
    BAD_REQUEST = 400
    UNAUTHORIZED = 401
    FORBIDDEN = 403
    NOT_FOUND = 404
    CONFLICT = 409
    VALIDATION_ERROR = 422
    RATE_LIMITED = 429
    INTERNAL_ERROR = 500
    NOT_IMPLEMENTED = 501
    BAD_GATEWAY = 502
    SERVICE_UNAVAILABLE = 503
    GATEWAY_TIMEOUT = 504


class ErrorClass(str, Enum):
    CARRIER_TIMEOUT = "carrier_timeout"
    CARRIER_UNAVAILABLE = "carrier_unavailable"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    INVALID_ADDRESS = "invalid_address"
    PO_BOX_NOT_SUPPORTED = "po_box_not_supported"
    COVERAGE_NOT_AVAILABLE = "coverage_not_available"
    INSUFFICIENT_POSTAGE = "insufficient_postage"
    INTERNAL_ERROR = "internal_error"


class OperationNotSupported(NotImplementedError):
    """Raised by adapters for optional operations they do not offer."""


@dataclass(frozen=True)
class StandardizedError:
    """Carrier-agnostic failure record. Returned in results, never raised."""
    code: int
    message: str
    retryable: bool
    error_class: Optional[ErrorClass] = None
    timestamp: Optional[dt.datetime] = None
    details: Dict[str, Any] = field(default_factory=dict)
    raw_message: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": int(self.code),
            "error_class": self.error_class.value if self.error_class else None,
            "message": self.message,
            "retryable": self.retryable,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "details": dict(self.details),
            "raw_message": self.raw_message,
        }


# --- Carrier text --------------------------------------------------------------

ALLOCATION_PENDING_MARKERS = ("获取单号中", "100001")

# Ordered: the first substring found wins.
CARRIER_TRANSLATIONS: tuple[tuple[str, str], ...] = (
    ("获取单号中", "The carrier is still allocating a tracking number. Please try again shortly."),
    ("不能只包含数字", "Street address cannot contain only numbers. Please provide a complete street address."),
    ("不能为纯数字", "City cannot be only numbers."),
    ("收件人地址格式不正确", "Recipient address format is incorrect. Please provide a valid street address."),
    ("地址格式错误", "Invalid address format."),
    ("收件人姓名不能为空", "Recipient name cannot be empty."),
    ("收件人邮编不能为空", "Recipient postal code cannot be empty."),
    ("收件人电话不能为空", "Recipient phone number cannot be empty."),
    ("收件人城市不能为空", "Recipient city cannot be empty."),
    ("收件人州/省不能为空", "Recipient state/province cannot be empty."),
    ("邮编错误", "Invalid postal code."),
    ("不支持PO BOX", "PO Box addresses are not supported."),
    ("不在渠道分区范围内", "This postal code is not supported by the shipping channel."),
    ("收件地址不支持", "Delivery address not supported."),
    ("不在服务范围", "Destination not in service area."),
    ("暂不支持该地区", "Region temporarily not supported."),
    ("渠道不支持", "Shipping service not available for this destination."),
    ("重量超限", "Package exceeds weight limit."),
    ("尺寸超限", "Package exceeds size limit."),
    ("重量不能为空", "Package weight is required."),
    ("尺寸不能为空", "Package dimensions are required."),
    ("服务类型错误", "Invalid service type selected."),
    ("签名错误", "Carrier authentication failed."),
    ("用户未授权", "Carrier account not authorized."),
)

_PO_BOX_MARKERS = ("po box", "p.o. box", "post office box", "不支持po box")
_COVERAGE_MARKERS = (
    "coverage", "not in service area", "outside service area", "not serviceable",
    "不在服务范围", "不在渠道分区范围内", "暂不支持该地区", "渠道不支持", "收件地址不支持",
)
_ADDRESS_MARKERS = (
    "invalid address", "address format", "address is invalid", "postal code",
    "地址", "邮编", "收件人",
)
_TIMEOUT_MARKERS = ("timeout", "timed out", "econnaborted", "connection aborted")
_RATE_LIMIT_MARKERS = ("rate limit", "too many requests")
_UNAVAILABLE_MARKERS = ("temporarily unavailable", "service unavailable", "bad gateway")


def is_allocation_pending(message: Optional[str]) -> bool:
    text = message or ""
    return any(m in text for m in ALLOCATION_PENDING_MARKERS)


def translate_carrier_message(message: Optional[str]) -> Optional[str]:
    """English text for a known carrier message, else None."""
    if not message:
        return None
    for needle, english in CARRIER_TRANSLATIONS:
        if needle in message:
            return english
    return None


def _has(text: str, markers) -> bool:
    return any(m in text for m in markers)


def classify(
    *,
    message: Optional[str] = None,
    status: Optional[int] = None,
    exc: Optional[BaseException] = None,
    now: Optional[dt.datetime] = None,
    details: Optional[Dict[str, Any]] = None,
) -> StandardizedError:
    """
    Map a raw adapter failure (message text, HTTP-like status, or exception)
    to a StandardizedError. Exactly one of the taxonomy rows applies; the
    first match in the order below wins.
    """
    raw = message if message is not None else (str(exc) if exc is not None else "")
    low = raw.lower()
    info = dict(details or {})
    if status is not None:
        info.setdefault("status", status)
    if exc is not None:
        info.setdefault("exception", type(exc).__name__)

    def make(code: int, msg: str, retryable: bool, cls: Optional[ErrorClass]) -> StandardizedError:
        return StandardizedError(
            code=int(code),
            message=msg,
            retryable=retryable,
            error_class=cls,
            timestamp=now,
            details=info,
            raw_message=raw or None,
        )

    if isinstance(exc, OperationNotSupported):
        return make(ErrorCode.NOT_IMPLEMENTED, raw or "Operation not supported by this carrier", False, None)

    if isinstance(exc, (requests.Timeout, requests.ConnectionError, TimeoutError)) or _has(low, _TIMEOUT_MARKERS):
        return make(ErrorCode.GATEWAY_TIMEOUT, "Request to shipping service timed out", True,
                    ErrorClass.CARRIER_TIMEOUT)

    if is_allocation_pending(raw):
        return make(ErrorCode.BAD_GATEWAY, "Shipping service temporarily unavailable", True,
                    ErrorClass.CARRIER_UNAVAILABLE)

    if status == ErrorCode.RATE_LIMITED or _has(low, _RATE_LIMIT_MARKERS):
        return make(ErrorCode.RATE_LIMITED, "Rate limit exceeded. Please try again later", True,
                    ErrorClass.RATE_LIMIT_EXCEEDED)

    if status in (ErrorCode.BAD_GATEWAY, ErrorCode.SERVICE_UNAVAILABLE) or _has(low, _UNAVAILABLE_MARKERS):
        return make(ErrorCode.BAD_GATEWAY, "Shipping service temporarily unavailable", True,
                    ErrorClass.CARRIER_UNAVAILABLE)

    if _has(low, _PO_BOX_MARKERS):
        return make(ErrorCode.BAD_REQUEST, "PO Box addresses are not supported for this shipping service",
                    False, ErrorClass.PO_BOX_NOT_SUPPORTED)

    if _has(low, _COVERAGE_MARKERS):
        return make(ErrorCode.BAD_REQUEST, "Shipping not available to this location", False,
                    ErrorClass.COVERAGE_NOT_AVAILABLE)

    if _has(low, _ADDRESS_MARKERS):
        return make(ErrorCode.BAD_REQUEST, translate_carrier_message(raw) or "Address is invalid",
                    False, ErrorClass.INVALID_ADDRESS)

    if status == ErrorCode.VALIDATION_ERROR or isinstance(exc, ValueError):
        return make(ErrorCode.VALIDATION_ERROR, raw or "Invalid request data", False, None)

    return make(ErrorCode.INTERNAL_ERROR, translate_carrier_message(raw) or raw or "An unexpected error occurred",
                True, ErrorClass.INTERNAL_ERROR)


# --- Merchant-facing text ------------------------------------------------------

MERCHANT_MESSAGES: Dict[ErrorClass, str] = {
    ErrorClass.PO_BOX_NOT_SUPPORTED: "This address appears to be a PO Box. Please provide a street address for delivery.",
    ErrorClass.COVERAGE_NOT_AVAILABLE: "Sorry, we cannot ship to this location. Please try a different address.",
    ErrorClass.INVALID_ADDRESS: "The provided address is invalid. Please check and correct the address details.",
    ErrorClass.CARRIER_TIMEOUT: "Our shipping partner is temporarily unavailable. Please try again in a few minutes.",
    ErrorClass.CARRIER_UNAVAILABLE: "Our shipping partner is temporarily unavailable. We will retry automatically.",
    ErrorClass.RATE_LIMIT_EXCEEDED: "Too many requests. Please wait a moment before trying again.",
    ErrorClass.INSUFFICIENT_POSTAGE: (
        "The package details result in higher shipping costs. Please review package weight and dimensions."
    ),
}


def merchant_message(error: StandardizedError) -> str:
    """Plain-English text safe to show a merchant. Raw carrier text only as a last resort."""
    if error.error_class is ErrorClass.INVALID_ADDRESS:
        specific = translate_carrier_message(error.raw_message)
        if specific:
            return specific
    if error.error_class in MERCHANT_MESSAGES:
        return MERCHANT_MESSAGES[error.error_class]  # type: ignore[index]
    translated = translate_carrier_message(error.raw_message)
    if translated:
        return translated
    return error.message or error.raw_message or "An unexpected shipping error occurred."


__all__ = [
    "ErrorCode",
    "ErrorClass",
    "OperationNotSupported",
    "StandardizedError",
    "ALLOCATION_PENDING_MARKERS",
    "is_allocation_pending",
    "translate_carrier_message",
    "classify",
    "merchant_message",
]

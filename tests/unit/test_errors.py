import datetime as dt

import pytest
import requests

from carrier_routing.errors import (
    ErrorClass,
    ErrorCode,
    OperationNotSupported,
    classify,
    is_allocation_pending,
    merchant_message,
    translate_carrier_message,
)

NOW = dt.datetime(2024, 1, 1, tzinfo=dt.timezone.utc)


def test_timeout_exception_is_retryable_504():
    err = classify(exc=requests.Timeout("read timed out"), now=NOW)
    assert err.code == ErrorCode.GATEWAY_TIMEOUT
    assert err.error_class is ErrorClass.CARRIER_TIMEOUT
    assert err.retryable is True
    assert err.timestamp == NOW
    assert err.details["exception"] == "Timeout"


def test_allocation_pending_is_retryable_unavailable():
    for msg in ("获取单号中,请稍后", "code 100001"):
        err = classify(message=msg)
        assert err.code == ErrorCode.BAD_GATEWAY
        assert err.error_class is ErrorClass.CARRIER_UNAVAILABLE
        assert err.retryable
        assert is_allocation_pending(msg)


@pytest.mark.parametrize(
    "kwargs, code, cls, retryable",
    [
        ({"status": 429, "message": "slow down"}, 429, ErrorClass.RATE_LIMIT_EXCEEDED, True),
        ({"status": 503, "message": "maintenance"}, 502, ErrorClass.CARRIER_UNAVAILABLE, True),
        ({"message": "PO Box not allowed"}, 400, ErrorClass.PO_BOX_NOT_SUPPORTED, False),
        ({"message": "Destination not in service area"}, 400, ErrorClass.COVERAGE_NOT_AVAILABLE, False),
        ({"message": "邮编错误"}, 400, ErrorClass.INVALID_ADDRESS, False),
        ({"status": 422, "message": "bad weight"}, 422, None, False),
        ({"message": "something odd"}, 500, ErrorClass.INTERNAL_ERROR, True),
    ],
)
def test_classification_table(kwargs, code, cls, retryable):
    err = classify(**kwargs)
    assert err.code == code
    assert err.error_class is cls
    assert err.retryable is retryable


def test_value_error_is_validation_not_retryable():
    err = classify(exc=ValueError("missing tracking number"))
    assert err.code == ErrorCode.VALIDATION_ERROR
    assert not err.retryable


def test_operation_not_supported_maps_to_501():
    err = classify(exc=OperationNotSupported("print_label"))
    assert err.code == ErrorCode.NOT_IMPLEMENTED
    assert err.retryable is False


def test_translation_first_match_wins():
    assert translate_carrier_message("收件人邮编不能为空") == "Recipient postal code cannot be empty."
    assert translate_carrier_message("plain english") is None
    assert translate_carrier_message(None) is None


def test_merchant_message_prefers_specific_address_text():
    err = classify(message="街道地址不能只包含数字")
    assert err.error_class is ErrorClass.INVALID_ADDRESS
    assert merchant_message(err).startswith("Street address cannot contain only numbers")


def test_merchant_message_never_leaks_untranslated_class_text():
    err = classify(status=429, message="429 Too Many Requests from upstream xyz")
    assert merchant_message(err) == "Too many requests. Please wait a moment before trying again."


def test_to_dict_is_json_friendly():
    d = classify(message="timeout", now=NOW, details={"carrier": "fedex"}).to_dict()
    assert d["code"] == 504
    assert d["error_class"] == "carrier_timeout"
    assert d["timestamp"] == NOW.isoformat()
    assert d["details"] == {"carrier": "fedex"}

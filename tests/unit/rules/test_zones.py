import pytest

from carrier_routing.rules.zones import (
    DEFAULT_ZONE,
    PostalZoneMapper,
    UNKNOWN_DELIVERY,
    clean_zip,
    coarse_zone,
)


def test_clean_zip_drops_plus4_and_punctuation():
    assert clean_zip("60601-1234") == "60601"
    assert clean_zip(" 021 01 ") == "02101"
    assert clean_zip(None) == ""


def test_exact_match_beats_prefix():
    m = PostalZoneMapper()
    assert m.get_zone("60601") == 3
    assert m.get_zone("10001") == 1
    assert m.get_zone("94105") == 6       # prefix 941
    assert m.get_zone("96801") == 8


def test_unknown_zip_gets_default_zone():
    m = PostalZoneMapper()
    assert m.get_zone("56999") == DEFAULT_ZONE
    assert m.get_zone("") == DEFAULT_ZONE


def test_custom_tables():
    m = PostalZoneMapper(exact={"12345": 0}, prefixes={"999": 7}, default_zone=5)
    assert m.get_zone("12345") == 0
    assert m.get_zone("99912") == 7
    assert m.get_zone("60601") == 5


def test_delivery_time_tables():
    m = PostalZoneMapper()
    assert m.get_delivery_time(3) == "2 days"
    assert m.get_delivery_time(3, express=True) == "1 day"
    assert m.get_delivery_time(42) == UNKNOWN_DELIVERY


@pytest.mark.parametrize(
    "postal, zone",
    [("02101", 6), ("00501", 6), ("10001", 2), ("30301", 3), ("60601", 4), ("75201", 5), ("90210", 6),
     ("K1A 0B1", 6), ("", 6), (None, 6)],
)
def test_coarse_zone_by_leading_digit_treats_zero_as_nine(postal, zone):
    assert coarse_zone(postal) == zone

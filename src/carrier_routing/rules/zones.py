# src/carrier_routing/rules/zones.py
from __future__ import annotations

import re
from typing import Dict, Iterable, Optional

DEFAULT_ZONE = 3
DEFAULT_POSTAL_CODE = "90210"

# Exact 5-digit ZIPs with a known zone (metro anchors).
_EXACT_ZONES: Dict[str, int] = {}


def _fill(target: Dict[str, int], keys: Iterable[str], zone: int) -> None:
    for k in keys:
        target[k] = zone


_fill(_EXACT_ZONES, ("10001", "10002", "10003", "10004", "10005"), 1)       # New York
_fill(_EXACT_ZONES, ("11001", "11002", "11003", "11004", "11005"), 1)
_fill(_EXACT_ZONES, ("02101", "02102", "02103"), 2)                          # Boston
_fill(_EXACT_ZONES, ("20001", "20002", "20003"), 2)                          # Washington DC
_fill(_EXACT_ZONES, ("33101", "33102", "33103"), 2)                          # Miami
_fill(_EXACT_ZONES, ("60601", "60602", "60603"), 3)                          # Chicago
_fill(_EXACT_ZONES, ("48201", "48202", "48203"), 3)                          # Detroit
_fill(_EXACT_ZONES, ("30301", "30302", "30303"), 3)                          # Atlanta
_fill(_EXACT_ZONES, ("55401", "55402", "55403"), 4)                          # Minneapolis
_fill(_EXACT_ZONES, ("75201", "75202", "75203"), 4)                          # Dallas
_fill(_EXACT_ZONES, ("77001", "77002", "77003"), 4)                          # Houston
_fill(_EXACT_ZONES, ("90210", "90211", "90212"), 5)                          # Los Angeles
_fill(_EXACT_ZONES, ("94101", "94102", "94103"), 6)                          # San Francisco
_fill(_EXACT_ZONES, ("98101", "98102", "98103"), 6)                          # Seattle
_fill(_EXACT_ZONES, ("80201", "80202", "80203"), 7)                          # Denver
_fill(_EXACT_ZONES, ("84101", "84102", "84103"), 7)                          # Salt Lake City
_fill(_EXACT_ZONES, ("99501", "99502", "99503"), 8)                          # Alaska
_fill(_EXACT_ZONES, ("96801", "96802", "96803"), 8)                          # Hawaii


def _prefixes(start: int, stop: int) -> list[str]:
    """Inclusive range of 3-digit ZIP prefixes."""
    return [f"{n:03d}" for n in range(start, stop + 1)]


_PREFIX_ZONES: Dict[str, int] = {}
_fill(_PREFIX_ZONES, _prefixes(10, 24) + _prefixes(30, 39), 2)              # MA, NH
_fill(_PREFIX_ZONES, _prefixes(100, 119), 1)                                # NY / NJ
_fill(_PREFIX_ZONES, _prefixes(200, 209), 2)                                # DC / MD / VA
_fill(_PREFIX_ZONES, _prefixes(300, 314) + _prefixes(320, 324) + _prefixes(330, 334), 3)  # GA / FL
_fill(_PREFIX_ZONES, _prefixes(600, 614) + _prefixes(460, 464), 3)          # IL / IN
_fill(_PREFIX_ZONES, _prefixes(480, 484) + _prefixes(490, 494), 3)          # MI
_fill(_PREFIX_ZONES, _prefixes(700, 704) + _prefixes(750, 754) + _prefixes(770, 779), 4)  # TX
_fill(_PREFIX_ZONES, _prefixes(900, 939), 5)                                # CA south
_fill(_PREFIX_ZONES, _prefixes(940, 949), 6)                                # CA north
_fill(_PREFIX_ZONES, _prefixes(970, 994), 6)                                # OR / WA
_fill(_PREFIX_ZONES, _prefixes(800, 814) + _prefixes(820, 824) + _prefixes(830, 834), 7)  # CO / WY / NV
_fill(_PREFIX_ZONES, _prefixes(840, 849), 7)                                # UT
_fill(_PREFIX_ZONES, _prefixes(995, 999) + ["967", "968"], 8)               # AK / HI

STANDARD_DELIVERY: Dict[int, str] = {
    0: "1 day", 1: "1 day", 2: "1-2 days", 3: "2 days", 4: "2-3 days",
    5: "3-4 days", 6: "4 days", 7: "4-5 days", 8: "5-6 days",
}
EXPRESS_DELIVERY: Dict[int, str] = {
    0: "1 day", 1: "1 day", 2: "1 day", 3: "1 day", 4: "1-2 days",
    5: "2-3 days", 6: "3 days", 7: "3-4 days", 8: "4-5 days",
}
UNKNOWN_DELIVERY = "3-5 days"

_NON_DIGIT = re.compile(r"[^0-9]")


def clean_zip(postal_code: Optional[str]) -> str:
    """Digits only, first five (drops the +4 extension)."""
    return _NON_DIGIT.sub("", postal_code or "")[:5]


class PostalZoneMapper:
    """ZIP -> rate-table zone (0-8): exact match, then 3-digit prefix, else DEFAULT_ZONE."""

    def __init__(
        self,
        exact: Optional[Dict[str, int]] = None,
        prefixes: Optional[Dict[str, int]] = None,
        default_zone: int = DEFAULT_ZONE,
    ) -> None:
        self._exact = dict(_EXACT_ZONES if exact is None else exact)
        self._prefixes = dict(_PREFIX_ZONES if prefixes is None else prefixes)
        self._default = default_zone

    def get_zone(self, postal_code: Optional[str]) -> int:
        z = clean_zip(postal_code)
        if z in self._exact:
            return self._exact[z]
        hit = self._prefixes.get(z[:3])
        return hit if hit is not None else self._default

    def get_delivery_time(self, zone: int, *, express: bool = False) -> str:
        table = EXPRESS_DELIVERY if express else STANDARD_DELIVERY
        return table.get(zone, UNKNOWN_DELIVERY)


def coarse_zone(postal_code: Optional[str]) -> int:
    """
    Leading-digit zone used by the eligibility check:
    1 -> 2, 2-3 -> 3, 4-6 -> 4, 7-8 -> 5, 9, 0 or non-digit -> 6.
    A missing postal code is treated as DEFAULT_POSTAL_CODE.
    """
    code = (postal_code or "").strip() or DEFAULT_POSTAL_CODE
    first = code[0]
    digit = int(first) if first.isdigit() else 0
    digit = digit or 9
    if digit <= 1:
        return 2
    if digit <= 3:
        return 3
    if digit <= 6:
        return 4
    if digit <= 8:
        return 5
    return 6

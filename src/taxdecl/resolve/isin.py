"""ISIN and CUSIP check-digit helpers."""

from __future__ import annotations

import re

_ISIN_RE = re.compile(r"^[A-Z]{2}[A-Z0-9]{9}[0-9]$")
_CUSIP_RE = re.compile(r"^[A-Z0-9*@#]{8}[0-9]$")


def _expand(s: str) -> str:
    # A=10 .. Z=35; digits unchanged
    return "".join(str(int(c, 36)) for c in s)


def isin_check_digit(payload: str) -> int:
    """Luhn check digit over the expanded first 11 characters of an ISIN."""
    total = 0
    for i, ch in enumerate(reversed(_expand(payload.upper()))):
        d = int(ch)
        if i % 2 == 0:
            d *= 2
            if d > 9:
                d -= 9
        total += d
    return (10 - total % 10) % 10


def is_valid_isin(candidate: str | None) -> bool:
    if not candidate:
        return False
    s = candidate.strip().upper()
    if not _ISIN_RE.match(s):
        return False
    return isin_check_digit(s[:11]) == int(s[11])


def _cusip_value(c: str) -> int:
    if c.isdigit():
        return int(c)
    if c.isalpha():
        return ord(c) - ord("A") + 10
    return {"*": 36, "@": 37, "#": 38}[c]


def cusip_check_digit(payload: str) -> int:
    total = 0
    for i, c in enumerate(payload.upper()):
        v = _cusip_value(c)
        if i % 2 == 1:
            v *= 2
        total += v // 10 + v % 10
    return (10 - total % 10) % 10


def is_valid_cusip(candidate: str | None) -> bool:
    if not candidate:
        return False
    s = candidate.strip().upper()
    if not _CUSIP_RE.match(s):
        return False
    return cusip_check_digit(s[:8]) == int(s[8])


def isin_from_cusip(cusip: str, country: str = "US") -> str:
    """Derive the ISIN of a North American security from its CUSIP."""
    if not is_valid_cusip(cusip):
        raise ValueError(f"Invalid CUSIP: {cusip!r}")
    payload = country.upper() + cusip.strip().upper()
    return payload + str(isin_check_digit(payload))


def normalize_isin(candidate: str | None, country: str | None = None) -> str | None:
    """Return a verified ISIN from an ISIN or CUSIP candidate, else None."""
    if not candidate:
        return None
    s = candidate.strip().upper()
    if is_valid_isin(s):
        return s
    if is_valid_cusip(s):
        return isin_from_cusip(s, country if country in ("US", "CA") else "US")
    return None

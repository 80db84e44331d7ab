from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

logger = logging.getLogger(__name__)

_PLACEHOLDERS_SILENT = {"-", "--"}
_PLACEHOLDERS_ELIDED = {"...", "N/A", "n/a"}


@dataclass(frozen=True)
class NumberFormat:
    """Decimal/thousands separator convention of one broker report."""

    decimal_sep: str
    thousands_sep: str

    def normalize(self, s: str) -> str:
        out = re.sub(r"\s", "", s)
        if self.thousands_sep:
            out = out.replace(self.thousands_sep, "")
        if self.decimal_sep != ".":
            out = out.replace(self.decimal_sep, ".")
        return out


# 1,234.56
EN_NUMBERS = NumberFormat(decimal_sep=".", thousands_sep=",")
# 1.234,56
ES_NUMBERS = NumberFormat(decimal_sep=",", thousands_sep=".")


def to_dec(
    s: str | float | int | Decimal | None,
    default: Decimal = Decimal("0"),
    fmt: NumberFormat = EN_NUMBERS,
) -> Decimal:
    """Convert report numeric strings to Decimal, coercing placeholders to default.

    Handles:
    - None, "" -> default
    - "-", "--" -> default
    - "...", "N/A" -> default (with warning for elided data)
    - "1,234.56" (or "1.234,56" with ES_NUMBERS) -> Decimal("1234.56")
    """
    if s is None:
        return default
    if isinstance(s, Decimal):
        return s
    if isinstance(s, (int, float)):
        return Decimal(str(s))

    s_stripped = s.strip()
    if not s_stripped:
        return default

    if s_stripped in _PLACEHOLDERS_SILENT:
        return default

    if s_stripped in _PLACEHOLDERS_ELIDED:
        logger.warning(
            'Encountered elided/unavailable value "%s"; treating as %s.',
            s_stripped,
            default,
        )
        return default

    try:
        d = Decimal(fmt.normalize(s_stripped))
    except InvalidOperation:
        logger.error("Failed to parse number from: %r; using %s", s, default)
        return default
    if not d.is_finite():
        logger.error("Non-finite number: %r; using %s", s, default)
        return default
    return d


def to_dec_strict(
    s: str | float | int | Decimal | None, fmt: NumberFormat = EN_NUMBERS
) -> Decimal:
    """Convert report numeric strings to Decimal.

    Raises ValueError on invalid/missing data.
    Use this for critical fields (quantity, amounts) where 0 is not safe.
    """
    if s is None:
        raise ValueError("Value is None")
    if isinstance(s, Decimal):
        return s
    if isinstance(s, (int, float)):
        return Decimal(str(s))

    s_stripped = s.strip()
    if not s_stripped:
        raise ValueError("Value is empty string")

    if s_stripped in _PLACEHOLDERS_SILENT | _PLACEHOLDERS_ELIDED:
        raise ValueError(f"Value is a placeholder: {s_stripped!r}")

    try:
        d = Decimal(fmt.normalize(s_stripped))
    except InvalidOperation as e:
        raise ValueError(f"Invalid decimal format: {s!r}") from e
    if not d.is_finite():
        raise ValueError(f"Not a finite number: {s!r}")
    return d


def to_percent(s: str, fmt: NumberFormat = EN_NUMBERS) -> Decimal:
    """Parse '2%', '2,00 %' or '2' into a fraction (Decimal('0.02'))."""
    return to_dec_strict(s.replace("%", ""), fmt) / Decimal("100")


def parse_date(d: str) -> dt.date:
    """Parse ISO-like date strings.
    Handles 'YYYY-MM-DD' or 'YYYY-MM-DD, HH:MM:SS' or 'YYYY-MM-DD HH:MM:SS'.
    """
    d = d.strip()
    if "," in d:
        d = d.split(",")[0].strip()
    return dt.date.fromisoformat(d[:10])


def parse_dmy(d: str) -> dt.date:
    """Parse 'dd/mm/yyyy' (also 'd/m/yyyy' and '-' separators)."""
    m = re.fullmatch(r"\s*(\d{1,2})[/-](\d{1,2})[/-](\d{4})\s*", d)
    if not m:
        raise ValueError(f"Invalid dd/mm/yyyy date: {d!r}")
    day, month, year = (int(x) for x in m.groups())
    return dt.date(year, month, day)


def date_key(d: str | dt.date) -> str:
    """Return YYYY-MM-DD string for a date."""
    if isinstance(d, dt.date):
        return d.isoformat()
    if "," in d:
        d = d.split(",")[0].strip()
    return d

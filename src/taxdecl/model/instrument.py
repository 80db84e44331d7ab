from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum


class AssetClass(str, Enum):
    EQUITY = "equity"
    FUND = "fund"
    BOND = "bond"
    OTHER = "other"


def classify_asset(label: str | None) -> AssetClass:
    """Map broker asset/product labels onto an AssetClass."""
    if not label:
        return AssetClass.EQUITY
    low = label.strip().lower()
    if any(k in low for k in ("etf", "etc", "etp", "fund", "fondo", "ucits", "iic")):
        return AssetClass.FUND
    if any(k in low for k in ("bond", "bono", "obligac", "note", "treasur")):
        return AssetClass.BOND
    if any(k in low for k in ("stock", "share", "acci", "equity", "adr", "common")):
        return AssetClass.EQUITY
    return AssetClass.OTHER


def normalize_name(name: str) -> str:
    return " ".join(name.upper().split())


_FUND_WORDS = {"ETF", "ETFS", "ETC", "ETP", "UCITS", "FUND", "FONDO", "SICAV"}


def asset_class_from_name(name: str) -> AssetClass | None:
    """Fund-like product names (whole words only); None when undecided."""
    words = set(re.findall(r"[A-Z]+", name.upper()))
    return AssetClass.FUND if words & _FUND_WORDS else None


@dataclass(frozen=True)
class SecurityRef:
    """Identifying information as carried by one broker record."""

    name: str = ""
    isin: str | None = None
    security_id: str | None = None  # CUSIP or other non-ISIN id
    ticker: str | None = None
    exchange: str = ""
    currency: str | None = None
    asset_class: AssetClass | None = None
    country: str | None = None

    def describe(self) -> str:
        for v in (self.isin, self.security_id, self.ticker):
            if v:
                return f"{self.name or '?'} ({v})"
        return self.name or "?"


@dataclass(frozen=True, eq=False)
class Instrument:
    """Canonical identity of one security within a run.

    Two instruments are equal when their ISINs match; without ISIN, equality
    falls back to exact name+exchange.
    """

    isin: str | None
    name: str
    asset_class: AssetClass = AssetClass.EQUITY
    country: str | None = None
    currency: str | None = None
    exchange: str = ""
    ticker: str | None = None
    verified: bool = True

    @property
    def key(self) -> str:
        if self.isin:
            return self.isin
        return f"{normalize_name(self.name)}@{self.exchange.upper()}"

    @property
    def issuer_country(self) -> str | None:
        if self.isin:
            return self.isin[:2]
        return self.country

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Instrument):
            return NotImplemented
        if self.isin and other.isin:
            return self.isin == other.isin
        if self.isin or other.isin:
            return False
        return (self.name, self.exchange) == (other.name, other.exchange)

    def __hash__(self) -> int:
        if self.isin:
            return hash(self.isin)
        return hash((self.name, self.exchange))

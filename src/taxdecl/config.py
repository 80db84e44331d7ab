from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class BrokerInfo:
    """Custody institution; the country decides whether holdings are foreign."""

    name: str
    country_code: str


DEGIRO = BrokerInfo(name="Degiro", country_code="NL")
INTERACTIVE_BROKERS = BrokerInfo(name="Interactive Brokers", country_code="IE")


@dataclass(frozen=True)
class Declarant:
    name: str = ""
    surname: str = ""
    nif: str = ""
    phone: str = ""

    @property
    def full_name(self) -> str:
        """Surname first, as both forms expect."""
        return " ".join(p for p in (self.surname.strip(), self.name.strip()) if p)


@dataclass(frozen=True)
class PipelineConfig:
    fiscal_year: int
    declarant: Declarant = field(default_factory=Declarant)
    reporting_currency: str = "EUR"
    home_country: str = "ES"
    # Using an older rate than this for a legal filing is refused.
    max_rate_gap_days: int = 4
    reconcile_tolerance: Decimal = Decimal("0.0001")
    ownership_pct: Decimal = Decimal("100")
    aeat720_threshold: Decimal = Decimal("50000")
    aeat720_increment: Decimal = Decimal("20000")
    aeat720_previous_total: Decimal | None = None
    d6_threshold: Decimal = Decimal("0")
    max_workers: int = 1

    @property
    def period_start(self) -> dt.date:
        return dt.date(self.fiscal_year, 1, 1)

    @property
    def period_end(self) -> dt.date:
        return dt.date(self.fiscal_year, 12, 31)

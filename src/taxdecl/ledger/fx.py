from __future__ import annotations

import bisect
import csv
import datetime as dt
import logging
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal, DivisionByZero
from pathlib import Path
from typing import Mapping

from taxdecl.conv import date_key, to_dec_strict
from taxdecl.errors import MissingExchangeRate, StaleExchangeRate
from taxdecl.model import Conversion
from taxdecl.money import quantize_money, to_major_unit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateQuote:
    """Base-currency units per 1 unit of currency, as of `rate_date`."""

    base_per_unit: Decimal
    rate_date: dt.date

    def staleness(self, date: dt.date) -> int:
        return (date - self.rate_date).days


class FxTable:
    """Date-indexed FX table: (date, currency) -> base per 1 unit of currency.

    Accepted CSV schema (base currency is EUR unless told otherwise):
      - date,currency,rate            # rate = currency units per 1 base unit
    """

    def __init__(self, base: str = "EUR"):
        self.base = base.upper()
        # Map: currency -> { date -> Decimal(base_per_unit) }, plus sorted date list
        self.data: dict[str, dict[str, Decimal]] = defaultdict(dict)
        self.date_index: dict[str, list[str]] = {}

    def _add(self, d: str, ccy: str, units_per_base: Decimal) -> None:
        if ccy == self.base:
            # Store identity explicitly for completeness
            self.data[ccy][d] = Decimal("1")
            return
        if units_per_base <= 0:
            raise ValueError(
                f"Encountered non-positive FX rate {units_per_base} for {ccy} on {d}"
            )
        try:
            self.data[ccy][d] = Decimal("1") / units_per_base
        except DivisionByZero as exc:
            raise ValueError(f"Invalid zero FX rate for {ccy} on {d}") from exc

    def _reindex(self) -> None:
        for ccy, m in self.data.items():
            self.date_index[ccy] = sorted(m.keys())

    @classmethod
    def from_csv(cls, path: str | Path, base: str = "EUR") -> FxTable:
        inst = cls(base)
        with open(path, encoding="utf-8", newline="") as fp:
            reader = csv.DictReader(fp)
            fields = set(reader.fieldnames or [])
            if not {"date", "currency"}.issubset(fields):
                missing = {"date", "currency"} - fields
                raise ValueError(f"FX table missing columns: {sorted(missing)}")

            if "rate" not in fields:
                raise ValueError(
                    f"FX table must contain 'rate' (units per {inst.base}) column"
                )

            for row in reader:
                d = date_key(row["date"])
                ccy = row["currency"].strip().upper()
                if not ccy:
                    raise ValueError(f"FX row missing currency for date {d}")
                inst._add(d, ccy, to_dec_strict(row["rate"]))

        inst._reindex()
        logger.debug("Loaded FX table %s: %s", path, sorted(inst.data))
        return inst

    @classmethod
    def from_mapping(
        cls,
        rates: Mapping[str, Mapping[dt.date | str, Decimal | str]],
        base: str = "EUR",
    ) -> FxTable:
        """Build from {currency: {date: units per base}} (e.g. ECB reference rates)."""
        inst = cls(base)
        for ccy, by_date in rates.items():
            for d, r in by_date.items():
                inst._add(date_key(d), ccy.strip().upper(), to_dec_strict(r))
        inst._reindex()
        return inst

    def lookup(self, date: dt.date, currency: str) -> RateQuote | None:
        """Rate on `date`, else the nearest previous one (weekends/holidays)."""
        c = currency.upper()
        if c == self.base:
            return RateQuote(Decimal("1"), date)
        if c not in self.data:
            return None
        d = date.isoformat()
        if d in self.data[c]:
            return RateQuote(self.data[c][d], date)
        # Find the latest date <= d in sorted list
        dates = self.date_index[c]
        pos = bisect.bisect_right(dates, d)
        if pos == 0:
            return None
        found = dates[pos - 1]
        return RateQuote(self.data[c][found], dt.date.fromisoformat(found))

    def convert(
        self, amount: Decimal, currency: str, date: dt.date, max_gap_days: int
    ) -> Conversion:
        """Amount in the base currency, or the rate error that prevents it.

        Minor units are normalized first. Using a rate older than
        `max_gap_days` is refused.
        """
        major_amount, major = to_major_unit(amount, currency)
        quote = self.lookup(date, major)
        if quote is None:
            return Conversion(None, error=MissingExchangeRate(major, date))
        gap = quote.staleness(date)
        if gap > max_gap_days:
            return Conversion(
                None,
                rate_date=quote.rate_date,
                stale_days=gap,
                error=StaleExchangeRate(major, date, quote.rate_date, max_gap_days),
            )
        return Conversion(
            quantize_money(major_amount * quote.base_per_unit),
            rate=quote.base_per_unit,
            rate_date=quote.rate_date,
            stale_days=gap,
        )

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Iterable, Union

from taxdecl.config import PipelineConfig
from taxdecl.model import (
    Conversion,
    Instrument,
    IssueLog,
    Movement,
    PositionSnapshot,
    SecurityRef,
)
from taxdecl.parsers.base import ParseOutcome
from taxdecl.resolve import InstrumentRegistry, normalize_isin

from .fx import FxTable
from .reconcile import reconcile

logger = logging.getLogger(__name__)

Record = Union[Movement, PositionSnapshot]


@dataclass(frozen=True)
class Ledger:
    """Merged, resolved and converted records of every usable source."""

    fiscal_year: int
    reporting_currency: str
    instruments: tuple[Instrument, ...] = ()
    movements: tuple[Movement, ...] = ()
    snapshots: tuple[PositionSnapshot, ...] = ()
    issues: IssueLog = field(default_factory=IssueLog)
    sources: tuple[str, ...] = ()
    dropped: tuple[str, ...] = ()


def _has_isin(ref: SecurityRef | None) -> bool:
    if ref is None:
        return False
    return bool(
        normalize_isin(ref.isin, ref.country)
        or normalize_isin(ref.security_id, ref.country)
    )


def _movement_order(m: Movement) -> tuple:
    return (
        m.trade_date,
        m.broker.name,
        m.instrument.key if m.instrument else "",
        m.kind.value,
        m.source,
        m.quantity,
        m.gross_amount,
        m.fees,
        m.description,
    )


def _snapshot_order(s: PositionSnapshot) -> tuple:
    return (
        s.as_of,
        s.broker.name,
        s.instrument.key if s.instrument else "",
        s.source,
        s.quantity,
        s.fair_value,
    )


class _Converter:
    def __init__(self, rates: FxTable, config: PipelineConfig, issues: IssueLog):
        self.rates = rates
        self.config = config
        self.issues = issues
        self._reported: set[tuple[str, str, str]] = set()

    def __call__(
        self,
        amount: Decimal,
        currency: str,
        date: dt.date,
        stated: Decimal | None,
        source: str,
    ) -> Conversion:
        if stated is not None:
            return Conversion(stated)
        if amount == 0:
            return Conversion(Decimal("0.00"))
        conv = self.rates.convert(
            amount, currency, date, self.config.max_rate_gap_days
        )
        if conv.ok and conv.stale_days > 0:
            key = (source, currency, date.isoformat())
            if key not in self._reported:
                self._reported.add(key)
                self.issues.add(
                    "stale_exchange_rate",
                    source,
                    f"{currency} on {date}: used rate of {conv.rate_date} "
                    f"({conv.stale_days} days earlier)",
                )
        elif not conv.ok:
            logger.debug("%s: no usable rate: %s", source, conv.error)
        return conv


def assemble(
    outcomes: Iterable[ParseOutcome], rates: FxTable, config: PipelineConfig
) -> Ledger:
    """Merge parse outcomes into one canonical ledger.

    The result does not depend on the order of `outcomes`: sources are taken
    in id order and ISIN-bearing records are resolved before name-only ones.
    """
    issues = IssueLog()
    ordered = sorted(outcomes, key=lambda o: o.source)
    kept: list[ParseOutcome] = []
    dropped: list[str] = []
    for o in ordered:
        issues.extend(o.issues)
        if o.ok:
            kept.append(o)
        else:
            dropped.append(o.source)
            issues.add("source_dropped", o.source, str(o.error))

    # Resolution
    registry = InstrumentRegistry()
    records: list[tuple[Record, str]] = []
    for o in kept:
        records.extend((m, o.source) for m in o.movements)
        records.extend((s, o.source) for s in o.snapshots)
    resolved: dict[int, Instrument] = {}
    warned: set[tuple[str, str]] = set()
    for with_isin in (True, False):
        for rec, source in records:
            if rec.security is None or _has_isin(rec.security) is not with_isin:
                continue
            res = registry.resolve(rec.security)
            resolved[id(rec)] = res.instrument
            if res.warning and (source, res.instrument.key) not in warned:
                warned.add((source, res.instrument.key))
                issues.add("unresolved_instrument", source, res.warning)

    # Conversion
    convert = _Converter(rates, config, issues)
    movements: list[Movement] = []
    snapshots: list[PositionSnapshot] = []
    for rec, source in records:
        inst = resolved.get(id(rec))
        if isinstance(rec, Movement):
            movements.append(
                replace(
                    rec,
                    instrument=inst,
                    reporting_gross=convert(
                        rec.gross_amount,
                        rec.currency,
                        rec.trade_date,
                        rec.reported_gross,
                        source,
                    ),
                    reporting_fees=convert(
                        rec.fees,
                        rec.currency,
                        rec.trade_date,
                        rec.reported_fees,
                        source,
                    ),
                )
            )
        else:
            snapshots.append(
                replace(
                    rec,
                    instrument=inst,
                    reporting_value=convert(
                        rec.fair_value,
                        rec.currency,
                        rec.as_of,
                        rec.reported_value,
                        source,
                    ),
                )
            )

    movements.sort(key=_movement_order)
    snapshots.sort(key=_snapshot_order)
    reconcile(movements, snapshots, config.reconcile_tolerance, issues)

    ledger = Ledger(
        fiscal_year=config.fiscal_year,
        reporting_currency=config.reporting_currency,
        instruments=tuple(registry.instruments()),
        movements=tuple(movements),
        snapshots=tuple(snapshots),
        issues=issues,
        sources=tuple(o.source for o in kept),
        dropped=tuple(dropped),
    )
    logger.info(
        "Ledger: %d instruments, %d movements, %d snapshots, %d issues",
        len(ledger.instruments),
        len(ledger.movements),
        len(ledger.snapshots),
        len(ledger.issues),
    )
    return ledger

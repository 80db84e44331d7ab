from __future__ import annotations

import datetime as dt
import logging
from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Sequence

from taxdecl.model import QUANTITY_KINDS, IssueLog, Movement, PositionSnapshot

logger = logging.getLogger(__name__)


def _holding_key(instrument_key: str, broker_name: str) -> tuple[str, str]:
    return instrument_key, broker_name


def index_quantity_movements(
    movements: Iterable[Movement],
) -> dict[tuple[str, str], list[Movement]]:
    out: dict[tuple[str, str], list[Movement]] = defaultdict(list)
    for m in movements:
        if m.kind in QUANTITY_KINDS and m.instrument is not None:
            out[_holding_key(m.instrument.key, m.broker.name)].append(m)
    return out


def replay_quantity(movements: Iterable[Movement], as_of: dt.date) -> Decimal | None:
    """Net signed quantity up to and including `as_of`; None without movements."""
    total: Decimal | None = None
    for m in movements:
        if m.trade_date <= as_of:
            total = (total or Decimal("0")) + m.quantity
    return total


def reconcile(
    movements: Sequence[Movement],
    snapshots: Sequence[PositionSnapshot],
    tolerance: Decimal,
    issues: IssueLog,
) -> int:
    """Compare replayed quantities with reported holdings.

    Only holdings whose movements are known are checked; each mismatching
    snapshot yields exactly one issue. Returns the number of mismatches.
    """
    by_holding = index_quantity_movements(movements)
    mismatches = 0
    for snap in snapshots:
        if snap.instrument is None:
            continue
        moves = by_holding.get(_holding_key(snap.instrument.key, snap.broker.name))
        if not moves:
            continue
        replayed = replay_quantity(moves, snap.as_of)
        if replayed is None:
            continue
        diff = (replayed - snap.quantity).copy_abs()
        if diff <= tolerance:
            continue
        mismatches += 1
        issues.add(
            "reconciliation_mismatch",
            snap.source,
            f"{snap.instrument.name} at {snap.broker.name} on {snap.as_of}: "
            f"movements give {replayed}, report states {snap.quantity}",
        )
    logger.debug("Reconciled %d snapshots, %d mismatches", len(snapshots), mismatches)
    return mismatches

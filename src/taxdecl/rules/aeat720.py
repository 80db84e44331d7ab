"""Model 720: foreign securities held at period end (block V and I)."""

from __future__ import annotations

import datetime as dt
import logging
from decimal import Decimal

from taxdecl.config import PipelineConfig
from taxdecl.ledger import Ledger
from taxdecl.model import AssetClass, Movement, MovementKind, PositionSnapshot
from taxdecl.money import quantize_money

from .base import (
    DeclarationLine,
    FormKind,
    RuleResult,
    flag_unverified,
    period_end_holdings,
)

logger = logging.getLogger(__name__)

CATEGORY_BY_CLASS = {
    AssetClass.EQUITY: "V1",
    AssetClass.OTHER: "V1",
    AssetClass.BOND: "V2",
    AssetClass.FUND: "I0",
}

_ACQUIRING = (MovementKind.BUY, MovementKind.TRANSFER)


def first_acquisition(
    snap: PositionSnapshot, movements: tuple[Movement, ...]
) -> dt.date | None:
    """Earliest incoming movement of the holding's instrument at its broker."""
    if snap.instrument is None:
        raise ValueError(f"Holding from {snap.source} has no resolved instrument")
    dates = [
        m.trade_date
        for m in movements
        if m.kind in _ACQUIRING
        and m.quantity > 0
        and m.instrument == snap.instrument
        and m.broker.name == snap.broker.name
    ]
    return min(dates) if dates else None


def must_declare(total: Decimal, config: PipelineConfig) -> bool:
    """Above the threshold, and (after a first filing) grown by the increment."""
    if total <= config.aeat720_threshold:
        return False
    previous = config.aeat720_previous_total
    if previous is not None and total <= previous + config.aeat720_increment:
        return False
    return True


def aeat720_lines(ledger: Ledger, config: PipelineConfig) -> RuleResult:
    """Declaration lines for model 720.

    Raises the stored ExchangeRateError when a holding's reporting-currency
    value could not be computed.
    """
    result = RuleResult()
    lines: list[DeclarationLine] = []
    for snap in period_end_holdings(ledger, config.home_country):
        inst = snap.instrument
        if inst is None:
            raise ValueError(f"Holding from {snap.source} has no resolved instrument")
        if snap.reporting_value is None:
            raise ValueError(f"Snapshot of {inst.name} was not converted")
        value = quantize_money(snap.reporting_value.require())
        acquired = first_acquisition(snap, ledger.movements)
        in_year = acquired is not None and acquired.year == ledger.fiscal_year
        marker = "A" if in_year else "M"
        lines.append(
            DeclarationLine(
                form=FormKind.AEAT_720,
                category=CATEGORY_BY_CLASS[inst.asset_class],
                isin=inst.isin or "",
                descriptor=inst.name.upper(),
                valuation=value,
                currency=config.reporting_currency,
                quantity=snap.quantity,
                broker=snap.broker,
                fiscal_year=ledger.fiscal_year,
                issuer_country=inst.issuer_country or "",
                ownership_pct=config.ownership_pct,
                first_acquisition=acquired or config.period_start,
                acquisition_marker=marker,
                verified=inst.verified,
            )
        )

    total = sum((line.valuation for line in lines), Decimal("0"))
    result.total = total
    if not must_declare(total, config):
        logger.info(
            "720: foreign securities total %s %s does not require a declaration",
            total,
            config.reporting_currency,
        )
        return result

    lines.sort(key=DeclarationLine.order_key)
    result.lines = tuple(lines)
    flag_unverified(result.lines, FormKind.AEAT_720, result.issues)
    return result

"""D-6: listed equity and fund holdings custodied abroad."""

from __future__ import annotations

import logging
from decimal import Decimal

from taxdecl.config import PipelineConfig
from taxdecl.ledger import Ledger
from taxdecl.model import AssetClass
from taxdecl.money import quantize_money, to_major_unit

from .base import (
    DeclarationLine,
    FormKind,
    RuleResult,
    flag_unverified,
    period_end_holdings,
)

logger = logging.getLogger(__name__)

SPANISH_ISSUER = "800"
FOREIGN_ISSUER = "400"

D6_ASSET_CLASSES = (AssetClass.EQUITY, AssetClass.FUND)


def d6_lines(ledger: Ledger, config: PipelineConfig) -> RuleResult:
    """Declaration lines for D-6, valued in the denomination currency."""
    result = RuleResult()
    lines: list[DeclarationLine] = []
    for snap in period_end_holdings(ledger, config.home_country):
        inst = snap.instrument
        if inst is None:
            raise ValueError(f"Holding from {snap.source} has no resolved instrument")
        if inst.asset_class not in D6_ASSET_CLASSES:
            continue
        value, ccy = to_major_unit(snap.quantity * snap.price, snap.currency)
        issuer = inst.issuer_country or ""
        lines.append(
            DeclarationLine(
                form=FormKind.D6,
                category=(
                    SPANISH_ISSUER if issuer == config.home_country else FOREIGN_ISSUER
                ),
                isin=inst.isin or "",
                descriptor=inst.name,
                valuation=quantize_money(value),
                currency=ccy,
                quantity=snap.quantity,
                broker=snap.broker,
                fiscal_year=ledger.fiscal_year,
                issuer_country=issuer,
                ownership_pct=config.ownership_pct,
                verified=inst.verified,
            )
        )

    # Currencies differ per line; the threshold applies line by line.
    kept = [line for line in lines if line.valuation > config.d6_threshold]
    if len(kept) < len(lines):
        logger.info(
            "D-6: %d holdings at or below %s left out",
            len(lines) - len(kept),
            config.d6_threshold,
        )
    kept.sort(key=DeclarationLine.order_key)
    result.lines = tuple(kept)
    result.total = sum((line.valuation for line in kept), Decimal("0"))
    flag_unverified(result.lines, FormKind.D6, result.issues)
    return result

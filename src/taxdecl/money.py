from __future__ import annotations

from decimal import Decimal
from typing import Sequence

MoneyLike = str | Decimal

_MONEY_Q = Decimal("0.01")

# Quote units that are a hundredth of the ISO currency.
MINOR_UNITS: dict[str, str] = {
    "GBX": "GBP",
    "GBp": "GBP",
    "ZAc": "ZAR",
    "ZAC": "ZAR",
    "ILA": "ILS",
}


def quantize_money(value: Decimal, places: MoneyLike = _MONEY_Q) -> Decimal:
    """Quantize monetary values consistently across the codebase."""
    quant = Decimal(places)
    return value.quantize(quant)


def to_major_unit(amount: Decimal, currency: str) -> tuple[Decimal, str]:
    """Express an amount quoted in a minor unit (GBX, ZAc, ...) in the major one."""
    major = MINOR_UNITS.get(currency.strip())
    if major is None:
        return amount, currency.strip().upper()
    return amount / Decimal("100"), major


def allocate(total: Decimal, weights: Sequence[Decimal]) -> list[Decimal]:
    """Split `total` into cents proportionally to `weights`.

    Pieces always sum to the quantized total; the rounding residual goes to
    the largest weight (first one on ties).
    """
    if not weights:
        return []
    whole = sum(weights, Decimal("0"))
    if whole == 0:
        raise ValueError("Cannot allocate over zero total weight")
    pieces = [quantize_money(total * w / whole) for w in weights]
    residual = quantize_money(total) - sum(pieces, Decimal("0"))
    if residual:
        biggest = max(range(len(weights)), key=lambda i: (weights[i], -i))
        pieces[biggest] += residual
    return pieces

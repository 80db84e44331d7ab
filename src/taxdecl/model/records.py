from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from taxdecl.config import BrokerInfo
from taxdecl.errors import ExchangeRateError

from .instrument import Instrument, SecurityRef


class MovementKind(str, Enum):
    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"
    FEE = "fee"
    INTEREST = "interest"
    CURRENCY_EXCHANGE = "currency_exchange"
    TRANSFER = "transfer"


# Kinds whose quantity changes the number of units held.
QUANTITY_KINDS = frozenset({MovementKind.BUY, MovementKind.SELL, MovementKind.TRANSFER})


@dataclass(frozen=True)
class Conversion:
    """An amount expressed in the reporting currency, or why it could not be."""

    amount: Decimal | None
    rate: Decimal | None = None
    rate_date: dt.date | None = None
    stale_days: int = 0
    error: ExchangeRateError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.amount is not None

    def require(self) -> Decimal:
        if self.error is not None:
            raise self.error
        if self.amount is None:
            raise ValueError("conversion has no amount")
        return self.amount


@dataclass(frozen=True)
class Movement:
    """One economic event as reported by a broker.

    quantity is signed (positive buys/incoming transfers, negative sells);
    gross_amount and fees are positive magnitudes in `currency`.
    """

    kind: MovementKind
    security: SecurityRef | None
    trade_date: dt.date
    quantity: Decimal
    gross_amount: Decimal
    currency: str
    broker: BrokerInfo
    source: str
    fees: Decimal = Decimal("0")
    settlement_date: dt.date | None = None
    price: Decimal | None = None
    description: str = ""
    # Amounts the broker itself states in the reporting currency, when present.
    reported_gross: Decimal | None = None
    reported_fees: Decimal | None = None
    # Bound during ledger assembly.
    instrument: Instrument | None = None
    reporting_gross: Conversion | None = None
    reporting_fees: Conversion | None = None


@dataclass(frozen=True)
class PositionSnapshot:
    """Point-in-time holding at one custody broker."""

    security: SecurityRef
    quantity: Decimal
    currency: str
    price: Decimal
    fair_value: Decimal  # in `currency`
    as_of: dt.date
    broker: BrokerInfo
    source: str
    exchange: str = ""
    # Value the broker itself states in the reporting currency, when present.
    reported_value: Decimal | None = None
    # Bound during ledger assembly.
    instrument: Instrument | None = None
    reporting_value: Conversion | None = None

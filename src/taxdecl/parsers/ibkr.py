"""Interactive Brokers activity statements (HTML and CSV renderings).

Both renderings reduce to RawRows per section with a header row naming the
columns. The CSV carries asset category and currency as columns; the HTML
carries them as group rows (header-asset / header-currency) above the data.
"""

from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Iterable

from taxdecl.config import INTERACTIVE_BROKERS, BrokerInfo
from taxdecl.conv import parse_date, to_dec, to_dec_strict
from taxdecl.errors import NoDataExtracted
from taxdecl.extract import RawRow
from taxdecl.model import (
    AssetClass,
    IssueLog,
    Movement,
    MovementKind,
    PositionSnapshot,
    SecurityRef,
    classify_asset,
)
from taxdecl.money import allocate

from .base import HeaderMap, ParseOutcome

logger = logging.getLogger(__name__)

STOCK_CATEGORIES = {"Stocks", "Stock", "Acciones"}

SECTION_ALIASES = {
    "Información de instrumento financiero": "Financial Instrument Information",
    "Posiciones abiertas": "Open Positions",
    "Operaciones": "Trades",
    "Dividendos": "Dividends",
    "Retención de impuestos": "Withholding Tax",
}

COLUMN_ALIASES = {
    "Categoría de activo": "Asset Category",
    "Divisa": "Currency",
    "Símbolo": "Symbol",
    "Descripción": "Description",
    "Id. de seguridad": "Security ID",
    "Merc. de cotización": "Listing Exch",
    "Multiplicador": "Multiplier",
    "Tipo": "Type",
    "Código": "Code",
    "Cantidad": "Quantity",
    "Mult.": "Mult",
    "Precio de cierre": "Close Price",
    "Valor": "Value",
    "Cuenta": "Account",
    "Fecha/Hora": "Date/Time",
    "Precio trans.": "T. Price",
    "Productos": "Proceeds",
    "Tarifa/com.": "Comm/Fee",
    "Fecha": "Date",
    "Importe": "Amount",
    "Nombre del campo": "Field Name",
    "Valor del campo": "Field Value",
}

NEED_TRADE_COLS = ("Symbol", "Date/Time", "Quantity", "Proceeds")
NEED_POSITION_COLS = ("Symbol", "Quantity", "Value")
NEED_CASH_COLS = ("Date", "Description", "Amount")

# "AAPL(US0378331005) Cash Dividend USD 0.22 per Share (Ordinary Dividend)"
_CASH_DESC_RE = re.compile(r"^\s*([^(]+?)\s*\(([A-Z0-9]{9,12})\)")


@dataclass(frozen=True)
class ContractInfo:
    symbol: str
    name: str
    security_id: str = ""
    exchange: str = ""
    asset_class: AssetClass = AssetClass.EQUITY


@dataclass
class _Cursor:
    """Header and group context of the section being read."""

    header: HeaderMap | None = None
    asset: str = ""
    currency: str = ""

    def _header(self) -> HeaderMap:
        if self.header is None:
            raise ValueError("Data row before the section header")
        return self.header

    def category(self, row: RawRow) -> str:
        return self._header().get(row, "Asset Category") or self.asset

    def ccy(self, row: RawRow) -> str:
        return self._header().get(row, "Currency") or self.currency


@dataclass
class _PositionBlock:
    currency: str = ""
    rows: list[PositionSnapshot] = field(default_factory=list)
    awaiting_base: bool = False


@dataclass
class _CashLine:
    date: dt.date
    currency: str
    security: SecurityRef
    amount: Decimal
    description: str
    line_no: int


def _section(row: RawRow) -> str:
    return SECTION_ALIASES.get(row.section, row.section)


def parse_period_end(rows: Iterable[RawRow]) -> dt.date | None:
    """Statement period end from 'Statement,Data,Period,"January 1, 2023 - ..."'."""
    hm: HeaderMap | None = None
    for row in rows:
        if row.section != "Statement":
            continue
        if row.kind == "header":
            hm = HeaderMap(row.cells, COLUMN_ALIASES)
            continue
        if hm is None or hm.get(row, "Field Name") != "Period":
            continue
        period = hm.get(row, "Field Value")
        end = period.split(" - ")[-1].strip()
        try:
            return dt.datetime.strptime(end, "%B %d, %Y").date()
        except ValueError:
            logger.debug("Unrecognized statement period %r", period)
            return None
    return None


class IbkrStatementParser:
    """Trades, open positions, dividends and withholding of one statement."""

    def __init__(
        self, broker: BrokerInfo = INTERACTIVE_BROKERS, base_currency: str = "EUR"
    ) -> None:
        self.broker = broker
        self.base_currency = base_currency

    def parse(
        self, rows: Iterable[RawRow], source: str, *, as_of: dt.date
    ) -> ParseOutcome:
        all_rows = list(rows)
        out = ParseOutcome(source=source, broker=self.broker)
        as_of = parse_period_end(all_rows) or as_of

        contracts = self.parse_contracts(all_rows)
        logger.debug("%s: %d contracts", source, len(contracts))

        by_section: dict[str, list[RawRow]] = {}
        for row in all_rows:
            by_section.setdefault(_section(row), []).append(row)

        out.movements.extend(
            self.parse_trades(
                by_section.get("Trades", []), contracts, source, out.issues
            )
        )
        out.snapshots.extend(
            self.parse_positions(
                by_section.get("Open Positions", []),
                contracts,
                source,
                as_of,
                out.issues,
            )
        )
        out.movements.extend(
            self.parse_cash_income(
                by_section.get("Dividends", []),
                by_section.get("Withholding Tax", []),
                source,
                out.issues,
            )
        )

        if out.record_count == 0:
            raise NoDataExtracted(f"{source}: no stock trades, positions or dividends")
        logger.info(
            "%s: %d movements, %d positions, %d issues",
            source,
            len(out.movements),
            len(out.snapshots),
            len(out.issues),
        )
        return out

    # Financial Instrument Information

    def parse_contracts(self, rows: Iterable[RawRow]) -> dict[str, ContractInfo]:
        out: dict[str, ContractInfo] = {}
        cur = _Cursor()
        for row in rows:
            if _section(row) != "Financial Instrument Information":
                continue
            if self._advance(cur, row):
                continue
            if cur.header is None or row.kind != "data":
                continue
            if cur.category(row) not in STOCK_CATEGORIES:
                continue
            symbols = cur.header.get(row, "Symbol")
            if not symbols:
                continue
            info = ContractInfo(
                symbol=symbols,
                name=cur.header.get(row, "Description"),
                security_id=cur.header.get(row, "Security ID"),
                exchange=cur.header.get(row, "Listing Exch"),
                asset_class=classify_asset(cur.header.get(row, "Type") or None),
            )
            # Renamed symbols are listed as "NEW, OLD"
            for sym in symbols.split(","):
                out.setdefault(sym.strip(), replace(info, symbol=sym.strip()))
        return out

    def _advance(self, cur: _Cursor, row: RawRow) -> bool:
        """Consume header/group rows; True when the row was structural."""
        if row.kind == "header":
            cur.header = HeaderMap(row.cells, COLUMN_ALIASES)
            return True
        if row.kind == "group":
            label = row.cell(0).strip()
            if "header-asset" in row.tags:
                cur.asset, cur.currency = label, ""
            elif "header-currency" in row.tags:
                cur.currency = label
            return True
        return False

    def _security(
        self,
        symbol: str,
        contracts: dict[str, ContractInfo],
        currency: str,
    ) -> SecurityRef:
        info = contracts.get(symbol)
        if info is None:
            logger.debug("No contract info for %s", symbol)
            return SecurityRef(name=symbol, ticker=symbol, currency=currency)
        sid = info.security_id.strip()
        return SecurityRef(
            name=info.name or symbol,
            isin=sid if len(sid) == 12 else None,
            security_id=sid if sid and len(sid) != 12 else None,
            ticker=symbol,
            exchange=info.exchange,
            currency=currency,
            asset_class=info.asset_class,
        )

    # Trades

    def parse_trades(
        self,
        rows: Iterable[RawRow],
        contracts: dict[str, ContractInfo],
        source: str,
        issues: IssueLog,
    ) -> list[Movement]:
        out: list[Movement] = []
        cur = _Cursor()
        for row in rows:
            if self._advance(cur, row):
                continue
            hm = cur.header
            if hm is None or row.kind != "data":
                continue
            if not hm.has_all(NEED_TRADE_COLS):
                logger.debug("Skipping Trades subtable, missing cols: %s", hm.index)
                continue
            if cur.category(row) not in STOCK_CATEGORIES:
                continue
            # Only order-level rows; executions and closed lots repeat them.
            if "DataDiscriminator" in hm:
                if hm.get(row, "DataDiscriminator") != "Order":
                    continue
            elif row.tags and "row-summary" not in row.tags:
                continue
            try:
                out.append(self._trade(row, hm, cur.ccy(row), contracts, source))
            except ValueError as e:
                issues.add(
                    "skipped_row",
                    source,
                    f"Trades: {e}",
                    line_no=row.index,
                    row=row.cells,
                )
        out.sort(key=lambda m: (m.trade_date, m.quantity <= 0))
        return out

    def _trade(
        self,
        row: RawRow,
        hm: HeaderMap,
        currency: str,
        contracts: dict[str, ContractInfo],
        source: str,
    ) -> Movement:
        symbol = hm.get(row, "Symbol")
        if not symbol:
            raise ValueError("Invalid trade row: missing symbol")
        qty = to_dec_strict(hm.get(row, "Quantity"))
        if qty == 0:
            raise ValueError("Invalid trade row: zero quantity")
        proceeds = to_dec_strict(hm.get(row, "Proceeds"))
        t_price = hm.get(row, "T. Price")
        ccy = currency or self.base_currency
        return Movement(
            kind=MovementKind.BUY if qty > 0 else MovementKind.SELL,
            security=self._security(symbol, contracts, ccy),
            trade_date=parse_date(hm.get(row, "Date/Time")),
            quantity=qty,
            gross_amount=proceeds.copy_abs(),
            currency=ccy,
            broker=self.broker,
            source=source,
            fees=to_dec(hm.get(row, "Comm/Fee")).copy_abs(),
            price=to_dec_strict(t_price) if t_price else None,
            description=hm.get(row, "Code"),
        )

    # Open Positions

    def parse_positions(
        self,
        rows: Iterable[RawRow],
        contracts: dict[str, ContractInfo],
        source: str,
        as_of: dt.date,
        issues: IssueLog,
    ) -> list[PositionSnapshot]:
        """Holdings per currency block.

        A block in the base currency states its value directly. A foreign block
        is followed by its own total and then a total in the base currency,
        which is spread over the block proportionally to quantity x price.
        """
        out: list[PositionSnapshot] = []
        cur = _Cursor()
        block = _PositionBlock()

        def flush() -> None:
            out.extend(block.rows)
            block.rows.clear()
            block.awaiting_base = False

        for row in rows:
            if self._advance(cur, row):
                flush()
                continue
            hm = cur.header
            if hm is None or not hm.has_all(NEED_POSITION_COLS):
                continue
            if cur.category(row) not in STOCK_CATEGORIES:
                continue

            if row.kind in ("total", "subtotal"):
                if not block.rows:
                    continue
                row_ccy = hm.get(row, "Currency")
                if block.currency == self.base_currency:
                    for i, snap in enumerate(block.rows):
                        block.rows[i] = replace(snap, reported_value=snap.fair_value)
                    flush()
                elif row_ccy == self.base_currency or (
                    not row_ccy and block.awaiting_base
                ):
                    self._allocate_base_total(
                        block, hm.get(row, "Value"), row, source, issues
                    )
                    flush()
                else:
                    block.awaiting_base = True
                continue

            if row.kind != "data":
                continue
            if "DataDiscriminator" in hm:
                if hm.get(row, "DataDiscriminator") != "Summary":
                    continue
            elif "row-detail" in row.tags:
                continue

            ccy = cur.ccy(row) or self.base_currency
            if block.awaiting_base or (block.rows and block.currency != ccy):
                flush()
            block.currency = ccy
            try:
                block.rows.append(
                    self._position(row, hm, ccy, contracts, source, as_of)
                )
            except ValueError as e:
                issues.add(
                    "skipped_row",
                    source,
                    f"Open Positions: {e}",
                    line_no=row.index,
                    row=row.cells,
                )
        flush()
        return out

    def _allocate_base_total(
        self,
        block: _PositionBlock,
        total_s: str,
        row: RawRow,
        source: str,
        issues: IssueLog,
    ) -> None:
        try:
            total = to_dec_strict(total_s)
            weights = [s.quantity * s.price for s in block.rows]
            pieces = allocate(total, weights)
        except ValueError as e:
            issues.add(
                "skipped_row",
                source,
                f"Open Positions: unusable base-currency total ({e})",
                line_no=row.index,
                row=row.cells,
            )
            return
        for i, (snap, piece) in enumerate(zip(block.rows, pieces)):
            block.rows[i] = replace(snap, reported_value=piece)

    def _position(
        self,
        row: RawRow,
        hm: HeaderMap,
        currency: str,
        contracts: dict[str, ContractInfo],
        source: str,
        as_of: dt.date,
    ) -> PositionSnapshot:
        symbol = hm.get(row, "Symbol")
        if not symbol:
            raise ValueError("missing symbol")
        mult = to_dec(hm.get(row, "Mult"), Decimal("1")) or Decimal("1")
        qty = to_dec_strict(hm.get(row, "Quantity")) * mult
        value = to_dec_strict(hm.get(row, "Value"))
        price_s = hm.get(row, "Close Price")
        price = to_dec_strict(price_s) if price_s else (value / qty if qty else value)
        security = self._security(symbol, contracts, currency)
        return PositionSnapshot(
            security=security,
            quantity=qty,
            currency=currency,
            price=price,
            fair_value=value,
            as_of=as_of,
            broker=self.broker,
            source=source,
            exchange=security.exchange,
        )

    # Dividends and Withholding Tax

    def _cash_lines(
        self, rows: Iterable[RawRow], section: str, source: str, issues: IssueLog
    ) -> dict[tuple[dt.date, str, str], _CashLine]:
        """Cash rows summed per (date, security, currency).

        Summing folds reversals and re-bookings of the same payment together.
        """
        acc: dict[tuple[dt.date, str, str], _CashLine] = {}
        cur = _Cursor()
        for row in rows:
            if self._advance(cur, row):
                continue
            hm = cur.header
            if hm is None or row.kind != "data" or not hm.has_all(NEED_CASH_COLS):
                continue
            date_s = hm.get(row, "Date")
            desc = hm.get(row, "Description")
            ccy = cur.ccy(row)
            # Totals and per-currency summaries lack a date or description
            if not (date_s and desc) or ccy.startswith("Total"):
                continue
            try:
                date = parse_date(date_s)
                amount = to_dec_strict(hm.get(row, "Amount"))
            except ValueError as e:
                issues.add(
                    "skipped_row",
                    source,
                    f"{section}: {e}",
                    line_no=row.index,
                    row=row.cells,
                )
                continue
            m = _CASH_DESC_RE.match(desc)
            if m is None:
                issues.add(
                    "skipped_row",
                    source,
                    f"{section}: no security in description",
                    line_no=row.index,
                    row=row.cells,
                )
                continue
            symbol, sid = m.groups()
            ccy = ccy or self.base_currency
            key = (date, sid, ccy)
            line = acc.get(key)
            if line is None:
                acc[key] = _CashLine(
                    date=date,
                    currency=ccy,
                    security=SecurityRef(
                        name=symbol,
                        isin=sid if len(sid) == 12 else None,
                        security_id=sid if len(sid) != 12 else None,
                        ticker=symbol,
                        currency=ccy,
                    ),
                    amount=amount,
                    description=desc,
                    line_no=row.index,
                )
            else:
                line.amount += amount
        return acc

    def parse_cash_income(
        self,
        dividend_rows: Iterable[RawRow],
        withholding_rows: Iterable[RawRow],
        source: str,
        issues: IssueLog,
    ) -> list[Movement]:
        dividends = self._cash_lines(dividend_rows, "Dividends", source, issues)
        withholding = self._cash_lines(
            withholding_rows, "Withholding Tax", source, issues
        )

        out: list[Movement] = []
        for key, div in dividends.items():
            if div.amount <= 0:
                if div.amount < 0:
                    issues.add(
                        "skipped_row",
                        source,
                        f"Dividends: net negative amount {div.amount} for "
                        f"{div.security.describe()} on {div.date}",
                        line_no=div.line_no,
                    )
                withholding.pop(key, None)
                continue
            tax = withholding.pop(key, None)
            out.append(
                Movement(
                    kind=MovementKind.DIVIDEND,
                    security=div.security,
                    trade_date=div.date,
                    quantity=Decimal("0"),
                    gross_amount=div.amount,
                    currency=div.currency,
                    broker=self.broker,
                    source=source,
                    fees=tax.amount.copy_abs() if tax is not None else Decimal("0"),
                    description=div.description,
                )
            )

        for tax in withholding.values():
            if tax.amount == 0:
                continue
            issues.add(
                "withholding_unmatched",
                source,
                f"Withholding {tax.amount} {tax.currency} for "
                f"{tax.security.describe()} on {tax.date} has no matching dividend",
                line_no=tax.line_no,
            )
            out.append(
                Movement(
                    kind=MovementKind.FEE,
                    security=tax.security,
                    trade_date=tax.date,
                    quantity=Decimal("0"),
                    gross_amount=tax.amount.copy_abs(),
                    currency=tax.currency,
                    broker=self.broker,
                    source=source,
                    description=tax.description,
                )
            )
        out.sort(key=lambda m: (m.trade_date, m.kind.value, m.security.describe()))
        return out

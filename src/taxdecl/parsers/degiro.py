from __future__ import annotations

import datetime as dt
import logging
import re
from decimal import Decimal
from typing import Iterable

from taxdecl.config import DEGIRO, BrokerInfo
from taxdecl.conv import (
    EN_NUMBERS,
    ES_NUMBERS,
    parse_dmy,
    to_dec,
    to_dec_strict,
    to_percent,
)
from taxdecl.errors import NoDataExtracted
from taxdecl.extract import RawRow
from taxdecl.extract.layouts import (
    DEGIRO_DIVIDENDS,
    DEGIRO_PORTFOLIO,
    DEGIRO_TRANSACTIONS,
)
from taxdecl.model import Movement, MovementKind, PositionSnapshot, SecurityRef
from taxdecl.model.instrument import (
    AssetClass,
    asset_class_from_name,
    classify_asset,
)
from taxdecl.money import quantize_money

from .base import HeaderMap, ParseOutcome

logger = logging.getLogger(__name__)

_CCY_AMOUNT_RE = re.compile(r"^\s*([A-Za-z]{3})\s+(.+)$")

_ORDER_KINDS = {"C": MovementKind.BUY, "V": MovementKind.SELL}


def split_currency_amount(s: str, default_ccy: str = "EUR") -> tuple[str, str]:
    """'USD 2541.00' -> ('USD', '2541.00'); bare amounts get `default_ccy`."""
    m = _CCY_AMOUNT_RE.match(s)
    if m:
        return m.group(1), m.group(2).strip()
    return default_ccy, s.strip()


def _security(
    name: str,
    isin: str,
    exchange: str = "",
    currency: str = "",
    country: str = "",
    asset_class: AssetClass | None = None,
) -> SecurityRef:
    name = " ".join(name.split())
    return SecurityRef(
        name=name,
        isin=isin.strip() or None,
        exchange=exchange.strip(),
        currency=currency.strip() or None,
        asset_class=asset_class or asset_class_from_name(name),
        country=country.strip().upper() or None,
    )


class DegiroReportParser:
    """Degiro annual report: transactions, holdings certificate and dividends.

    Numbers use Spanish formatting (1.234,56) and dates dd/mm/yyyy. The
    transactions table carries no currency; it is taken from the holdings of
    the same report.
    """

    def __init__(self, broker: BrokerInfo = DEGIRO) -> None:
        self.broker = broker

    def parse(
        self, rows: Iterable[RawRow], source: str, *, as_of: dt.date
    ) -> ParseOutcome:
        out = ParseOutcome(source=source, broker=self.broker)
        headers: dict[str, HeaderMap] = {}
        trades: list[tuple[RawRow, HeaderMap]] = []

        for row in rows:
            if row.kind == "header":
                headers[row.section] = HeaderMap(row.cells)
                continue
            hm = headers.get(row.section)
            if hm is None or row.kind != "data":
                continue
            if row.section == DEGIRO_TRANSACTIONS.section:
                trades.append((row, hm))
                continue
            try:
                if row.section == DEGIRO_PORTFOLIO.section:
                    out.snapshots.append(self._position(row, hm, source, as_of))
                elif row.section == DEGIRO_DIVIDENDS.section:
                    out.movements.append(self._dividend(row, hm, source))
            except (ValueError, KeyError) as e:
                self._skip(out, row, e)

        currencies = {
            s.security.isin: s.currency for s in out.snapshots if s.security.isin
        }
        for row, hm in trades:
            try:
                out.movements.append(self._transaction(row, hm, source, currencies))
            except (ValueError, KeyError) as e:
                self._skip(out, row, e)

        if out.record_count == 0:
            raise NoDataExtracted(f"{source}: no transactions, positions or dividends")
        logger.info(
            "%s: %d movements, %d positions, %d skipped rows",
            source,
            len(out.movements),
            len(out.snapshots),
            len(out.issues),
        )
        return out

    def _skip(self, out: ParseOutcome, row: RawRow, e: Exception) -> None:
        out.issues.add(
            "skipped_row",
            out.source,
            f"{row.section}: {e}",
            line_no=row.index,
            row=row.cells,
        )

    def _transaction(
        self, row: RawRow, hm: HeaderMap, source: str, currencies: dict[str, str]
    ) -> Movement:
        order = hm.get(row, "Tipo de orden").upper()
        kind = _ORDER_KINDS.get(order)
        if kind is None:
            raise ValueError(f"Unknown order type {order!r}")
        isin = hm.get(row, "Symbol/ISIN")
        qty = to_dec_strict(hm.get(row, "Cantidad"), ES_NUMBERS).copy_abs()
        price = to_dec_strict(hm.get(row, "Precio"), ES_NUMBERS)
        ccy, local = split_currency_amount(hm.get(row, "Valor local"), "")
        gross = to_dec_strict(local, ES_NUMBERS).copy_abs()
        value_eur = to_dec(hm.get(row, "Valor en EUR"), fmt=ES_NUMBERS).copy_abs()
        fee_eur = to_dec(hm.get(row, "Comisión"), fmt=ES_NUMBERS).copy_abs()
        # EUR per unit of the trade currency
        rate = to_dec(hm.get(row, "Tipo de cambio"), Decimal("1"), ES_NUMBERS)

        ccy = ccy or currencies.get(isin, "")
        if not ccy and rate == 1:
            ccy = "EUR"
        if not ccy:
            # Sold out during the year: only the EUR amounts are known.
            logger.debug("%s: no currency for %s, using EUR amounts", source, isin)
            ccy, gross, price = "EUR", value_eur, None
            rate = Decimal("1")

        # Commissions are charged in EUR; movement amounts stay in local currency.
        fees = fee_eur if ccy == "EUR" or rate == 0 else quantize_money(fee_eur / rate)
        return Movement(
            kind=kind,
            security=_security(hm.get(row, "Producto"), isin, currency=ccy),
            trade_date=parse_dmy(hm.get(row, "Fecha")),
            quantity=qty if kind is MovementKind.BUY else -qty,
            gross_amount=gross,
            currency=ccy,
            broker=self.broker,
            source=source,
            fees=fees,
            price=price,
            reported_gross=value_eur or None,
            reported_fees=fee_eur,
        )

    def _position(
        self, row: RawRow, hm: HeaderMap, source: str, as_of: dt.date
    ) -> PositionSnapshot:
        qty = to_dec_strict(hm.get(row, "Cantidad"), ES_NUMBERS)
        price = to_dec_strict(hm.get(row, "Precio"), ES_NUMBERS)
        ccy = hm.get(row, "Moneda") or "EUR"
        value_eur = hm.get(row, "Valor (EUR)")
        product_type = min(row.tags, default=None)
        return PositionSnapshot(
            security=_security(
                hm.get(row, "Producto"),
                hm.get(row, "ISIN"),
                exchange=hm.get(row, "Bolsa"),
                currency=ccy,
                asset_class=classify_asset(product_type) if product_type else None,
            ),
            quantity=qty,
            currency=ccy,
            price=price,
            fair_value=quantize_money(qty * price),
            as_of=as_of,
            broker=self.broker,
            source=source,
            exchange=hm.get(row, "Bolsa"),
            reported_value=(
                to_dec_strict(value_eur, ES_NUMBERS) if value_eur else None
            ),
        )

    def _dividend(self, row: RawRow, hm: HeaderMap, source: str) -> Movement:
        qty = to_dec_strict(hm.get(row, "Cantidad"), ES_NUMBERS)
        per_share = to_dec_strict(hm.get(row, "Dividendo"), ES_NUMBERS)
        withholding = hm.get(row, "Retención")
        pct = to_percent(withholding, ES_NUMBERS) if withholding else Decimal("0")
        gross = quantize_money(qty * per_share)
        return Movement(
            kind=MovementKind.DIVIDEND,
            security=_security(
                hm.get(row, "Producto"),
                hm.get(row, "Symbol/ISIN"),
                country=hm.get(row, "País"),
            ),
            trade_date=parse_dmy(hm.get(row, "Fecha")),
            quantity=qty,
            gross_amount=gross,
            currency=hm.get(row, "Divisa") or "EUR",
            broker=self.broker,
            source=source,
            fees=quantize_money(gross * pct),
            price=per_share,
        )


class DegiroPortfolioCsvParser:
    """Degiro portfolio export: one holding per row, no date.

    Producto,Symbol/ISIN,Cantidad,Precio de,Valor local,Valor en EUR
    ANGI HOMESERVICES INC- A,US00183L1026,300,"8,47",USD 2541.00,"2266,32"
    """

    def __init__(self, broker: BrokerInfo = DEGIRO) -> None:
        self.broker = broker

    def parse(
        self, rows: Iterable[RawRow], source: str, *, as_of: dt.date
    ) -> ParseOutcome:
        out = ParseOutcome(source=source, broker=self.broker)
        hm: HeaderMap | None = None
        for row in rows:
            if row.kind == "header":
                hm = HeaderMap(row.cells)
                continue
            if hm is None:
                continue
            # Cash lines carry no ISIN
            if not hm.get(row, "Symbol/ISIN"):
                logger.debug("%s:%d: no ISIN, skipped %s", source, row.index, row.cells)
                continue
            try:
                out.snapshots.append(self._position(row, hm, source, as_of))
            except (ValueError, KeyError) as e:
                out.issues.add(
                    "skipped_row", source, str(e), line_no=row.index, row=row.cells
                )

        if out.record_count == 0:
            raise NoDataExtracted(f"{source}: no positions in portfolio export")
        return out

    def _position(
        self, row: RawRow, hm: HeaderMap, source: str, as_of: dt.date
    ) -> PositionSnapshot:
        qty = to_dec_strict(hm.get(row, "Cantidad"), ES_NUMBERS)
        price = to_dec_strict(hm.get(row, "Precio de"), ES_NUMBERS)
        ccy, local = split_currency_amount(hm.get(row, "Valor local"))
        # Local value uses a decimal point even in the Spanish export.
        local_value = to_dec_strict(local, EN_NUMBERS) if local else qty * price
        value_eur = hm.get(row, "Valor en EUR")
        return PositionSnapshot(
            security=_security(
                hm.get(row, "Producto"), hm.get(row, "Symbol/ISIN"), currency=ccy
            ),
            quantity=qty,
            currency=ccy,
            price=price,
            fair_value=quantize_money(local_value),
            as_of=as_of,
            broker=self.broker,
            source=source,
            reported_value=(
                to_dec_strict(value_eur, ES_NUMBERS) if value_eur else None
            ),
        )

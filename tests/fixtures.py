"""Builders for records the parsers normally produce.

Tests that exercise assembly, rules and form generation need movements,
snapshots and parse outcomes without going through a broker document.
"""

from __future__ import annotations

import datetime as dt
import re
from decimal import Decimal
from typing import Sequence

from taxdecl.config import DEGIRO, INTERACTIVE_BROKERS, BrokerInfo, PipelineConfig
from taxdecl.model import Movement, MovementKind, PositionSnapshot, SecurityRef
from taxdecl.parsers import ParseOutcome

MONDO = SecurityRef(name="MONDO TV", isin="IT0001447785", currency="EUR")
AAPL = SecurityRef(name="APPLE INC", isin="US0378331005", ticker="AAPL")
JD = SecurityRef(name="JD.COM INC-ADR", isin="US47215P1066")
BURFORD = SecurityRef(name="BURFORD CAPITAL LTD", isin="GG00B4L84979")
FACEBOOK = SecurityRef(name="FACEBOOK INC-CLASS A", isin="US30303M1027")

PORTFOLIO_CSV = """Producto,Symbol/ISIN,Cantidad,Precio de,Valor local,Valor en EUR
CASH & CASH FUND & FTX CASH (EUR),,,,EUR 564.19,"564,19"
BURFORD CAP LD,GG00B4L84979,463,"712,00",GBX 329656.00,"3898,18"
JD.COM INC. - AMERICA,US47215P1066,140,"35,23",USD 4932.20,"4399,03"
MONDO TV,IT0001447785,1105,"2,39",EUR 2640.95,"2640,95"
"""

# Without EUR values every holding needs an exchange rate.
LARGE_PORTFOLIO_CSV = """Producto,Symbol/ISIN,Cantidad,Precio de,Valor local
JD.COM INC. - AMERICA,US47215P1066,2000,"35,23",USD 70460.00
MONDO TV,IT0001447785,1105,"2,39",EUR 2640.95
"""


def config(year: int = 2023, **kwargs) -> PipelineConfig:
    return PipelineConfig(fiscal_year=year, **kwargs)


def trade(
    security: SecurityRef,
    date: dt.date,
    qty: str,
    gross: str,
    currency: str = "EUR",
    broker: BrokerInfo = DEGIRO,
    source: str = "degiro.pdf",
    **kwargs,
) -> Movement:
    q = Decimal(qty)
    return Movement(
        kind=MovementKind.BUY if q > 0 else MovementKind.SELL,
        security=security,
        trade_date=date,
        quantity=q,
        gross_amount=Decimal(gross),
        currency=currency,
        broker=broker,
        source=source,
        **kwargs,
    )


def snapshot(
    security: SecurityRef,
    as_of: dt.date,
    qty: str,
    price: str,
    currency: str = "EUR",
    broker: BrokerInfo = DEGIRO,
    source: str = "degiro.pdf",
    reported_value: str | None = None,
) -> PositionSnapshot:
    q, p = Decimal(qty), Decimal(price)
    return PositionSnapshot(
        security=security,
        quantity=q,
        currency=currency,
        price=p,
        fair_value=q * p,
        as_of=as_of,
        broker=broker,
        source=source,
        reported_value=Decimal(reported_value) if reported_value else None,
    )


def outcome(
    source: str,
    *records,
    broker: BrokerInfo = DEGIRO,
    error=None,
) -> ParseOutcome:
    out = ParseOutcome(source=source, broker=broker, error=error)
    for r in records:
        if isinstance(r, Movement):
            out.movements.append(r)
        else:
            out.snapshots.append(r)
    return out


# Degiro annual report 2018 as pdfplumber prints it in layout mode.

HOLDING_WIDTHS = (24, 14, 7, 10, 8, 12, 12)
TRADE_WIDTHS = (12, 24, 14, 9, 10, 12, 13, 14, 10, 9, 13)


def layout_line(widths: Sequence[int], values: Sequence[str]) -> str:
    return "".join(f"{v:<{w}}" for v, w in zip(values, widths)).rstrip()


HOLDINGS_2018 = """\
BURFORD CAP LD|GG00B4L84979|LSE|122|GBX|1.656,0000|2.247,00
FACEBOOK INC. - CLASS|US30303M1027|NDQ|21|USD|131,0900|2.401,07
JD.COM INC. - AMERICA|US47215P1066|NDQ|140|USD|20,9300|2.555,72
MONDO TV|IT0001447785|MIL|1105|EUR|1,1940|1.319,37
TAPTICA INT LTD|IL0011320343|LSE|565|GBX|160,0000|1.005,43
XPO LOGISTICS INC.|US9837931008|NSY|41|USD|57,0400|2.039,76
"""

TRADES_2018 = """\
31/10/2018|BURFORD CAP LD|GG00B4L84979|C|122|1.616,0000|197.152,00|2.247,93|5,28|0,0114
22/10/2018|FACEBOOK INC. - CLASS|US30303M1027|C|21|154,7600|3.249,96|2.834,62|0,57|0,8722
22/10/2018|JD.COM INC. - AMERICA|US47215P1066|C|140|23,8900|3.344,60|2.917,16|0,99|0,8722
23/11/2018|MONDO TV|IT0001447785|C|877|1,9000|1.666,30|1.666,30|4,97|1,0000
23/11/2018|MONDO TV|IT0001447785|C|228|1,9000|433,20|433,20|0,25|1,0000
03/12/2018|TAPTICA INT LTD|IL0011320343|C|565|310,0000|175.150,00|1.962,91|5,15|0,0112
31/12/2018|XPO LOGISTICS INC.|US9837931008|C|41|56,6000|2.320,60|2.024,03|0,64|0,8722
"""

DEGIRO_REPORT_2018 = [
    "Certificado de Beneficiario Último Económico",
    "Extracto de posiciones a fecha: 31/12/2018.",
    "Beneficios y pérdidas derivados de la transmisión de elementos patrimoniales",
    "Informe Anual 2018 -  www.degiro.es",
    "1 / 3",
    "Certificado de Beneficiario Último Económico.",
    "Cliente:              Sr. John Doe",
    "Fecha del extracto:   31/12/2018",
    layout_line(
        HOLDING_WIDTHS,
        ("Producto", "ISIN", "Bolsa", "Cantidad", "Moneda", "Precio", "Valor (EUR)"),
    ),
    "CASH & CASH FUND (EUR)",
]
for _holding in HOLDINGS_2018.splitlines():
    DEGIRO_REPORT_2018 += [layout_line(HOLDING_WIDTHS, _holding.split("|")), "Stock"]
DEGIRO_REPORT_2018 += [
    "Amsterdam, 28/01/2019",
    "Este certificado está expedido en la fecha y hora exacta indicadas.",
    "Beneficios y pérdidas derivadas de la transmisión de elementos patrimoniales",
    'Por favor, tenga en cuenta que el resultado de "Beneficios y pérdidas" '
    "no incluye las comisiones de compra/venta.",
    layout_line(
        TRADE_WIDTHS,
        (
            "Fecha",
            "Producto",
            "Symbol/ISIN",
            "Tipo de",
            "Cantidad",
            "Precio",
            "Valor local",
            "Valor en EUR",
            "Comisión",
            "Tipo de",
            "Beneficios y",
        ),
    ),
    layout_line(
        TRADE_WIDTHS,
        ("", "", "", "orden", "", "", "", "", "", "cambio", "pérdidas"),
    ),
]
DEGIRO_REPORT_2018 += [
    layout_line(TRADE_WIDTHS, t.split("|")) for t in TRADES_2018.splitlines()
]


# pdfplumber places text at one character per 7.25pt in layout mode.
_PDF_CHAR_WIDTH = 7.25
_CHUNK_RE = re.compile(r"\S+(?: \S+)*")


def _pdf_string(text: str) -> bytes:
    raw = text.encode("cp1252")
    for c in (b"\\", b"(", b")"):
        raw = raw.replace(c, b"\\" + c)
    return b"(" + raw + b")"


def text_pdf(lines: Sequence[str]) -> bytes:
    """Single-page PDF printing every chunk of `lines` at its character column."""
    ops = [b"BT", b"/F1 7 Tf"]
    for n, line in enumerate(lines):
        y = 800 - 14 * n
        for m in _CHUNK_RE.finditer(line):
            x = m.start() * _PDF_CHAR_WIDTH
            ops.append(b"1 0 0 1 %.2f %d Tm %s Tj" % (x, y, _pdf_string(m.group(0))))
    ops.append(b"ET")
    stream = b"\n".join(ops)
    objects = [
        b"<< /Type /Catalog /Pages 2 0 R >>",
        b"<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 1400 850] /Contents 4 0 R"
        b" /Resources << /Font << /F1 5 0 R >> >> >>",
        b"<< /Length %d >>\nstream\n%s\nendstream" % (len(stream), stream),
        b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica"
        b" /Encoding /WinAnsiEncoding >>",
    ]
    out = bytearray(b"%PDF-1.4\n")
    offsets = []
    for i, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += b"%d 0 obj\n%s\nendobj\n" % (i, body)
    xref = len(out)
    out += b"xref\n0 %d\n0000000000 65535 f \n" % (len(objects) + 1)
    for offset in offsets:
        out += b"%010d 00000 n \n" % offset
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (
        len(objects) + 1,
        xref,
    )
    return bytes(out)


__all__ = [
    "AAPL",
    "BURFORD",
    "DEGIRO",
    "DEGIRO_REPORT_2018",
    "FACEBOOK",
    "HOLDING_WIDTHS",
    "INTERACTIVE_BROKERS",
    "JD",
    "LARGE_PORTFOLIO_CSV",
    "MONDO",
    "PORTFOLIO_CSV",
    "TRADE_WIDTHS",
    "config",
    "layout_line",
    "outcome",
    "snapshot",
    "text_pdf",
    "trade",
]

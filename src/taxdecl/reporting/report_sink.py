from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Protocol

from openpyxl import Workbook
from openpyxl.utils import get_column_letter

from taxdecl.model import Conversion
from taxdecl.pipeline import RunResult
from taxdecl.rules import FormKind

logger = logging.getLogger(__name__)


class ReviewSink(Protocol):
    def write(self, result: RunResult) -> Path:  # returns written file path
        ...


def _num(v: Decimal | None) -> float | None:
    return None if v is None else float(v)


def _conv(c: Conversion | None) -> float | str | None:
    if c is None:
        return None
    if c.error is not None:
        return str(c.error)
    return _num(c.amount)


@dataclass
class ExcelReviewSink:
    """Workbook the declarant checks before filing."""

    out_path: Path
    locale: str = "ES"  # "ES" (default) or "EN"

    def _labels(self):
        loc = (self.locale or "ES").upper()
        if loc == "EN":
            return {
                "sheet": {
                    "positions": "Positions",
                    "movements": "Movements",
                    "720": "Model 720",
                    "d6": "D-6",
                    "issues": "Issues",
                },
                "positions": [
                    "As of",
                    "Broker",
                    "Source",
                    "ISIN",
                    "Name",
                    "Verified",
                    "Quantity",
                    "Currency",
                    "Price",
                    "Value (Currency)",
                    "Value (EUR)",
                ],
                "movements": [
                    "Date",
                    "Kind",
                    "Broker",
                    "Source",
                    "ISIN",
                    "Name",
                    "Quantity",
                    "Currency",
                    "Gross (Currency)",
                    "Fees (Currency)",
                    "Gross (EUR)",
                    "Fees (EUR)",
                    "Description",
                ],
                "lines": [
                    "Category",
                    "ISIN",
                    "Description",
                    "Broker",
                    "Quantity",
                    "Currency",
                    "Valuation",
                    "First Acquisition",
                    "Marker",
                    "Verified",
                ],
                "issues": ["Kind", "Source", "Line", "Message", "Row"],
                "total": "Total",
                "not_due": "No declaration required",
                "failed": "Not produced: {error}",
            }
        # Default: Spanish
        return {
            "sheet": {
                "positions": "Posiciones",
                "movements": "Movimientos",
                "720": "Modelo 720",
                "d6": "D-6",
                "issues": "Incidencias",
            },
            "positions": [
                "Fecha",
                "Bróker",
                "Origen",
                "ISIN",
                "Nombre",
                "Verificado",
                "Cantidad",
                "Divisa",
                "Precio",
                "Valor (Divisa)",
                "Valor (EUR)",
            ],
            "movements": [
                "Fecha",
                "Tipo",
                "Bróker",
                "Origen",
                "ISIN",
                "Nombre",
                "Cantidad",
                "Divisa",
                "Bruto (Divisa)",
                "Comisiones (Divisa)",
                "Bruto (EUR)",
                "Comisiones (EUR)",
                "Descripción",
            ],
            "lines": [
                "Clave",
                "ISIN",
                "Denominación",
                "Bróker",
                "Cantidad",
                "Divisa",
                "Valoración",
                "Primera adquisición",
                "Origen del bien",
                "Verificado",
            ],
            "issues": ["Tipo", "Origen", "Línea", "Mensaje", "Fila"],
            "total": "Total",
            "not_due": "No es obligatorio declarar",
            "failed": "No generado: {error}",
        }

    def write(self, result: RunResult) -> Path:
        out_path = Path(self.out_path)
        wb = Workbook()

        # Remove the default sheet
        wb.remove(wb.active)

        labels = self._labels()
        date_fmt = "DD/MM/YYYY" if self.locale.upper() == "ES" else "YYYY-MM-DD"
        qty_fmt = "0.########"
        money_fmt = "#,##0.00"
        ledger = result.ledger

        # Positions
        ws = wb.create_sheet(title=labels["sheet"]["positions"])
        ws.append(labels["positions"])
        for s in ledger.snapshots:
            inst = s.instrument
            ws.append(
                [
                    s.as_of,
                    s.broker.name,
                    s.source,
                    inst.isin if inst else s.security.isin,
                    inst.name if inst else s.security.name,
                    bool(inst and inst.verified),
                    _num(s.quantity),
                    s.currency,
                    _num(s.price),
                    _num(s.fair_value),
                    _conv(s.reporting_value),
                ]
            )
            r = ws.max_row
            ws.cell(row=r, column=1).number_format = date_fmt
            ws.cell(row=r, column=7).number_format = qty_fmt
            for c in (9, 10, 11):
                ws.cell(row=r, column=c).number_format = money_fmt

        # Movements
        ws = wb.create_sheet(title=labels["sheet"]["movements"])
        ws.append(labels["movements"])
        for m in ledger.movements:
            inst = m.instrument
            ref = m.security
            ws.append(
                [
                    m.trade_date,
                    m.kind.value,
                    m.broker.name,
                    m.source,
                    inst.isin if inst else (ref.isin if ref else None),
                    inst.name if inst else (ref.name if ref else ""),
                    _num(m.quantity),
                    m.currency,
                    _num(m.gross_amount),
                    _num(m.fees),
                    _conv(m.reporting_gross),
                    _conv(m.reporting_fees),
                    m.description,
                ]
            )
            r = ws.max_row
            ws.cell(row=r, column=1).number_format = date_fmt
            ws.cell(row=r, column=7).number_format = qty_fmt
            for c in (9, 10, 11, 12):
                ws.cell(row=r, column=c).number_format = money_fmt

        # Declaration lines, one sheet per form
        for form in (FormKind.AEAT_720, FormKind.D6):
            ws = wb.create_sheet(title=labels["sheet"][form.value])
            error = result.errors.get(form)
            if error is not None:
                ws.append([labels["failed"].format(error=error)])
                continue
            rules = result.rules.get(form)
            if rules is None:
                continue
            ws.append(labels["lines"])
            for line in rules.lines:
                ws.append(
                    [
                        line.category,
                        line.isin,
                        line.descriptor,
                        line.broker.name,
                        _num(line.quantity),
                        line.currency,
                        _num(line.valuation),
                        line.first_acquisition,
                        line.acquisition_marker if form is FormKind.AEAT_720 else "",
                        line.verified,
                    ]
                )
                r = ws.max_row
                ws.cell(row=r, column=5).number_format = qty_fmt
                ws.cell(row=r, column=7).number_format = money_fmt
                ws.cell(row=r, column=8).number_format = date_fmt
            if rules.lines:
                ws.append([labels["total"], None, None, None, None, None])
                ws.cell(row=ws.max_row, column=7, value=_num(rules.total))
                ws.cell(row=ws.max_row, column=7).number_format = money_fmt
            else:
                ws.append([labels["not_due"]])

        # Issues
        ws = wb.create_sheet(title=labels["sheet"]["issues"])
        ws.append(labels["issues"])
        for i in result.issues:
            ws.append(
                [
                    i.kind,
                    i.source,
                    i.line_no,
                    i.message,
                    " | ".join(i.row_preview) if i.row_preview else None,
                ]
            )

        def autosize(sheet, max_width: int = 60, min_width: int = 10) -> None:
            for col in range(1, sheet.max_column + 1):
                max_len = 0
                for row in range(1, sheet.max_row + 1):
                    v = sheet.cell(row=row, column=col).value
                    if v is None:
                        continue
                    s = v.strftime("%d/%m/%Y") if hasattr(v, "strftime") else str(v)
                    max_len = max(max_len, len(s))
                width = min(max_width, max(min_width, max_len + 2))
                sheet.column_dimensions[get_column_letter(col)].width = width

        for _ws in wb.worksheets:
            autosize(_ws)

        out_path.parent.mkdir(parents=True, exist_ok=True)
        wb.save(out_path)
        logger.info("Wrote review workbook to %s", out_path)
        return out_path

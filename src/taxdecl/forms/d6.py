"""D-6 form as the XML document accepted by the Aforix filing program."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Sequence
from xml.sax.saxutils import escape

from taxdecl.config import Declarant
from taxdecl.errors import FieldOverflow
from taxdecl.money import quantize_money
from taxdecl.rules import DeclarationLine, FormKind

logger = logging.getLogger(__name__)

FORM_TYPE = "D-6"
FORM_VERSION = "R10"
FIRST_PAGE_CODE = 0x2DB
NEXT_PAGE_CODE = 0x320
LINES_FIRST_PAGE = 3
LINES_PER_PAGE = 6
MAX_DESCRIPTOR = 40
MAX_NUMBER_DIGITS = 15
NEWLINE = "\r\n"
INDENT = "  "


def format_number(value: Decimal) -> str:
    """Plain decimal with a comma separator and no exponent ('2020,32', '122')."""
    return format(value, "f").replace(".", ",")


class _Writer:
    def __init__(self) -> None:
        self.lines: list[str] = ['<?xml version="1.0" encoding="utf-8"?>']
        self.depth = 0
        self.code = FIRST_PAGE_CODE

    def open(self, tag: str) -> None:
        self.lines.append(f"{INDENT * self.depth}<{tag}>")
        self.depth += 1

    def close(self, tag: str) -> None:
        self.depth -= 1
        self.lines.append(f"{INDENT * self.depth}</{tag}>")

    def text(self, tag: str, value: str) -> None:
        self.lines.append(f"{INDENT * self.depth}<{tag}>{escape(value)}</{tag}>")

    def field(self, value: str) -> None:
        self.open("Campo")
        self.text("Codigo", f"{self.code:X}")
        self.text("Datos", value)
        self.close("Campo")
        self.code += 1

    def skip(self, n: int) -> None:
        self.code += n

    def render(self) -> bytes:
        return NEWLINE.join(self.lines).encode("utf-8")


class D6Generator:
    def __init__(self, declarant: Declarant) -> None:
        self.declarant = declarant

    def generate(self, lines: Sequence[DeclarationLine]) -> bytes:
        """Pages D61 (first 3 positions) and D62 (6 more each), in the given order.

        Raises FieldOverflow for a descriptor over 40 characters or a number
        with more than 15 integer digits.
        """
        if not lines:
            raise ValueError("D-6 needs at least one declaration line")
        years = {line.fiscal_year for line in lines}
        if len(years) != 1:
            raise ValueError(f"Lines span several fiscal years: {sorted(years)}")
        year = years.pop()
        for line in lines:
            self._check(line)

        w = _Writer()
        w.open("Formulario")
        w.text("Tipo", FORM_TYPE)
        w.text("Version", FORM_VERSION)

        self._page(w, year, lines[:LINES_FIRST_PAGE], first=True)
        rest = lines[LINES_FIRST_PAGE:]
        for i in range(0, len(rest), LINES_PER_PAGE):
            self._page(w, year, rest[i : i + LINES_PER_PAGE], first=False)

        w.close("Formulario")
        logger.debug("D-6: %d positions", len(lines))
        return w.render()

    def _check(self, line: DeclarationLine) -> None:
        if line.form is not FormKind.D6:
            raise ValueError(f"Not a D-6 line: {line.form}")
        if len(line.descriptor) > MAX_DESCRIPTOR:
            raise FieldOverflow(
                "descriptor", line.descriptor, f"longer than {MAX_DESCRIPTOR}"
            )
        for name, value in (("quantity", line.quantity), ("valuation", line.valuation)):
            digits = len(str(int(value.copy_abs())))
            if digits > MAX_NUMBER_DIGITS:
                raise FieldOverflow(
                    name, value, f"more than {MAX_NUMBER_DIGITS} integer digits"
                )

    def _page(
        self, w: _Writer, year: int, lines: Sequence[DeclarationLine], *, first: bool
    ) -> None:
        if not first:
            w.code = NEXT_PAGE_CODE
        w.open("Pagina")
        w.text("Tipo", "D61" if first else "D62")
        w.open("Campos")
        w.field("D")
        w.field(str(year))
        if first:
            w.skip(2)
            w.field(self.declarant.full_name)
            w.field(self.declarant.nif)
            w.skip(7)
        else:
            w.field(self.declarant.full_name)
            w.field(self.declarant.nif)
            w.skip(2)
        for line in lines:
            self._position(w, line)
        w.close("Campos")
        w.close("Pagina")

    def _position(self, w: _Writer, line: DeclarationLine) -> None:
        w.field("N")
        w.field(line.isin)
        w.field(line.descriptor)
        w.field(line.category)
        w.field("01")
        w.field(line.broker.country_code)
        w.field(line.currency)
        w.field(format_number(line.quantity))
        w.skip(1)
        w.field(format_number(quantize_money(line.valuation)))
        w.skip(2)

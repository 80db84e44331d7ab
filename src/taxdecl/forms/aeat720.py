"""Model 720 submission file.

One summary register (type 1) followed by one detail register (type 2) per
declared asset. Every register is 500 bytes of ISO-8859-15 text followed by a
newline. Positions below are 1-based and inclusive, as in the AEAT layout.
"""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import Literal, Sequence

from taxdecl.config import Declarant
from taxdecl.errors import FieldOverflow
from taxdecl.money import quantize_money
from taxdecl.rules import DeclarationLine, FormKind

logger = logging.getLogger(__name__)

REGISTER_SIZE = 500
ENCODING = "iso8859_15"
MODEL = 720
NEGATIVE = "N"


@dataclass(frozen=True)
class Field:
    name: str
    start: int
    end: int
    kind: Literal["numeric", "alpha"] = "alpha"

    @property
    def size(self) -> int:
        return self.end - self.start + 1


class Summary:
    REGISTER_TYPE = Field("register_type", 1, 1, "numeric")
    MODEL = Field("model", 2, 4, "numeric")
    YEAR = Field("year", 5, 8, "numeric")
    NIF = Field("nif", 9, 17)
    NAME = Field("name", 18, 57)
    TRANSMISSION = Field("transmission", 58, 58)
    PHONE = Field("phone", 59, 67, "numeric")
    CONTACT = Field("contact", 68, 107)
    DOCUMENT_ID = Field("document_id", 108, 110, "numeric")
    ID = Field("id", 111, 120, "numeric")
    COMPLEMENTARY = Field("complementary", 121, 121)
    REPLACEMENT = Field("replacement", 122, 122)
    PREVIOUS_ID = Field("previous_id", 123, 135, "numeric")
    TOTAL_DETAILS = Field("total_details", 136, 144, "numeric")
    VALUATION1_SIGN = Field("valuation1_sign", 145, 145)
    VALUATION1_INT = Field("valuation1_int", 146, 160, "numeric")
    VALUATION1_FRAC = Field("valuation1_frac", 161, 162, "numeric")
    VALUATION2_SIGN = Field("valuation2_sign", 163, 163)
    VALUATION2_INT = Field("valuation2_int", 164, 178, "numeric")
    VALUATION2_FRAC = Field("valuation2_frac", 179, 180, "numeric")


class Detail:
    REGISTER_TYPE = Field("register_type", 1, 1, "numeric")
    MODEL = Field("model", 2, 4, "numeric")
    YEAR = Field("year", 5, 8, "numeric")
    NIF = Field("nif", 9, 17)
    DECLARED_NIF = Field("declared_nif", 18, 26)
    PROXY_NIF = Field("proxy_nif", 27, 35)
    NAME = Field("name", 36, 75)
    DECLARATION_TYPE = Field("declaration_type", 76, 76, "numeric")
    OWNERSHIP_TYPE = Field("ownership_type", 77, 101)
    ASSET_TYPE = Field("asset_type", 102, 102)
    ASSET_SUBTYPE = Field("asset_subtype", 103, 103, "numeric")
    REAL_ESTATE_TYPE = Field("real_estate_type", 104, 128)
    COUNTRY = Field("country", 129, 130)
    STOCK_ID_TYPE = Field("stock_id_type", 131, 131, "numeric")
    STOCK_ID = Field("stock_id", 132, 143)
    ACCOUNT_ID_TYPE = Field("account_id_type", 144, 144)
    ACCOUNT_ID = Field("account_id", 145, 155)
    ACCOUNT_CODE = Field("account_code", 156, 189)
    ENTITY_NAME = Field("entity_name", 190, 230)
    ENTITY_NIF = Field("entity_nif", 231, 250)
    ENTITY_ADDRESS = Field("entity_address", 251, 412)
    ENTITY_COUNTRY = Field("entity_country", 413, 414)
    FIRST_ACQUISITION = Field("first_acquisition", 415, 422, "numeric")
    ACQUISITION_TYPE = Field("acquisition_type", 423, 423)
    EXTINCTION_DATE = Field("extinction_date", 424, 431, "numeric")
    VALUATION1_SIGN = Field("valuation1_sign", 432, 432)
    VALUATION1_INT = Field("valuation1_int", 433, 444, "numeric")
    VALUATION1_FRAC = Field("valuation1_frac", 445, 446, "numeric")
    VALUATION2_SIGN = Field("valuation2_sign", 447, 447)
    VALUATION2_INT = Field("valuation2_int", 448, 459, "numeric")
    VALUATION2_FRAC = Field("valuation2_frac", 460, 461, "numeric")
    REPRESENTATION = Field("representation", 462, 462)
    QUANTITY_INT = Field("quantity_int", 463, 472, "numeric")
    QUANTITY_FRAC = Field("quantity_frac", 473, 474, "numeric")
    REAL_ESTATE_REPRESENTATION = Field("real_estate_representation", 475, 475)
    OWNERSHIP_INT = Field("ownership_int", 476, 478, "numeric")
    OWNERSHIP_FRAC = Field("ownership_frac", 479, 480, "numeric")


class Register:
    """500 blank bytes written field by field."""

    def __init__(self) -> None:
        self.buf = bytearray(b" " * REGISTER_SIZE)

    def put(self, field: Field, value: str | int) -> None:
        if field.kind == "numeric":
            data = self._numeric(field, value)
        else:
            data = self._alpha(field, str(value))
        self.buf[field.start - 1 : field.end] = data

    @staticmethod
    def _numeric(field: Field, value: str | int) -> bytes:
        text = str(value).strip()
        if isinstance(value, int) and value < 0:
            raise FieldOverflow(field.name, value, "negative number")
        if not text.isdigit():
            raise FieldOverflow(field.name, value, "not a number")
        if len(text) > field.size:
            raise FieldOverflow(field.name, value, f"longer than {field.size} digits")
        return text.zfill(field.size).encode("ascii")

    @staticmethod
    def _alpha(field: Field, value: str) -> bytes:
        try:
            data = value.encode(ENCODING)
        except UnicodeEncodeError as e:
            raise FieldOverflow(
                field.name, value, "not representable in ISO-8859-15"
            ) from e
        if len(data) > field.size:
            raise FieldOverflow(field.name, value, f"longer than {field.size} bytes")
        return data.ljust(field.size, b" ")

    def put_amount(
        self, sign: Field, integer: Field, fraction: Field, amount: Decimal
    ) -> None:
        q = quantize_money(amount)
        if q < 0:
            self.put(sign, NEGATIVE)
        whole = int(q.copy_abs())
        cents = int((q.copy_abs() - whole) * 100)
        self.put(integer, whole)
        self.put(fraction, cents)

    def to_bytes(self) -> bytes:
        return bytes(self.buf)


def _yyyymmdd(d: dt.date) -> str:
    return d.strftime("%Y%m%d")


def _split_quantity(q: Decimal) -> tuple[int, int]:
    """Integer part and the first two decimals, truncated."""
    q = q.copy_abs()
    whole = int(q)
    frac = (q - whole).quantize(Decimal("0.01"), rounding=ROUND_DOWN)
    return whole, int(frac * 100)


class Aeat720Generator:
    def __init__(self, declarant: Declarant, *, declaration_id: int = 1) -> None:
        self.declarant = declarant
        self.declaration_id = declaration_id

    def generate(self, lines: Sequence[DeclarationLine]) -> bytes:
        """Summary plus one detail register per line, in the given order.

        Raises FieldOverflow when any value does not fit its field.
        """
        if not lines:
            raise ValueError("Model 720 needs at least one declaration line")
        years = {line.fiscal_year for line in lines}
        if len(years) != 1:
            raise ValueError(f"Lines span several fiscal years: {sorted(years)}")
        year = years.pop()

        registers = [self.summary(lines, year)]
        registers.extend(self.detail(line, year) for line in lines)
        logger.debug("720: %d detail registers", len(lines))
        return b"".join(r.to_bytes() + b"\n" for r in registers)

    def summary(self, lines: Sequence[DeclarationLine], year: int) -> Register:
        d = self.declarant
        r = Register()
        r.put(Summary.REGISTER_TYPE, 1)
        r.put(Summary.MODEL, MODEL)
        r.put(Summary.YEAR, year)
        r.put(Summary.NIF, d.nif.upper())
        r.put(Summary.NAME, d.full_name.upper())
        r.put(Summary.TRANSMISSION, "T")
        r.put(Summary.PHONE, d.phone.replace(" ", "") or 0)
        r.put(Summary.CONTACT, d.full_name.upper())
        r.put(Summary.DOCUMENT_ID, MODEL)
        r.put(Summary.ID, self.declaration_id)
        r.put(Summary.PREVIOUS_ID, 0)
        r.put(Summary.TOTAL_DETAILS, len(lines))
        total = sum((line.valuation for line in lines), Decimal("0"))
        r.put_amount(
            Summary.VALUATION1_SIGN,
            Summary.VALUATION1_INT,
            Summary.VALUATION1_FRAC,
            total,
        )
        r.put_amount(
            Summary.VALUATION2_SIGN,
            Summary.VALUATION2_INT,
            Summary.VALUATION2_FRAC,
            Decimal("0"),
        )
        return r

    def detail(self, line: DeclarationLine, year: int) -> Register:
        if line.form is not FormKind.AEAT_720:
            raise ValueError(f"Not a model 720 line: {line.form}")
        d = self.declarant
        r = Register()
        r.put(Detail.REGISTER_TYPE, 2)
        r.put(Detail.MODEL, MODEL)
        r.put(Detail.YEAR, year)
        r.put(Detail.NIF, d.nif.upper())
        r.put(Detail.DECLARED_NIF, d.nif.upper())
        r.put(Detail.NAME, d.full_name.upper())
        r.put(Detail.DECLARATION_TYPE, 1)
        # Category "V1" -> asset type V, subtype 1
        r.put(Detail.ASSET_TYPE, line.category[0])
        r.put(Detail.ASSET_SUBTYPE, line.category[1:])
        r.put(Detail.COUNTRY, line.broker.country_code)
        r.put(Detail.STOCK_ID_TYPE, 1)
        r.put(Detail.STOCK_ID, line.isin)
        r.put(Detail.ENTITY_NAME, line.descriptor.upper())
        r.put(Detail.ENTITY_COUNTRY, line.isin[:2] or line.issuer_country)
        acquired = line.first_acquisition or dt.date(year, 1, 1)
        r.put(Detail.FIRST_ACQUISITION, _yyyymmdd(acquired))
        r.put(Detail.ACQUISITION_TYPE, line.acquisition_marker)
        r.put(Detail.EXTINCTION_DATE, 0)
        r.put_amount(
            Detail.VALUATION1_SIGN,
            Detail.VALUATION1_INT,
            Detail.VALUATION1_FRAC,
            line.valuation,
        )
        r.put_amount(
            Detail.VALUATION2_SIGN,
            Detail.VALUATION2_INT,
            Detail.VALUATION2_FRAC,
            Decimal("0"),
        )
        r.put(Detail.REPRESENTATION, "A")
        q_int, q_frac = _split_quantity(line.quantity)
        r.put(Detail.QUANTITY_INT, q_int)
        r.put(Detail.QUANTITY_FRAC, q_frac)
        o_int, o_frac = _split_quantity(line.ownership_pct)
        r.put(Detail.OWNERSHIP_INT, o_int)
        r.put(Detail.OWNERSHIP_FRAC, o_frac)
        return r

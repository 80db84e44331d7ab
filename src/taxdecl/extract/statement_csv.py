from __future__ import annotations

import csv
import io
import logging
from typing import Iterable, Iterator, Sequence

from taxdecl.errors import FormatNotRecognized

from .rows import RawRow, RowKind

logger = logging.getLogger(__name__)

_KINDS: dict[str, RowKind] = {
    "Header": "header",
    "Data": "data",
    "Total": "total",
    "SubTotal": "subtotal",
}


def iter_statement_rows(rows: Iterable[Sequence[str]]) -> Iterator[RawRow]:
    """Map raw activity-statement CSV rows to RawRows.

    CSV shape:
        row[0] = section name (e.g., "Trades", "Dividends", ...)
        row[1] = kind ("Header" | "Data" | "Total" | "SubTotal" | other)
        row[2:] = header fields (kind=Header) or values

    Raises FormatNotRecognized once exhausted if no Header row was seen.
    """
    headers = 0
    line_no = 0
    for row in rows:
        line_no += 1
        if not row or len(row) < 2:
            logger.debug("line %d: blank-ish row (< 2 cells); skipped", line_no)
            continue

        # Strip BOM on first cell if present
        section = (row[0] or "").lstrip("\ufeff").strip()
        kind = _KINDS.get((row[1] or "").strip())
        if kind is None:
            logger.debug("line %d: unknown kind %r; skipped", line_no, row[1])
            continue
        if kind == "header":
            headers += 1

        yield RawRow(
            index=line_no,
            cells=tuple(c.strip() for c in row[2:]),
            section=section,
            kind=kind,
        )

    if headers == 0:
        raise FormatNotRecognized("No statement section header found in CSV")


def extract_statement_csv(text: str) -> Iterator[RawRow]:
    return iter_statement_rows(csv.reader(io.StringIO(text, newline="")))


def extract_plain_csv(
    text: str, *, required: Sequence[str] = (), section: str = ""
) -> Iterator[RawRow]:
    """First row is the header; every following non-blank row is data."""
    reader = csv.reader(io.StringIO(text.lstrip("\ufeff"), newline=""))
    header: tuple[str, ...] | None = None
    for line_no, row in enumerate(reader, start=1):
        if not any(c.strip() for c in row):
            continue
        cells = tuple(c.strip() for c in row)
        if header is None:
            missing = [r for r in required if r not in cells]
            if missing:
                raise FormatNotRecognized(
                    f"CSV header lacks expected columns {missing}: {list(cells)}"
                )
            header = cells
            yield RawRow(line_no, cells, section, "header")
            continue
        yield RawRow(line_no, cells, section, "data")

    if header is None:
        raise FormatNotRecognized("CSV document is empty")

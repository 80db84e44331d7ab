from __future__ import annotations

from typing import Iterator

from .html_tables import IBKR_SECTION_SELECTORS, extract_html_tables
from .layouts import (
    DEGIRO_PORTFOLIO_CSV_COLUMNS,
    DEGIRO_REPORT_TABLES,
)
from .rows import Document, RawRow, RowKind, SourceType
from .statement_csv import extract_plain_csv, extract_statement_csv
from .text_stream import TextTableSpec, extract_text_stream, iter_text_rows


def extract_rows(document: Document) -> Iterator[RawRow]:
    """Lazily yield the structural rows of a document.

    Not restartable: call again for a fresh pass. FormatNotRecognized is raised
    from iteration when no expected structure is present, or at once for a
    zip archive that does not hold exactly one file.
    """
    document = document.unpacked()
    st = document.source_type
    if st is SourceType.DEGIRO_PDF:
        return extract_text_stream(document.content, DEGIRO_REPORT_TABLES)
    if st is SourceType.DEGIRO_CSV:
        return extract_plain_csv(
            document.text(), required=DEGIRO_PORTFOLIO_CSV_COLUMNS[:2]
        )
    if st is SourceType.IBKR_HTML:
        return extract_html_tables(document.text())
    if st is SourceType.IBKR_CSV:
        return extract_statement_csv(document.text())
    raise ValueError(f"Unsupported source type: {st!r}")


__all__ = [
    "DEGIRO_PORTFOLIO_CSV_COLUMNS",
    "DEGIRO_REPORT_TABLES",
    "Document",
    "IBKR_SECTION_SELECTORS",
    "RawRow",
    "RowKind",
    "SourceType",
    "TextTableSpec",
    "extract_html_tables",
    "extract_plain_csv",
    "extract_rows",
    "extract_statement_csv",
    "extract_text_stream",
    "iter_text_rows",
]

from __future__ import annotations

import logging
from typing import Iterator, Mapping

from bs4 import BeautifulSoup, Tag

from taxdecl.errors import FormatNotRecognized

from .rows import RawRow, RowKind

logger = logging.getLogger(__name__)

# Section name -> CSS selector of the table(s) holding it in an activity
# statement rendered as HTML.
IBKR_SECTION_SELECTORS: Mapping[str, str] = {
    "Financial Instrument Information": 'div[id^="tblContractInfo"] div table',
    "Open Positions": 'div[id^="tblOpenPositions_"] div table',
    "Trades": 'div[id^="tblTransactions_"] div table',
    "Dividends": 'div[id^="tblDividends_"] div table',
    "Withholding Tax": 'div[id^="tblWithholdingTax_"] div table',
}

GROUP_CLASSES = {"header-asset", "header-currency"}


def _classes(el: Tag) -> set[str]:
    return {c.lower() for c in (el.get("class") or [])}


def _expand_cells(tr: Tag) -> tuple[tuple[str, ...], set[str], bool]:
    """Cell texts with colspan expanded, first-cell classes, all-th flag."""
    cells: list[str] = []
    first_classes: set[str] = set()
    all_th = True
    for i, cell in enumerate(tr.find_all(["td", "th"], recursive=False)):
        if i == 0:
            first_classes = _classes(cell)
        if cell.name != "th":
            all_th = False
        try:
            span = max(1, int(cell.get("colspan", 1)))
        except (TypeError, ValueError):
            span = 1
        cells.append(cell.get_text(" ", strip=True))
        cells.extend([""] * (span - 1))
    return tuple(cells), first_classes, all_th and bool(cells)


def _row_kind(tr: Tag, tags: set[str], all_th: bool) -> RowKind:
    if tags & GROUP_CLASSES:
        return "group"
    if tr.find_parent("thead") is not None or all_th:
        return "header"
    if "total" in tags:
        return "total"
    if "subtotal" in tags:
        return "subtotal"
    return "data"


def iter_table_rows(table: Tag, section: str, start: int = 0) -> Iterator[RawRow]:
    index = start
    for tr in table.find_all("tr"):
        cells, first_classes, all_th = _expand_cells(tr)
        if not cells:
            continue
        index += 1
        tags = _classes(tr) | first_classes
        yield RawRow(
            index=index,
            cells=cells,
            section=section,
            kind=_row_kind(tr, tags, all_th),
            tags=frozenset(tags),
        )


def extract_html_tables(
    html: str, selectors: Mapping[str, str] = IBKR_SECTION_SELECTORS
) -> Iterator[RawRow]:
    """Yield the rows of every table matched by the section selectors.

    Raises FormatNotRecognized when no selector matches.
    """
    soup = BeautifulSoup(html, "html.parser")
    found = 0
    index = 0
    for section, selector in selectors.items():
        for table in soup.select(selector):
            found += 1
            logger.debug("Found %s table via %s", section, selector)
            for row in iter_table_rows(table, section, index):
                index = row.index
                yield row
    if found == 0:
        raise FormatNotRecognized("No statement tables found in HTML document")

"""Table recovery from position-preserving text of printable reports.

Pages are turned into text with pdfplumber in layout mode, which keeps the
horizontal position of every word. A table section starts at its title; its
header line gives the character offset of each column label, and each
following line is split into chunks (runs separated by two or more spaces)
that are assigned to the column whose label they overlap, or else the nearest.

Labels printed over two lines ("Tipo de" above "orden") are written with a
newline; the second parts are looked for on the line right after the header.
"""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, replace
from typing import Iterable, Iterator, Sequence

import pdfplumber
from pdfplumber.utils.exceptions import PdfminerException

from taxdecl.errors import FormatNotRecognized

from .rows import RawRow

logger = logging.getLogger(__name__)

_CHUNK_RE = re.compile(r"\S+(?: \S+)*")
_PAGE_NUMBER_RE = re.compile(
    r"^\s*(?:p[aá]gina|page)?\s*\d+\s*(?:(?:/|de|of)\s*\d+)?\s*$", re.IGNORECASE
)


@dataclass(frozen=True)
class TextTableSpec:
    """Layout of one table section in a printable report."""

    section: str
    title: str
    columns: tuple[str, ...]
    # A line with this column empty continues the previous row (wrapped text).
    anchor: int = 0
    end_markers: tuple[str, ...] = ()
    # Lines starting with any of these are not rows (cash lines, subtotals).
    skip_prefixes: tuple[str, ...] = ()
    # A line holding only one of these words tags the row above it.
    row_tags: tuple[str, ...] = ()

    @property
    def column_names(self) -> tuple[str, ...]:
        return tuple(" ".join(c.split("\n")) for c in self.columns)

    @property
    def two_line_header(self) -> bool:
        return any("\n" in c for c in self.columns)


@dataclass
class _Column:
    label: str
    start: int
    end: int


def split_chunks(line: str) -> list[tuple[int, int, str]]:
    return [(m.start(), m.end(), m.group(0)) for m in _CHUNK_RE.finditer(line)]


def find_header(line: str, labels: Sequence[str]) -> list[_Column] | None:
    """Locate every label, in order, on one line; None if any is missing.

    Only the first line of a two-line label is looked for.
    """
    cols: list[_Column] = []
    pos = 0
    for label in labels:
        first = label.split("\n", 1)[0]
        at = line.find(first, pos)
        if at < 0:
            return None
        cols.append(_Column(label, at, at + len(first)))
        pos = at + len(first)
    return cols


def extend_header(line: str, cols: Sequence[_Column]) -> bool:
    """Widen two-line columns with their second parts found on `line`.

    Nothing changes unless every second part is there, in order.
    """
    spans: list[tuple[_Column, int, int]] = []
    pos = 0
    for c in cols:
        if "\n" not in c.label:
            continue
        second = c.label.split("\n", 1)[1]
        at = line.find(second, pos)
        if at < 0:
            return False
        spans.append((c, at, at + len(second)))
        pos = at + len(second)
    for c, start, end in spans:
        c.start, c.end = min(c.start, start), max(c.end, end)
    return True


def assign_column(cols: Sequence[_Column], x0: int, x1: int) -> int:
    best, best_overlap = -1, 0
    for i, c in enumerate(cols):
        overlap = min(x1, c.end) - max(x0, c.start)
        if overlap > best_overlap:
            best, best_overlap = i, overlap
    if best >= 0:
        return best
    # No overlap: nearest label edge
    return min(
        range(len(cols)),
        key=lambda i: min(abs(x0 - cols[i].end), abs(x1 - cols[i].start)),
    )


def split_line(line: str, cols: Sequence[_Column]) -> list[str]:
    cells = [""] * len(cols)
    for x0, x1, text in split_chunks(line):
        i = assign_column(cols, x0, x1)
        cells[i] = f"{cells[i]} {text}" if cells[i] else text
    return cells


class _SectionState:
    def __init__(self, spec: TextTableSpec) -> None:
        self.spec = spec
        self.cols: list[_Column] | None = None
        self.pending: RawRow | None = None
        # The line after a two-line header may hold the label second parts.
        self.header_tail = False

    def flush(self) -> Iterator[RawRow]:
        if self.pending is not None:
            yield self.pending
            self.pending = None


def _join_wrapped(old: str, new: str) -> str:
    if not (old and new):
        return old or new
    # "WHEN-" + "ISSUED" is one hyphenated word; "LTD. -" + "ADR" is not.
    if old.endswith("-") and not old.endswith(" -"):
        return old + new
    return f"{old} {new}"


def _continue_row(row: RawRow, cells: Sequence[str]) -> RawRow:
    merged = tuple(_join_wrapped(old, new) for old, new in zip(row.cells, cells))
    return replace(row, cells=merged)


def _matches_title(line: str, spec: TextTableSpec) -> bool:
    return line.strip().lower() == spec.title.lower()


def iter_text_rows(
    lines: Iterable[str], specs: Sequence[TextTableSpec]
) -> Iterator[RawRow]:
    """Yield header and data rows for every table section found in `lines`.

    Raises FormatNotRecognized once exhausted if no section header was seen.
    """
    state: _SectionState | None = None
    headers_seen = 0

    for line_no, raw in enumerate(lines, start=1):
        line = raw.rstrip("\n")
        stripped = line.strip()
        if not stripped or _PAGE_NUMBER_RE.match(stripped):
            continue

        title_spec = next((s for s in specs if _matches_title(line, s)), None)
        if title_spec is not None:
            if state is not None:
                yield from state.flush()
            state = _SectionState(title_spec)
            logger.debug("line %d: section %s", line_no, title_spec.section)
            continue

        if state is None:
            continue
        spec = state.spec

        if any(m in line for m in spec.end_markers):
            yield from state.flush()
            state = None
            continue

        if state.header_tail:
            state.header_tail = False
            if state.cols is not None and extend_header(line, state.cols):
                continue

        cols = find_header(line, spec.columns)
        if cols is not None:
            # A repeated header (new page) only refreshes the column offsets.
            if state.cols is None:
                headers_seen += 1
                yield RawRow(line_no, spec.column_names, spec.section, "header")
            yield from state.flush()
            state.cols = cols
            state.header_tail = spec.two_line_header
            continue

        if state.cols is None:
            continue
        if any(stripped.startswith(p) for p in spec.skip_prefixes):
            yield from state.flush()
            continue

        if stripped in spec.row_tags:
            if state.pending is not None:
                tags = state.pending.tags | {stripped.lower()}
                state.pending = replace(state.pending, tags=tags)
            continue

        cells = split_line(line, state.cols)
        if not cells[spec.anchor]:
            if state.pending is not None:
                state.pending = _continue_row(state.pending, cells)
            else:
                logger.debug("line %d: continuation without a row: %r", line_no, line)
            continue

        yield from state.flush()
        state.pending = RawRow(line_no, tuple(cells), spec.section, "data")

    if state is not None:
        yield from state.flush()
    if headers_seen == 0:
        raise FormatNotRecognized(
            "No known table header found in text stream "
            f"(looked for {[s.section for s in specs]})"
        )


def pdf_text_lines(content: bytes) -> Iterator[str]:
    """Layout-preserving text lines of every page of a PDF.

    A damaged file raises FormatNotRecognized.
    """
    try:
        with pdfplumber.open(io.BytesIO(content)) as pdf:
            for page in pdf.pages:
                text = page.extract_text(layout=True) or ""
                yield from text.splitlines()
    except PdfminerException as e:
        raise FormatNotRecognized(f"Unreadable PDF: {e}") from e


def extract_text_stream(
    content: bytes | str, specs: Sequence[TextTableSpec]
) -> Iterator[RawRow]:
    """Rows of a printable report given as PDF bytes or already-extracted text."""
    if isinstance(content, bytes):
        if content.lstrip().startswith(b"%PDF"):
            return iter_text_rows(pdf_text_lines(content), specs)
        content = content.decode("utf-8-sig", errors="replace")
    return iter_text_rows(content.splitlines(), specs)

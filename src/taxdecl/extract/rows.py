from __future__ import annotations

import datetime as dt
import io
import logging
import zipfile
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Literal

from taxdecl.errors import FormatNotRecognized

logger = logging.getLogger(__name__)

_ZIP_MAGIC = b"PK\x03\x04"

RowKind = Literal["header", "data", "total", "subtotal", "group"]


class SourceType(str, Enum):
    DEGIRO_PDF = "degiro-pdf"
    DEGIRO_CSV = "degiro-csv"
    IBKR_HTML = "ibkr-html"
    IBKR_CSV = "ibkr-csv"


@dataclass(frozen=True)
class RawRow:
    """One structural row of a document; cells are untyped text."""

    index: int
    cells: tuple[str, ...]
    section: str = ""
    kind: RowKind = "data"
    tags: frozenset[str] = field(default_factory=frozenset)

    def cell(self, i: int) -> str:
        return self.cells[i] if 0 <= i < len(self.cells) else ""


@dataclass(frozen=True)
class Document:
    """Raw bytes of a broker report plus the declared source type."""

    content: bytes
    source_type: SourceType
    name: str
    # Holdings without an explicit date are valued at this date.
    period_end: dt.date | None = None

    @classmethod
    def from_path(
        cls,
        path: str | Path,
        source_type: SourceType | str,
        *,
        period_end: dt.date | None = None,
    ) -> Document:
        p = Path(path)
        return cls(
            content=p.read_bytes(),
            source_type=SourceType(source_type),
            name=p.name,
            period_end=period_end,
        )

    def text(self, encoding: str = "utf-8-sig") -> str:
        return self.content.decode(encoding, errors="replace")

    def unpacked(self) -> Document:
        """The document inside a single-file zip archive, else self.

        Statements are often downloaded zipped. An archive holding anything
        but exactly one file raises FormatNotRecognized.
        """
        if not self.content.startswith(_ZIP_MAGIC):
            return self
        try:
            with zipfile.ZipFile(io.BytesIO(self.content)) as zf:
                members = [i for i in zf.infolist() if not i.is_dir()]
                if len(members) != 1:
                    raise FormatNotRecognized(
                        f"{self.name}: expected one file in the zip archive, "
                        f"found {len(members)}"
                    )
                content = zf.read(members[0])
        except zipfile.BadZipFile as e:
            raise FormatNotRecognized(f"{self.name}: damaged zip archive: {e}") from e
        logger.debug("%s: unpacked %s", self.name, members[0].filename)
        return replace(self, content=content)

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping

from taxdecl.config import BrokerInfo
from taxdecl.errors import TaxDeclError
from taxdecl.extract import RawRow
from taxdecl.model import IssueLog, Movement, PositionSnapshot

logger = logging.getLogger(__name__)


@dataclass
class ParseOutcome:
    """Everything one document yielded, or why it yielded nothing."""

    source: str
    broker: BrokerInfo
    movements: list[Movement] = field(default_factory=list)
    snapshots: list[PositionSnapshot] = field(default_factory=list)
    issues: IssueLog = field(default_factory=IssueLog)
    error: TaxDeclError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def record_count(self) -> int:
        return len(self.movements) + len(self.snapshots)


class HeaderMap:
    """Column name -> position for the current header of a section.

    Lookups go through `aliases` first so localized statements map onto the
    same names.
    """

    def __init__(
        self, header: Iterable[str], aliases: Mapping[str, str] | None = None
    ) -> None:
        self.index: dict[str, int] = {}
        for i, h in enumerate(header):
            name = h.strip()
            if aliases:
                name = aliases.get(name, name)
            self.index.setdefault(name, i)

    def __contains__(self, name: str) -> bool:
        return name in self.index

    def has_all(self, names: Iterable[str]) -> bool:
        return all(n in self.index for n in names)

    def get(self, row: RawRow, name: str, default: str = "") -> str:
        i = self.index.get(name)
        if i is None:
            return default
        return row.cell(i).strip()

    def as_dict(self, row: RawRow) -> dict[str, str]:
        return {name: row.cell(i).strip() for name, i in self.index.items()}

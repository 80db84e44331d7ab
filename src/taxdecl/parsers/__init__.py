from __future__ import annotations

import datetime as dt
from typing import Iterable, Protocol

from taxdecl.config import BrokerInfo
from taxdecl.extract import RawRow, SourceType

from .base import HeaderMap, ParseOutcome
from .degiro import DegiroPortfolioCsvParser, DegiroReportParser
from .ibkr import IbkrStatementParser


class BrokerParser(Protocol):
    broker: BrokerInfo

    def parse(
        self, rows: Iterable[RawRow], source: str, *, as_of: dt.date
    ) -> ParseOutcome: ...


def parser_for(source_type: SourceType, base_currency: str = "EUR") -> BrokerParser:
    if source_type is SourceType.DEGIRO_PDF:
        return DegiroReportParser()
    if source_type is SourceType.DEGIRO_CSV:
        return DegiroPortfolioCsvParser()
    if source_type in (SourceType.IBKR_HTML, SourceType.IBKR_CSV):
        return IbkrStatementParser(base_currency=base_currency)
    raise ValueError(f"No parser for source type {source_type!r}")


__all__ = [
    "BrokerParser",
    "DegiroPortfolioCsvParser",
    "DegiroReportParser",
    "HeaderMap",
    "IbkrStatementParser",
    "ParseOutcome",
    "parser_for",
]

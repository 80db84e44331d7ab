from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Literal, Sequence

IssueKind = Literal[
    "skipped_row",
    "unresolved_instrument",
    "stale_exchange_rate",
    "reconciliation_mismatch",
    "source_dropped",
    "unverified_in_declaration",
    "withholding_unmatched",
]


@dataclass(frozen=True)
class Issue:
    kind: IssueKind
    source: str
    message: str
    line_no: int | None = None
    row_preview: Sequence[str] | None = None


@dataclass
class IssueLog:
    """Non-fatal diagnostics accumulated along the pipeline."""

    issues: list[Issue] = field(default_factory=list)

    def add(
        self,
        kind: IssueKind,
        source: str,
        msg: str,
        *,
        line_no: int | None = None,
        row: Sequence[str] | None = None,
    ) -> Issue:
        issue = Issue(
            kind, source, msg, line_no, tuple(row) if row is not None else None
        )
        self.issues.append(issue)
        return issue

    def extend(self, issues: Iterable[Issue]) -> None:
        self.issues.extend(issues)

    def of_kind(self, kind: IssueKind) -> list[Issue]:
        return [i for i in self.issues if i.kind == kind]

    def __len__(self) -> int:
        return len(self.issues)

    def __iter__(self):
        return iter(self.issues)

    def log_with(self, log: logging.Logger) -> None:
        for i in self.issues:
            where = f"{i.source}:{i.line_no}" if i.line_no is not None else i.source
            if i.row_preview is not None:
                log.warning(
                    "%s: %s: %s | row=%s", i.kind, where, i.message, i.row_preview
                )
            else:
                log.warning("%s: %s: %s", i.kind, where, i.message)


def merge_issues(logs: Iterable[IssueLog]) -> IssueLog:
    out = IssueLog()
    for log in logs:
        out.extend(log.issues)
    return out

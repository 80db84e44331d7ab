from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterable, Literal

from taxdecl.config import BrokerInfo
from taxdecl.ledger import Ledger
from taxdecl.model import IssueLog, PositionSnapshot

logger = logging.getLogger(__name__)

AcquisitionMarker = Literal["A", "M"]


class FormKind(str, Enum):
    AEAT_720 = "720"
    D6 = "d6"


@dataclass(frozen=True)
class DeclarationLine:
    form: FormKind
    category: str
    isin: str
    descriptor: str
    valuation: Decimal
    currency: str
    quantity: Decimal
    broker: BrokerInfo
    fiscal_year: int
    issuer_country: str = ""
    ownership_pct: Decimal = Decimal("100")
    first_acquisition: dt.date | None = None
    acquisition_marker: AcquisitionMarker = "M"
    verified: bool = True

    def order_key(self) -> tuple[str, str, str, str]:
        return (self.category, self.isin, self.broker.name, self.descriptor)


@dataclass
class RuleResult:
    lines: tuple[DeclarationLine, ...] = ()
    issues: IssueLog = field(default_factory=IssueLog)
    total: Decimal = Decimal("0")


def period_end_holdings(
    ledger: Ledger, home_country: str
) -> list[PositionSnapshot]:
    """Positive holdings of the fiscal year's last snapshot per broker, abroad only.

    When several sources report the same holding at the same broker, the latest
    as-of wins; on a tie the first source (by id) is kept.
    """
    latest: dict[tuple[str, str], PositionSnapshot] = {}
    for snap in ledger.snapshots:
        if snap.as_of.year != ledger.fiscal_year or snap.quantity <= 0:
            continue
        if snap.broker.country_code == home_country or snap.instrument is None:
            continue
        key = (snap.instrument.key, snap.broker.name)
        seen = latest.get(key)
        if seen is None or (snap.as_of, seen.source) > (seen.as_of, snap.source):
            if seen is not None:
                logger.debug(
                    "Holding %s at %s reported by %s and %s; keeping %s",
                    key[0],
                    key[1],
                    seen.source,
                    snap.source,
                    snap.source,
                )
            latest[key] = snap
    return list(latest.values())


def flag_unverified(
    lines: Iterable[DeclarationLine], form: FormKind, issues: IssueLog
) -> None:
    for line in lines:
        if not line.verified:
            issues.add(
                "unverified_in_declaration",
                form.value,
                f"{line.descriptor} at {line.broker.name} has no verified ISIN; "
                "check the line before filing",
            )

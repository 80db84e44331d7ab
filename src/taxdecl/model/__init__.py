from .instrument import AssetClass, Instrument, SecurityRef, classify_asset
from .issues import Issue, IssueLog, merge_issues
from .records import (
    QUANTITY_KINDS,
    Conversion,
    Movement,
    MovementKind,
    PositionSnapshot,
)

__all__ = [
    "AssetClass",
    "Conversion",
    "Instrument",
    "Issue",
    "IssueLog",
    "Movement",
    "MovementKind",
    "PositionSnapshot",
    "QUANTITY_KINDS",
    "SecurityRef",
    "classify_asset",
    "merge_issues",
]

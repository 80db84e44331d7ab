from .assemble import Ledger, assemble
from .fx import FxTable, RateQuote
from .reconcile import reconcile, replay_quantity

__all__ = [
    "FxTable",
    "Ledger",
    "RateQuote",
    "assemble",
    "reconcile",
    "replay_quantity",
]

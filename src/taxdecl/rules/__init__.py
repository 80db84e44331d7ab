from .aeat720 import CATEGORY_BY_CLASS, aeat720_lines, first_acquisition, must_declare
from .base import DeclarationLine, FormKind, RuleResult, period_end_holdings
from .d6 import d6_lines

__all__ = [
    "CATEGORY_BY_CLASS",
    "DeclarationLine",
    "FormKind",
    "RuleResult",
    "aeat720_lines",
    "d6_lines",
    "first_acquisition",
    "must_declare",
    "period_end_holdings",
]

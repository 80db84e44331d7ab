from .isin import (
    cusip_check_digit,
    is_valid_cusip,
    is_valid_isin,
    isin_check_digit,
    isin_from_cusip,
    normalize_isin,
)
from .registry import InstrumentRegistry, Resolution

__all__ = [
    "InstrumentRegistry",
    "Resolution",
    "cusip_check_digit",
    "is_valid_cusip",
    "is_valid_isin",
    "isin_check_digit",
    "isin_from_cusip",
    "normalize_isin",
]

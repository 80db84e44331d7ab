from .conv import (
    EN_NUMBERS,
    ES_NUMBERS,
    NumberFormat,
    date_key,
    parse_date,
    parse_dmy,
    to_dec,
    to_dec_strict,
    to_percent,
)

__all__ = [
    "EN_NUMBERS",
    "ES_NUMBERS",
    "NumberFormat",
    "date_key",
    "parse_date",
    "parse_dmy",
    "to_dec",
    "to_dec_strict",
    "to_percent",
]

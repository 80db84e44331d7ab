import datetime as dt
import logging
from decimal import Decimal

import pytest

from taxdecl.conv import (
    ES_NUMBERS,
    date_key,
    parse_date,
    parse_dmy,
    to_dec,
    to_dec_strict,
    to_percent,
)


def test_to_dec_standard():
    assert to_dec("123") == Decimal("123")
    assert to_dec("1,234.56") == Decimal("1234.56")
    assert to_dec(100) == Decimal("100")
    assert to_dec(10.5) == Decimal("10.5")
    assert to_dec(Decimal("5.5")) == Decimal("5.5")


def test_to_dec_spanish_separators():
    assert to_dec("1.234,56", fmt=ES_NUMBERS) == Decimal("1234.56")
    assert to_dec("0,50", fmt=ES_NUMBERS) == Decimal("0.50")
    assert to_dec("-12,3", fmt=ES_NUMBERS) == Decimal("-12.3")


def test_to_dec_placeholders_silent():
    assert to_dec(None) == Decimal("0")
    assert to_dec("") == Decimal("0")
    assert to_dec("   ") == Decimal("0")
    assert to_dec("-") == Decimal("0")
    assert to_dec("--") == Decimal("0")


def test_to_dec_placeholders_warn(caplog):
    with caplog.at_level(logging.WARNING):
        assert to_dec("N/A") == Decimal("0")
        assert "Encountered elided/unavailable value" in caplog.text


def test_to_dec_invalid_format(caplog):
    with caplog.at_level(logging.ERROR):
        assert to_dec("invalid", default=Decimal("-1")) == Decimal("-1")
        assert "Failed to parse number" in caplog.text


def test_to_dec_strict_raises():
    for bad in (None, "", "--", "...", "abc"):
        with pytest.raises(ValueError):
            to_dec_strict(bad)


def test_to_dec_strict_spanish():
    assert to_dec_strict("2.541,00", ES_NUMBERS) == Decimal("2541.00")


@pytest.mark.parametrize("text", ["Infinity", "-inf", "NaN", "sNaN"])
def test_non_finite_numbers_are_rejected(text, caplog):
    with pytest.raises(ValueError, match="finite"):
        to_dec_strict(text, ES_NUMBERS)
    with caplog.at_level(logging.ERROR):
        assert to_dec(text) == Decimal("0")
    assert "Non-finite number" in caplog.text


def test_to_percent():
    assert to_percent("2%") == Decimal("0.02")
    assert to_percent("2,00 %", ES_NUMBERS) == Decimal("0.02")
    assert to_percent("15") == Decimal("0.15")


def test_dates():
    assert parse_date("2023-12-29, 10:00:01") == dt.date(2023, 12, 29)
    assert parse_date("2023-12-29 10:00:01") == dt.date(2023, 12, 29)
    assert parse_dmy("31/12/2023") == dt.date(2023, 12, 31)
    assert parse_dmy("1-2-2023") == dt.date(2023, 2, 1)
    assert date_key(dt.date(2023, 1, 5)) == "2023-01-05"
    assert date_key("2023-01-05, 09:30:00") == "2023-01-05"
    with pytest.raises(ValueError):
        parse_dmy("2023-12-31")

import pytest

from taxdecl.resolve import (
    is_valid_cusip,
    is_valid_isin,
    isin_check_digit,
    isin_from_cusip,
    normalize_isin,
)

VALID_ISINS = [
    "US0378331005",
    "US30303M1027",
    "GG00B4L84979",
    "US47215P1066",
    "IT0001447785",
    "IE00B4L5Y983",
]


@pytest.mark.parametrize("isin", VALID_ISINS)
def test_valid_isins_accepted(isin):
    assert is_valid_isin(isin)
    assert isin_check_digit(isin[:11]) == int(isin[11])


@pytest.mark.parametrize("isin", VALID_ISINS)
def test_single_digit_alteration_rejected(isin):
    # Every change of one digit in the payload or check digit must be caught.
    for pos, ch in enumerate(isin):
        if not ch.isdigit() or pos < 2:
            continue
        for d in "0123456789":
            if d == ch:
                continue
            altered = isin[:pos] + d + isin[pos + 1 :]
            assert not is_valid_isin(altered), altered


def test_malformed_isins_rejected():
    assert not is_valid_isin(None)
    assert not is_valid_isin("")
    assert not is_valid_isin("US037833100")  # too short
    assert not is_valid_isin("1S0378331005")  # country must be letters
    assert not is_valid_isin("US037833100X")  # check must be a digit


def test_isin_lowercase_and_whitespace_tolerated():
    assert is_valid_isin(" us0378331005 ")
    assert normalize_isin(" us0378331005 ") == "US0378331005"


def test_cusip_to_isin():
    assert is_valid_cusip("037833100")
    assert not is_valid_cusip("037833101")
    assert isin_from_cusip("037833100") == "US0378331005"
    assert normalize_isin("037833100") == "US0378331005"
    with pytest.raises(ValueError):
        isin_from_cusip("037833101")


def test_normalize_isin_rejects_garbage():
    assert normalize_isin("AAPL") is None
    assert normalize_isin("US0378331006") is None
    assert normalize_isin(None) is None

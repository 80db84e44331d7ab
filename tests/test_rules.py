import datetime as dt
from decimal import Decimal

import pytest
from fixtures import (
    AAPL,
    BURFORD,
    DEGIRO,
    FACEBOOK,
    MONDO,
    config,
    outcome,
    snapshot,
    trade,
)

from taxdecl.config import BrokerInfo
from taxdecl.errors import MissingExchangeRate
from taxdecl.ledger import FxTable, assemble
from taxdecl.model import AssetClass, SecurityRef
from taxdecl.rules import (
    FormKind,
    aeat720_lines,
    d6_lines,
    first_acquisition,
    must_declare,
)

YEAR_END = dt.date(2023, 12, 29)
RATES = FxTable.from_mapping(
    {"USD": {"2023-02-01": "1.08", "2023-12-29": "1.105"}}
)
WORLD_ETF = SecurityRef(
    name="iShares Core MSCI World", isin="IE00B4L5Y983", asset_class=AssetClass.FUND
)
SANTANDER = SecurityRef(name="BANCO SANTANDER", isin="ES0113900J37")
BANKINTER = BrokerInfo(name="Bankinter", country_code="ES")


def _ledger(*records, cfg=None, rates=RATES):
    return assemble([outcome("degiro.pdf", *records)], rates, cfg or config())


def _holdings():
    return [
        trade(MONDO, dt.date(2021, 5, 10), "30001", "30001.00"),
        snapshot(MONDO, YEAR_END, "30001", "1"),
        trade(AAPL, dt.date(2023, 2, 1), "200", "20000.00", currency="USD"),
        snapshot(AAPL, YEAR_END, "200", "110.50", currency="USD"),
    ]


def test_720_below_threshold_declares_nothing():
    ledger = _ledger(snapshot(MONDO, YEAR_END, "40000", "1"))
    result = aeat720_lines(ledger, config())

    assert result.lines == ()
    assert result.total == Decimal("40000.00")


def test_720_exactly_at_threshold_declares_nothing():
    ledger = _ledger(
        snapshot(MONDO, YEAR_END, "30000", "1"),
        snapshot(AAPL, YEAR_END, "200", "110.50", currency="USD"),
    )
    result = aeat720_lines(ledger, config())

    assert result.total == Decimal("50000.00")
    assert result.lines == ()


def test_720_lines_above_threshold():
    result = aeat720_lines(_ledger(*_holdings()), config())

    assert result.total == Decimal("50001.00")
    assert [line.isin for line in result.lines] == ["IT0001447785", "US0378331005"]
    mondo, aapl = result.lines

    assert mondo.form is FormKind.AEAT_720
    assert mondo.category == "V1"
    assert mondo.descriptor == "MONDO TV"
    assert mondo.valuation == Decimal("30001.00")
    assert mondo.currency == "EUR"
    assert mondo.quantity == Decimal("30001")
    assert mondo.first_acquisition == dt.date(2021, 5, 10)
    assert mondo.acquisition_marker == "M"

    assert aapl.valuation == Decimal("20000.00")
    assert aapl.first_acquisition == dt.date(2023, 2, 1)
    assert aapl.acquisition_marker == "A"
    assert len(result.issues) == 0


def test_720_one_line_per_holding_and_broker():
    records = _holdings() + [snapshot(MONDO, dt.date(2023, 6, 30), "10", "1")]
    result = aeat720_lines(_ledger(*records), config())

    assert [line.isin for line in result.lines].count("IT0001447785") == 1


def test_720_fund_category_and_home_custodian_excluded():
    records = _holdings() + [
        snapshot(WORLD_ETF, YEAR_END, "100", "80"),
        snapshot(SANTANDER, YEAR_END, "5000", "3.5", broker=BANKINTER),
    ]
    result = aeat720_lines(_ledger(*records), config())

    by_isin = {line.isin: line for line in result.lines}
    assert by_isin["IE00B4L5Y983"].category == "I0"
    assert "ES0113900J37" not in by_isin
    assert result.total == Decimal("58001.00")


def test_720_previous_filing_needs_increment():
    ledger = _ledger(*_holdings())

    assert aeat720_lines(
        ledger, config(aeat720_previous_total=Decimal("40000"))
    ).lines == ()
    assert len(
        aeat720_lines(ledger, config(aeat720_previous_total=Decimal("30000"))).lines
    ) == 2


def test_must_declare():
    cfg = config()
    assert not must_declare(Decimal("50000"), cfg)
    assert must_declare(Decimal("50000.01"), cfg)

    cfg = config(aeat720_previous_total=Decimal("60000"))
    assert not must_declare(Decimal("80000"), cfg)
    assert must_declare(Decimal("80000.01"), cfg)


def test_720_missing_rate_is_fatal():
    ledger = _ledger(*_holdings(), rates=FxTable())

    with pytest.raises(MissingExchangeRate):
        aeat720_lines(ledger, config())


def test_720_unverified_holding_is_flagged():
    unknown = SecurityRef(name="OBSCURE HOLDING NV")
    result = aeat720_lines(
        _ledger(*_holdings(), snapshot(unknown, YEAR_END, "100", "5")), config()
    )

    line = next(line for line in result.lines if not line.verified)
    assert line.isin == ""
    assert line.descriptor == "OBSCURE HOLDING NV"
    assert [i.kind for i in result.issues] == ["unverified_in_declaration"]


def test_720_order_does_not_depend_on_input():
    forward = aeat720_lines(_ledger(*_holdings()), config())
    backward = aeat720_lines(_ledger(*reversed(_holdings())), config())

    assert forward.lines == backward.lines


def _d6_ledger(*extra, cfg=None):
    year_end = dt.date(2019, 12, 31)
    return _ledger(
        snapshot(BURFORD, year_end, "122", "1656", currency="GBX"),
        snapshot(FACEBOOK, year_end, "21", "131.09", currency="USD"),
        snapshot(MONDO, year_end, "1105", "1.194"),
        snapshot(SANTANDER, year_end, "300", "3.73"),
        *extra,
        cfg=cfg or config(2019),
        rates=FxTable(),
    )


def test_d6_lines_in_denomination_currency():
    result = d6_lines(_d6_ledger(), config(2019))

    lines = {line.isin: line for line in result.lines}
    assert lines["GG00B4L84979"].currency == "GBP"
    assert lines["GG00B4L84979"].valuation == Decimal("2020.32")
    assert lines["US30303M1027"].currency == "USD"
    assert lines["US30303M1027"].valuation == Decimal("2752.89")
    assert lines["IT0001447785"].valuation == Decimal("1319.37")
    assert all(line.form is FormKind.D6 for line in result.lines)
    assert all(line.broker == DEGIRO for line in result.lines)


def test_d6_category_by_issuer_country():
    result = d6_lines(_d6_ledger(), config(2019))

    categories = {line.isin: line.category for line in result.lines}
    assert categories["ES0113900J37"] == "800"
    assert categories["GG00B4L84979"] == "400"
    assert [line.category for line in result.lines] == ["400", "400", "400", "800"]


def test_d6_skips_bonds_and_small_lines():
    bond = SecurityRef(
        name="US TREASURY 2.5% 2029", isin="US912828YB05", asset_class=AssetClass.BOND
    )
    ledger = _d6_ledger(
        snapshot(bond, dt.date(2019, 12, 31), "10", "101", currency="USD"),
    )

    result = d6_lines(ledger, config(2019, d6_threshold=Decimal("1500")))

    isins = [line.isin for line in result.lines]
    assert "US912828YB05" not in isins
    assert isins == ["GG00B4L84979", "US30303M1027"]
    assert result.total == Decimal("4773.21")


def test_first_acquisition_needs_a_resolved_holding():
    unbound = snapshot(MONDO, YEAR_END, "30001", "1")

    with pytest.raises(ValueError, match="no resolved instrument"):
        first_acquisition(unbound, ())

import datetime as dt
import io
import zipfile
from dataclasses import replace
from decimal import Decimal

from fixtures import LARGE_PORTFOLIO_CSV, PORTFOLIO_CSV, config

from taxdecl.errors import MissingExchangeRate
from taxdecl.extract import Document, SourceType
from taxdecl.ledger import FxTable
from taxdecl.pipeline import declare, ingest, ingest_all, run
from taxdecl.rules import FormKind


def _doc(text, name="Portfolio.csv", source_type=SourceType.DEGIRO_CSV):
    return Document(
        content=text.encode("utf-8"),
        source_type=source_type,
        name=name,
        period_end=dt.date(2019, 12, 31),
    )


BROKEN = _doc(
    "<html><body><p>Nothing here</p></body></html>",
    name="statement.html",
    source_type=SourceType.IBKR_HTML,
)


def test_ingest_drops_unrecognised_document():
    out = ingest(BROKEN, config(2019))

    assert not out.ok
    assert out.source == "statement.html"
    assert out.broker.name == "Interactive Brokers"


def test_ingest_all_keeps_input_order():
    docs = [_doc(PORTFOLIO_CSV, name=f"p{i}.csv") for i in range(3)] + [BROKEN]

    serial = ingest_all(docs, config(2019), max_workers=1)
    parallel = ingest_all(docs, config(2019), max_workers=4)

    assert [o.source for o in parallel] == [
        "p0.csv",
        "p1.csv",
        "p2.csv",
        "statement.html",
    ]
    assert [len(o.snapshots) for o in parallel] == [len(o.snapshots) for o in serial]


def test_run_continues_past_bad_document():
    result = run([_doc(PORTFOLIO_CSV), BROKEN], FxTable(), config(2019))

    assert result.ledger.dropped == ("statement.html",)
    assert [i.source for i in result.issues.of_kind("source_dropped")] == [
        "statement.html"
    ]
    assert not result.failed
    assert result.errors == {}

    # Below the threshold: no model 720 due
    assert result.outputs[FormKind.AEAT_720] == b""
    assert result.rules[FormKind.AEAT_720].total == Decimal("10938.16")

    d6 = result.rules[FormKind.D6]
    assert [line.isin for line in d6.lines] == [
        "GG00B4L84979",
        "IT0001447785",
        "US47215P1066",
    ]
    assert result.outputs[FormKind.D6].startswith(b'<?xml version="1.0"')
    assert b"<Datos>3296,56</Datos>" in result.outputs[FormKind.D6]


def test_declare_not_required_returns_empty():
    result = run([_doc(PORTFOLIO_CSV)], FxTable(), config(2019))

    data, issues = declare(result.ledger, FormKind.AEAT_720, config(2019))

    assert data == b""
    assert len(issues) == 0


def test_failing_form_does_not_block_the_other():
    result = run([_doc(LARGE_PORTFOLIO_CSV)], FxTable(), config(2019))

    assert isinstance(result.errors[FormKind.AEAT_720], MissingExchangeRate)
    assert FormKind.AEAT_720 not in result.outputs
    assert result.outputs[FormKind.D6]
    assert not result.failed


def test_run_fails_when_every_form_fails():
    result = run(
        [_doc(LARGE_PORTFOLIO_CSV)], FxTable(), config(2019), [FormKind.AEAT_720]
    )

    assert result.failed
    assert result.outputs == {}


def test_run_with_rates_declares_720():
    rates = FxTable.from_mapping({"USD": {"2019-12-31": "1.1234"}})

    result = run([_doc(LARGE_PORTFOLIO_CSV)], rates, config(2019))

    lines = result.rules[FormKind.AEAT_720].lines
    assert [line.isin for line in lines] == ["IT0001447785", "US47215P1066"]
    assert lines[1].valuation == Decimal("62720.31")
    data = result.outputs[FormKind.AEAT_720]
    assert len(data) == 3 * 501


def test_run_continues_past_damaged_pdf():
    damaged = Document(
        content=b"%PDF-1.4\n garbage",
        source_type=SourceType.DEGIRO_PDF,
        name="informe.pdf",
    )

    result = run([_doc(PORTFOLIO_CSV), damaged], FxTable(), config(2019))

    assert result.ledger.dropped == ("informe.pdf",)
    (dropped,) = result.issues.of_kind("source_dropped")
    assert "Unreadable PDF" in dropped.message
    assert not result.failed
    assert result.outputs[FormKind.D6]


def test_ingest_reads_zipped_statement():
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        zf.writestr("Portfolio.csv", PORTFOLIO_CSV)
    zipped = replace(_doc(""), content=buf.getvalue(), name="Portfolio.zip")

    out = ingest(zipped, config(2019))

    assert out.ok
    assert out.source == "Portfolio.zip"
    plain = ingest(_doc(PORTFOLIO_CSV), config(2019))
    assert len(out.snapshots) == len(plain.snapshots) == 3

import argparse
from pathlib import Path

import pytest
from fixtures import LARGE_PORTFOLIO_CSV, PORTFOLIO_CSV
from openpyxl import load_workbook

from taxdecl.cmd.cli import main, parse_input
from taxdecl.extract import SourceType

DECLARANT_ARGS = [
    "--nif",
    "12345678Z",
    "--name",
    "NILES",
    "--surname",
    "SMITH DONCIC",
]


def test_parse_input():
    assert parse_input("ibkr-html:/tmp/a.html") == (
        SourceType.IBKR_HTML,
        Path("/tmp/a.html"),
    )
    assert parse_input("DEGIRO-PDF:informe.pdf")[0] is SourceType.DEGIRO_PDF

    with pytest.raises(argparse.ArgumentTypeError):
        parse_input("informe.pdf")
    with pytest.raises(argparse.ArgumentTypeError, match="Unknown input type"):
        parse_input("pdf:informe.pdf")


def test_main_writes_declarations_and_review(tmp_path):
    portfolio = tmp_path / "Portfolio.csv"
    portfolio.write_text(PORTFOLIO_CSV, encoding="utf-8")
    out_dir = tmp_path / "out"
    review = out_dir / "review.xlsx"

    code = main(
        [
            "--year",
            "2019",
            f"degiro-csv:{portfolio}",
            "--output-dir",
            str(out_dir),
            "--review",
            str(review),
            *DECLARANT_ARGS,
        ]
    )

    assert code == 0
    # No model 720 is due for these holdings
    assert not (out_dir / "fichero-720.txt").exists()
    d6 = (out_dir / "d6_2019.aforixm").read_text(encoding="utf-8")
    assert "<Datos>SMITH DONCIC NILES</Datos>" in d6

    wb = load_workbook(review)
    assert wb.sheetnames == [
        "Posiciones",
        "Movimientos",
        "Modelo 720",
        "D-6",
        "Incidencias",
    ]
    assert wb["Posiciones"].max_row == 4
    assert wb["Modelo 720"]["A2"].value == "No es obligatorio declarar"


def test_main_review_in_english(tmp_path):
    portfolio = tmp_path / "Portfolio.csv"
    portfolio.write_text(PORTFOLIO_CSV, encoding="utf-8")
    review = tmp_path / "review.xlsx"

    main(
        [
            "--year",
            "2019",
            f"degiro-csv:{portfolio}",
            "--output-dir",
            str(tmp_path),
            "--review",
            str(review),
            "--locale",
            "EN",
        ]
    )

    wb = load_workbook(review)
    assert wb.sheetnames[0] == "Positions"
    assert wb["Positions"]["A1"].value == "As of"


def test_main_fx_table_enables_720(tmp_path):
    portfolio = tmp_path / "Portfolio.csv"
    portfolio.write_text(LARGE_PORTFOLIO_CSV, encoding="utf-8")
    fx = tmp_path / "fx.csv"
    fx.write_text("date,currency,rate\n2019-12-31,USD,1.1234\n", encoding="utf-8")

    code = main(
        [
            "--year",
            "2019",
            f"degiro-csv:{portfolio}",
            "--fx-table",
            str(fx),
            "--form",
            "720",
            "--output-dir",
            str(tmp_path),
            *DECLARANT_ARGS,
        ]
    )

    assert code == 0
    data = (tmp_path / "fichero-720.txt").read_bytes()
    assert data[:8] == b"17202019"
    assert not (tmp_path / "d6_2019.aforixm").exists()


def test_main_exit_code_when_nothing_produced(tmp_path):
    portfolio = tmp_path / "Portfolio.csv"
    portfolio.write_text(LARGE_PORTFOLIO_CSV, encoding="utf-8")

    code = main(
        [
            "--year",
            "2019",
            f"degiro-csv:{portfolio}",
            "--form",
            "720",
            "--output-dir",
            str(tmp_path),
        ]
    )

    assert code == 2
    assert not (tmp_path / "fichero-720.txt").exists()


def test_main_nif_too_long_for_720(tmp_path):
    portfolio = tmp_path / "Portfolio.csv"
    portfolio.write_text(LARGE_PORTFOLIO_CSV, encoding="utf-8")
    fx = tmp_path / "fx.csv"
    fx.write_text("date,currency,rate\n2019-12-31,USD,1.1234\n", encoding="utf-8")
    args = list(DECLARANT_ARGS)
    args[1] = "123456789A"

    code = main(
        [
            "--year",
            "2019",
            f"degiro-csv:{portfolio}",
            "--fx-table",
            str(fx),
            "--form",
            "720",
            "--output-dir",
            str(tmp_path),
            *args,
        ]
    )

    assert code == 2
    assert not (tmp_path / "fichero-720.txt").exists()

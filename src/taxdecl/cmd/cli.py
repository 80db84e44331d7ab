"""
Prepare the Spanish model 720 and D-6 declarations from Degiro and Interactive
Brokers reports.

Usage
-----
    taxdecl --year 2023 --nif 12345678Z --name NILES --surname "SMITH DONCIC" \
        --fx-table ./fx_rates.csv --output-dir ./out --review ./out/review.xlsx \
        degiro-pdf:/path/to/Informe_anual_2023.pdf \
        ibkr-csv:/path/to/ActivityStatement_2023.csv

Input types: degiro-pdf, degiro-csv, ibkr-html, ibkr-csv.

Forex CSV schema (base EUR):
    date,currency,rate
    2023-12-29,USD,1.105
    2023-12-29,GBP,0.86905
"""

from __future__ import annotations

import argparse
import logging
from decimal import ROUND_HALF_UP, Decimal, getcontext
from pathlib import Path

from taxdecl.config import Declarant, PipelineConfig
from taxdecl.extract import Document, SourceType
from taxdecl.ledger import FxTable
from taxdecl.logging import configure_logging
from taxdecl.pipeline import ALL_FORMS, RunResult, run
from taxdecl.reporting import ExcelReviewSink
from taxdecl.rules import FormKind

# Monetary precision and rounding
getcontext().prec = 28
getcontext().rounding = ROUND_HALF_UP

OUTPUT_NAMES = {
    FormKind.AEAT_720: "fichero-720.txt",
    FormKind.D6: "d6_{year}.aforixm",
}


def parse_input(spec: str) -> tuple[SourceType, Path]:
    """'degiro-pdf:/path/file.pdf' -> (SourceType.DEGIRO_PDF, Path(...))."""
    kind, sep, path = spec.partition(":")
    if not sep or not path:
        raise argparse.ArgumentTypeError(f"Expected TYPE:PATH, got {spec!r}")
    try:
        source_type = SourceType(kind.strip().lower())
    except ValueError:
        choices = ", ".join(t.value for t in SourceType)
        raise argparse.ArgumentTypeError(
            f"Unknown input type {kind!r} (expected one of: {choices})"
        ) from None
    return source_type, Path(path)


def selected_forms(choice: str) -> tuple[FormKind, ...]:
    if choice == "all":
        return ALL_FORMS
    return (FormKind(choice),)


def process_files(args: argparse.Namespace) -> RunResult:
    logger = logging.getLogger(__name__)

    config = PipelineConfig(
        fiscal_year=args.year,
        declarant=Declarant(
            name=args.name, surname=args.surname, nif=args.nif, phone=args.phone
        ),
        aeat720_previous_total=args.previous_720_total,
        max_workers=args.max_workers,
    )
    documents = [
        Document.from_path(path, source_type) for source_type, path in args.input
    ]
    logger.info(
        "Reading %d file(s): %s", len(documents), ", ".join(d.name for d in documents)
    )

    if args.fx_table:
        try:
            rates = FxTable.from_csv(args.fx_table)
        except Exception as e:
            logger.exception("Failed to load FX table: %s", e)
            raise
    else:
        logger.info("No FX table given; only broker-stated EUR values are usable")
        rates = FxTable()

    result = run(documents, rates, config, selected_forms(args.form))
    result.issues.log_with(logger)

    out_dir = Path(args.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    for form, data in result.outputs.items():
        if not data:
            logger.warning("Form %s: no declaration required", form.value)
            continue
        out_path = out_dir / OUTPUT_NAMES[form].format(year=args.year)
        out_path.write_bytes(data)
        logger.info("Wrote %s to %s", form.value, out_path)

    if args.review:
        sink = ExcelReviewSink(out_path=Path(args.review), locale=args.locale)
        sink.write(result)

    return result


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="Spanish model 720 and D-6 from Degiro / Interactive Brokers"
    )
    p.add_argument(
        "--year", type=int, required=True, help="Fiscal year to declare (YYYY)"
    )
    p.add_argument(
        "input",
        type=parse_input,
        nargs="+",
        help=(
            "Broker reports as TYPE:PATH "
            "(degiro-pdf, degiro-csv, ibkr-html, ibkr-csv)"
        ),
    )
    p.add_argument(
        "--fx-table",
        type=str,
        default=None,
        help=(
            "Forex rates CSV with base EUR: 'date,currency,rate' where "
            "'rate' is target currency units per EUR"
        ),
    )
    p.add_argument("--nif", type=str, default="", help="Declarant tax id (NIF)")
    p.add_argument("--name", type=str, default="", help="Declarant first name")
    p.add_argument("--surname", type=str, default="", help="Declarant surname(s)")
    p.add_argument("--phone", type=str, default="", help="Contact phone number")
    p.add_argument(
        "--form",
        type=str,
        default="all",
        choices=["720", "d6", "all"],
        help="Which declaration(s) to generate",
    )
    p.add_argument(
        "--previous-720-total",
        type=Decimal,
        default=None,
        help="Total declared in the last model 720 filed, if any (EUR)",
    )
    p.add_argument(
        "--output-dir",
        type=str,
        default=".",
        help="Directory for the generated declaration files",
    )
    p.add_argument(
        "--review",
        type=str,
        default=None,
        help="Also write a review workbook (e.g., review.xlsx)",
    )
    p.add_argument(
        "--locale",
        type=str,
        default="ES",
        choices=["ES", "EN"],
        help="Locale for review workbook headers and sheet names",
    )
    p.add_argument(
        "--max-workers",
        type=int,
        default=1,
        help="Parse up to this many documents concurrently",
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity: -v (INFO), -vv (DEBUG)",
    )
    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_argparser()
    args = parser.parse_args(argv)

    # Configure logging based on verbosity
    verbosity_map = {
        0: logging.WARNING,  # Default: quiet
        1: logging.INFO,  # -v: informational
        2: logging.DEBUG,  # -vv and above: debug
    }
    level = verbosity_map.get(min(args.verbose, 2), logging.WARNING)
    configure_logging(level=level)

    result = process_files(args)
    if result.failed:
        logging.getLogger(__name__).error("No declaration could be produced")
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

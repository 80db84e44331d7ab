"""
Pipeline entry points: documents in, declaration files out.

Stages run strictly forward:
- extraction and broker parsing, one document at a time (optionally fanned out)
- ledger assembly: resolution, conversion, reconciliation
- tax rules and form generation, independently per form

Per-document failures never abort a run; they become `source_dropped` issues.
Fatal errors of one form (missing rate, field overflow) are reported for that
form only.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from taxdecl.config import PipelineConfig
from taxdecl.errors import FormatNotRecognized, NoDataExtracted, TaxDeclError
from taxdecl.extract import Document, extract_rows
from taxdecl.forms import Aeat720Generator, D6Generator
from taxdecl.ledger import FxTable, Ledger, assemble
from taxdecl.model import IssueLog, merge_issues
from taxdecl.parsers import ParseOutcome, parser_for
from taxdecl.rules import FormKind, RuleResult, aeat720_lines, d6_lines

logger = logging.getLogger(__name__)

ALL_FORMS = (FormKind.AEAT_720, FormKind.D6)


def ingest(document: Document, config: PipelineConfig) -> ParseOutcome:
    """Extract and parse one document.

    Unrecognised or empty documents come back as a failed outcome instead of
    raising.
    """
    parser = parser_for(document.source_type, config.reporting_currency)
    as_of = document.period_end or config.period_end
    logger.info("Reading %s (%s)", document.name, document.source_type.value)
    try:
        return parser.parse(extract_rows(document), document.name, as_of=as_of)
    except (FormatNotRecognized, NoDataExtracted) as e:
        logger.warning("Dropping %s: %s", document.name, e)
        return ParseOutcome(source=document.name, broker=parser.broker, error=e)


def ingest_all(
    documents: Sequence[Document],
    config: PipelineConfig,
    max_workers: int | None = None,
) -> list[ParseOutcome]:
    """Parse every document; results keep the input order."""
    workers = max(1, max_workers or config.max_workers)
    if workers == 1 or len(documents) <= 1:
        return [ingest(d, config) for d in documents]
    with ThreadPoolExecutor(max_workers=min(workers, len(documents))) as pool:
        return list(pool.map(lambda d: ingest(d, config), documents))


def declaration_lines(
    ledger: Ledger, form: FormKind, config: PipelineConfig
) -> RuleResult:
    if form is FormKind.AEAT_720:
        return aeat720_lines(ledger, config)
    if form is FormKind.D6:
        return d6_lines(ledger, config)
    raise ValueError(f"Unknown form: {form!r}")


def render(result: RuleResult, form: FormKind, config: PipelineConfig) -> bytes:
    """File contents for the lines of one form; empty when nothing is due."""
    if not result.lines:
        return b""
    if form is FormKind.AEAT_720:
        return Aeat720Generator(config.declarant).generate(result.lines)
    return D6Generator(config.declarant).generate(result.lines)


def declare(
    ledger: Ledger, form: FormKind, config: PipelineConfig
) -> tuple[bytes, IssueLog]:
    """Generate one form from an assembled ledger.

    Returns empty bytes when no declaration is required. Raises
    ExchangeRateError or FieldOverflow when the form cannot be produced.
    """
    result = declaration_lines(ledger, form, config)
    return render(result, form, config), result.issues


@dataclass
class RunResult:
    ledger: Ledger
    outcomes: list[ParseOutcome]
    outputs: dict[FormKind, bytes] = field(default_factory=dict)
    errors: dict[FormKind, TaxDeclError] = field(default_factory=dict)
    rules: dict[FormKind, RuleResult] = field(default_factory=dict)
    issues: IssueLog = field(default_factory=IssueLog)

    @property
    def failed(self) -> bool:
        """True when every requested form failed."""
        return bool(self.errors) and not self.outputs


def run(
    documents: Sequence[Document],
    rates: FxTable,
    config: PipelineConfig,
    forms: Iterable[FormKind] = ALL_FORMS,
) -> RunResult:
    outcomes = ingest_all(documents, config)
    ledger = assemble(outcomes, rates, config)
    result = RunResult(ledger=ledger, outcomes=outcomes)

    form_issues: list[IssueLog] = []
    for form in forms:
        try:
            rules = declaration_lines(ledger, form, config)
            result.outputs[form] = render(rules, form, config)
        except TaxDeclError as e:
            logger.error("Form %s not produced: %s", form.value, e)
            result.errors[form] = e
            continue
        result.rules[form] = rules
        form_issues.append(rules.issues)
        logger.info(
            "Form %s: %d lines, total %s",
            form.value,
            len(rules.lines),
            rules.total,
        )

    result.issues = merge_issues([ledger.issues, *form_issues])
    return result

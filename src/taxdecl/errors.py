from __future__ import annotations

import datetime as dt


class TaxDeclError(Exception):
    """Base class for pipeline failures."""


class FormatNotRecognized(TaxDeclError):
    """The extractor could not locate any expected structure in a document."""


class NoDataExtracted(TaxDeclError):
    """A parser recognised the document but found zero valid records."""


class UnresolvedInstrument(TaxDeclError):
    """An instrument identity could not be verified.

    Names the condition behind `unresolved_instrument` issues. The pipeline
    records those and goes on; it never raises this.
    """


class ExchangeRateError(TaxDeclError):
    def __init__(self, currency: str, date: dt.date, message: str) -> None:
        super().__init__(message)
        self.currency = currency
        self.date = date


class MissingExchangeRate(ExchangeRateError):
    def __init__(self, currency: str, date: dt.date) -> None:
        super().__init__(
            currency, date, f"No exchange rate for {currency} on or before {date}"
        )


class StaleExchangeRate(ExchangeRateError):
    def __init__(
        self, currency: str, date: dt.date, rate_date: dt.date, max_gap_days: int
    ) -> None:
        gap = (date - rate_date).days
        super().__init__(
            currency,
            date,
            f"Nearest {currency} rate for {date} is from {rate_date} "
            f"({gap} days earlier; maximum allowed gap is {max_gap_days})",
        )
        self.rate_date = rate_date
        self.gap_days = gap


class ReconciliationMismatch(TaxDeclError):
    """Replayed movements do not match a reported position.

    Names the condition behind `reconciliation_mismatch` issues; recorded,
    never raised by the pipeline.
    """


class FieldOverflow(TaxDeclError):
    def __init__(self, field: str, value: object, reason: str) -> None:
        super().__init__(f"Field {field!r} cannot hold {value!r}: {reason}")
        self.field = field
        self.value = value

"""Known table layouts of Degiro reports."""

from __future__ import annotations

from .text_stream import TextTableSpec

# Page footer of the annual report; may fall in the middle of a table.
_PAGE_FOOTER = (
    "DEGIRO B.V. es una",
    "Holandeses.",
    "Informe Anual",
    "www.degiro.es",
    "flatexDEGIRO Bank",
)

DEGIRO_TRANSACTIONS = TextTableSpec(
    section="Transacciones",
    title=(
        "Beneficios y pérdidas derivadas de la transmisión"
        " de elementos patrimoniales"
    ),
    columns=(
        "Fecha",
        "Producto",
        "Symbol/ISIN",
        "Tipo de\norden",
        "Cantidad",
        "Precio",
        "Valor local",
        "Valor en EUR",
        "Comisión",
        "Tipo de\ncambio",
        "Beneficios y\npérdidas",
    ),
    anchor=0,
    # Newer reports close the table with the flatex bank notes.
    end_markers=("Informe anual de flatex",),
    skip_prefixes=_PAGE_FOOTER,
)

# "Certificado de Beneficiario Último Económico": holdings at the report date.
DEGIRO_PORTFOLIO = TextTableSpec(
    section="Cartera",
    title="Certificado de Beneficiario Último Económico.",
    columns=(
        "Producto",
        "ISIN",
        "Bolsa",
        "Cantidad",
        "Moneda",
        "Precio",
        "Valor (EUR)",
    ),
    # Wrapped product names leave the ISIN column empty.
    anchor=1,
    end_markers=("Amsterdam,",),
    skip_prefixes=("CASH", *_PAGE_FOOTER),
    row_tags=("Stock", "ETF", "Fund", "Bond"),
)

DEGIRO_DIVIDENDS = TextTableSpec(
    section="Dividendos",
    title="Dividendos",
    columns=(
        "Fecha",
        "Producto",
        "Symbol/ISIN",
        "País",
        "Cantidad",
        "Dividendo",
        "Divisa",
        "Retención",
    ),
    anchor=0,
    skip_prefixes=_PAGE_FOOTER,
)

DEGIRO_REPORT_TABLES = (DEGIRO_TRANSACTIONS, DEGIRO_PORTFOLIO, DEGIRO_DIVIDENDS)

DEGIRO_PORTFOLIO_CSV_COLUMNS = (
    "Producto",
    "Symbol/ISIN",
    "Cantidad",
    "Precio de",
    "Valor local",
    "Valor en EUR",
)

"""Fallback extractor for suppliers without a dedicated layout."""

from __future__ import annotations

import re

from facturier.extraction.extractors.base import AMOUNT_GROUP, BaseExtractor, FieldPattern, RowGrammar
from facturier.extraction.models import ExtractionResult, LineItem
from facturier.extraction.normalizer import collapse_whitespace, parse_amount

_NUMBERS = rf"(\d+(?:[.,]\d+)?)[ \t]+{AMOUNT_GROUP}[ \t]*€?[ \t]+{AMOUNT_GROUP}[ \t]*€?[ \t]*$"


def _amount(label: str) -> FieldPattern:
    return FieldPattern(rf"{label}\s*:?\s*{AMOUNT_GROUP}")


class GenericExtractor(BaseExtractor):
    supplier = "GENERIC"
    decimal_hint = "comma"

    number_patterns = (
        FieldPattern(r"facture\s*n[°o]?\s*[:.]?\s*([A-Z0-9/\-]*\d[A-Z0-9/\-]*)"),
        FieldPattern(r"invoice\s*(?:n[°o]\.?|no\.?|number|#)\s*:?\s*([A-Z0-9/\-]*\d[A-Z0-9/\-]*)"),
        FieldPattern(r"document\s*(?:n[°o]\.?|no\.?)\s*:?\s*([A-Z0-9/\-]*\d[A-Z0-9/\-]*)"),
        FieldPattern(r"devis\s*n[°o]?\s*[:.]?\s*([A-Z0-9/\-]*\d[A-Z0-9/\-]*)"),
        FieldPattern(r"\bN[°o]\s*:?\s*([A-Z0-9][A-Z0-9/\-]*\d[A-Z0-9/\-]*)"),
    )
    excl_tax_patterns = (_amount(r"total\s*h\.?t\.?"), _amount(r"sous[-\s]?total"), _amount(r"net\s*h\.?t\.?"))
    tax_patterns = (_amount(r"total\s*t\.?v\.?a\.?"), _amount(r"\bt\.?v\.?a\.?(?:\s*\d+(?:[.,]\d+)?\s*%)?"))
    incl_tax_patterns = (_amount(r"total\s*t\.?t\.?c\.?"), _amount(r"net\s*[àa]\s*payer"))

    table_start_markers = (r"^.*d[ée]signation.*$", r"^.*description.*$", r"^.*r[ée]f[ée]rence.*$")
    table_end_markers = (r"total\s*h\.?t", r"sous[-\s]?total", r"net\s*[àa]\s*payer")

    def __init__(self, catalog: dict[str, str] | None = None, number_patterns=(), supplier: str | None = None):
        super().__init__(catalog, number_patterns)
        if supplier:
            self.supplier = supplier

    def row_grammars(self) -> list[RowGrammar]:
        return [
            RowGrammar("reference", rf"^[ \t]*([A-Z0-9][A-Z0-9\-]+)[ \t]{{2,}}(.+?)[ \t]{{2,}}{_NUMBERS}",
                       self._build_with_reference, flags=re.MULTILINE),
            RowGrammar("columns", rf"^[ \t]*(.+?)[ \t]{{2,}}{_NUMBERS}", self._build_without_reference),
        ]

    def _line(self, reference: str | None, description: str, quantity: str, unit_price: str, amount: str) -> LineItem:
        return LineItem(
            description=collapse_whitespace(description),
            reference_code=reference,
            quantity=parse_amount(quantity, self.decimal_hint) or 0.0,
            unit_price=parse_amount(unit_price, self.decimal_hint) or 0.0,
            amount=parse_amount(amount, self.decimal_hint) or 0.0,
        )

    def _build_with_reference(self, match: re.Match) -> LineItem:
        return self._line(*match.groups())

    def _build_without_reference(self, match: re.Match) -> LineItem:
        return self._line(None, *match.groups())

    def extract(self, raw_text: str, source_filename: str = "") -> ExtractionResult:
        result = super().extract(raw_text, source_filename)
        result.warnings.insert(0, f"Generic parsing used for {self.supplier}: no dedicated extractor, check the result.")
        return result

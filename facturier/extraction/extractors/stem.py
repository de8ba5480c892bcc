"""STEM quotes ("COTATION 1  2026 SOUV").

Table columns are NAME | PRODUCT | QTY | PU HT FOB | TOTAL; references are
either "SOUV n" / "SOUV n-m" or four digits. The footer carries a FOB total,
transport and customs, the overall HT total, VAT at 20% and the TTC total.
"""

from __future__ import annotations

import re

from facturier.extraction.extractors.base import (
    BaseExtractor,
    FieldPattern,
    RowGrammar,
    date_from_groups,
)
from facturier.extraction.models import Invoice, LineItem
from facturier.extraction.normalizer import (
    collapse_whitespace,
    flatten_pages,
    normalize_text,
    parse_amount,
    round_money,
)

STEM_AMOUNT = r"(\d[\d ]*,\d{2})"
_ROW_TAIL = rf"\s+(\d+)\s+{STEM_AMOUNT}\s*€?\s+{STEM_AMOUNT}\s*€?"

TRANSPORT_RATE = 0.10
VAT_RATE = 0.20


def _amount(label: str) -> FieldPattern:
    return FieldPattern(rf"{label}\s+{STEM_AMOUNT}")


class StemExtractor(BaseExtractor):
    supplier = "STEM"
    decimal_hint = "comma"

    number_patterns = (FieldPattern(r"COTATION[ \t]+([^\n]+)", lambda m: collapse_whitespace(m.group(1))),)
    date_patterns = (FieldPattern(r"(?<!\d)(\d{2})/(\d{2})/(\d{4})(?!\d)", date_from_groups),)

    fob_patterns = (_amount(r"TOTAL\s+HT\s+FOB"),)
    transport_patterns = (_amount(r"Transport\s+et\s+douanes"),)
    excl_tax_patterns = (_amount(r"TOTAL\s+HT(?!\s+FOB)"),)
    tax_patterns = (_amount(r"TVA\s+20\s*%"),)
    incl_tax_patterns = (_amount(r"TOTAL\s+TTC"),)

    def prepare_text(self, raw_text: str) -> str:
        return flatten_pages(normalize_text(raw_text))

    def prepare_region(self, region: str) -> str:
        return collapse_whitespace(region)

    def totals_scope(self, text: str) -> str:
        return collapse_whitespace(text)

    def row_grammars(self) -> list[RowGrammar]:
        return [
            RowGrammar("souv", rf"\b(SOUV\s+\d+(?:\s*-\s*\d+)?)\s+(.+?){_ROW_TAIL}", self._build_row),
            RowGrammar("numeric", rf"(?<!\d)(\d{{4}})\s+([A-Z][^0-9]+?){_ROW_TAIL}", self._build_numeric_row),
        ]

    def _build_row(self, match: re.Match) -> LineItem | None:
        reference, description, quantity, unit_price, amount = match.groups()
        description = collapse_whitespace(description)
        if re.match(r"TOTAL\b", description, re.IGNORECASE) or re.search(r"FOB|TVA|TRANSPORT", description, re.IGNORECASE):
            return None
        line = LineItem(
            description=description,
            reference_code=collapse_whitespace(reference),
            quantity=float(int(quantity)),
            unit_price=parse_amount(unit_price, self.decimal_hint) or 0.0,
            amount=parse_amount(amount, self.decimal_hint) or 0.0,
        )
        return line if line.unit_price else None

    def _build_numeric_row(self, match: re.Match) -> LineItem | None:
        # "2026 SOUV" is the quote title, not a product
        if re.match(r"SOUV\b", match.group(2), re.IGNORECASE):
            return None
        return self._build_row(match)

    def row_identity(self, line: LineItem) -> tuple:
        return (line.reference_code, line.description, line.quantity)

    def extract_totals(self, invoice: Invoice, text: str, warnings: list[str]):
        scope = self.totals_scope(text)
        fob = self.find_amount(self.fob_patterns, scope)
        transport = self.find_amount(self.transport_patterns, scope)
        excl_tax = self.find_amount(self.excl_tax_patterns, scope)
        tax = self.find_amount(self.tax_patterns, scope)
        incl_tax = self.find_amount(self.incl_tax_patterns, scope)

        if not all((fob, transport, excl_tax, tax, incl_tax)):
            fob = invoice.lines_total
            transport = round_money(fob * TRANSPORT_RATE)
            excl_tax = round_money(fob + transport)
            tax = round_money(excl_tax * VAT_RATE)
            incl_tax = round_money(excl_tax + tax)
            warnings.append(
                "STEM footer totals incomplete: FOB total taken from the lines, "
                "transport at 10% and VAT at 20% computed"
            )

        invoice.total_excl_tax = excl_tax
        invoice.total_tax = tax
        invoice.total_incl_tax = incl_tax
        invoice.raw_data.update(fob_total=fob, transport_and_customs=transport)

    def lines_target_total(self, invoice: Invoice) -> float:
        """Product lines add up to the FOB total; transport is charged on top."""
        return (invoice.raw_data or {}).get("fob_total") or invoice.total_excl_tax

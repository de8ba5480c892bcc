"""RB DRINKS invoices.

Columns: Ref | Désignation | BAT | Logo | Qté | PU HT | Remise | Montant HT,
amounts in English notation ("1,196.00 €"). Multi-page tables are flattened
into a single double-space separated stream before row matching.
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

RB_AMOUNT = r"\d[\d,]*\.\d{2}"
_PRICES = rf"(\d[\d,]*)\s+({RB_AMOUNT})\s*€\s+({RB_AMOUNT})\s*€\s+({RB_AMOUNT})\s*€"

SPECIAL_REFERENCES = ("1-couleur", "FT", "CHFT", "CHFR", "TRANSPORT")


def _upper(match: re.Match) -> str:
    return match.group(1).upper()


def _money(text: str | None) -> float:
    return parse_amount(text, "dot") or 0.0


def _amount_patterns(label: str) -> tuple[FieldPattern, ...]:
    return (
        FieldPattern(rf"{label}\s+({RB_AMOUNT})\s*€"),
        FieldPattern(rf"{label}\s*:?\s*(\d[\d\s,.]*?)\s*€"),
    )


class RBDrinksExtractor(BaseExtractor):
    supplier = "RB DRINKS"
    decimal_hint = "dot"

    number_patterns = (
        FieldPattern(r"facture\s*n[°o]?\s*:?\s*([A-Z]\d+)", _upper),
        FieldPattern(r"n[°o]?\s*facture\s*:?\s*([A-Z]\d+)", _upper),
        FieldPattern(r"\b(F\d+)\b", _upper),
        FieldPattern(r"\b([A-Z]\d{4,})\b", _upper),
    )
    date_patterns = (
        FieldPattern(r"date\s+(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})(?!\d)", date_from_groups),
        FieldPattern(r"date\s+(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2})(?!\d)", date_from_groups),
        FieldPattern(r"(?<!\d)(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})(?!\d)", date_from_groups),
        FieldPattern(r"(?<!\d)(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2})(?!\d)", date_from_groups),
    )

    gross_patterns = _amount_patterns(r"Total\s+HT")
    discount_patterns = _amount_patterns(r"Remise")
    net_patterns = _amount_patterns(r"Net\s+HT")
    tax_patterns = (FieldPattern(rf"TVA\s*\(\s*20\s*%\s*\)\s+({RB_AMOUNT})\s*€"),) + _amount_patterns(r"TVA")
    incl_tax_patterns = _amount_patterns(r"Total\s+TTC")

    table_start_markers = (
        r"R[ÉE]F\.?\s+D[ÉE]SIGNATION\s+BAT\s+LOGO\s+QT[ÉE]\.?\s+PU\s+HT\s+REMISE\s+MONTANT\s+HT",
        r"R[ÉE]F\.?\s+D[ÉE]SIGNATION",
        r"D[ÉE]SIGNATION\s+BAT",
    )
    table_end_markers = (r"Total\s+HT",)

    def prepare_text(self, raw_text: str) -> str:
        return flatten_pages(normalize_text(raw_text))

    def number_from_filename(self, source_filename: str) -> str:
        match = re.search(r"RB(\d+)", source_filename or "", re.IGNORECASE)
        return f"RB{match.group(1)}" if match else super().number_from_filename(source_filename)

    def prepare_region(self, region: str) -> str:
        region = re.sub(r"\n\s*", "  ", region)
        return re.sub(r"\s{3,}", "  ", region)

    def row_grammars(self) -> list[RowGrammar]:
        specials = "|".join(re.escape(ref) for ref in SPECIAL_REFERENCES)
        return [
            RowGrammar(
                "special",
                rf"(?<![\w-])({specials})\s+([^€]+?)\s+{_PRICES}",
                self._build_special,
            ),
            RowGrammar(
                "bat-logo",
                rf"(?<![\w-])([A-Z0-9][A-Za-z0-9\-]*)\s+([^€]+?)\s+(\d{{4}})\s+([A-Z][A-Z ]{{2,}}?)\s+{_PRICES}",
                self._build_full,
                flags=re.MULTILINE,
            ),
            RowGrammar(
                "simple",
                rf"(?<![\w-])([A-Z0-9][A-Za-z0-9\-]*)\s+([^€]+?)\s+{_PRICES}",
                self._build_simple,
                flags=re.MULTILINE,
            ),
        ]

    def _line(self, reference: str, description: str, quantity: str, unit_price: str,
              discount: str, amount: str, **extra) -> LineItem:
        return LineItem(
            description=collapse_whitespace(description),
            reference_code=reference.strip(),
            quantity=_money(quantity),
            unit_price=_money(unit_price),
            discount=_money(discount),
            amount=_money(amount),
            **extra,
        )

    def _build_special(self, match: re.Match) -> LineItem:
        return self._line(*match.groups())

    def _build_full(self, match: re.Match) -> LineItem:
        reference, description, bat, logo, quantity, unit_price, discount, amount = match.groups()
        return self._line(reference, description, quantity, unit_price, discount, amount,
                          approval_code=bat, logo_marking=collapse_whitespace(logo))

    def _build_simple(self, match: re.Match) -> LineItem | None:
        reference = match.group(1)
        # Supplier refs look like "BOL-B" or "JAR150-T"
        if not (re.search(r"[A-Za-z]", reference) and re.search(r"[\d\-]", reference)):
            return None
        return self._line(*match.groups())

    def row_identity(self, line: LineItem) -> tuple:
        return (line.reference_code, line.approval_code, line.logo_marking, line.quantity, line.amount)

    def extract_totals(self, invoice: Invoice, text: str, warnings: list[str]):
        gross = self.find_amount(self.gross_patterns, text)
        header_discount = self.find_amount(self.discount_patterns, text)
        net = self.find_amount(self.net_patterns, text) or round_money(gross - header_discount)
        tax = self.find_amount(self.tax_patterns, text)
        invoice.total_excl_tax = net
        invoice.total_tax = tax
        invoice.total_incl_tax = self.find_amount(self.incl_tax_patterns, text) or round_money(net + tax)
        invoice.raw_data.update(gross_total=gross, header_discount=header_discount, net_total=net)

    def lines_target_total(self, invoice: Invoice) -> float:
        """Line amounts add up to the gross total, before the invoice-level discount."""
        return (invoice.raw_data or {}).get("gross_total") or invoice.total_excl_tax

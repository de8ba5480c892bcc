"""ITALESSE order confirmations / invoices (Italian layout, bilingual labels).

Rows read "Qty  Unit price  Amount  Description  [PZ] Ref  VAT code  Discounts  [Colour]",
with Italian number notation ("1.149,50") and discounts as "0,00+0,00+0,00".
"""

from __future__ import annotations

import re

from facturier.extraction.extractors.base import (
    AMOUNT_GROUP,
    BaseExtractor,
    FieldPattern,
    RowGrammar,
    date_from_groups,
    first_match,
)
from facturier.extraction.models import Invoice, LineItem
from facturier.extraction.normalizer import (
    collapse_whitespace,
    flatten_pages,
    normalize_text,
    parse_amount,
    round_money,
)

_APPROVAL_RE = re.compile(r"PROTOCOLLO\s+N\.\s*([A-Z0-9\-]+(?:\s+\d[\d\-]*)*)", re.IGNORECASE)
_LOGO_RE = re.compile(r"MARQUAGE.+", re.IGNORECASE)
_BOX = " BOITE DE "


def _labelled_date(label: str) -> FieldPattern:
    return FieldPattern(rf"{label}[\s\S]{{0,500}}?(\d{{1,2}})[/\-.](\d{{1,2}})[/\-.](\d{{4}}|\d{{2}})(?!\d)",
                        date_from_groups)


def clean_description(text: str) -> tuple[str, str | None, str | None]:
    """Split a raw row description into (description, approval code, logo marking)."""
    clean = collapse_whitespace(text)
    clean = collapse_whitespace(re.sub(r"IDEM DERNIERE COMMANDE", "", clean, flags=re.IGNORECASE))

    approval = None
    match = _APPROVAL_RE.search(clean)
    if match:
        approval = match.group(1).strip()
        clean = collapse_whitespace(clean[:match.start()] + " " + clean[match.end():])

    logo = None
    match = _LOGO_RE.search(clean)
    if match:
        logo = match.group(0).strip()
        clean = clean[:match.start()].strip()

    if _BOX in clean:
        product, _, rest = clean.partition(_BOX)
        clean = f"{product.strip()} - BOITE DE {rest.strip()}"
    return clean, approval, logo


class ItalesseExtractor(BaseExtractor):
    supplier = "ITALESSE"
    decimal_hint = "comma"

    number_patterns = (
        FieldPattern(r"Numero\s+doc\.\s*/\s*Doc\.\s*No\.\s+([A-Z0-9/\-]+)", lambda m: m.group(1).strip().upper()),
    )
    date_patterns = (
        _labelled_date(r"Data\s+doc\.\s*/\s*Date"),
        FieldPattern(r"(?<!\d)(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})(?!\d)", date_from_groups),
    )
    delivery_date_patterns = (_labelled_date(r"Data\s+Cons\.\s*/\s*Delivery\s+Date"),)
    excl_tax_patterns = (FieldPattern(rf"TOTALE\s+ORDINE\s*/\s*TOTAL\s+AMOUNT\s+{AMOUNT_GROUP}"),)

    def prepare_text(self, raw_text: str) -> str:
        return flatten_pages(normalize_text(raw_text))

    def row_grammars(self) -> list[RowGrammar]:
        return [
            RowGrammar(
                "order-row",
                r"(?<![\d.,])(\d[\d.]*)\s+(\d+,\d+)\s+(\d[\d.,]+)\s+(.+?)\s+(?:PZ\s+)?([A-Z0-9/]+)\s+(\d{3})\s+"
                r"([0-9,]+\+[0-9,]+\+[0-9,]+)[ \t]*([A-Z]+\b|-)?",
                self._build_row,
            ),
        ]

    def _build_row(self, match: re.Match) -> LineItem | None:
        quantity, unit_price, amount, raw_description, reference, _vat, _discounts, colour = match.groups()
        description, approval, logo = clean_description(raw_description)
        if not reference or not description:
            return None
        return LineItem(
            description=description,
            reference_code=reference.strip(),
            approval_code=approval,
            logo_marking=logo,
            color_code=colour if colour and colour != "-" else None,
            quantity=parse_amount(quantity, self.decimal_hint) or 0.0,
            unit_price=parse_amount(unit_price, self.decimal_hint) or 0.0,
            amount=parse_amount(amount, self.decimal_hint) or 0.0,
        )

    def extract_totals(self, invoice: Invoice, text: str, warnings: list[str]):
        total = self.find_amount(self.excl_tax_patterns, text)
        if not total and invoice.lines:
            total = invoice.lines_total
            warnings.append(f"Order total not found, using the sum of the lines ({total:.2f})")
        invoice.total_excl_tax = round_money(total)
        invoice.total_tax = 0.0
        invoice.total_incl_tax = invoice.total_excl_tax

    def finalize(self, invoice: Invoice, text: str, warnings: list[str]):
        invoice.delivery_date = first_match(self.delivery_date_patterns, text)

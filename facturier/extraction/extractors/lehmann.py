"""LEHMANN F invoices.

One product per text line ("REF  Désignation  Qté  PU  Montant"), French
number notation. Multi-page invoices repeat partial totals at the bottom of
every page, so rows are read page by page and totals only after the last
"TRANSPORTAF" line of the last page.
"""

from __future__ import annotations

import re

from facturier.extraction.extractors.base import (
    AMOUNT_GROUP,
    HEADER_KEYWORDS,
    BaseExtractor,
    FieldPattern,
    RowGrammar,
    date_from_groups,
)
from facturier.extraction.models import Invoice, LineItem
from facturier.extraction.normalizer import (
    collapse_whitespace,
    normalize_reference,
    parse_amount,
    round_money,
    split_pages,
)

_QTY = r"(\d+(?:[.,]\d+)?)"
_NUMBERS = rf"{_QTY}[ \t]+{AMOUNT_GROUP}[ \t]*€?[ \t]+{AMOUNT_GROUP}[ \t]*€?[ \t]*$"

PAGE_START_MARKERS = (
    r"code\s+d[ée]signation",
    r"code\s+article",
    r"r[ée]f[ée]rence\s+d[ée]signation",
    r"d[ée]signation",
    r"description",
)
LAST_PAGE_END_MARKERS = (r"total\s*ht\s*euro", r"total\s*ttc\s*euro", r"net\s*[àa]\s*payer", r"acompte")
PAGE_END_MARKERS = (
    r"escompte",
    r"conditions\s*de\s*r[èe]glement",
    r"net\s*[àa]\s*payer",
    r"transportaf",
    r"au\s*1/3\s*30\s*J",
)
FULL_TEXT_END_MARKERS = (r"total\s*ht", r"sous[-\s]?total", r"\btva\b", r"total\s*ttc", r"net\s*[àa]\s*payer")

SUPPLIER_NAMES = (
    (r"LEHMANN\s+FR[ÈE]RES?", "LEHMANN FRERES"),
    (r"LEHMANN\s+F\b", "LEHMANN F"),
    (r"LEHMANN", "LEHMANN"),
)


def _prefixed(prefix: str):
    def convert(match: re.Match) -> str:
        return f"{prefix}{match.group(1)}"
    return convert


def _amount(label: str) -> FieldPattern:
    return FieldPattern(rf"{label}\s*:?\s*{AMOUNT_GROUP}")


class LehmannExtractor(BaseExtractor):
    supplier = "LEHMANN F"
    decimal_hint = "comma"

    number_patterns = (
        FieldPattern(r"facture\s*n[°o]?\s*:?\s*FA\s*(\d+)", _prefixed("FA")),
        FieldPattern(r"facture\s*FA\s*(\d+)", _prefixed("FA")),
        FieldPattern(r"\bFA\s*(\d+)\b", _prefixed("FA")),
        FieldPattern(r"facture\s*n[°o]?\s*:?\s*F\s*(\d+)", _prefixed("F")),
        FieldPattern(r"facture\s*F\s*(\d+)", _prefixed("F")),
        FieldPattern(r"\bn[°o]?\s*:?\s*F\s*(\d+)\b", _prefixed("F")),
        FieldPattern(r"\bF[ ]?(\d+)\b", _prefixed("F"), flags=0),
    )
    # Short years are the usual LEHMANN format
    date_patterns = (
        FieldPattern(r"date\s*:?\s*(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2})(?!\d)", date_from_groups),
        FieldPattern(r"(?<!\d)(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2})(?!\d)", date_from_groups),
        FieldPattern(r"date\s*:?\s*(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})(?!\d)", date_from_groups),
        FieldPattern(r"(?<!\d)(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})(?!\d)", date_from_groups),
    )

    excl_tax_patterns = (
        _amount(r"total\s*ht\s*euro"),
        _amount(r"total\s*ht"),
        _amount(r"ht\s*total"),
        FieldPattern(rf"total\s*:?\s*{AMOUNT_GROUP}\s*€?\s*ht\b"),
    )
    tax_patterns = (
        _amount(r"total\s*tva(?:\s*euro)?"),
        _amount(r"t\.v\.a\."),
        FieldPattern(rf"\btva\s*(?:\(?\s*\d+(?:[.,]\d+)?\s*%\s*\)?)?\s*:?\s*{AMOUNT_GROUP}(?!\s*%)"),
    )
    incl_tax_patterns = (
        _amount(r"total\s*ttc\s*euro"),
        _amount(r"total\s*ttc"),
        _amount(r"net\s*[àa]\s*payer\s*€?"),
        _amount(r"[àa]\s*payer\s*€?"),
    )

    header_keywords = HEADER_KEYWORDS + ("code", "référence", "reference", "ref", "unité", "unit", "ht", "prix", "qty")

    def number_from_filename(self, source_filename: str) -> str:
        match = re.search(r"F(A)?\s*(\d+)", source_filename or "", re.IGNORECASE)
        if not match:
            return super().number_from_filename(source_filename)
        return f"{'FA' if match.group(1) else 'F'}{match.group(2)}"

    # --- regions ---

    def page_region(self, page: str, last_page: bool) -> str | None:
        start = -1
        for marker in PAGE_START_MARKERS:
            match = re.search(marker, page, re.IGNORECASE)
            if match:
                line_end = page.find("\n", match.end())
                start = len(page) if line_end < 0 else line_end + 1
                break
        if start < 0:
            return None

        end = len(page)
        transport = re.search(r"transportaf", page[start:], re.IGNORECASE) if last_page else None
        if transport:
            end = start + transport.start()
        else:
            for marker in LAST_PAGE_END_MARKERS if last_page else PAGE_END_MARKERS:
                match = re.search(marker, page[start:], re.IGNORECASE)
                if match:
                    end = min(end, start + match.start())
        return page[start:end] if end > start else None

    def full_text_region(self, text: str) -> str:
        start = 0
        for marker in PAGE_START_MARKERS:
            match = re.search(marker, text, re.IGNORECASE)
            if match:
                start = match.end()
                break
        end = len(text)
        for marker in FULL_TEXT_END_MARKERS:
            match = re.search(marker, text[start:], re.IGNORECASE)
            if match:
                end = min(end, start + match.start())
        return text[start:end]

    def totals_scope(self, text: str) -> str:
        last_page = split_pages(text)[-1]
        positions = [m.end() for m in re.finditer(r"transportaf", last_page, re.IGNORECASE)]
        return last_page[positions[-1]:] if positions else last_page

    def extract_lines(self, text: str, warnings: list[str]) -> list[LineItem]:
        pages = split_pages(text)
        lines: list[LineItem] = []
        for index, page in enumerate(pages):
            region = self.page_region(page, index == len(pages) - 1)
            if region:
                lines.extend(self.match_rows(region))
        if not lines:
            lines = self.match_rows(self.full_text_region(text))
        return lines

    # --- rows ---

    def row_grammars(self) -> list[RowGrammar]:
        grammars = []
        if self.catalog:
            known = "|".join(re.escape(code) for code in sorted(self.catalog, key=len, reverse=True))
            grammars.append(RowGrammar(
                "known-reference", rf"^[ \t]*({known})[ \t]+(.+?)[ \t]{{2,}}{_NUMBERS}", self._build_with_reference
            ))
        grammars += [
            RowGrammar("reference", rf"^[ \t]*([A-Z0-9\-]{{2,}})[ \t]{{2,}}(.+?)[ \t]{{2,}}{_NUMBERS}",
                       self._build_with_reference, flags=re.MULTILINE),
            RowGrammar("reference-single-space",
                       rf"^[ \t]*([A-Z0-9\-]{{2,}})[ \t]+([A-Z][A-Za-zÀ-ÿ \t\-'.]+?)[ \t]{{2,}}{_NUMBERS}",
                       self._build_with_reference, flags=re.MULTILINE),
            RowGrammar("columns", rf"^[ \t]*(.+?)[ \t]{{2,}}{_NUMBERS}", self._build_without_reference),
            RowGrammar("loose", rf"^[ \t]*(.+?)[ \t]+{_NUMBERS}", self._build_without_reference),
            RowGrammar("separated",
                       rf"^[ \t]*(.+?)[\t|][ \t]*{_QTY}[ \t]*[\t|][ \t]*{AMOUNT_GROUP}[ \t]*[\t|][ \t]*{AMOUNT_GROUP}[ \t]*$",
                       self._build_without_reference),
            RowGrammar("amount-only", rf"^[ \t]*(.+?)[ \t]+{AMOUNT_GROUP}[ \t]*€?[ \t]*$", self._build_amount_only),
        ]
        return grammars

    def _make_line(self, reference: str | None, description: str, quantity: str,
                   unit_price: str | None, amount: str | None) -> LineItem:
        qty = parse_amount(quantity, self.decimal_hint) or 0.0
        unit = parse_amount(unit_price, self.decimal_hint) or 0.0
        total = parse_amount(amount, self.decimal_hint) or 0.0
        if not unit and total and qty:
            unit = total / qty
        if not total:
            total = unit * qty
        return LineItem(
            description=collapse_whitespace(description),
            reference_code=reference.strip() if reference else None,
            quantity=qty,
            unit_price=round_money(unit),
            amount=round_money(total),
        )

    def _build_with_reference(self, match: re.Match) -> LineItem:
        return self._make_line(*match.groups())

    def _build_without_reference(self, match: re.Match) -> LineItem:
        return self._make_line(None, *match.groups())

    def _build_amount_only(self, match: re.Match) -> LineItem:
        return self._make_line(None, match.group(1), "1", None, match.group(2))

    def is_valid_row(self, line: LineItem) -> bool:
        if re.match(r"(?:total|tva|ttc|transportaf)", line.description, re.IGNORECASE):
            return False
        return len(line.description) > 2 and super().is_valid_row(line)

    def backfill_descriptions(self, lines: list[LineItem]) -> int:
        """Known references always take the catalog description; unknown short ones keep their code."""
        replaced = 0
        for line in lines:
            if not line.reference_code:
                continue
            known = self.catalog.get(normalize_reference(line.reference_code))
            if known:
                if known != line.description:
                    line.description = known
                    replaced += 1
            elif len(line.description) < 10 or re.fullmatch(r"[A-Z0-9\s\-]+", line.description):
                line.description = f"{line.reference_code} - {line.description}"
        return replaced

    def finalize(self, invoice: Invoice, text: str, warnings: list[str]):
        for pattern, name in SUPPLIER_NAMES:
            if re.search(pattern, text, re.IGNORECASE):
                invoice.raw_data["supplier_name"] = name
                break

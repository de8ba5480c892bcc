"""Shared extraction pipeline for supplier documents.

Every extractor runs the same steps over the raw text:

1. text normalisation (line endings, exotic spaces, page breaks)
2. document number: learned patterns, then supplier patterns, then file name
3. document date, defaulting to today with a warning
4. line items: table region isolation, then row grammars from strictest to
   loosest, header/footer rejection, reference catalog backfill
5. totals, scoped to the last occurrence of total keywords
6. placeholder line when nothing was recovered, then reconciliation warnings

Each field cascade is an ordered tuple of ``FieldPattern`` (first match
wins), so a supplier is mostly data: patterns, markers and row grammars.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, Iterable

import config
from facturier.errors import ExtractionError
from facturier.extraction.models import ExtractionResult, Invoice, LineItem
from facturier.extraction.normalizer import (
    AMOUNT,
    build_date,
    collapse_whitespace,
    normalize_reference,
    normalize_text,
    parse_amount,
    round_money,
)

logger = logging.getLogger(__name__)

# Words that mark a header, footer or totals row rather than a product
HEADER_KEYWORDS = (
    "total", "sous-total", "tva", "ttc", "net à payer", "net a payer", "montant",
    "désignation", "designation", "quantité", "qté", "prix unitaire", "page", "report",
)


@dataclass(frozen=True)
class FieldPattern:
    """One step of a first-match-wins cascade: a regex and how to turn its match into a value."""
    pattern: str
    convert: Callable[[re.Match], object] | None = None
    flags: int = re.IGNORECASE

    @property
    def regex(self) -> re.Pattern:
        return re.compile(self.pattern, self.flags)

    def value(self, match: re.Match):
        if self.convert is not None:
            return self.convert(match)
        return ((match.group(1) if match.groups() else match.group(0)) or "").strip()


@dataclass(frozen=True)
class RowGrammar:
    name: str
    pattern: str
    build: Callable[[re.Match], LineItem | None]
    flags: int = re.IGNORECASE | re.MULTILINE

    @property
    def regex(self) -> re.Pattern:
        return re.compile(self.pattern, self.flags)


def first_match(patterns: Iterable[FieldPattern], text: str):
    for field_pattern in patterns:
        match = field_pattern.regex.search(text)
        if match:
            value = field_pattern.value(match)
            if value:
                return value
    return None


def last_match(patterns: Iterable[FieldPattern], text: str):
    """Like ``first_match`` but each pattern keeps its last occurrence (skips partial page totals)."""
    for field_pattern in patterns:
        for match in reversed(list(field_pattern.regex.finditer(text))):
            value = field_pattern.value(match)
            if value:
                return value
    return None


def date_from_groups(match: re.Match) -> date | None:
    return build_date(match.group(1), match.group(2), match.group(3))


DEFAULT_DATE_PATTERNS = (
    FieldPattern(r"date\s*:?\s*(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4}|\d{2})(?!\d)", date_from_groups),
    FieldPattern(r"(?<!\d)(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4})(?!\d)", date_from_groups),
    FieldPattern(r"(?<!\d)(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{2})(?!\d)", date_from_groups),
)


class RowCollector:
    """Accumulates rows across grammar passes.

    A row is rejected when its span overlaps an accepted one, or when its
    composite key (reference, quantity, amount, position) was already seen.
    ``identity`` adds a supplier-specific key that ignores position.
    """

    def __init__(self, identity: Callable[[LineItem], tuple] | None = None):
        self._rows: list[tuple[int, int, LineItem]] = []
        self._keys: set[tuple] = set()
        self._identities: set[tuple] = set()
        self._identity = identity

    def add(self, start: int, end: int, line: LineItem) -> bool:
        if any(start < other_end and other_start < end for other_start, other_end, _ in self._rows):
            return False
        key = (normalize_reference(line.reference_code), round(line.quantity, 3), round(line.amount, 2), start)
        if key in self._keys:
            return False
        identity = self._identity(line) if self._identity is not None else None
        if identity is not None:
            if identity in self._identities:
                return False
            self._identities.add(identity)
        self._keys.add(key)
        self._rows.append((start, end, line))
        return True

    @property
    def lines(self) -> list[LineItem]:
        return [line for _, _, line in sorted(self._rows, key=lambda row: row[0])]


def is_low_information(description: str, known: str) -> bool:
    """True when a row description is worse than the catalog one (empty, short, code-like, truncated, garbled)."""
    text = collapse_whitespace(description)
    if len(text) < 10:
        return True
    if not re.search(r"[^\W\d_]{4,}", text):
        return True
    if len(text) < len(known) and known.casefold().startswith(text.casefold()):
        return True
    garbled = sum(1 for ch in text if ch in "�?")
    return garbled / len(text) > 0.2


class BaseExtractor:
    supplier = "GENERIC"
    decimal_hint: str | None = None

    number_patterns: tuple[FieldPattern, ...] = ()
    date_patterns: tuple[FieldPattern, ...] = DEFAULT_DATE_PATTERNS
    excl_tax_patterns: tuple[FieldPattern, ...] = ()
    tax_patterns: tuple[FieldPattern, ...] = ()
    incl_tax_patterns: tuple[FieldPattern, ...] = ()

    table_start_markers: tuple[str, ...] = ()
    table_end_markers: tuple[str, ...] = ()
    header_keywords: tuple[str, ...] = HEADER_KEYWORDS

    def __init__(self, catalog: dict[str, str] | None = None, number_patterns: Iterable[str] = ()):
        self.catalog = {normalize_reference(code): desc for code, desc in (catalog or {}).items() if code}
        self.learned_number_patterns = tuple(FieldPattern(p) for p in number_patterns)
        self._header_re = re.compile(
            r"\b(?:" + "|".join(re.escape(k) for k in self.header_keywords) + r")\b", re.IGNORECASE
        )

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def placeholder_description(self) -> str:
        return f"Produits {self.supplier}"

    # --- entry point ---

    def extract(self, raw_text: str, source_filename: str = "") -> ExtractionResult:
        """Never raises: a failure yields a minimal invoice with a placeholder line plus an error."""
        warnings: list[str] = []
        try:
            invoice = self._extract(raw_text or "", source_filename or "", warnings)
        except Exception as e:
            if isinstance(e, ExtractionError):
                logger.warning(f"{self.supplier} extraction failed for {source_filename or '<text>'}: {e}")
            else:
                logger.exception(f"{self.supplier} extraction failed for {source_filename or '<text>'}")
            invoice = self.minimal_invoice(source_filename or "")
            self.add_placeholder(invoice, warnings)
            return ExtractionResult(
                invoice,
                warnings + ["Automatic parsing failed, complete the invoice manually."],
                [f"{self.supplier} extraction failed: {e}"],
            )
        return ExtractionResult(invoice, warnings)

    def minimal_invoice(self, source_filename: str) -> Invoice:
        return Invoice(
            supplier=self.supplier,
            document_number=self.number_from_filename(source_filename),
            document_date=date.today(),
            source_filename=source_filename,
        )

    def _extract(self, raw_text: str, source_filename: str, warnings: list[str]) -> Invoice:
        text = self.prepare_text(raw_text)
        if not text.strip():
            raise ExtractionError("document text is empty")

        invoice = Invoice(
            supplier=self.supplier,
            document_number=self.find_document_number(text, source_filename, warnings),
            document_date=self.find_date(text, warnings),
            source_filename=source_filename,
        )
        invoice.raw_data = {"extractor": self.name, "text_excerpt": text[:config.RAW_EXCERPT_LENGTH]}

        invoice.lines = self.extract_lines(text, warnings)
        self.backfill_descriptions(invoice.lines)
        self.extract_totals(invoice, text, warnings)
        self.finalize(invoice, text, warnings)

        placeholder = not invoice.lines
        if placeholder:
            self.add_placeholder(invoice, warnings)
        self.reconcile(invoice, warnings, placeholder)

        logger.info(
            f"{self.supplier}: {invoice.document_number} -> {len(invoice.lines)} lines, "
            f"total excl. tax {invoice.total_excl_tax:.2f}"
        )
        return invoice

    # --- steps, overridable per supplier ---

    def prepare_text(self, raw_text: str) -> str:
        return normalize_text(raw_text)

    def number_from_filename(self, source_filename: str) -> str:
        return Path(source_filename).stem.strip().upper() or "INCONNU"

    def find_document_number(self, text: str, source_filename: str, warnings: list[str]) -> str:
        for patterns in (self.learned_number_patterns, self.number_patterns):
            number = first_match(patterns, text)
            if number:
                return str(number).strip()
        fallback = self.number_from_filename(source_filename)
        warnings.append(f"Document number not found, derived from the file name: {fallback}")
        return fallback

    def find_date(self, text: str, warnings: list[str]) -> date:
        found = first_match(self.date_patterns, text)
        if found:
            return found
        warnings.append("Document date not found, using today's date")
        return date.today()

    def amount(self, match: re.Match, group: int = 1) -> float | None:
        return parse_amount(match.group(group), self.decimal_hint)

    def find_amount(self, patterns: Iterable[FieldPattern], text: str) -> float:
        value = last_match(patterns, text)
        if isinstance(value, str):
            value = parse_amount(value, self.decimal_hint)
        return round_money(value) if value else 0.0

    def totals_scope(self, text: str) -> str:
        return text

    def extract_totals(self, invoice: Invoice, text: str, warnings: list[str]):
        scope = self.totals_scope(text)
        invoice.total_excl_tax = self.find_amount(self.excl_tax_patterns, scope)
        invoice.total_tax = self.find_amount(self.tax_patterns, scope)
        invoice.total_incl_tax = self.find_amount(self.incl_tax_patterns, scope) or round_money(
            invoice.total_excl_tax + invoice.total_tax
        )

    def isolate_table(self, text: str) -> str:
        """Region between the first start marker found and the last occurrence of an end marker."""
        start = 0
        for marker in self.table_start_markers:
            match = re.search(marker, text, re.IGNORECASE | re.MULTILINE)
            if match:
                start = match.end()
                break
        end = len(text)
        for marker in self.table_end_markers:
            matches = list(re.finditer(marker, text[start:], re.IGNORECASE | re.MULTILINE))
            if matches:
                end = start + matches[-1].start()
                break
        return text[start:end]

    def prepare_region(self, region: str) -> str:
        return region

    def row_grammars(self) -> list[RowGrammar]:
        return []

    def row_identity(self, line: LineItem) -> tuple | None:
        return None

    def looks_like_header(self, text: str | None) -> bool:
        return bool(text) and bool(self._header_re.search(text))

    def is_valid_row(self, line: LineItem) -> bool:
        if line.quantity <= 0 or line.amount <= 0:
            return False
        description = collapse_whitespace(line.description)
        if not description or re.fullmatch(r"[\d\s,.€%-]+", description):
            return False
        return not (self.looks_like_header(description) or self.looks_like_header(line.reference_code))

    def match_rows(self, region: str) -> list[LineItem]:
        collector = RowCollector(self.row_identity)
        for grammar in self.row_grammars():
            for match in grammar.regex.finditer(region):
                line = grammar.build(match)
                if line is None or not self.is_valid_row(line):
                    continue
                if collector.add(match.start(), match.end(), line):
                    logger.debug(f"{self.supplier} row ({grammar.name}): {line.reference_code} {line.description[:40]}")
        return collector.lines

    def extract_lines(self, text: str, warnings: list[str]) -> list[LineItem]:
        return self.match_rows(self.prepare_region(self.isolate_table(text)))

    def backfill_descriptions(self, lines: list[LineItem]) -> int:
        replaced = 0
        for line in lines:
            code = normalize_reference(line.reference_code)
            known = self.catalog.get(code) if code else None
            if known and known != line.description and is_low_information(line.description, known):
                line.description = known
                replaced += 1
        if replaced:
            logger.info(f"{self.supplier}: {replaced} descriptions restored from the reference catalog")
        return replaced

    def finalize(self, invoice: Invoice, text: str, warnings: list[str]):
        """Supplier-specific adjustments once lines and totals are known."""

    def add_placeholder(self, invoice: Invoice, warnings: list[str]):
        total = invoice.total_excl_tax
        invoice.lines = [LineItem(description=self.placeholder_description, quantity=1.0,
                                  unit_price=total, amount=total)]
        warnings.append(
            "No line items detected: a placeholder line carrying the invoice total was created, "
            "complete it manually."
        )

    def lines_target_total(self, invoice: Invoice) -> float:
        return invoice.total_excl_tax

    def reconcile(self, invoice: Invoice, warnings: list[str], placeholder: bool = False):
        tolerance = config.AMOUNT_TOLERANCE
        if not invoice.total_excl_tax and not invoice.total_incl_tax:
            warnings.append("Totals could not be extracted, check them manually.")

        if not placeholder:
            for index, line in enumerate(invoice.lines, 1):
                if line.unit_price and abs(line.expected_amount - line.amount) > tolerance:
                    warnings.append(
                        f"Line {index} ({line.reference_code or line.description[:30]}): "
                        f"quantity x unit price - discount = {line.expected_amount:.2f}, "
                        f"amount shown is {line.amount:.2f}"
                    )
            target = self.lines_target_total(invoice)
            difference = abs(invoice.lines_total - target)
            if target and difference > tolerance:
                warnings.append(
                    f"Lines sum to {invoice.lines_total:.2f} but the invoice total is {target:.2f} "
                    f"(difference {difference:.2f})"
                )

        if invoice.total_incl_tax:
            expected = round_money(invoice.total_excl_tax + invoice.total_tax)
            if abs(expected - invoice.total_incl_tax) > tolerance:
                warnings.append(
                    f"Unreconciled totals: {invoice.total_excl_tax:.2f} + {invoice.total_tax:.2f} "
                    f"!= {invoice.total_incl_tax:.2f}"
                )


AMOUNT_GROUP = f"({AMOUNT})"

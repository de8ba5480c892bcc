"""Locale-aware number and date normalisation for extracted document text.

Supplier documents mix French ("1 200,00"), Italian ("1.149,50") and
English-style ("28,658.75") notations, sometimes within the same supplier.
Everything here is pure and stateless.
"""

from __future__ import annotations

import re
from datetime import date

from dateutil import parser as date_parser

# One monetary amount: grouped thousands ("1 200,00", "28,658.75", "1.149,50")
# or a plain number with up to two decimals ("120,50", "1200.00", "45").
AMOUNT = r"\d{1,3}(?:[  .,]\d{3})+(?:[.,]\d{1,2})?|\d+(?:[.,]\d{1,2})?"

_DATE_RE = re.compile(r"(?<!\d)(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4}|\d{2})(?!\d)")
_SPACES_RE = re.compile(r"[ \t  ]+")


def normalize_text(text: str) -> str:
    """Unify line endings and exotic spaces, keeping form feeds as page breaks."""
    if not text:
        return ""
    text = text.replace(" ", " ").replace(" ", " ")
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return re.sub(r"\f+", "\f", text)


def split_pages(text: str) -> list[str]:
    """Split normalised text on logical page boundaries (form feeds)."""
    pages = [page for page in text.split("\f") if page.strip()]
    return pages or [text]


def flatten_pages(text: str) -> str:
    return text.replace("\f", "\n")


def collapse_whitespace(text: str) -> str:
    """Collapse every run of whitespace, newlines included, into one space."""
    return re.sub(r"\s+", " ", text or "").strip()


def squeeze_spaces(text: str) -> str:
    """Collapse horizontal whitespace only; newlines are kept."""
    return "\n".join(_SPACES_RE.sub(" ", line).strip() for line in (text or "").split("\n"))


def _resolve_single_separator(number: str, separator: str, thousands_likely: bool) -> str:
    parts = number.split(separator)
    if len(parts) > 2:
        return "".join(parts)
    head, tail = parts
    if len(tail) == 3 and head not in ("", "0") and thousands_likely:
        return head + tail
    return f"{head}.{tail}"


def parse_amount(text: str | None, decimal_hint: str | None = None) -> float | None:
    """Parse a locale-formatted number: '1.234,56' / '1,234.56' / '1 200,00' -> float.

    ``decimal_hint`` ("comma" or "dot") resolves the ambiguous single-separator
    case "1,234" / "1.234": a separator followed by exactly three digits is
    read as a thousands separator only when the document's decimal mark is
    the *other* character.
    """
    if text is None:
        return None
    text = str(text).strip()
    if not text:
        return None
    negative = text.startswith("-") or text.startswith("(")
    cleaned = re.sub(r"[^\d.,]", "", text).strip(".,")
    if not cleaned or not any(ch.isdigit() for ch in cleaned):
        return None

    last_dot = cleaned.rfind(".")
    last_comma = cleaned.rfind(",")
    if last_dot >= 0 and last_comma >= 0:
        if last_comma > last_dot:
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif last_comma >= 0:
        cleaned = _resolve_single_separator(cleaned, ",", decimal_hint == "dot")
    elif last_dot >= 0:
        cleaned = _resolve_single_separator(cleaned, ".", decimal_hint == "comma")

    try:
        value = float(cleaned)
    except ValueError:
        return None
    return -value if negative and value > 0 else value


def round_money(value: float) -> float:
    return round(value + 0.0, 2)


def expand_year(year: str | int) -> int:
    """Two-digit years pivot at 50: '25' -> 2025, '98' -> 1998."""
    year_str = str(year)
    value = int(year_str)
    if len(year_str) <= 2:
        return 2000 + value if value < 50 else 1900 + value
    return value


def build_date(day: str | int, month: str | int, year: str | int) -> date | None:
    try:
        return date(expand_year(year), int(month), int(day))
    except (TypeError, ValueError):
        return None


def parse_date(text: str | None) -> date | None:
    """Parse DD/MM/YY, DD/MM/YYYY (any of / - . separators) or an ISO-like date."""
    if not text:
        return None
    match = _DATE_RE.search(text)
    if match:
        parsed = build_date(match.group(1), match.group(2), match.group(3))
        if parsed:
            return parsed
    try:
        return date_parser.parse(text.strip(), dayfirst=True).date()
    except (ValueError, OverflowError):
        return None


def normalize_document_number(number: str | None) -> str:
    """Canonical form used to compare document numbers: 'f 12' -> 'F12'."""
    if not number:
        return ""
    return re.sub(r"[^A-Z0-9/]", "", number.upper())


def slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")


def normalize_supplier(supplier: str | None) -> str:
    """Canonical supplier key: upper-case, single spaces ('rb  drinks' -> 'RB DRINKS')."""
    return collapse_whitespace(supplier or "").upper()


def normalize_reference(reference: str | None) -> str:
    """Canonical supplier reference code used as catalog key."""
    return collapse_whitespace(reference or "").upper()

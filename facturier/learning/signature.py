"""Coarse layout fingerprints used to tell dialects of the same supplier apart."""

from __future__ import annotations

import hashlib
import re

import config
from facturier.extraction.models import Invoice
from facturier.extraction.normalizer import collapse_whitespace, slugify

# token -> keyword searched (whole words) in the casefolded, whitespace-collapsed text
LAYOUT_KEYWORDS = {
    "kw-facture": "facture",
    "kw-devis": "devis",
    "kw-cotation": "cotation",
    "kw-fattura": "fattura",
    "kw-bat": "bat",
    "kw-logo": "logo",
    "kw-remise": "remise",
    "kw-net-ht": "net ht",
    "kw-tva": "tva",
    "kw-total-ttc": "total ttc",
    "kw-fob": "fob",
    "kw-transport": "transport",
    "kw-page": "page",
    "kw-euro": "euro",
    "kw-protocollo": "protocollo",
}

_KEYWORD_RES = {token: re.compile(rf"\b{re.escape(word)}\b") for token, word in LAYOUT_KEYWORDS.items()}

_FLAG_FIELDS = (
    ("approval-code", "approval_code"),
    ("logo", "logo_marking"),
    ("color", "color_code"),
    ("reference", "reference_code"),
)


def _line_count_token(count: int) -> str:
    if count <= 10:
        return f"lines-{count}"
    if count <= 20:
        return "lines-11-20"
    if count <= 50:
        return "lines-21-50"
    return "lines-50-plus"


def _description_hash(invoice: Invoice, sample: int) -> str:
    head = [collapse_whitespace(line.description).casefold() for line in invoice.lines[:sample]]
    return hashlib.sha1("|".join(head).encode("utf-8")).hexdigest()[:8]


def _number_tokens(number: str) -> set[str]:
    number = (number or "").strip()
    if not number:
        return {"numero-missing"}
    tokens = set()
    if "/" in number:
        tokens.add("numero-slash")
    if re.match(r"[A-Za-z]", number):
        tokens.add("numero-alpha-prefix")
    if number.isdigit():
        tokens.add("numero-digits")
    return tokens


def compute_signature(invoice: Invoice, raw_text: str, description_sample: int | None = None) -> frozenset[str]:
    """Deterministic, order-independent set of layout tokens for an invoice and its text."""
    sample = description_sample if description_sample is not None else config.SIGNATURE_DESCRIPTION_SAMPLE
    tokens = {f"supplier-{slugify(invoice.supplier) or 'unknown'}", _line_count_token(len(invoice.lines))}

    for token, attr in _FLAG_FIELDS:
        present = any(getattr(line, attr) for line in invoice.lines)
        tokens.add(f"with-{token}" if present else f"without-{token}")

    if invoice.lines:
        tokens.add(f"desc-{_description_hash(invoice, sample)}")

    tokens |= _number_tokens(invoice.document_number)

    text = collapse_whitespace(raw_text).casefold()
    tokens |= {token for token, pattern in _KEYWORD_RES.items() if pattern.search(text)}
    return frozenset(tokens)


def jaccard(a: frozenset[str] | set[str], b: frozenset[str] | set[str]) -> float:
    if not a and not b:
        return 1.0
    return len(a & b) / len(a | b)

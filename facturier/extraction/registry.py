"""Supplier name -> extractor lookup, with generic fallback and supplier detection."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

from facturier.errors import UnknownSupplierError
from facturier.extraction.extractors.base import BaseExtractor
from facturier.extraction.extractors.generic import GenericExtractor
from facturier.extraction.extractors.italesse import ItalesseExtractor
from facturier.extraction.extractors.lehmann import LehmannExtractor
from facturier.extraction.extractors.rb_drinks import RBDrinksExtractor
from facturier.extraction.extractors.stem import StemExtractor
from facturier.extraction.normalizer import normalize_supplier

logger = logging.getLogger(__name__)

EXTRACTORS: dict[str, type[BaseExtractor]] = {
    "RB DRINKS": RBDrinksExtractor,
    "LEHMANN F": LehmannExtractor,
    "ITALESSE": ItalesseExtractor,
    "STEM": StemExtractor,
}

ALIASES = {
    "LEHMANN": "LEHMANN F",
    "LEHMANN FRERES": "LEHMANN F",
    "LEHMANN FRÈRES": "LEHMANN F",
    "RBDRINKS": "RB DRINKS",
    "RB": "RB DRINKS",
}

# Ordered: the first supplier with a marker whose patterns all appear in the text wins
CONTENT_MARKERS = (
    ("ITALESSE", ((r"FATTURA\s+RIEPILOGATIVA",), (r"ITALESSE\s+S\.?P\.?A",), (r"\bVELA\b", r"\bBUCKET\b"),
                  (r"RELAIS\s+DES\s+COCHES",))),
    ("RB DRINKS", ((r"RB\s+DRINKS",), (r"RBDRINKS\.FR",))),
    ("LEHMANN F", ((r"LEHMANN",),)),
    ("STEM", ((r"COTATION", r"\bSOUV\b"),)),
)
FILENAME_MARKERS = (
    ("ITALESSE", r"ITALESSE"),
    ("RB DRINKS", r"RB\s*DRINKS"),
    ("ITALESSE", r"RELAIS\s+DES\s+COCHES"),
    ("RB DRINKS", r"^RB"),
    ("LEHMANN F", r"LEHMANN"),
    ("STEM", r"STEM"),
    ("ITALESSE", r"^I\d+"),
)


def canonical_supplier(supplier: str | None) -> str:
    name = normalize_supplier(supplier)
    return ALIASES.get(name, name)


def available_suppliers() -> list[str]:
    return sorted(EXTRACTORS)


def register_extractor(supplier: str, extractor_class: type[BaseExtractor]):
    """Plug in an extractor for a new supplier without touching the engine."""
    name = canonical_supplier(supplier)
    if not name:
        raise ValueError("supplier name is required")
    EXTRACTORS[name] = extractor_class
    logger.info(f"Registered extractor {extractor_class.__name__} for {name}")


def get_extractor(supplier: str, catalog: dict[str, str] | None = None,
                  number_patterns: Iterable[str] = (), strict: bool = False) -> BaseExtractor:
    name = canonical_supplier(supplier)
    extractor_class = EXTRACTORS.get(name)
    if extractor_class is not None:
        return extractor_class(catalog, number_patterns)
    if strict:
        raise UnknownSupplierError(name)
    logger.info(f"No dedicated extractor for '{name}', using generic parsing")
    return GenericExtractor(catalog, number_patterns, supplier=name or None)


def detect_supplier(raw_text: str, source_filename: str = "") -> str | None:
    """Guess the supplier from document content, then from the file name."""
    text = raw_text or ""
    for supplier, markers in CONTENT_MARKERS:
        if any(all(re.search(p, text, re.IGNORECASE) for p in marker) for marker in markers):
            return supplier

    stem = Path(source_filename or "").stem
    for supplier, marker in FILENAME_MARKERS:
        if re.search(marker, stem, re.IGNORECASE):
            return supplier
    return None

"""Exceptions raised by the extraction engine."""

from __future__ import annotations


class FacturierError(Exception):
    """Base class for every error raised by this package."""


class ExtractionError(FacturierError):
    """An extractor could not proceed; converted into a minimal invoice at the extractor boundary."""


class UnknownSupplierError(FacturierError):
    """No dedicated extractor is registered for the requested supplier."""

    def __init__(self, supplier: str):
        super().__init__(f"No extractor registered for supplier '{supplier}'")
        self.supplier = supplier


class TextExtractionError(FacturierError):
    """The source document yielded no text (typically a scanned PDF)."""

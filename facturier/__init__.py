"""Supplier invoice extraction engine that learns from user corrections."""

__version__ = "0.3.0"

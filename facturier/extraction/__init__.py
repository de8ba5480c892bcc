"""Turning raw supplier document text into structured invoices."""

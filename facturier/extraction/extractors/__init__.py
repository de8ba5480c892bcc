"""Per-supplier extractors."""

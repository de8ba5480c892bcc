"""Learned mapping from supplier reference codes to canonical product descriptions."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime

import config
from facturier.extraction.normalizer import collapse_whitespace, normalize_reference
from facturier.storage import KeyValueStore, SupplierLocks, references_key

logger = logging.getLogger(__name__)


@dataclass
class ReferenceEntry:
    reference_code: str
    description: str
    use_count: int = 1
    last_used: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            "reference_code": self.reference_code,
            "description": self.description,
            "use_count": self.use_count,
            "last_used": self.last_used.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> ReferenceEntry:
        return cls(
            reference_code=data["reference_code"],
            description=data["description"],
            use_count=int(data.get("use_count", 1)),
            last_used=datetime.fromisoformat(data["last_used"]),
        )


class ReferenceCatalog:
    """Per-supplier ``reference -> description`` entries stored under ``references:<SUPPLIER>``."""

    def __init__(self, store: KeyValueStore, locks: SupplierLocks | None = None,
                 merge_policy: str | None = None):
        self.store = store
        self.locks = locks or SupplierLocks()
        self.merge_policy = (merge_policy or config.REFERENCE_MERGE_POLICY).lower()

    def _load(self, supplier: str) -> dict[str, ReferenceEntry]:
        raw = self.store.get(references_key(supplier))
        if not raw:
            return {}
        entries = {}
        for code, data in json.loads(raw).items():
            try:
                entries[code] = ReferenceEntry.from_dict(data)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed reference entry {supplier}/{code}: {e}")
        return entries

    def _save(self, supplier: str, entries: dict[str, ReferenceEntry]):
        payload = {code: entry.to_dict() for code, entry in entries.items()}
        self.store.set(references_key(supplier), json.dumps(payload, ensure_ascii=False))

    def _merge(self, entries: dict[str, ReferenceEntry], code: str, description: str, now: datetime) -> ReferenceEntry:
        existing = entries.get(code)
        if existing is None:
            entry = ReferenceEntry(reference_code=code, description=description, use_count=1, last_used=now)
            entries[code] = entry
            return entry
        if existing.description != description:
            if self.merge_policy == "latest" or len(description) > len(existing.description):
                existing.description = description
        existing.use_count += 1
        existing.last_used = now
        return existing

    def remember(self, supplier: str, reference_code: str, description: str) -> ReferenceEntry | None:
        """Upsert one entry. On conflict the longer description wins (or the newest, per policy)."""
        code = normalize_reference(reference_code)
        description = collapse_whitespace(description)
        if not code or not description:
            return None
        with self.locks.get(references_key(supplier)):
            entries = self._load(supplier)
            entry = self._merge(entries, code, description, datetime.now())
            self._save(supplier, entries)
        logger.debug(f"Reference remembered: {supplier} - {code} -> {entry.description}")
        return entry

    def remember_many(self, supplier: str, pairs: list[tuple[str | None, str]]) -> int:
        """Upsert every (reference, description) pair in a single read-modify-write cycle."""
        cleaned = [
            (normalize_reference(code), collapse_whitespace(description))
            for code, description in pairs
        ]
        cleaned = [(code, description) for code, description in cleaned if code and description]
        if not cleaned:
            return 0
        now = datetime.now()
        with self.locks.get(references_key(supplier)):
            entries = self._load(supplier)
            for code, description in cleaned:
                self._merge(entries, code, description, now)
            self._save(supplier, entries)
        logger.info(f"Remembered {len(cleaned)} references for {supplier}")
        return len(cleaned)

    def lookup(self, supplier: str, reference_code: str) -> str | None:
        entry = self._load(supplier).get(normalize_reference(reference_code))
        return entry.description if entry else None

    def snapshot(self, supplier: str) -> dict[str, str]:
        """Read-only ``reference -> description`` view, loaded once per extraction."""
        return {code: entry.description for code, entry in self._load(supplier).items()}

    def entries(self, supplier: str) -> list[ReferenceEntry]:
        """All entries for a supplier, most used first."""
        return sorted(self._load(supplier).values(), key=lambda e: (-e.use_count, e.reference_code))

    def forget(self, supplier: str):
        with self.locks.get(references_key(supplier)):
            self.store.delete(references_key(supplier))

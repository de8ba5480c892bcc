"""Persistence of parsing profiles, one JSON list per supplier."""

from __future__ import annotations

import json
import logging
import re
import threading
from datetime import datetime

from facturier.extraction.normalizer import slugify
from facturier.learning.models import ParsingProfile
from facturier.storage import KeyValueStore, SupplierLocks, profiles_key

logger = logging.getLogger(__name__)


class ProfileStore:
    """Reads are unsynchronized snapshots; every read-modify-write runs under ``lock(supplier)``."""

    def __init__(self, store: KeyValueStore, locks: SupplierLocks | None = None):
        self.store = store
        self.locks = locks or SupplierLocks()

    def lock(self, supplier: str) -> threading.RLock:
        return self.locks.get(profiles_key(supplier))

    def load(self, supplier: str) -> list[ParsingProfile]:
        raw = self.store.get(profiles_key(supplier))
        if not raw:
            return []
        profiles = []
        for data in json.loads(raw):
            try:
                profiles.append(ParsingProfile.from_dict(data))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                profile_id = data.get("id", "?") if isinstance(data, dict) else "?"
                logger.warning(f"Ignoring malformed profile {profile_id} for {supplier}: {e}")
        return profiles

    def save(self, supplier: str, profiles: list[ParsingProfile]):
        payload = [profile.to_dict() for profile in profiles]
        self.store.set(profiles_key(supplier), json.dumps(payload, ensure_ascii=False))

    def list_profiles(self, supplier: str) -> list[ParsingProfile]:
        """Profiles for a supplier, most recently used first."""
        return sorted(self.load(supplier), key=lambda p: p.last_used, reverse=True)

    def get(self, supplier: str, profile_id: str) -> ParsingProfile | None:
        return next((p for p in self.load(supplier) if p.id == profile_id), None)

    def next_profile_id(self, supplier: str, profiles: list[ParsingProfile]) -> str:
        prefix = slugify(supplier) or "profile"
        ordinals = [0]
        for profile in profiles:
            match = re.fullmatch(rf"{re.escape(prefix)}-(\d+)", profile.id)
            if match:
                ordinals.append(int(match.group(1)))
        return f"{prefix}-{max(ordinals) + 1}"

    def upsert(self, profile: ParsingProfile):
        with self.lock(profile.supplier):
            profiles = [p for p in self.load(profile.supplier) if p.id != profile.id]
            profiles.append(profile)
            self.save(profile.supplier, profiles)

    def record_use(self, supplier: str, profile_id: str, when: datetime | None = None) -> ParsingProfile | None:
        """Bump ``use_count``/``last_used`` of one profile."""
        with self.lock(supplier):
            profiles = self.load(supplier)
            for profile in profiles:
                if profile.id == profile_id:
                    profile.use_count += 1
                    profile.last_used = when or datetime.now()
                    self.save(supplier, profiles)
                    return profile
        logger.warning(f"Profile {profile_id} for {supplier} vanished before its use was recorded")
        return None

    def delete_profile(self, supplier: str, profile_id: str) -> bool:
        with self.lock(supplier):
            profiles = self.load(supplier)
            remaining = [p for p in profiles if p.id != profile_id]
            if len(remaining) == len(profiles):
                return False
            self.save(supplier, remaining)
        logger.info(f"Deleted profile {profile_id} for {supplier}")
        return True

    def clear_supplier(self, supplier: str) -> int:
        with self.lock(supplier):
            count = len(self.load(supplier))
            self.store.delete(profiles_key(supplier))
        logger.info(f"Cleared {count} profiles for {supplier}")
        return count

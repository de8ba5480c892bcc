"""Orchestrator: extraction, profile matching, replay and learning.

``process`` is the only way documents come in; corrections come back through
``learn`` as a new corrected invoice, never by mutating a returned result.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

import config
from facturier.extraction.models import Invoice
from facturier.extraction.pdf_text import extract_text
from facturier.extraction.registry import canonical_supplier, detect_supplier, get_extractor
from facturier.extraction.translation import translate_lines
from facturier.learning.applier import RuleApplier
from facturier.learning.catalog import ReferenceCatalog
from facturier.learning.learner import CorrectionLearner, LearningOutcome
from facturier.learning.matcher import match_profile
from facturier.learning.models import MatchReason, ProfileState, ReplayMode
from facturier.learning.profiles import ProfileStore
from facturier.learning.signature import compute_signature
from facturier.storage import InMemoryKeyValueStore, KeyValueStore, SupplierLocks

logger = logging.getLogger(__name__)

GENERIC_SUPPLIER = "GENERIC"


@dataclass
class ProcessResult:
    invoice: Invoice
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    profile_id: str | None = None
    match_reason: MatchReason = MatchReason.NONE
    replay_mode: ReplayMode = ReplayMode.NONE
    state: ProfileState = ProfileState.NEW
    signature: frozenset[str] = frozenset()

    def to_dict(self) -> dict:
        return {
            "invoice": self.invoice.to_dict(),
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "profile_id": self.profile_id,
            "match_reason": self.match_reason.value,
            "replay_mode": self.replay_mode.value,
            "state": self.state.value,
            "signature": sorted(self.signature),
        }


class InvoiceEngine:
    def __init__(self, store: KeyValueStore | None = None, locks: SupplierLocks | None = None,
                 threshold: float | None = None, text_extractor: Callable[[str | Path], str] | None = None,
                 translation_mode: str | None = None):
        self.store = store if store is not None else InMemoryKeyValueStore()
        self.locks = locks or SupplierLocks()
        self.threshold = config.PROFILE_SIMILARITY_THRESHOLD if threshold is None else threshold
        self.text_extractor = text_extractor or extract_text
        self.translation_mode = translation_mode
        self.profiles = ProfileStore(self.store, self.locks)
        self.catalog = ReferenceCatalog(self.store, self.locks)
        self.applier = RuleApplier(self.profiles)
        self.learner = CorrectionLearner(self.profiles, self.catalog, threshold=self.threshold)

    def resolve_supplier(self, raw_text: str, source_filename: str = "", supplier: str | None = None) -> str:
        if supplier:
            return canonical_supplier(supplier)
        detected = detect_supplier(raw_text, source_filename)
        if detected:
            logger.info(f"Detected supplier {detected} for {source_filename or '<text>'}")
            return detected
        return GENERIC_SUPPLIER

    def process(self, raw_text: str, source_filename: str = "", supplier: str | None = None) -> ProcessResult:
        supplier = self.resolve_supplier(raw_text, source_filename, supplier)

        # Unsynchronized snapshot reads; writers serialize on the supplier lock
        profiles = self.profiles.list_profiles(supplier)
        number_patterns = [p for profile in profiles for p in profile.learned_rules.number_patterns]
        extractor = get_extractor(supplier, self.catalog.snapshot(supplier), number_patterns)

        extraction = extractor.extract(raw_text, source_filename)
        warnings = list(extraction.warnings)
        errors = list(extraction.errors)
        if extraction.failed:
            logger.warning(f"Extraction failed for {source_filename or '<text>'} ({supplier}): {errors}")
            return ProcessResult(extraction.invoice.copy(), warnings, errors)

        invoice = extraction.invoice
        signature = compute_signature(invoice, raw_text)
        result = ProcessResult(invoice, warnings, errors, signature=signature, state=ProfileState.MATCHING)

        match = match_profile(profiles, invoice, signature, self.threshold)
        if match is None:
            result.state = ProfileState.NEW
        else:
            outcome = self.applier.apply(match.profile, invoice)
            result.invoice = outcome.invoice
            result.warnings.extend(outcome.warnings)
            result.profile_id = match.profile.id
            result.match_reason = match.reason
            result.replay_mode = outcome.mode
            result.state = (ProfileState.REPLAYING_FULL if outcome.mode == ReplayMode.FULL
                            else ProfileState.REPLAYING_RULES)
            logger.info(
                f"{invoice.document_number}: profile {match.profile.id} "
                f"({match.reason.value}, similarity {match.similarity:.2f}) -> {outcome.mode.value} replay"
            )

        translate_lines(supplier, result.invoice.lines, self.translation_mode)
        result.invoice = result.invoice.copy()
        return result

    def process_file(self, file_path: str | Path, supplier: str | None = None,
                     text_extractor: Callable[[str | Path], str] | None = None) -> ProcessResult:
        """Read the document text (pdfplumber by default) and ``process`` it."""
        file_path = Path(file_path)
        raw_text = (text_extractor or self.text_extractor)(file_path)
        return self.process(raw_text, file_path.name, supplier)

    def learn(self, supplier: str, original: Invoice, corrected: Invoice, raw_text: str) -> LearningOutcome:
        return self.learner.learn(canonical_supplier(supplier), original, corrected, raw_text)

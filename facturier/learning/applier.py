"""Replaying a matched profile onto a freshly extracted invoice."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import config
from facturier.extraction.models import Invoice, LineItem
from facturier.extraction.normalizer import normalize_document_number, normalize_reference
from facturier.learning.models import LearnedRules, ParsingProfile, ReplayMode
from facturier.learning.profiles import ProfileStore

logger = logging.getLogger(__name__)

# Filled positionally when the fresh line has no value
POSITIONAL_TEXT_FIELDS = ("reference_code", "approval_code", "logo_marking", "color_code")
# Overwritten positionally only on an anchored row whose amount the learned values reproduce
POSITIONAL_NUMERIC_FIELDS = ("discount", "unit_price", "quantity")


@dataclass
class ApplyOutcome:
    invoice: Invoice
    mode: ReplayMode
    warnings: list[str] = field(default_factory=list)
    changes: int = 0


def is_same_document(profile: ParsingProfile, invoice: Invoice) -> bool:
    memorized = profile.memorized_invoice
    if memorized is None:
        return False
    number = normalize_document_number(invoice.document_number)
    return bool(number) and number == normalize_document_number(memorized.document_number)


def replay_full(memorized: Invoice, fresh: Invoice) -> Invoice:
    """Memorised lines, totals and dates; identity, timestamp, raw data and filename stay fresh."""
    snapshot = memorized.copy()
    result = fresh.copy()
    result.document_number = snapshot.document_number
    result.document_date = snapshot.document_date
    result.delivery_date = snapshot.delivery_date
    result.lines = snapshot.lines
    result.total_excl_tax = snapshot.total_excl_tax
    result.total_tax = snapshot.total_tax
    result.total_incl_tax = snapshot.total_incl_tax
    return result


def _anchored(fresh: LineItem, learned: LineItem, tolerance: float) -> bool:
    fresh_ref = normalize_reference(fresh.reference_code)
    if fresh_ref and fresh_ref == normalize_reference(learned.reference_code):
        return True
    return learned.amount > 0 and abs(fresh.amount - learned.amount) <= tolerance


def _explains_amount(fresh: LineItem, learned: LineItem, tolerance: float) -> bool:
    return abs(learned.expected_amount - fresh.amount) <= tolerance


def apply_rules(rules: LearnedRules, invoice: Invoice, tolerance: float | None = None) -> tuple[Invoice, int]:
    """Apply field extractions, text transformations and positional corrections, in that order."""
    tolerance = config.AMOUNT_TOLERANCE if tolerance is None else tolerance
    result = invoice.copy()
    changes = 0

    for line in result.lines:
        for extraction in rules.field_extractions:
            if extraction.apply(line):
                changes += 1
        for transformation in rules.transformations:
            current = getattr(line, transformation.field, None)
            if not current:
                continue
            updated = transformation.apply(current)
            if updated != current:
                setattr(line, transformation.field, updated)
                changes += 1

    learned_lines = rules.structure_lines
    if learned_lines and len(learned_lines) == len(result.lines):
        for line, learned in zip(result.lines, learned_lines):
            # Anchor on the extracted row, before positional text fills touch it
            anchored = _anchored(line, learned, tolerance) and _explains_amount(line, learned, tolerance)
            for name in POSITIONAL_TEXT_FIELDS:
                if not getattr(line, name) and getattr(learned, name):
                    setattr(line, name, getattr(learned, name))
                    changes += 1
            if anchored:
                for name in POSITIONAL_NUMERIC_FIELDS:
                    if getattr(line, name) != getattr(learned, name):
                        setattr(line, name, getattr(learned, name))
                        changes += 1

    return result, changes


class RuleApplier:
    def __init__(self, profiles: ProfileStore, tolerance: float | None = None):
        self.profiles = profiles
        self.tolerance = tolerance

    def apply(self, profile: ParsingProfile, invoice: Invoice) -> ApplyOutcome:
        if is_same_document(profile, invoice):
            result = replay_full(profile.memorized_invoice, invoice)
            outcome = ApplyOutcome(result, ReplayMode.FULL, changes=len(result.lines))
            logger.info(f"Replayed memorized document {invoice.document_number} from profile {profile.id}")
        else:
            result, changes = apply_rules(profile.learned_rules, invoice, self.tolerance)
            outcome = ApplyOutcome(result, ReplayMode.RULES, changes=changes)
            if changes:
                logger.info(f"Profile {profile.id}: {changes} learned corrections applied")

        self.profiles.record_use(profile.supplier, profile.id)
        return outcome

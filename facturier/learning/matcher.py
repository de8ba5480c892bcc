"""Selecting the stored profile that best fits a freshly extracted invoice.

Priority order, first hit wins:
1. exact normalised document number of a memorised invoice
2. exact source filename of a memorised invoice
3. highest signature similarity, if at least the configured threshold
4. the most recently used profile holding a full memorised model
5. the most recently used profile at all

``None`` is returned only when the supplier has no profile.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import config
from facturier.extraction.models import Invoice
from facturier.extraction.normalizer import normalize_document_number
from facturier.learning.models import MatchReason, ParsingProfile
from facturier.learning.signature import jaccard

logger = logging.getLogger(__name__)


@dataclass
class ProfileMatch:
    profile: ParsingProfile
    reason: MatchReason
    similarity: float = 0.0


def _by_recency(profiles: list[ParsingProfile]) -> list[ParsingProfile]:
    return sorted(profiles, key=lambda p: p.last_used, reverse=True)


def match_by_number(profiles: list[ParsingProfile], number: str) -> ParsingProfile | None:
    wanted = normalize_document_number(number)
    if not wanted:
        return None
    for profile in _by_recency(profiles):
        memorized = profile.memorized_invoice
        if memorized and normalize_document_number(memorized.document_number) == wanted:
            return profile
    return None


def match_by_filename(profiles: list[ParsingProfile], filename: str) -> ParsingProfile | None:
    if not filename:
        return None
    for profile in _by_recency(profiles):
        memorized = profile.memorized_invoice
        if memorized and memorized.source_filename == filename:
            return profile
    return None


def best_by_signature(profiles: list[ParsingProfile], signature: frozenset[str]) -> tuple[ParsingProfile | None, float]:
    best, best_score = None, -1.0
    # Recency order so ties go to the most recently used profile
    for profile in _by_recency(profiles):
        score = jaccard(signature, profile.signature)
        if score > best_score:
            best, best_score = profile, score
    return best, max(best_score, 0.0)


def match_profile(profiles: list[ParsingProfile], invoice: Invoice, signature: frozenset[str],
                  threshold: float | None = None) -> ProfileMatch | None:
    if not profiles:
        return None
    threshold = config.PROFILE_SIMILARITY_THRESHOLD if threshold is None else threshold

    profile = match_by_number(profiles, invoice.document_number)
    if profile:
        logger.debug(f"Profile {profile.id} matched on document number {invoice.document_number}")
        return ProfileMatch(profile, MatchReason.DOCUMENT_NUMBER, jaccard(signature, profile.signature))

    profile = match_by_filename(profiles, invoice.source_filename)
    if profile:
        logger.debug(f"Profile {profile.id} matched on filename {invoice.source_filename}")
        return ProfileMatch(profile, MatchReason.SOURCE_FILENAME, jaccard(signature, profile.signature))

    profile, score = best_by_signature(profiles, signature)
    if profile and score >= threshold:
        logger.debug(f"Profile {profile.id} matched on signature ({score:.2f})")
        return ProfileMatch(profile, MatchReason.SIGNATURE, score)

    ordered = _by_recency(profiles)
    profile = next((p for p in ordered if p.has_model), ordered[0])
    logger.debug(f"No close profile (best similarity {score:.2f}), falling back to most recent {profile.id}")
    return ProfileMatch(profile, MatchReason.MOST_RECENT, jaccard(signature, profile.signature))

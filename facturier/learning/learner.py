"""Turning a user correction into profile updates.

Given what the extractor produced and what the user fixed, the learner:

- memorises the corrected invoice (exact replay of the same document later)
- diffs lines by position to derive description clean-up rules and
  label-based field extractions (e.g. ``PROT. 1234-5678`` -> approval code)
- infers a document-number pattern from the text around a corrected number
- feeds (reference, description) pairs into the reference catalog

Rules are only ever added or reinforced, never removed.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime

import config
from facturier.extraction.models import Invoice, LineItem
from facturier.extraction.normalizer import (
    collapse_whitespace,
    flatten_pages,
    normalize_document_number,
    normalize_supplier,
    normalize_text,
)
from facturier.learning.catalog import ReferenceCatalog
from facturier.learning.matcher import best_by_signature, match_by_number
from facturier.learning.models import (
    TEXT_FIELDS,
    FieldExtraction,
    LearnedRules,
    ParsingProfile,
    TextTransformation,
)
from facturier.learning.profiles import ProfileStore
from facturier.learning.signature import compute_signature

logger = logging.getLogger(__name__)

# Fields a correction may have moved out of the description
EXTRACTABLE_FIELDS = ("approval_code", "logo_marking", "color_code", "reference_code")
NUMERIC_FIELDS = ("quantity", "unit_price", "discount", "amount")

_WORD = r"[^\W\d_][\w.°º/]*"
_NUMBER_LABEL_RE = re.compile(rf"((?:{_WORD}\s+){{0,2}}{_WORD})\s*[:#]?\s*$")
_FIELD_LABEL_RE = re.compile(r"([^\W\d_][\w.°º#:/-]*)\s*$")
# Bare words accepted as labels; anything else must end in label punctuation
_LABEL_WORDS = frozenset({"BAT", "COLOR", "COLORE", "COULEUR", "LOGO", "MARQUAGE", "PROTOCOLLO", "REF"})
_MIN_FRAGMENT_LENGTH = 2


@dataclass
class LearningOutcome:
    profile: ParsingProfile
    created: bool
    lines_diffed: bool = False
    transformations_added: int = 0
    extractions_added: int = 0
    number_pattern: str | None = None


def shape_pattern(value: str) -> str:
    """Regex for the character shape of a value: 'F-1234' -> '[A-Z]+\\-\\d+'."""
    parts = []
    for match in re.finditer(r"\d+|[A-Za-z]+|\s+|.", value):
        token = match.group(0)
        if token.isdigit():
            parts.append(r"\d+")
        elif token.isascii() and token.isalpha():
            parts.append("[A-Z]+")
        elif token.isspace():
            parts.append(r"\s+")
        else:
            parts.append(re.escape(token))
    return "".join(parts)


def generalize_digits(fragment: str) -> str:
    """Regex matching the fragment with every digit run generalised: 'REF 12' -> 'REF\\s+\\d+'."""
    parts = []
    for match in re.finditer(r"\d+|\s+|[^\d\s]+", fragment):
        token = match.group(0)
        if token.isdigit():
            parts.append(r"\d+")
        elif token.isspace():
            parts.append(r"\s+")
        else:
            parts.append(re.escape(token))
    return "".join(parts)


def removed_fragments(before: str, after: str) -> list[str]:
    """Fragments of ``before`` a user removed to obtain ``after``, if the edit was a pure removal."""
    before = collapse_whitespace(before)
    after = collapse_whitespace(after)
    if not after or len(after) >= len(before):
        return []
    lowered_before, lowered_after = before.casefold(), after.casefold()

    start = lowered_before.find(lowered_after)
    if start >= 0:
        prefix = before[:start].strip()
        suffix = before[start + len(after):].strip()
        return [fragment for fragment in (prefix, suffix) if fragment]

    # Removal from the middle: common prefix + common suffix rebuild ``after``
    head = 0
    while head < len(lowered_after) and lowered_before[head] == lowered_after[head]:
        head += 1
    tail = 0
    while (tail < len(lowered_after) - head
           and lowered_before[-1 - tail] == lowered_after[-1 - tail]):
        tail += 1
    if head + tail == len(lowered_after) and head and tail:
        middle = before[head:len(before) - tail].strip()
        return [middle] if middle else []
    return []


def is_field_label(word: str) -> bool:
    """'PROT.', 'N°', 'REF:' or a known bare label such as 'MARQUAGE'; ordinary words are not labels."""
    return word.endswith((".", ":", "#", "°", "º")) or word.upper() in _LABEL_WORDS


def infer_field_extraction(description: str, target: str, value: str) -> FieldExtraction | None:
    """Label-anchored rule that recovers ``value`` from ``description``, e.g. r'PROT\\.\\s*(\\d+-\\d+)'."""
    position = description.casefold().find(value.casefold())
    if position <= 0:
        return None
    label_match = _FIELD_LABEL_RE.search(description[:position])
    if not label_match:
        return None
    label = label_match.group(1)
    if label.casefold() == value.casefold() or not is_field_label(label):
        return None
    pattern = rf"{re.escape(label)}\s*({shape_pattern(value)})"
    check = re.search(pattern, description, re.IGNORECASE)
    if not check or check.group(1).casefold() != value.casefold():
        return None
    if not (description[:check.start()] + description[check.end():]).strip():
        return None
    return FieldExtraction(target=target, pattern=pattern)


def infer_number_pattern(raw_text: str, number: str) -> str | None:
    """Pattern built from the label that precedes ``number`` in the raw text."""
    number = (number or "").strip()
    if not number:
        return None
    text = flatten_pages(normalize_text(raw_text))
    for occurrence in re.finditer(re.escape(number), text, re.IGNORECASE):
        line_start = text.rfind("\n", 0, occurrence.start()) + 1
        label_match = _NUMBER_LABEL_RE.search(text[line_start:occurrence.start()])
        if not label_match:
            continue
        label = r"\s+".join(re.escape(word) for word in label_match.group(1).split())
        pattern = rf"{label}\s*[:#]?\s*({shape_pattern(number)})"
        check = re.search(pattern, text, re.IGNORECASE)
        if check and normalize_document_number(check.group(1)) == normalize_document_number(number):
            return pattern
    return None


class CorrectionLearner:
    def __init__(self, profiles: ProfileStore, catalog: ReferenceCatalog,
                 threshold: float | None = None, min_support: int | None = None,
                 description_sample: int | None = None):
        self.profiles = profiles
        self.catalog = catalog
        self.threshold = config.PROFILE_SIMILARITY_THRESHOLD if threshold is None else threshold
        self.min_support = config.RULE_MIN_SUPPORT if min_support is None else min_support
        self.description_sample = description_sample

    def learn(self, supplier: str, original: Invoice, corrected: Invoice, raw_text: str) -> LearningOutcome:
        supplier = normalize_supplier(supplier)
        now = datetime.now()

        with self.profiles.lock(supplier):
            profiles = self.profiles.load(supplier)
            signature = compute_signature(corrected, raw_text, self.description_sample)
            profile, created = self._find_or_create(supplier, profiles, original, corrected, signature, now)
            outcome = LearningOutcome(profile=profile, created=created)
            rules = profile.learned_rules

            self._learn_number(rules, original, corrected, raw_text, outcome)
            if len(original.lines) == len(corrected.lines):
                for before, after in zip(original.lines, corrected.lines):
                    self._learn_line(rules, before, after, outcome)
                outcome.lines_diffed = True
            else:
                logger.info(
                    f"Line count changed ({len(original.lines)} -> {len(corrected.lines)}), "
                    f"positional diff skipped for {supplier}"
                )

            rules.structure_lines = [LineItem.from_dict(line.to_dict()) for line in corrected.lines]
            profile.memorized_invoice = corrected.copy()
            profile.signature = signature
            profile.use_count += 1
            profile.last_used = now
            self.profiles.save(supplier, [p for p in profiles if p.id != profile.id] + [profile])

        self.catalog.remember_many(supplier, [(line.reference_code, line.description) for line in corrected.lines])
        logger.info(
            f"Learned from {corrected.document_number} ({supplier}): profile {profile.id}"
            f"{' (new)' if created else ''}, +{outcome.transformations_added} transformations, "
            f"+{outcome.extractions_added} field extractions"
        )
        return outcome

    def _find_or_create(self, supplier: str, profiles: list[ParsingProfile], original: Invoice,
                        corrected: Invoice, signature: frozenset[str], now: datetime) -> tuple[ParsingProfile, bool]:
        profile = match_by_number(profiles, corrected.document_number) or match_by_number(
            profiles, original.document_number
        )
        if profile:
            return profile, False
        profile, score = best_by_signature(profiles, signature)
        if profile and score >= self.threshold:
            return profile, False
        profile = ParsingProfile(
            id=self.profiles.next_profile_id(supplier, profiles),
            supplier=supplier,
            signature=signature,
            last_used=now,
            created_at=now,
        )
        profiles.append(profile)
        return profile, True

    def _count(self, rules: LearnedRules, name: str):
        rules.corrected_field_counts[name] = rules.corrected_field_counts.get(name, 0) + 1

    def _learn_number(self, rules: LearnedRules, original: Invoice, corrected: Invoice,
                      raw_text: str, outcome: LearningOutcome):
        if normalize_document_number(original.document_number) == normalize_document_number(corrected.document_number):
            return
        self._count(rules, "document_number")
        rules.example_number = corrected.document_number
        pattern = infer_number_pattern(raw_text, corrected.document_number)
        if pattern and pattern not in rules.number_patterns:
            rules.number_patterns.insert(0, pattern)
            outcome.number_pattern = pattern
            logger.info(f"Learned document number pattern {pattern!r}")

    def _learn_line(self, rules: LearnedRules, before: LineItem, after: LineItem, outcome: LearningOutcome):
        for name in TEXT_FIELDS + NUMERIC_FIELDS:
            if getattr(before, name) != getattr(after, name):
                self._count(rules, name)

        extractions = []
        for name in EXTRACTABLE_FIELDS:
            value = getattr(after, name)
            if not value or value == getattr(before, name):
                continue
            extraction = infer_field_extraction(before.description, name, value)
            if extraction is None:
                continue
            extractions.append(extraction)
            if not any(e.target == extraction.target and e.pattern == extraction.pattern
                       for e in rules.field_extractions):
                rules.field_extractions.append(extraction)
                outcome.extractions_added += 1

        if collapse_whitespace(before.description) == collapse_whitespace(after.description):
            return
        for fragment in removed_fragments(before.description, after.description):
            for extraction in extractions:
                fragment = re.sub(extraction.pattern, " ", fragment, flags=re.IGNORECASE)
            fragment = collapse_whitespace(fragment)
            if len(fragment) >= _MIN_FRAGMENT_LENGTH:
                self._add_removal(rules, fragment, outcome)

    def _add_removal(self, rules: LearnedRules, fragment: str, outcome: LearningOutcome):
        literal = TextTransformation(field="description", pattern=fragment)
        existing = next((t for t in rules.transformations if t.same_rule(literal)), None)
        if existing:
            existing.hits += 1
        else:
            rules.transformations.append(literal)
            outcome.transformations_added += 1

        if not re.search(r"\d", fragment):
            return
        generalized = generalize_digits(fragment)
        support = rules.fragment_support.get(generalized, 0) + 1
        rules.fragment_support[generalized] = support
        if support < self.min_support:
            return
        regex = TextTransformation(field="description", pattern=generalized, kind="regex", hits=support)
        existing = next((t for t in rules.transformations if t.same_rule(regex)), None)
        if existing:
            existing.hits = support
        else:
            rules.transformations.append(regex)
            outcome.transformations_added += 1
            logger.info(f"Generalised removal rule {generalized!r} (seen {support} times)")

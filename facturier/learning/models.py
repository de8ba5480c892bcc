"""Data models for learned parsing profiles."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from facturier.extraction.models import Invoice, LineItem
from facturier.extraction.normalizer import collapse_whitespace

# Line fields a learned rule may target
TEXT_FIELDS = ("description", "reference_code", "approval_code", "logo_marking", "color_code")


class ProfileState(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    MATCHING = "matching"
    REPLAYING_FULL = "replaying_full"
    REPLAYING_RULES = "replaying_rules"


class MatchReason(str, Enum):
    DOCUMENT_NUMBER = "document_number"
    SOURCE_FILENAME = "source_filename"
    SIGNATURE = "signature"
    MOST_RECENT = "most_recent"
    NONE = "none"


class ReplayMode(str, Enum):
    FULL = "full"
    RULES = "rules"
    NONE = "none"


@dataclass
class TextTransformation:
    """A substitution applied to one line field, e.g. stripping a recurring noise fragment."""
    field: str
    pattern: str
    replacement: str = ""
    kind: str = "literal"   # "literal" or "regex"
    hits: int = 1

    def compile(self) -> re.Pattern | None:
        if self.kind == "regex":
            source = self.pattern
        else:
            source = rf"(?<!\w){re.escape(self.pattern)}(?!\w)"
        try:
            return re.compile(source, re.IGNORECASE)
        except re.error:
            return None

    def apply(self, text: str) -> str:
        compiled = self.compile()
        if compiled is None or not text:
            return text
        replaced = compiled.sub(self.replacement, text)
        return collapse_whitespace(replaced) if replaced != text else text

    def same_rule(self, other: TextTransformation) -> bool:
        return (self.field, self.pattern, self.replacement, self.kind) == (
            other.field, other.pattern, other.replacement, other.kind
        )

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "pattern": self.pattern,
            "replacement": self.replacement,
            "kind": self.kind,
            "hits": self.hits,
        }

    @classmethod
    def from_dict(cls, data: dict) -> TextTransformation:
        return cls(
            field=data["field"],
            pattern=data["pattern"],
            replacement=data.get("replacement", ""),
            kind=data.get("kind", "literal"),
            hits=int(data.get("hits", 1)),
        )


@dataclass
class FieldExtraction:
    """Moves a labelled fragment of the description into another field.

    ``pattern`` holds exactly one capture group (the value); the whole match
    is removed from the source field.
    """
    target: str
    pattern: str
    source: str = "description"

    def apply(self, line: LineItem) -> bool:
        if getattr(line, self.target, None):
            return False
        text = getattr(line, self.source, "") or ""
        try:
            match = re.search(self.pattern, text, re.IGNORECASE)
        except re.error:
            return False
        if not match:
            return False
        remainder = collapse_whitespace(text[:match.start()] + " " + text[match.end():])
        if not remainder:
            return False
        setattr(line, self.target, match.group(1).strip())
        setattr(line, self.source, remainder)
        return True

    def to_dict(self) -> dict:
        return {"target": self.target, "pattern": self.pattern, "source": self.source}

    @classmethod
    def from_dict(cls, data: dict) -> FieldExtraction:
        return cls(target=data["target"], pattern=data["pattern"], source=data.get("source", "description"))


@dataclass
class LearnedRules:
    transformations: list[TextTransformation] = field(default_factory=list)
    field_extractions: list[FieldExtraction] = field(default_factory=list)
    number_patterns: list[str] = field(default_factory=list)
    structure_lines: list[LineItem] = field(default_factory=list)
    example_number: str | None = None
    corrected_field_counts: dict[str, int] = field(default_factory=dict)
    fragment_support: dict[str, int] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.transformations or self.field_extractions or self.number_patterns or self.structure_lines)

    def to_dict(self) -> dict:
        return {
            "transformations": [t.to_dict() for t in self.transformations],
            "field_extractions": [f.to_dict() for f in self.field_extractions],
            "number_patterns": list(self.number_patterns),
            "structure_lines": [line.to_dict() for line in self.structure_lines],
            "example_number": self.example_number,
            "corrected_field_counts": dict(self.corrected_field_counts),
            "fragment_support": dict(self.fragment_support),
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> LearnedRules:
        data = data or {}
        return cls(
            transformations=[TextTransformation.from_dict(t) for t in data.get("transformations", [])],
            field_extractions=[FieldExtraction.from_dict(f) for f in data.get("field_extractions", [])],
            number_patterns=list(data.get("number_patterns", [])),
            structure_lines=[LineItem.from_dict(line) for line in data.get("structure_lines", [])],
            example_number=data.get("example_number"),
            corrected_field_counts={k: int(v) for k, v in data.get("corrected_field_counts", {}).items()},
            fragment_support={k: int(v) for k, v in data.get("fragment_support", {}).items()},
        )


@dataclass
class ParsingProfile:
    id: str
    supplier: str
    signature: frozenset[str]
    memorized_invoice: Invoice | None = None
    learned_rules: LearnedRules = field(default_factory=LearnedRules)
    last_used: datetime = field(default_factory=datetime.now)
    use_count: int = 0
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def has_model(self) -> bool:
        return self.memorized_invoice is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier": self.supplier,
            "signature": sorted(self.signature),
            "memorized_invoice": self.memorized_invoice.to_dict() if self.memorized_invoice else None,
            "learned_rules": self.learned_rules.to_dict(),
            "last_used": self.last_used.isoformat(),
            "use_count": self.use_count,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> ParsingProfile:
        """Raises KeyError/TypeError/ValueError on malformed entries (missing signature included)."""
        signature = data["signature"]
        if not isinstance(signature, list):
            raise TypeError("signature must be a list of tokens")
        memorized = data.get("memorized_invoice")
        return cls(
            id=data["id"],
            supplier=data["supplier"],
            signature=frozenset(signature),
            memorized_invoice=Invoice.from_dict(memorized) if memorized else None,
            learned_rules=LearnedRules.from_dict(data.get("learned_rules")),
            last_used=datetime.fromisoformat(data["last_used"]),
            use_count=int(data.get("use_count", 0)),
            created_at=datetime.fromisoformat(data.get("created_at") or data["last_used"]),
        )

"""Data models for supplier invoices and quotes."""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime


@dataclass
class LineItem:
    description: str
    quantity: float = 1.0
    unit_price: float = 0.0      # excl. tax
    amount: float = 0.0          # excl. tax, authoritative
    discount: float = 0.0
    reference_code: str | None = None
    approval_code: str | None = None   # "BAT"
    logo_marking: str | None = None
    color_code: str | None = None
    translated_description: str | None = None

    @property
    def expected_amount(self) -> float:
        return round(self.quantity * self.unit_price - self.discount, 2)

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "translated_description": self.translated_description,
            "reference_code": self.reference_code,
            "approval_code": self.approval_code,
            "logo_marking": self.logo_marking,
            "color_code": self.color_code,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "discount": self.discount,
            "amount": self.amount,
        }

    @classmethod
    def from_dict(cls, data: dict) -> LineItem:
        return cls(
            description=data.get("description", ""),
            translated_description=data.get("translated_description"),
            reference_code=data.get("reference_code"),
            approval_code=data.get("approval_code"),
            logo_marking=data.get("logo_marking"),
            color_code=data.get("color_code"),
            quantity=float(data.get("quantity", 1)),
            unit_price=float(data.get("unit_price", 0)),
            discount=float(data.get("discount", 0)),
            amount=float(data.get("amount", 0)),
        )


def _new_invoice_id() -> str:
    return uuid.uuid4().hex


@dataclass
class Invoice:
    supplier: str
    document_number: str
    document_date: date
    source_filename: str = ""
    lines: list[LineItem] = field(default_factory=list)

    total_excl_tax: float = 0.0
    total_tax: float = 0.0
    total_incl_tax: float = 0.0   # total_excl_tax + total_tax

    delivery_date: date | None = None
    raw_data: dict | None = None   # extracted text excerpt + debug values

    id: str = field(default_factory=_new_invoice_id)
    imported_at: datetime = field(default_factory=datetime.now)

    @property
    def lines_total(self) -> float:
        return round(sum(line.amount for line in self.lines), 2)

    def copy(self) -> Invoice:
        """Deep copy, so results handed out never share mutable state."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier": self.supplier,
            "document_number": self.document_number,
            "document_date": self.document_date.isoformat(),
            "delivery_date": self.delivery_date.isoformat() if self.delivery_date else None,
            "source_filename": self.source_filename,
            "lines": [line.to_dict() for line in self.lines],
            "total_excl_tax": self.total_excl_tax,
            "total_tax": self.total_tax,
            "total_incl_tax": self.total_incl_tax,
            "imported_at": self.imported_at.isoformat(),
            "raw_data": self.raw_data,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Invoice:
        delivery = data.get("delivery_date")
        imported = data.get("imported_at")
        return cls(
            id=data.get("id") or _new_invoice_id(),
            supplier=data.get("supplier", ""),
            document_number=data.get("document_number", ""),
            document_date=date.fromisoformat(data["document_date"]),
            delivery_date=date.fromisoformat(delivery) if delivery else None,
            source_filename=data.get("source_filename", ""),
            lines=[LineItem.from_dict(line) for line in data.get("lines", [])],
            total_excl_tax=float(data.get("total_excl_tax", 0)),
            total_tax=float(data.get("total_tax", 0)),
            total_incl_tax=float(data.get("total_incl_tax", 0)),
            imported_at=datetime.fromisoformat(imported) if imported else datetime.now(),
            raw_data=data.get("raw_data"),
        )


@dataclass
class ExtractionResult:
    """What an extractor hands back: a best-effort invoice plus diagnostics."""
    invoice: Invoice
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.errors)

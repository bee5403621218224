from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Tuple

from ..validation import format_cents
from .catalog import Category, Section, Size


@dataclass(frozen=True)
class TransactionItem:
    """
    Snapshot of one cart line at checkout time.

    Decoupled from the live Product: later price or category edits never alter
    history.
    """
    product_id: int
    name: str
    category: Category
    section: Section
    unit_price_cents: int
    quantities: Tuple[int, ...]
    subtotal_cents: int = field(default=-1)

    def __post_init__(self):
        quantities = tuple(self.quantities) + (0,) * (len(Size) - len(self.quantities))
        object.__setattr__(self, "quantities", quantities)
        if self.subtotal_cents < 0:
            object.__setattr__(self, "subtotal_cents", self.unit_price_cents * sum(quantities))

    def sizes(self) -> list[tuple[Size, int]]:
        return [(size, self.quantities[size.value]) for size in Size if self.quantities[size.value] > 0]

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "category": self.category.label,
            "section": self.section.label,
            "unit_price": format_cents(self.unit_price_cents),
            "quantities": {size.label: qty for size, qty in self.sizes()},
            "subtotal": format_cents(self.subtotal_cents),
        }


@dataclass(frozen=True)
class Transaction:
    """Immutable purchase record. Created once by checkout, never edited."""
    transaction_id: int
    actor_id: int
    items: Tuple[TransactionItem, ...]
    raw_total_cents: int
    discount_rate: Decimal
    final_total_cents: int
    timestamp: str
    tier: int

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))

    @property
    def discount_cents(self) -> int:
        return self.raw_total_cents - self.final_total_cents

    def __repr__(self) -> str:
        return (
            f"<Transaction id={self.transaction_id} actor={self.actor_id} "
            f"final={format_cents(self.final_total_cents)}>"
        )

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "actor_id": self.actor_id,
            "timestamp": self.timestamp,
            "tier": self.tier,
            "items": [item.to_dict() for item in self.items],
            "raw_total": format_cents(self.raw_total_cents),
            "discount_rate": str(self.discount_rate),
            "discount": format_cents(self.discount_cents),
            "final_total": format_cents(self.final_total_cents),
        }

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from ..validation import ValidationError, format_cents
from .catalog import Category, Section, Size, SIZED_SLOTS, SLOT_COUNT


class SizeStock:
    """
    Six-slot stock vector (XS, S, M, L, XL, None) with a fixed size mode.

    Invariants:
    - sized: only XS..XL may be nonzero, the None slot is always 0
    - size-less: only the None slot may be nonzero
    - no slot is ever negative
    - has_size never changes after construction
    """

    __slots__ = ("_has_size", "_slots")

    def __init__(self, has_size: bool, slots: Sequence[int] | None = None):
        self._has_size = bool(has_size)
        values = [0] * SLOT_COUNT
        if slots is not None:
            if len(slots) > SLOT_COUNT:
                raise ValidationError(f"Stock vector has {len(slots)} slots, expected {SLOT_COUNT}")
            for i, qty in enumerate(slots):
                values[i] = qty
        for size in Size:
            self._check_slot(size, values[size.value])
        self._slots = values

    @classmethod
    def sized(cls, xs: int = 0, s: int = 0, m: int = 0, l: int = 0, xl: int = 0) -> "SizeStock":
        return cls(True, [xs, s, m, l, xl, 0])

    @classmethod
    def sizeless(cls, quantity: int = 0) -> "SizeStock":
        return cls(False, [0, 0, 0, 0, 0, quantity])

    @classmethod
    def infer(cls, slots: Sequence[int]) -> "SizeStock":
        """
        Build from a raw vector whose mode is not recorded: any XS..XL stock,
        or an all-zero vector, is treated as sized.
        """
        padded = list(slots) + [0] * (SLOT_COUNT - len(slots))
        any_sized = any(padded[s.value] != 0 for s in SIZED_SLOTS)
        has_size = any_sized or padded[Size.NONE.value] == 0
        return cls(has_size, padded)

    @property
    def has_size(self) -> bool:
        return self._has_size

    def allows(self, size: Size) -> bool:
        return size.is_sized == self._has_size

    def _check_slot(self, size: Size, qty: int) -> None:
        if not isinstance(qty, int) or isinstance(qty, bool):
            raise ValidationError(f"Stock for size {size.label} must be an integer")
        if qty < 0:
            raise ValidationError("Stock can not be negative", details={"size": size.label, "quantity": qty})
        if qty and not self.allows(size):
            raise ValidationError(self.mode_error(size))

    def mode_error(self, size: Size) -> str:
        if self._has_size:
            return f"Sized product does not use {size.label} stock; use XS-XL"
        return f"This product has no size; only None is allowed, not {size.label}"

    def get(self, size: Size) -> int:
        return self._slots[size.value]

    def set(self, size: Size, quantity: int) -> None:
        """Absolute update of one slot; rejects negatives and mode mismatches."""
        if not self.allows(size):
            raise ValidationError(self.mode_error(size))
        self._check_slot(size, quantity)
        self._slots[size.value] = quantity

    def adjust(self, size: Size, delta: int) -> bool:
        """
        Relative update. Returns False and leaves the slot unchanged when the
        result would be negative or the size is illegal for this mode.
        """
        if not self.allows(size):
            return False
        updated = self._slots[size.value] + delta
        if updated < 0:
            return False
        self._slots[size.value] = updated
        return True

    def total(self) -> int:
        if self._has_size:
            return sum(self._slots[s.value] for s in SIZED_SLOTS)
        return self._slots[Size.NONE.value]

    def as_list(self) -> list[int]:
        return list(self._slots)

    def copy(self) -> "SizeStock":
        return SizeStock(self._has_size, self._slots)

    def items(self) -> Iterable[tuple[Size, int]]:
        """(size, quantity) pairs for the slots this mode uses."""
        sizes = SIZED_SLOTS if self._has_size else (Size.NONE,)
        return [(size, self._slots[size.value]) for size in sizes]

    def __eq__(self, other) -> bool:
        if not isinstance(other, SizeStock):
            return NotImplemented
        return self._has_size == other._has_size and self._slots == other._slots

    def __repr__(self) -> str:
        mode = "sized" if self._has_size else "sizeless"
        return f"<SizeStock {mode} {self._slots}>"


@dataclass(eq=False)
class Product:
    """
    Product master data. Instances are owned by InventoryIndex; mutate them only
    through its operations so the secondary indexes stay consistent.
    """
    id: int
    name: str
    category: Category
    section: Section
    price_cents: int
    stock: SizeStock

    @property
    def has_size(self) -> bool:
        return self.stock.has_size

    @property
    def total_stock(self) -> int:
        return self.stock.total()

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} {self.category.label}/{self.section.label}>"

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "category": self.category.label,
            "section": self.section.label,
            "price_cents": self.price_cents,
            "price": format_cents(self.price_cents),
            "has_size": self.has_size,
            "total_stock": self.total_stock,
        }
        if self.has_size:
            data["sizes"] = {size.label: qty for size, qty in self.stock.items()}
        return data

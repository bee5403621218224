# Overview: Service-layer operations for the shopping cart; per-actor staging of size quantities.

from __future__ import annotations

import logging
from typing import Iterator

from ..models.catalog import Size, SLOT_COUNT
from ..validation import NotFoundError, ValidationError, coerce_int, format_cents
from .inventory_service import InventoryIndex

logger = logging.getLogger(__name__)


class Cart:
    """
    Quantity intents keyed by product id: {product_id: [q0..q5]}.

    Holds no Product references. Stock checks made here are advisory; the
    authoritative check happens at checkout.
    """

    def __init__(self, lines: dict[int, list[int]] | None = None):
        self._lines: dict[int, list[int]] = {}
        self.load_error: str | None = None
        for product_id, quantities in (lines or {}).items():
            self.set_line(product_id, quantities)

    def __len__(self) -> int:
        return len(self._lines)

    def __contains__(self, product_id: int) -> bool:
        return product_id in self._lines

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def lines(self) -> Iterator[tuple[int, list[int]]]:
        """(product_id, quantities copy) in insertion order."""
        for product_id, quantities in list(self._lines.items()):
            yield product_id, list(quantities)

    def quantities(self, product_id: int) -> list[int]:
        try:
            return list(self._lines[product_id])
        except KeyError:
            raise NotFoundError(f"Item not found in cart, product ID: {product_id}")

    def set_line(self, product_id: int, quantities) -> None:
        """Replace a whole line without stock checks (file load, shortage resolution)."""
        values = [coerce_int(q, "quantity") for q in quantities]
        if len(values) > SLOT_COUNT:
            raise ValidationError(f"Cart line has {len(values)} slots, expected {SLOT_COUNT}")
        values += [0] * (SLOT_COUNT - len(values))
        if any(q < 0 for q in values):
            raise ValidationError("Cart quantities can not be negative")
        if any(values):
            self._lines[product_id] = values
        else:
            self._lines.pop(product_id, None)

    def clear(self) -> None:
        self._lines.clear()

    # ------------------------------------------------------------------
    # validated operations
    # ------------------------------------------------------------------

    def _validate(self, product_id: int, size: Size, quantity: int, inventory: InventoryIndex):
        if quantity <= 0:
            raise ValidationError("Quantity must be positive", details={"quantity": quantity})
        product = inventory.get_product(product_id)
        if product.total_stock == 0:
            raise ValidationError(
                f"Product ID {product_id} ({product.name}) is out of stock",
                details={"product_id": product_id},
            )
        if not product.stock.allows(size):
            if product.has_size:
                raise ValidationError("Invalid size: this product uses sizes XS-XL, not None")
            raise ValidationError("Invalid size: this product has no size, only None is allowed")
        available = product.stock.get(size)
        if quantity > available:
            raise ValidationError(
                f"Insufficient stock for size {size.label}. Available: {available}",
                details={"product_id": product_id, "size": size.label, "available": available},
            )
        return product

    def add_item(self, product_id: int, size, quantity: int, inventory: InventoryIndex) -> int:
        """
        Accumulate `quantity` into the product's size slot; returns the new slot
        quantity. The accumulated amount must fit the live stock.
        """
        size = Size.parse(size)
        quantity = coerce_int(quantity, "quantity")
        if quantity <= 0:
            raise ValidationError("Quantity must be positive", details={"quantity": quantity})
        current = self._lines.get(product_id, [0] * SLOT_COUNT)
        product = self._validate(product_id, size, current[size.value] + quantity, inventory)

        line = self._lines.setdefault(product_id, [0] * SLOT_COUNT)
        line[size.value] += quantity
        logger.info(
            "Added to cart: product %s (%s) size %s qty %s", product_id, product.name, size.label, quantity
        )
        return line[size.value]

    def update_item(self, product_id: int, size, quantity: int, inventory: InventoryIndex) -> int:
        """Overwrite the quantity of one size for a product already in the cart."""
        if product_id not in self._lines:
            raise NotFoundError("Item not found in cart", details={"product_id": product_id})
        size = Size.parse(size)
        quantity = coerce_int(quantity, "quantity")
        self._validate(product_id, size, quantity, inventory)
        self._lines[product_id][size.value] = quantity
        return quantity

    def remove_item(self, product_id: int) -> None:
        """Drop every size of a product from the cart."""
        if self._lines.pop(product_id, None) is None:
            raise NotFoundError(f"No such item in cart, product ID: {product_id}")

    def total_cents(self, inventory: InventoryIndex) -> int:
        total = 0
        for product_id, quantities in self._lines.items():
            product = inventory.find_product(product_id)
            if product is None:
                continue
            total += product.price_cents * sum(quantities)
        return total

    def describe(self, inventory: InventoryIndex) -> list[dict]:
        """Display projection of cart lines; missing products are flagged, not dropped."""
        rows = []
        for product_id, quantities in self._lines.items():
            product = inventory.find_product(product_id)
            row = {"product_id": product_id, "found": product is not None, "sizes": []}
            if product is not None:
                row["name"] = product.name
                row["unit_price"] = format_cents(product.price_cents)
            for size in Size:
                qty = quantities[size.value]
                if qty <= 0:
                    continue
                entry = {"size": size.label, "quantity": qty}
                if product is not None:
                    entry["subtotal"] = format_cents(product.price_cents * qty)
                row["sizes"].append(entry)
            rows.append(row)
        return rows

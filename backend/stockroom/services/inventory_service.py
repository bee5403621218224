# Overview: Service-layer operations for inventory; owns every Product and its lookup indexes.

from __future__ import annotations

import logging
from typing import Iterator, Optional

from ..models import Category, Product, Size, SizeStock, sections_for, resolve_section
from ..validation import (
    NotFoundError,
    ValidationError,
    coerce_int,
    validate_price_cents,
    validate_product_name,
)
"""
Stockroom Inventory Invariants (authoritative)

Storage:
- _products (id -> Product) is the single authoritative store.
- _by_name (name -> id) and _buckets ((category, section) -> {id -> Product})
  are secondary indexes. Only _index()/_unindex() touch them, always together.

Business invariants:
- Product ids are assigned sequentially from next_id and never reused, even
  after removal.
- Names are unique across live products.
- (category, section) always corresponds: sections come from the category's own
  variant; "Other" pairings are auto-corrected, anything else is rejected.
- Stock never goes negative; a product's size mode never flips.
- Listing operations are read-only projections.
"""

logger = logging.getLogger(__name__)


class InventoryIndex:
    def __init__(self, next_id: int = 1):
        self._next_id = max(1, next_id)
        self._products: dict[int, Product] = {}
        self._by_name: dict[str, int] = {}
        self._buckets: dict[tuple, dict[int, Product]] = {}
        # set when the backing file exists but could not be read
        self.load_error: str | None = None

    # ------------------------------------------------------------------
    # index maintenance
    # ------------------------------------------------------------------

    def _index(self, product: Product) -> None:
        self._products[product.id] = product
        self._by_name[product.name] = product.id
        self._buckets.setdefault((product.category, product.section), {})[product.id] = product

    def _unindex(self, product: Product) -> None:
        bucket = self._buckets.get((product.category, product.section))
        if bucket is not None:
            bucket.pop(product.id, None)
            if not bucket:
                del self._buckets[(product.category, product.section)]
        if self._by_name.get(product.name) == product.id:
            del self._by_name[product.name]
        self._products.pop(product.id, None)

    @property
    def next_id(self) -> int:
        return self._next_id

    def __len__(self) -> int:
        return len(self._products)

    def __contains__(self, product_id: int) -> bool:
        return product_id in self._products

    # ------------------------------------------------------------------
    # lookup
    # ------------------------------------------------------------------

    def find_product(self, product_id: int) -> Optional[Product]:
        return self._products.get(product_id)

    def get_product(self, product_id: int) -> Product:
        product = self._products.get(product_id)
        if product is None:
            raise NotFoundError(f"Product ID {product_id} not found", details={"product_id": product_id})
        return product

    def product_id_for(self, name: str) -> int:
        product_id = self._by_name.get(name.strip()) if isinstance(name, str) else None
        if product_id is None:
            raise NotFoundError(f"No product found with name: {name}", details={"name": name})
        return product_id

    def products(self) -> Iterator[Product]:
        """All products in bucket order (category, section, id)."""
        for category in Category:
            for section in sections_for(category):
                bucket = self._buckets.get((category, section))
                if not bucket:
                    continue
                for product_id in sorted(bucket):
                    yield bucket[product_id]

    # ------------------------------------------------------------------
    # mutation
    # ------------------------------------------------------------------

    def add_product(
        self,
        name: str,
        category,
        section,
        price_cents: int,
        stock: SizeStock,
    ) -> int:
        """Create a product and return its new id."""
        name = validate_product_name(name)
        if name in self._by_name:
            raise ValidationError(
                f"Product with name {name} already exists with ID: {self._by_name[name]}",
                details={"name": name, "product_id": self._by_name[name]},
            )
        category = Category.parse(category)
        section = resolve_section(category, section)
        price_cents = validate_price_cents(price_cents)
        if not isinstance(stock, SizeStock):
            raise ValidationError("Initial stock must be a SizeStock")

        product = Product(
            id=self._next_id,
            name=name,
            category=category,
            section=section,
            price_cents=price_cents,
            stock=stock.copy(),
        )
        self._index(product)
        self._next_id += 1
        logger.info("Product %s added with ID %s (%s/%s)", name, product.id, category.label, section.label)
        return product.id

    def restore_product(self, product: Product) -> None:
        """
        Insert an already-identified product (file load). The id must be unused
        and next_id is advanced past it.
        """
        if product.id in self._products:
            raise ValidationError(f"Duplicate product ID {product.id}")
        if product.name in self._by_name:
            raise ValidationError(f"Duplicate product name {product.name}")
        product.section = resolve_section(product.category, product.section)
        self._index(product)
        self._next_id = max(self._next_id, product.id + 1)

    def remove_product(self, product_id: int) -> bool:
        product = self._products.get(product_id)
        if product is None:
            return False
        self._unindex(product)
        logger.info("Product %s (ID %s) removed", product.name, product_id)
        return True

    def set_stock(self, product_id: int, size, quantity: int) -> bool:
        """Absolute stock update for one size."""
        product = self._products.get(product_id)
        if product is None:
            return False
        size = Size.parse(size)
        quantity = coerce_int(quantity, "quantity")
        product.stock.set(size, quantity)
        logger.info("Stock for product %s size %s set to %s", product_id, size.label, quantity)
        return True

    def adjust_stock(self, product_id: int, size, delta: int) -> bool:
        """
        Relative stock update used by checkout. All-or-nothing: False leaves
        the slot untouched.
        """
        product = self._products.get(product_id)
        if product is None:
            return False
        return product.stock.adjust(Size.parse(size), delta)

    def update_price(self, product_id: int, price_cents: int) -> bool:
        product = self._products.get(product_id)
        if product is None:
            return False
        product.price_cents = validate_price_cents(price_cents)
        return True

    def rename(self, product_id: int, new_name: str) -> bool:
        product = self._products.get(product_id)
        if product is None:
            return False
        new_name = validate_product_name(new_name)
        if new_name == product.name:
            return True
        if new_name in self._by_name:
            raise ValidationError(
                f"Product name {new_name} already exists with ID: {self._by_name[new_name]}",
                details={"name": new_name, "product_id": self._by_name[new_name]},
            )
        self._unindex(product)
        product.name = new_name
        self._index(product)
        return True

    def move(self, product_id: int, category, section) -> bool:
        """Relocate a product to another (category, section) bucket; id and name are kept."""
        product = self._products.get(product_id)
        if product is None:
            return False
        category = Category.parse(category)
        section = resolve_section(category, section)
        self._unindex(product)
        product.category = category
        product.section = section
        self._index(product)
        logger.info("Product %s moved to %s/%s", product_id, category.label, section.label)
        return True

    # ------------------------------------------------------------------
    # read-only projections
    # ------------------------------------------------------------------

    def list_all(self) -> list[dict]:
        return [p.to_dict() for p in self.products()]

    def list_by_category(self, category) -> list[dict]:
        category = Category.parse(category)
        listing = []
        for section in sections_for(category):
            bucket = self._buckets.get((category, section), {})
            listing.extend(bucket[pid].to_dict() for pid in sorted(bucket))
        return listing

    def list_by_section(self, category, section) -> list[dict]:
        category = Category.parse(category)
        section = resolve_section(category, section)
        bucket = self._buckets.get((category, section), {})
        return [bucket[pid].to_dict() for pid in sorted(bucket)]

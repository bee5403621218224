# Overview: Service-layer operations for file persistence; codecs for the inventory and cart files.

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Iterable

from ..models import Category, Product, SizeStock, section_from_index
from ..models.catalog import SLOT_COUNT
from ..validation import (
    PersistenceError,
    StockroomError,
    coerce_int,
    format_cents,
    parse_money_cents,
    validate_price_cents,
    validate_product_name,
)
from .cart_service import Cart
from .inventory_service import InventoryIndex
"""
File formats (all line oriented, UTF-8):

products.txt
    <next product id>
    id,name,categoryIndex,sectionIndex,price,q0,q1,q2,q3,q4,q5[,hasSize]

cart_<userID>.txt
    <item count>
    productID q0 q1 q2 q3 q4 q5

sectionIndex is category-relative and always goes through
section_index()/section_from_index(). hasSize (1/0) is written so that a
size-less product with no stock reloads as size-less; files without it are
still read, inferring the mode from the stock vector.

Every save replaces the file atomically (temp file + fsync + os.replace), so a
crash mid-write leaves the previous version intact.
"""

logger = logging.getLogger(__name__)


def atomic_write_lines(path, lines: Iterable[str]) -> None:
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
                for line in lines:
                    fh.write(line)
                    fh.write("\n")
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
    except OSError as exc:
        raise PersistenceError(
            f"Failed to write {path}: {exc}", details={"path": str(path)}
        ) from exc


def read_lines(path) -> list[str] | None:
    """
    Lines of a data file without line endings, or None when it does not exist.

    Each line is decoded on its own and undecodable bytes become U+FFFD, so a
    record cut off inside a multi-byte character only damages that record.
    """
    path = Path(path)
    try:
        with open(path, "rb") as fh:
            raw = fh.read()
    except FileNotFoundError:
        return None
    except OSError as exc:
        raise PersistenceError(f"Failed to read {path}: {exc}", details={"path": str(path)}) from exc
    return [line.decode("utf-8", errors="replace") for line in raw.splitlines()]


def refuse_overwrite(load_error: str | None, path) -> None:
    """A store whose file exists but could not be read must not replace it."""
    if load_error is not None:
        raise PersistenceError(
            f"Refusing to overwrite {path}: it could not be read ({load_error})",
            details={"path": str(path)},
        )


def _parse_header(lines: list[str], path) -> int:
    if not lines or not lines[0].strip():
        return 1
    try:
        return max(1, coerce_int(lines[0], "header"))
    except StockroomError:
        logger.warning("Invalid header in %s; counter reset to 1", path)
        return 1


# ----------------------------------------------------------------------
# inventory
# ----------------------------------------------------------------------

def encode_product(product: Product) -> str:
    fields = [
        str(product.id),
        product.name,
        str(product.category.value),
        str(product.section.value),
        format_cents(product.price_cents),
    ]
    fields.extend(str(q) for q in product.stock.as_list())
    fields.append("1" if product.has_size else "0")
    return ",".join(fields)


def decode_product(line: str) -> Product:
    parts = line.split(",")
    if len(parts) not in (5 + SLOT_COUNT, 6 + SLOT_COUNT):
        raise StockroomError(f"Expected {5 + SLOT_COUNT} or {6 + SLOT_COUNT} fields, got {len(parts)}")
    product_id = coerce_int(parts[0], "id")
    name = validate_product_name(parts[1])
    category = Category.parse(coerce_int(parts[2], "categoryIndex"))
    section = section_from_index(category, coerce_int(parts[3], "sectionIndex"))
    price_cents = validate_price_cents(parse_money_cents(parts[4]))
    slots = [coerce_int(q, "stock") for q in parts[5:5 + SLOT_COUNT]]
    if len(parts) == 6 + SLOT_COUNT:
        stock = SizeStock(coerce_int(parts[-1], "hasSize") != 0, slots)
    else:
        stock = SizeStock.infer(slots)
    return Product(
        id=product_id,
        name=name,
        category=category,
        section=section,
        price_cents=price_cents,
        stock=stock,
    )


def encode_inventory(inventory: InventoryIndex) -> list[str]:
    lines = [str(inventory.next_id)]
    lines.extend(encode_product(p) for p in inventory.products())
    return lines


def decode_inventory(lines: list[str], path="<memory>") -> InventoryIndex:
    """Malformed product lines are skipped and logged; the rest still load."""
    inventory = InventoryIndex(next_id=_parse_header(lines, path))
    for lineno, line in enumerate(lines[1:], start=2):
        if not line.strip():
            continue
        try:
            inventory.restore_product(decode_product(line))
        except StockroomError as exc:
            logger.warning("Skipping product line %s in %s: %s", lineno, path, exc)
    return inventory


def load_inventory(path) -> InventoryIndex:
    """
    Load products; a missing file yields an empty inventory. An unreadable
    file also yields an empty one, flagged so that it is never saved over.
    """
    try:
        lines = read_lines(path)
    except PersistenceError as exc:
        logger.warning("%s; starting with an empty, read-only inventory", exc)
        inventory = InventoryIndex()
        inventory.load_error = str(exc)
        return inventory
    if lines is None:
        return InventoryIndex()
    return decode_inventory(lines, path)


def save_inventory(inventory: InventoryIndex, path) -> None:
    refuse_overwrite(inventory.load_error, path)
    atomic_write_lines(path, encode_inventory(inventory))


# ----------------------------------------------------------------------
# cart
# ----------------------------------------------------------------------

def encode_cart(cart: Cart) -> list[str]:
    lines = [str(len(cart))]
    for product_id, quantities in cart.lines():
        lines.append(" ".join([str(product_id)] + [str(q) for q in quantities]))
    return lines


def decode_cart(lines: list[str], path="<memory>") -> Cart:
    cart = Cart()
    if not lines:
        return cart
    try:
        count = coerce_int(lines[0], "item count")
    except StockroomError as exc:
        logger.warning("Invalid cart header in %s: %s; starting with an empty cart", path, exc)
        return cart
    for lineno, line in enumerate(lines[1:1 + count], start=2):
        parts = line.split()
        try:
            if len(parts) != 1 + SLOT_COUNT:
                raise StockroomError(f"Expected {1 + SLOT_COUNT} fields, got {len(parts)}")
            cart.set_line(coerce_int(parts[0], "productID"), parts[1:])
        except StockroomError as exc:
            logger.warning("Skipping cart line %s in %s: %s", lineno, path, exc)
    return cart


def load_cart(path) -> Cart:
    try:
        lines = read_lines(path)
    except PersistenceError as exc:
        logger.warning("%s; starting with an empty, read-only cart", exc)
        cart = Cart()
        cart.load_error = str(exc)
        return cart
    if lines is None:
        return Cart()
    return decode_cart(lines, path)


def save_cart(cart: Cart, path) -> None:
    refuse_overwrite(cart.load_error, path)
    atomic_write_lines(path, encode_cart(cart))

"""
Tests for InventoryIndex: ids, names, bucket placement and stock updates.
"""

import pytest

from stockroom.models import Category, KidsSection, OtherSection, Size, SizeStock
from stockroom.services.inventory_service import InventoryIndex
from stockroom.validation import NotFoundError, ValidationError


def test_ids_are_sequential_and_never_reused():
    inv = InventoryIndex()
    first = inv.add_product("A", "Men", "Eastern", 100, SizeStock.sized(s=1))
    second = inv.add_product("B", "Men", "Eastern", 100, SizeStock.sized(s=1))
    assert (first, second) == (1, 2)

    assert inv.remove_product(second) is True
    third = inv.add_product("C", "Men", "Eastern", 100, SizeStock.sized(s=1))
    assert third == 3
    assert inv.next_id == 4


def test_duplicate_names_rejected_until_removed(inventory):
    with pytest.raises(ValidationError) as exc:
        inventory.add_product("Shirt", "Women", "Western", 10_00, SizeStock.sized(m=1))
    assert exc.value.details["product_id"] == 1

    inventory.remove_product(1)
    with pytest.raises(NotFoundError):
        inventory.product_id_for("Shirt")
    new_id = inventory.add_product("Shirt", "Women", "Western", 10_00, SizeStock.sized(m=1))
    assert inventory.product_id_for("Shirt") == new_id


@pytest.mark.parametrize("name", ["", "   ", "Red,Shirt", "Red|Shirt", "Red\nShirt"])
def test_unstorable_names_rejected(name):
    inv = InventoryIndex()
    with pytest.raises(ValidationError):
        inv.add_product(name, "Men", "Eastern", 100, SizeStock.sized(s=1))
    assert len(inv) == 0


def test_category_section_correspondence(inventory):
    with pytest.raises(ValidationError):
        inventory.add_product("Kurta", "Kids", "Eastern", 100, SizeStock.sized(s=1))

    product_id = inventory.add_product("Mug", "Other", "Western", 5_00, SizeStock.sizeless(3))
    assert inventory.get_product(product_id).section is OtherSection.OTHER


def test_price_bounds(inventory):
    with pytest.raises(ValidationError):
        inventory.add_product("Hat", "Men", "Other", -1, SizeStock.sized(s=1))
    assert inventory.update_price(1, 12_50) is True
    assert inventory.get_product(1).price_cents == 12_50
    with pytest.raises(ValidationError):
        inventory.update_price(1, -5)
    assert inventory.update_price(99, 100) is False


def test_set_stock_validation(inventory):
    assert inventory.set_stock(99, "S", 1) is False
    with pytest.raises(ValidationError):
        inventory.set_stock(1, "S", -1)
    with pytest.raises(ValidationError):
        inventory.set_stock(1, "None", 4)
    with pytest.raises(ValidationError):
        inventory.set_stock(2, "XS", 4)

    assert inventory.set_stock(1, "m", 35) is True
    assert inventory.get_product(1).stock.get(Size.M) == 35
    assert inventory.set_stock(2, Size.NONE, 10) is True
    assert inventory.get_product(2).total_stock == 10


def test_adjust_stock_reverts_when_negative(inventory):
    assert inventory.adjust_stock(1, Size.S, -6) is False
    assert inventory.get_product(1).stock.get(Size.S) == 5
    assert inventory.adjust_stock(1, Size.S, -5) is True
    assert inventory.get_product(1).stock.get(Size.S) == 0
    assert inventory.adjust_stock(42, Size.S, 1) is False


def test_rename_keeps_name_index_consistent(inventory):
    with pytest.raises(ValidationError):
        inventory.rename(1, "GiftCard")
    assert inventory.rename(1, "Kurta") is True
    assert inventory.product_id_for("Kurta") == 1
    with pytest.raises(NotFoundError):
        inventory.product_id_for("Shirt")
    assert inventory.rename(1, "Kurta") is True


def test_move_relocates_between_buckets(inventory):
    assert inventory.move(1, "Kids", "Girls") is True
    product = inventory.get_product(1)
    assert (product.id, product.name) == (1, "Shirt")
    assert product.category is Category.KIDS
    assert product.section is KidsSection.GIRLS
    assert inventory.list_by_section("Men", "Eastern") == []
    assert [row["id"] for row in inventory.list_by_section("Kids", "Girls")] == [1]


def test_invalid_move_leaves_product_in_place(inventory):
    with pytest.raises(ValidationError):
        inventory.move(1, "Kids", "Eastern")
    assert [row["id"] for row in inventory.list_by_section("Men", "Eastern")] == [1]
    assert inventory.move(99, "Kids", "Boys") is False


def test_listings_follow_bucket_order(inventory):
    inventory.add_product("Frock", "Kids", "Girls", 20_00, SizeStock.sized(xs=2))
    inventory.add_product("Jeans", "Men", "Western", 30_00, SizeStock.sized(l=4))

    assert [row["name"] for row in inventory.list_all()] == ["Shirt", "Jeans", "Frock", "GiftCard"]
    assert [row["name"] for row in inventory.list_by_category("men")] == ["Shirt", "Jeans"]
    assert inventory.list_by_category("Women") == []


def test_listing_rows_show_sizes_only_for_sized_products(inventory):
    shirt, card = inventory.list_all()
    assert shirt["sizes"] == {"XS": 0, "S": 5, "M": 0, "L": 0, "XL": 0}
    assert shirt["price"] == "100.00"
    assert "sizes" not in card
    assert card["total_stock"] == 1000


def test_listings_never_change_stock_or_prices(inventory, cart):
    inventory.add_product("Frock", "Kids", "Girls", 20_00, SizeStock.sized(xs=2))
    cart.add_item(1, "S", 2, inventory)
    cart.add_item(2, "None", 3, inventory)

    def state():
        return {p.id: (p.stock.as_list(), p.price_cents, p.has_size) for p in inventory.products()}

    before = state()
    rows = inventory.list_all()
    rows += inventory.list_by_category("Men")
    rows += inventory.list_by_section("Kids", "Girls")
    rows += cart.describe(inventory)
    assert cart.total_cents(inventory) == 350_00

    for row in rows:
        row.get("sizes", {}).clear()
        row["total_stock"] = -1

    assert state() == before
    assert [row["total_stock"] for row in inventory.list_all()] == [5, 2, 1000]


def test_get_product_unknown(inventory):
    with pytest.raises(NotFoundError):
        inventory.get_product(404)
    assert inventory.find_product(404) is None
    assert 1 in inventory

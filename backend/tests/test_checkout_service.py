"""
Tests for the checkout pipeline: shortage resolution, discounts and the
all-or-nothing commit.
"""

from decimal import Decimal

import pytest

from stockroom.models import Actor, Size
from stockroom.services import ledger_service
from stockroom.services.checkout_service import (
    CheckoutEngine,
    CheckoutState,
    CommitRaceError,
    Resolution,
    StockShortageError,
    apply_discount,
    apply_resolution,
    compute_shortages,
    discount_rate,
)
from stockroom.services.ledger_service import Ledger, LedgerError
from stockroom.validation import PersistenceError, ValidationError

from conftest import FIXED_TIMESTAMP


def _stock(inventory, product_id, size=Size.S):
    return inventory.get_product(product_id).stock.get(size)


class TestDiscounts:
    @pytest.mark.parametrize("level,rate", [
        (0, "1.00"),
        (1, "1.00"),
        (2, "0.98"),
        (3, "0.95"),
        (7, "0.95"),
    ])
    def test_three_tier_schedule(self, level, rate):
        assert discount_rate(level) == Decimal(rate)

    def test_admin_rate_only_when_configured(self):
        assert discount_rate(1, is_admin=True) == Decimal("1.00")
        assert discount_rate(3, is_admin=True, admin_rate=Decimal("0.80")) == Decimal("0.80")
        assert discount_rate(3, is_admin=False, admin_rate=Decimal("0.80")) == Decimal("0.95")

    def test_tier_three_discount(self):
        final = apply_discount(1000_00, discount_rate(3))
        assert final == 950_00
        assert 1000_00 - final == 50_00

    def test_rounds_half_up_to_cent(self):
        assert apply_discount(50, Decimal("0.95")) == 48
        assert apply_discount(1, Decimal("0.98")) == 1


class TestCheckout:
    def test_plain_checkout_deducts_and_records(self, engine, cart, inventory, ledger, ledger_path, customer, scripted):
        cart.add_item(1, "S", 3, inventory)
        resolve = scripted()

        outcome = engine.checkout(cart, customer, resolve)

        assert outcome.completed
        assert engine.state is CheckoutState.DONE
        assert resolve.seen == []
        tx = outcome.transaction
        assert tx.transaction_id == 1
        assert tx.raw_total_cents == 300_00
        assert tx.final_total_cents == 300_00
        assert tx.discount_rate == Decimal("1.00")
        assert tx.timestamp == FIXED_TIMESTAMP
        assert tx.tier == 1
        assert _stock(inventory, 1) == 2
        assert cart.is_empty
        assert ledger.transactions() == [tx]
        assert ledger_path.read_text().splitlines()[0] == "2"

    def test_reduce_to_available(self, engine, cart, inventory, customer, scripted):
        cart.set_line(1, [0, 10, 0, 0, 0, 0])
        resolve = scripted(Resolution.reduce(1))

        outcome = engine.checkout(cart, customer, resolve)

        [shortages] = resolve.seen
        assert [(s.product_id, s.size, s.requested, s.available, s.missing) for s in shortages] == [
            (1, Size.S, 10, 5, 5)
        ]
        assert outcome.completed
        assert outcome.transaction.items[0].quantities[Size.S.value] == 5
        assert _stock(inventory, 1) == 0

    def test_every_shortage_reported_in_one_pass(self, engine, cart, inventory, customer, scripted):
        inventory.set_stock(1, "M", 1)
        cart.set_line(1, [0, 6, 2, 0, 0, 0])
        cart.set_line(2, [0, 0, 0, 0, 0, 2000])
        resolve = scripted(Resolution.abort())

        engine.checkout(cart, customer, resolve)

        assert [(s.product_id, s.size) for s in resolve.seen[0]] == [
            (1, Size.S), (1, Size.M), (2, Size.NONE)
        ]

    def test_reduce_fixes_every_short_size_of_the_product(self, engine, cart, inventory, customer, scripted):
        inventory.set_stock(1, "M", 1)
        cart.set_line(1, [0, 6, 2, 0, 0, 0])

        outcome = engine.checkout(cart, customer, scripted(Resolution.reduce(1)))

        assert outcome.transaction.items[0].quantities == (0, 5, 1, 0, 0, 0)
        assert outcome.transaction.raw_total_cents == 600_00

    def test_reduce_to_nothing_drops_line_and_continues(self, engine, cart, inventory, customer, scripted):
        cart.add_item(1, "S", 3, inventory)
        cart.add_item(2, "None", 2, inventory)
        inventory.set_stock(1, "S", 0)

        outcome = engine.checkout(cart, customer, scripted(Resolution.reduce(1)))

        assert outcome.completed
        assert [item.product_id for item in outcome.transaction.items] == [2]
        assert _stock(inventory, 2, Size.NONE) == 998

    def test_removed_product_is_a_full_shortage(self, engine, cart, inventory, customer, scripted):
        cart.add_item(1, "S", 2, inventory)
        inventory.remove_product(1)

        [shortage] = compute_shortages(cart, inventory)
        assert (shortage.product_id, shortage.requested, shortage.available) == (1, 2, 0)
        assert shortage.name is None

        outcome = engine.checkout(cart, customer, scripted(Resolution.remove(1)))
        assert outcome.state is CheckoutState.CANCELLED
        assert outcome.reason == "Cart is now empty. Checkout cancelled"

    def test_abort_changes_nothing(self, engine, cart, inventory, ledger, customer, scripted):
        cart.set_line(1, [0, 10, 0, 0, 0, 0])

        outcome = engine.checkout(cart, customer, scripted(Resolution.abort()))

        assert outcome.state is CheckoutState.CANCELLED
        assert outcome.reason == "Checkout cancelled"
        assert cart.quantities(1) == [0, 10, 0, 0, 0, 0]
        assert _stock(inventory, 1) == 5
        assert len(ledger) == 0

    def test_empty_cart_is_cancelled(self, engine, cart, customer, scripted):
        outcome = engine.checkout(cart, customer, scripted())
        assert outcome.state is CheckoutState.CANCELLED
        assert outcome.transaction is None

    def test_reduce_needs_a_short_product(self, cart, inventory):
        cart.set_line(1, [0, 10, 0, 0, 0, 0])
        cart.add_item(2, "None", 1, inventory)
        shortages = compute_shortages(cart, inventory)
        with pytest.raises(ValidationError):
            apply_resolution(cart, shortages, Resolution.reduce(2))

    def test_require_stock_lists_items(self, engine, cart):
        cart.set_line(1, [0, 9, 0, 0, 0, 0])
        with pytest.raises(StockShortageError) as exc:
            engine.require_stock(cart)
        assert exc.value.details["items"][0]["shortage"] == 4

    def test_diamond_customer_discount(self, engine, cart, inventory, scripted):
        cart.add_item(1, "S", 5, inventory)
        diamond = Actor(user_id=1, username="alice", level=3)

        tx = engine.checkout(cart, diamond, scripted()).transaction

        assert tx.raw_total_cents == 500_00
        assert tx.discount_rate == Decimal("0.95")
        assert tx.final_total_cents == 475_00
        assert tx.discount_cents == 25_00
        assert tx.tier == 3

    def test_ids_continue_per_ledger(self, engine, cart, inventory, customer, scripted):
        cart.add_item(1, "S", 1, inventory)
        first = engine.checkout(cart, customer, scripted()).transaction
        cart.add_item(2, "None", 1, inventory)
        second = engine.checkout(cart, customer, scripted()).transaction
        assert (first.transaction_id, second.transaction_id) == (1, 2)


class TestCommitAtomicity:
    def test_stock_change_before_commit_aborts_cleanly(self, engine, cart, inventory, ledger, customer):
        cart.add_item(1, "S", 3, inventory)
        inventory.set_stock(1, "S", 2)

        with pytest.raises(CommitRaceError):
            engine.commit(cart, customer)

        assert engine.state is CheckoutState.IDLE
        assert _stock(inventory, 1) == 2
        assert cart.quantities(1)[Size.S.value] == 3
        assert len(ledger) == 0

    def test_ledger_write_failure_rolls_back_stock(self, engine, cart, inventory, ledger, customer, monkeypatch):
        cart.add_item(1, "S", 3, inventory)
        cart.add_item(2, "None", 10, inventory)

        def fail_write(path, lines):
            raise PersistenceError(f"Failed to write {path}: disk full")

        monkeypatch.setattr(ledger_service, "atomic_write_lines", fail_write)

        with pytest.raises(PersistenceError):
            engine.commit(cart, customer)

        assert _stock(inventory, 1) == 5
        assert _stock(inventory, 2, Size.NONE) == 1000
        assert len(cart) == 2
        assert len(ledger) == 0
        assert ledger.next_id == 1
        assert engine.state is CheckoutState.IDLE

    def test_inventory_saved_before_ledger_append(self, cart, inventory, ledger, ledger_path, customer):
        seen = []

        def persist():
            seen.append((_stock(inventory, 1), ledger_path.exists()))

        engine = CheckoutEngine(inventory, ledger, clock=lambda: FIXED_TIMESTAMP, persist=persist)
        cart.add_item(1, "S", 3, inventory)

        engine.commit(cart, customer)

        assert seen == [(2, False)]
        assert len(ledger) == 1

    def test_inventory_save_failure_leaves_no_ledger_record(self, cart, inventory, ledger, ledger_path, customer):
        def persist():
            raise PersistenceError("Failed to write products.txt: disk full")

        engine = CheckoutEngine(inventory, ledger, clock=lambda: FIXED_TIMESTAMP, persist=persist)
        cart.add_item(1, "S", 3, inventory)

        with pytest.raises(PersistenceError):
            engine.commit(cart, customer)

        assert len(ledger) == 0
        assert not ledger_path.exists()
        assert _stock(inventory, 1) == 5
        assert cart.quantities(1)[Size.S.value] == 3
        assert engine.state is CheckoutState.IDLE

    def test_ledger_failure_saves_restored_stock(self, cart, inventory, ledger, customer, monkeypatch):
        saved = []
        engine = CheckoutEngine(
            inventory, ledger, clock=lambda: FIXED_TIMESTAMP,
            persist=lambda: saved.append(_stock(inventory, 1)),
        )
        cart.add_item(1, "S", 3, inventory)

        def fail_write(path, lines):
            raise PersistenceError(f"Failed to write {path}: disk full")

        monkeypatch.setattr(ledger_service, "atomic_write_lines", fail_write)

        with pytest.raises(PersistenceError):
            engine.commit(cart, customer)

        assert saved == [2, 5]
        assert len(ledger) == 0

    def test_foreign_ledger_rejected_without_deduction(self, cart, inventory, customer):
        engine = CheckoutEngine(inventory, Ledger(2))
        cart.add_item(1, "S", 1, inventory)

        with pytest.raises(LedgerError):
            engine.commit(cart, customer)
        assert _stock(inventory, 1) == 5
        assert not cart.is_empty

    def test_admin_rate_applied_when_configured(self, inventory, cart, scripted):
        admin = Actor(user_id=1, username="admin", level=1, is_admin=True)
        engine = CheckoutEngine(inventory, Ledger(1), admin_rate=Decimal("0.80"))
        cart.add_item(1, "S", 1, inventory)

        tx = engine.checkout(cart, admin, scripted()).transaction
        assert tx.final_total_cents == 80_00


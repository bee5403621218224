"""
Checkout Service - cart to transaction pipeline

States:
    IDLE -> VALIDATING_STOCK -> (SHORTAGE_FOUND -> AWAITING_RESOLUTION
    -> VALIDATING_STOCK)* -> COMMITTING -> DONE
    with exits to CANCELLED from AWAITING_RESOLUTION (abort, or the cart
    emptied by a removal) and from IDLE (empty cart).

The decision core (compute_shortages, apply_resolution, discount_rate) does no
I/O. The only blocking step is the `resolve` callable handed to
CheckoutEngine.checkout(), which the caller implements (console prompt, test
script, ...).

Commit is all-or-nothing: every deduction is checked before any is applied,
applied deductions are rolled back if a later one or the ledger write fails,
the deducted stock is persisted (through `persist`) before the ledger append,
and the cart is cleared only after the ledger append has been persisted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Callable, Optional

from ..models import Actor, Size, Transaction, TransactionItem
from ..time_utils import format_timestamp
from ..validation import StockroomError, ValidationError, format_cents
from .cart_service import Cart
from .concurrency import scope_lock
from .inventory_service import InventoryIndex
from .ledger_service import Ledger

logger = logging.getLogger(__name__)

# Three-tier schedule: level <= 1 Silver, 2 Gold, 3+ Diamond
NO_DISCOUNT = Decimal("1.00")
GOLD_RATE = Decimal("0.98")
DIAMOND_RATE = Decimal("0.95")


class CheckoutError(StockroomError):
    """Raised for checkout operation errors."""


class StockShortageError(CheckoutError):
    """Cart asks for more than is on hand; carries the full shortage list."""
    def __init__(self, shortages: list["Shortage"]):
        super().__init__(
            "Insufficient stock to check out",
            details={"items": [s.to_dict() for s in shortages]},
        )
        self.shortages = shortages


class CommitRaceError(CheckoutError):
    """Stock changed between validation and deduction; nothing was applied."""


class CheckoutState(Enum):
    IDLE = "IDLE"
    VALIDATING_STOCK = "VALIDATING_STOCK"
    SHORTAGE_FOUND = "SHORTAGE_FOUND"
    AWAITING_RESOLUTION = "AWAITING_RESOLUTION"
    COMMITTING = "COMMITTING"
    DONE = "DONE"
    CANCELLED = "CANCELLED"


class ResolutionAction(Enum):
    REDUCE = "reduce"
    REMOVE = "remove"
    ABORT = "abort"


@dataclass(frozen=True)
class Shortage:
    product_id: int
    size: Size
    requested: int
    available: int
    name: Optional[str] = None

    @property
    def missing(self) -> int:
        return self.requested - self.available

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "size": self.size.label,
            "requested_quantity": self.requested,
            "available": self.available,
            "shortage": self.missing,
        }


@dataclass(frozen=True)
class Resolution:
    action: ResolutionAction
    product_id: Optional[int] = None

    @classmethod
    def reduce(cls, product_id: int) -> "Resolution":
        return cls(ResolutionAction.REDUCE, product_id)

    @classmethod
    def remove(cls, product_id: int) -> "Resolution":
        return cls(ResolutionAction.REMOVE, product_id)

    @classmethod
    def abort(cls) -> "Resolution":
        return cls(ResolutionAction.ABORT)


@dataclass(frozen=True)
class CheckoutOutcome:
    state: CheckoutState
    transaction: Optional[Transaction] = None
    reason: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.state is CheckoutState.DONE


Resolver = Callable[[list[Shortage]], Resolution]


def discount_rate(level: int, is_admin: bool = False, admin_rate: Optional[Decimal] = None) -> Decimal:
    """
    Rate applied to the raw total.

    The admin rate is a policy variant and only applies when configured.
    """
    if is_admin and admin_rate is not None:
        return Decimal(admin_rate)
    if level <= 1:
        return NO_DISCOUNT
    if level == 2:
        return GOLD_RATE
    return DIAMOND_RATE


def apply_discount(raw_cents: int, rate: Decimal) -> int:
    # nearest-cent rounding (half-up)
    return int((Decimal(raw_cents) * rate).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def compute_shortages(cart: Cart, inventory: InventoryIndex) -> list[Shortage]:
    """
    Full scan of the cart against live stock; never stops at the first
    problem. A product that no longer exists is short by its whole request.
    """
    shortages: list[Shortage] = []
    for product_id, quantities in cart.lines():
        product = inventory.find_product(product_id)
        for size in Size:
            requested = quantities[size.value]
            if requested <= 0:
                continue
            available = 0
            if product is not None and product.stock.allows(size):
                available = product.stock.get(size)
            if requested > available:
                shortages.append(Shortage(
                    product_id=product_id,
                    size=size,
                    requested=requested,
                    available=available,
                    name=product.name if product is not None else None,
                ))
    return shortages


def apply_resolution(cart: Cart, shortages: list[Shortage], resolution: Resolution) -> bool:
    """
    Apply one actor decision to the cart.

    Returns True when checkout can go back to validation, False when it must
    be cancelled (abort chosen, or the cart is now empty).
    """
    if resolution.action is ResolutionAction.ABORT:
        return False

    if resolution.action is ResolutionAction.REDUCE:
        short = [s for s in shortages if s.product_id == resolution.product_id]
        if not short:
            raise ValidationError(
                f"Product ID {resolution.product_id} has no shortage to reduce",
                details={"product_id": resolution.product_id},
            )
        quantities = cart.quantities(resolution.product_id)
        for s in short:
            quantities[s.size.value] = min(quantities[s.size.value], s.available)
        cart.set_line(resolution.product_id, quantities)
        logger.info("Reduced cart quantities of product %s to available stock", resolution.product_id)
    elif resolution.action is ResolutionAction.REMOVE:
        cart.remove_item(resolution.product_id)
        logger.info("Removed product %s from cart during checkout", resolution.product_id)
    else:
        raise ValidationError(f"Unknown resolution: {resolution.action!r}")

    return not cart.is_empty


class CheckoutEngine:
    """Orchestrates shortage resolution, discounting, stock deduction and ledger append."""

    def __init__(
        self,
        inventory: InventoryIndex,
        ledger: Ledger,
        *,
        admin_rate: Optional[Decimal] = None,
        clock: Callable[[], str] = format_timestamp,
        persist: Optional[Callable[[], None]] = None,
    ):
        self.inventory = inventory
        self.ledger = ledger
        self.admin_rate = admin_rate
        self.clock = clock
        # saves the inventory; called with the lock held
        self.persist = persist
        self.state = CheckoutState.IDLE

    def require_stock(self, cart: Cart) -> None:
        """Raise StockShortageError listing every shortage in the cart."""
        shortages = compute_shortages(cart, self.inventory)
        if shortages:
            raise StockShortageError(shortages)

    def checkout(self, cart: Cart, actor: Actor, resolve: Resolver) -> CheckoutOutcome:
        """
        Run the full pipeline. `resolve` is asked for one decision per pass
        while shortages remain.

        Returns DONE with the stored transaction or CANCELLED with a reason.
        CommitRaceError and PersistenceError propagate with the cart intact.
        """
        self.state = CheckoutState.IDLE
        if cart.is_empty:
            self.state = CheckoutState.CANCELLED
            return CheckoutOutcome(self.state, reason="Cart is empty")

        while True:
            self.state = CheckoutState.VALIDATING_STOCK
            try:
                self.require_stock(cart)
                break
            except StockShortageError as exc:
                shortages = exc.shortages

            self.state = CheckoutState.SHORTAGE_FOUND
            logger.info(
                "Checkout for user %s found %s shortage(s): %s",
                actor.user_id, len(shortages), [s.to_dict() for s in shortages],
            )
            self.state = CheckoutState.AWAITING_RESOLUTION
            resolution = resolve(shortages)
            if not apply_resolution(cart, shortages, resolution):
                self.state = CheckoutState.CANCELLED
                if resolution.action is ResolutionAction.ABORT:
                    reason = "Checkout cancelled"
                else:
                    reason = "Cart is now empty. Checkout cancelled"
                logger.info("Checkout for user %s cancelled: %s", actor.user_id, reason)
                return CheckoutOutcome(self.state, reason=reason)

        transaction = self.commit(cart, actor)
        return CheckoutOutcome(self.state, transaction=transaction)

    def _snapshot(self, cart: Cart) -> list[TransactionItem]:
        items = []
        for product_id, quantities in cart.lines():
            product = self.inventory.find_product(product_id)
            if product is None:
                raise CommitRaceError(
                    f"Product not found, ID={product_id}",
                    details={"product_id": product_id},
                )
            items.append(TransactionItem(
                product_id=product.id,
                name=product.name,
                category=product.category,
                section=product.section,
                unit_price_cents=product.price_cents,
                quantities=tuple(quantities),
            ))
        return items

    def _rollback(self, applied: list[tuple[int, Size, int]]) -> None:
        for product_id, size, qty in reversed(applied):
            if not self.inventory.adjust_stock(product_id, size, qty):
                logger.error("Rollback failed for product %s size %s qty %s", product_id, size.label, qty)

    def _persist_rollback(self, actor: Actor) -> None:
        # the original error is the one reported; this one is only logged
        try:
            self.persist()
        except StockroomError:
            logger.exception(
                "Checkout for user %s: restored stock could not be saved; on-disk stock is low", actor.user_id
            )

    def commit(self, cart: Cart, actor: Actor) -> Transaction:
        """
        Deduct stock, append the transaction and clear the cart, as one unit.

        The cart is re-checked here; any stock change since validation raises
        CommitRaceError without touching stock, ledger or cart.
        """
        if cart.is_empty:
            raise CheckoutError("Cannot check out an empty cart")

        with scope_lock(self.ledger.scope_key):
            self.state = CheckoutState.COMMITTING
            try:
                items = self._snapshot(cart)
                shortages = compute_shortages(cart, self.inventory)
                if shortages:
                    raise CommitRaceError(
                        "Stock changed before checkout could complete",
                        details={"items": [s.to_dict() for s in shortages]},
                    )

                raw_total = sum(item.subtotal_cents for item in items)
                rate = discount_rate(actor.level, actor.is_admin, self.admin_rate)
                final_total = apply_discount(raw_total, rate)

                applied: list[tuple[int, Size, int]] = []
                persisted = False
                try:
                    for item in items:
                        for size, qty in item.sizes():
                            if not self.inventory.adjust_stock(item.product_id, size, -qty):
                                raise CommitRaceError(
                                    f"Stock deduction error. ProductID={item.product_id}",
                                    details={"product_id": item.product_id, "size": size.label},
                                )
                            applied.append((item.product_id, size, qty))

                    if self.persist is not None:
                        self.persist()
                        persisted = True

                    record = self.ledger.append(Transaction(
                        transaction_id=0,
                        actor_id=actor.user_id,
                        items=tuple(items),
                        raw_total_cents=raw_total,
                        discount_rate=rate,
                        final_total_cents=final_total,
                        timestamp=self.clock(),
                        tier=actor.level,
                    ))
                except Exception:
                    self._rollback(applied)
                    logger.warning("Checkout for user %s rolled back %s deduction(s)", actor.user_id, len(applied))
                    if persisted:
                        self._persist_rollback(actor)
                    raise
            except Exception:
                self.state = CheckoutState.IDLE
                raise

            cart.clear()
            self.state = CheckoutState.DONE

        logger.info(
            "Checkout for user %s committed transaction %s: raw %s rate %s final %s",
            actor.user_id, record.transaction_id, format_cents(raw_total), rate, format_cents(final_total),
        )
        return record

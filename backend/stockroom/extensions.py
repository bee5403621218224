# Overview: Flask extension instance for the flat-file data store.

from __future__ import annotations

from pathlib import Path

from flask import current_app

from .services.auth_service import Roster
from .services.cart_service import Cart
from .services.checkout_service import CheckoutEngine
from .services.concurrency import run_with_retry
from .services.inventory_service import InventoryIndex
from .services.ledger_service import Ledger
from .services import persistence_service


class _DataState:
    """Per-app cache of loaded stores. Each store is loaded on first use."""

    def __init__(self, config):
        self.config = config
        self.data_dir = Path(config["DATA_DIR"])
        self.inventory: InventoryIndex | None = None
        self.roster: Roster | None = None
        self.carts: dict[int, Cart] = {}
        self.ledgers: dict[int, Ledger] = {}

    def path(self, key: str, **fmt) -> Path:
        return self.data_dir / self.config[key].format(**fmt)


class DataStore:
    def __init__(self, app=None):
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        app.extensions["stockroom"] = _DataState(app.config)

    @staticmethod
    def _state() -> _DataState:
        return current_app.extensions["stockroom"]

    def reset(self) -> None:
        """Forget every loaded store; the next access reloads from disk."""
        state = self._state()
        current_app.extensions["stockroom"] = _DataState(state.config)

    @property
    def data_dir(self) -> Path:
        return self._state().data_dir

    @property
    def inventory(self) -> InventoryIndex:
        state = self._state()
        if state.inventory is None:
            state.inventory = persistence_service.load_inventory(state.path("INVENTORY_FILENAME"))
        return state.inventory

    @property
    def roster(self) -> Roster:
        state = self._state()
        if state.roster is None:
            state.roster = Roster.load(
                state.path("USERS_FILENAME"),
                rounds=state.config["BCRYPT_ROUNDS"],
                level_thresholds=state.config["LEVEL_THRESHOLDS"],
            )
            state.roster.load_requests(state.path("ADMIN_REQUESTS_FILENAME"))
        return state.roster

    def cart_for(self, user_id: int) -> Cart:
        state = self._state()
        if user_id not in state.carts:
            state.carts[user_id] = persistence_service.load_cart(
                state.path("CART_FILENAME_TEMPLATE", user_id=user_id)
            )
        return state.carts[user_id]

    def ledger_for(self, user_id: int) -> Ledger:
        state = self._state()
        if user_id not in state.ledgers:
            state.ledgers[user_id] = Ledger.load(
                state.path("LEDGER_FILENAME_TEMPLATE", user_id=user_id), user_id
            )
        return state.ledgers[user_id]

    def ledger_user_ids(self) -> list[int]:
        """User ids that have a ledger file in the data directory."""
        state = self._state()
        prefix, _, suffix = state.config["LEDGER_FILENAME_TEMPLATE"].partition("{user_id}")
        ids = []
        for path in state.data_dir.glob(f"{prefix}*{suffix}"):
            middle = path.name[len(prefix):len(path.name) - len(suffix)]
            if middle.isdigit():
                ids.append(int(middle))
        return sorted(ids)

    def oversight_ledger(self) -> Ledger:
        return Ledger.oversight(self.ledger_for(uid) for uid in self.ledger_user_ids())

    def checkout_engine(self, user_id: int) -> CheckoutEngine:
        state = self._state()
        return CheckoutEngine(
            self.inventory,
            self.ledger_for(user_id),
            admin_rate=state.config["ADMIN_DISCOUNT_RATE"],
            persist=self.save_inventory,
        )

    # ------------------------------------------------------------------
    # saves (in-memory state is kept when a save fails)
    # ------------------------------------------------------------------

    def save_inventory(self) -> None:
        state = self._state()
        path = state.path("INVENTORY_FILENAME")
        run_with_retry(lambda: persistence_service.save_inventory(self.inventory, path))

    def save_cart(self, user_id: int) -> None:
        state = self._state()
        path = state.path("CART_FILENAME_TEMPLATE", user_id=user_id)
        cart = self.cart_for(user_id)
        run_with_retry(lambda: persistence_service.save_cart(cart, path))

    def save_roster(self) -> None:
        roster = self.roster
        run_with_retry(roster.save)
        run_with_retry(roster.save_requests)


store = DataStore()

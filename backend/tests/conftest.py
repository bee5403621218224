"""
Pytest fixtures for Stockroom backend tests.

Provides an app bound to a temporary data directory, a seeded inventory,
carts, ledgers and a CLI runner.
"""

import pytest

from stockroom import create_app
from stockroom.models import Actor, SizeStock
from stockroom.services.cart_service import Cart
from stockroom.services.checkout_service import CheckoutEngine
from stockroom.services.inventory_service import InventoryIndex
from stockroom.services.ledger_service import Ledger


FIXED_TIMESTAMP = "2024-03-15 10:30:00"


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing with its own data directory."""
    app = create_app({
        'TESTING': True,
        'DATA_DIR': str(tmp_path / "data"),
        'BCRYPT_ROUNDS': 4,
        'LOG_LEVEL': 'DEBUG',
    })
    with app.app_context():
        yield app


@pytest.fixture(scope='function')
def runner(app):
    """Create CLI runner."""
    return app.test_cli_runner()


@pytest.fixture(scope='function')
def inventory():
    """Inventory with one sized shirt and one size-less gift card."""
    inv = InventoryIndex()
    inv.add_product("Shirt", "Men", "Eastern", 100_00, SizeStock.sized(s=5))
    inv.add_product("GiftCard", "Other", "Other", 50_00, SizeStock.sizeless(1000))
    return inv


@pytest.fixture(scope='function')
def cart():
    return Cart()


@pytest.fixture(scope='function')
def ledger_path(tmp_path):
    return tmp_path / "transactions_user_1.txt"


@pytest.fixture(scope='function')
def ledger(ledger_path):
    return Ledger(1, ledger_path)


@pytest.fixture(scope='function')
def customer():
    return Actor(user_id=1, username="alice", level=1)


@pytest.fixture(scope='function')
def engine(inventory, ledger):
    return CheckoutEngine(inventory, ledger, clock=lambda: FIXED_TIMESTAMP)


def _scripted(*resolutions):
    """Resolver that replays the given decisions and records what it was shown."""
    seen = []
    queue = list(resolutions)

    def resolve(shortages):
        seen.append(list(shortages))
        return queue.pop(0)

    resolve.seen = seen
    return resolve


@pytest.fixture(scope='function')
def scripted():
    """Factory for scripted shortage resolvers."""
    return _scripted

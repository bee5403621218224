# Overview: Flask CLI command groups for users, products, carts, checkout and the ledger.

# backend/stockroom/cli.py
# Commands Legend (run from the repository root):
# Prereqs:
# - Activate your virtualenv and `pip install -e .`
# - Use: flask --app stockroom <group> <command> [options]   (or the `stockroom` script)
# - Data files go to $STOCKROOM_DATA_DIR (default ./data)
#
# Users:
# - flask --app stockroom users init
#   Create the default admin account (admin/admin) when the roster has no admin.
# - flask --app stockroom users register --username alice
#   Register a customer account (prompts for the password).
# - flask --app stockroom users list -u admin
#   List all users with level and total spent.
# - flask --app stockroom users request-admin / requests / approve 0 / reject 0
#   Admin access requests and their approval.
#
# Products (admin credentials for changes):
# - flask --app stockroom products add -u admin --name Shirt --category Men --section Eastern --price 100 --s 5
# - flask --app stockroom products add -u admin --name GiftCard --category Other --section Other --price 50 --sizeless --quantity 1000
# - flask --app stockroom products list [--category Kids] [--section Boys]
# - flask --app stockroom products set-stock -u admin 1 M 35
#
# Cart and checkout (customer credentials):
# - flask --app stockroom cart add -u alice 1 3 --size S
# - flask --app stockroom cart show -u alice
# - flask --app stockroom checkout -u alice
#   Interactive: shortages are listed and resolved one decision at a time.
#
# Ledger:
# - flask --app stockroom ledger list -u alice
# - flask --app stockroom ledger summary -u admin --all
#   Oversight view across every customer's ledger (admin only).

import functools
import json

import click
from flask import current_app
from flask.cli import FlaskGroup, with_appcontext

from .extensions import store
from .models import Category, Size, SizeStock, sections_for
from .services.auth_service import AuthenticationError
from .services.checkout_service import CommitRaceError, Resolution
from .services.ledger_service import summarize
from .services import reporting_service
from .time_utils import parse_date
from .validation import PersistenceError, StockroomError, format_cents, parse_money_cents

CATEGORY_CHOICES = [c.label for c in Category]
SIZE_CHOICES = [s.label for s in Size]


def _fail(message: str):
    click.echo(f"FAIL {message}")
    raise click.exceptions.Exit(1)


def credentials(func):
    """--username/--password options; the password is prompted when omitted."""
    func = click.option("--password", "-p", prompt=True, hide_input=True, help="Password")(func)
    func = click.option("--username", "-u", prompt=True, help="Username")(func)
    return func


def _login(username: str, password: str, *, admin: bool = False):
    try:
        actor = store.roster.authenticate(username, password)
    except AuthenticationError as exc:
        _fail(str(exc))
    if admin and not actor.is_admin:
        _fail("Admin privileges required")
    return actor


def domain_errors(func):
    """Report domain errors as FAIL lines with a non-zero exit status."""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except StockroomError as exc:
            _fail(str(exc))
    return wrapper


# ----------------------------------------------------------------------
# users
# ----------------------------------------------------------------------

@click.group("users")
def users_group():
    """User roster commands."""


@users_group.command("init")
@with_appcontext
@domain_errors
def init_users():
    """Create the default admin account if no admin exists."""
    user = store.roster.ensure_default_admin()
    if user is None:
        click.echo("PASS An admin account already exists")
        return
    store.save_roster()
    click.echo(f"PASS Created default admin: {user.username} (ID: {user.user_id})")
    click.echo("SECURITY Change the default admin password immediately!")


@users_group.command("register")
@click.option("--username", prompt=True, help="Username")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Password")
@with_appcontext
@domain_errors
def register_user(username, password):
    """Register a customer account."""
    user = store.roster.register(username, password)
    store.save_roster()
    click.echo(f"PASS Register success. userID={user.user_id}")


@users_group.command("list")
@credentials
@with_appcontext
@domain_errors
def list_users(username, password):
    """List all users (admin only)."""
    _login(username, password, admin=True)
    users = store.roster.users()
    if not users:
        click.echo("No users found.")
        return
    click.echo("\n" + "=" * 72)
    click.echo(f"{'ID':<5} {'Username':<20} {'Level':<10} {'Admin':<7} {'Total Spent':>12}")
    click.echo("=" * 72)
    for user in users:
        admin_str = "Yes" if user.is_admin else "No"
        level = f"{user.level} ({user.to_actor().level_name})"
        click.echo(
            f"{user.user_id:<5} {user.username:<20} {level:<10} {admin_str:<7} "
            f"{format_cents(user.total_spent_cents):>12}"
        )
    click.echo("=" * 72 + "\n")


@users_group.command("reset-password")
@credentials
@click.argument("target")
@click.option("--new-password", prompt=True, hide_input=True, confirmation_prompt=True, help="New password")
@with_appcontext
@domain_errors
def reset_password(username, password, target, new_password):
    """Reset the password of user TARGET (admin only)."""
    _login(username, password, admin=True)
    store.roster.reset_password(target, new_password)
    store.save_roster()
    click.echo(f"PASS Password reset for {target}")


@users_group.command("request-admin")
@click.option("--username", prompt=True, help="Username")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True, help="Password")
@with_appcontext
@domain_errors
def request_admin(username, password):
    """Ask for an admin account; an existing admin must approve it."""
    index = store.roster.request_admin(username, password)
    store.save_roster()
    click.echo(f"PASS Admin request #{index} submitted for {username}")


@users_group.command("requests")
@credentials
@with_appcontext
@domain_errors
def list_requests(username, password):
    """List pending admin requests (admin only)."""
    _login(username, password, admin=True)
    pending = store.roster.pending_requests()
    if not pending:
        click.echo("No pending admin requests.")
        return
    for index, name in enumerate(pending):
        click.echo(f"#{index} {name}")


@users_group.command("approve")
@credentials
@click.argument("index", type=int)
@with_appcontext
@domain_errors
def approve_request(username, password, index):
    """Approve a pending admin request (admin only)."""
    _login(username, password, admin=True)
    user = store.roster.approve_request(index)
    store.save_roster()
    click.echo(f"PASS Admin account created: {user.username} (ID: {user.user_id})")


@users_group.command("reject")
@credentials
@click.argument("index", type=int)
@with_appcontext
@domain_errors
def reject_request(username, password, index):
    """Reject a pending admin request (admin only)."""
    _login(username, password, admin=True)
    name = store.roster.reject_request(index)
    store.save_roster()
    click.echo(f"PASS Admin request for {name} rejected")


# ----------------------------------------------------------------------
# products
# ----------------------------------------------------------------------

@click.group("products")
def products_group():
    """Inventory commands."""


@products_group.command("add")
@credentials
@click.option("--name", required=True, help="Unique product name")
@click.option("--category", type=click.Choice(CATEGORY_CHOICES, case_sensitive=False), required=True)
@click.option("--section", required=True, help="Eastern/Western/Other, Boys/Girls/Other or Other")
@click.option("--price", required=True, help="Unit price, e.g. 19.99")
@click.option("--sized/--sizeless", default=True, show_default=True, help="Whether the product uses XS-XL")
@click.option("--xs", type=int, default=0)
@click.option("--s", "s_", type=int, default=0)
@click.option("--m", type=int, default=0)
@click.option("--l", "l_", type=int, default=0)
@click.option("--xl", type=int, default=0)
@click.option("--quantity", type=int, default=0, help="Stock of a size-less product")
@with_appcontext
@domain_errors
def add_product(username, password, name, category, section, price, sized, xs, s_, m, l_, xl, quantity):
    """Add a product (admin only)."""
    _login(username, password, admin=True)
    if sized:
        if quantity:
            _fail("--quantity is only for size-less products; use --xs ... --xl")
        stock = SizeStock.sized(xs, s_, m, l_, xl)
    else:
        if any((xs, s_, m, l_, xl)):
            _fail("Size-less products only take --quantity")
        stock = SizeStock.sizeless(quantity)
    product_id = store.inventory.add_product(name, category, section, parse_money_cents(price), stock)
    store.save_inventory()
    click.echo(f"PASS Product added successfully with ID: {product_id}")


@products_group.command("list")
@click.option("--category", type=click.Choice(CATEGORY_CHOICES, case_sensitive=False))
@click.option("--section", help="Section within --category")
@with_appcontext
@domain_errors
def list_products(category, section):
    """List products, optionally by category or section."""
    inventory = store.inventory
    if section and not category:
        _fail("--section requires --category")
    if category and section:
        rows = inventory.list_by_section(category, section)
    elif category:
        rows = inventory.list_by_category(category)
    else:
        rows = inventory.list_all()
    click.echo(reporting_service.render_products(rows))


@products_group.command("sections")
@click.argument("category", type=click.Choice(CATEGORY_CHOICES, case_sensitive=False))
def list_sections(category):
    """Show the sections a category accepts."""
    click.echo(", ".join(s.label for s in sections_for(Category.parse(category))))


@products_group.command("show")
@click.argument("product_id", type=int)
@with_appcontext
@domain_errors
def show_product(product_id):
    """Show one product."""
    product = store.inventory.get_product(product_id)
    click.echo(reporting_service.render_product(product.to_dict()))


@products_group.command("find")
@click.argument("name")
@with_appcontext
@domain_errors
def find_product(name):
    """Look up a product id by name."""
    click.echo(f"ID for {name!r}: {store.inventory.product_id_for(name)}")


def _admin_update(username, password, product_id, op):
    _login(username, password, admin=True)
    if not op(store.inventory):
        _fail(f"Product ID {product_id} not found")
    store.save_inventory()


@products_group.command("set-stock")
@credentials
@click.argument("product_id", type=int)
@click.argument("size", type=click.Choice(SIZE_CHOICES, case_sensitive=False))
@click.argument("quantity", type=int)
@with_appcontext
@domain_errors
def set_stock(username, password, product_id, size, quantity):
    """Set the stock of one size (admin only)."""
    _admin_update(username, password, product_id, lambda inv: inv.set_stock(product_id, size, quantity))
    click.echo(f"PASS Stock for product {product_id} size {Size.parse(size).label} set to {quantity}")


@products_group.command("set-price")
@credentials
@click.argument("product_id", type=int)
@click.argument("price")
@with_appcontext
@domain_errors
def set_price(username, password, product_id, price):
    """Change a product's price (admin only)."""
    cents = parse_money_cents(price)
    _admin_update(username, password, product_id, lambda inv: inv.update_price(product_id, cents))
    click.echo(f"PASS Price of product {product_id} set to {format_cents(cents)}")


@products_group.command("rename")
@credentials
@click.argument("product_id", type=int)
@click.argument("new_name")
@with_appcontext
@domain_errors
def rename_product(username, password, product_id, new_name):
    """Rename a product (admin only)."""
    _admin_update(username, password, product_id, lambda inv: inv.rename(product_id, new_name))
    click.echo(f"PASS Product {product_id} renamed to {new_name}")


@products_group.command("move")
@credentials
@click.argument("product_id", type=int)
@click.argument("category", type=click.Choice(CATEGORY_CHOICES, case_sensitive=False))
@click.argument("section")
@with_appcontext
@domain_errors
def move_product(username, password, product_id, category, section):
    """Move a product to another category/section (admin only)."""
    _admin_update(username, password, product_id, lambda inv: inv.move(product_id, category, section))
    product = store.inventory.get_product(product_id)
    click.echo(f"PASS Product {product_id} moved to {product.category.label}/{product.section.label}")


@products_group.command("remove")
@credentials
@click.argument("product_id", type=int)
@with_appcontext
@domain_errors
def remove_product(username, password, product_id):
    """Remove a product (admin only)."""
    _admin_update(username, password, product_id, lambda inv: inv.remove_product(product_id))
    click.echo(f"PASS Product {product_id} removed")


# ----------------------------------------------------------------------
# cart
# ----------------------------------------------------------------------

@click.group("cart")
def cart_group():
    """Shopping cart commands."""


def _cart_size(product_id: int, size):
    """Size option value, prompting for sized products when it was omitted."""
    if size:
        return size
    product = store.inventory.get_product(product_id)
    if not product.has_size:
        return Size.NONE
    return click.prompt("Size", type=click.Choice([s.label for s in Size if s.is_sized], case_sensitive=False))


@cart_group.command("add")
@credentials
@click.argument("product_id", type=int)
@click.argument("quantity", type=int)
@click.option("--size", type=click.Choice(SIZE_CHOICES, case_sensitive=False))
@with_appcontext
@domain_errors
def cart_add(username, password, product_id, quantity, size):
    """Add a quantity of one size to the cart."""
    actor = _login(username, password)
    size = _cart_size(product_id, size)
    store.cart_for(actor.user_id).add_item(product_id, size, quantity, store.inventory)
    store.save_cart(actor.user_id)
    click.echo(f"PASS Added to cart: product {product_id}, size {Size.parse(size).label}, quantity {quantity}")


@cart_group.command("update")
@credentials
@click.argument("product_id", type=int)
@click.argument("quantity", type=int)
@click.option("--size", type=click.Choice(SIZE_CHOICES, case_sensitive=False))
@with_appcontext
@domain_errors
def cart_update(username, password, product_id, quantity, size):
    """Overwrite the quantity of one size already in the cart."""
    actor = _login(username, password)
    size = _cart_size(product_id, size)
    store.cart_for(actor.user_id).update_item(product_id, size, quantity, store.inventory)
    store.save_cart(actor.user_id)
    click.echo(f"PASS Cart updated: product {product_id}, size {Size.parse(size).label}, quantity {quantity}")


@cart_group.command("remove")
@credentials
@click.argument("product_id", type=int)
@with_appcontext
@domain_errors
def cart_remove(username, password, product_id):
    """Remove a product (all sizes) from the cart."""
    actor = _login(username, password)
    store.cart_for(actor.user_id).remove_item(product_id)
    store.save_cart(actor.user_id)
    click.echo(f"PASS Item removed from cart, product ID: {product_id}")


@cart_group.command("show")
@credentials
@with_appcontext
@domain_errors
def cart_show(username, password):
    """Show the cart with subtotals."""
    actor = _login(username, password)
    cart = store.cart_for(actor.user_id)
    inventory = store.inventory
    click.echo(reporting_service.render_cart(cart.describe(inventory), cart.total_cents(inventory)))


@cart_group.command("clear")
@credentials
@with_appcontext
@domain_errors
def cart_clear(username, password):
    """Empty the cart."""
    actor = _login(username, password)
    store.cart_for(actor.user_id).clear()
    store.save_cart(actor.user_id)
    click.echo("PASS Cart cleared")


# ----------------------------------------------------------------------
# checkout
# ----------------------------------------------------------------------

def prompt_resolution(shortages):
    """Console resolver: show every shortage, ask for one decision."""
    click.echo(reporting_service.render_shortages(shortages))
    click.echo("1. Reduce item quantity to available stock")
    click.echo("2. Remove item from cart")
    click.echo("3. Cancel checkout")
    choice = click.prompt("Enter choice", type=click.IntRange(1, 3))
    if choice == 3:
        return Resolution.abort()

    product_ids = sorted({s.product_id for s in shortages})
    if len(product_ids) == 1:
        product_id = product_ids[0]
    else:
        product_id = int(click.prompt("Enter Product ID", type=click.Choice([str(i) for i in product_ids])))
    if choice == 1:
        return Resolution.reduce(product_id)
    return Resolution.remove(product_id)


@click.command("checkout")
@credentials
@with_appcontext
def checkout(username, password):
    """Check out the cart; shortages are resolved interactively."""
    actor = _login(username, password)
    cart = store.cart_for(actor.user_id)
    engine = store.checkout_engine(actor.user_id)

    try:
        outcome = engine.checkout(cart, actor, prompt_resolution)
    except CommitRaceError as exc:
        store.save_cart(actor.user_id)
        _fail(f"Transaction failed: {exc}. Your cart was kept; please retry.")
    except PersistenceError as exc:
        current_app.logger.exception("Failed to record transaction")
        _fail(f"Transaction failed: {exc}. No stock was deducted; please retry.")
    except StockroomError as exc:
        _fail(str(exc))

    if not outcome.completed:
        store.save_cart(actor.user_id)
        _fail(outcome.reason)

    tx = outcome.transaction
    try:
        store.save_cart(actor.user_id)
        user = store.roster.record_purchase(actor.user_id, tx.final_total_cents)
        store.save_roster()
    except PersistenceError as exc:
        current_app.logger.exception("Failed to save state after checkout")
        click.echo(f"WARN Transaction {tx.transaction_id} was recorded but saving failed: {exc}")
        user = store.roster.get(actor.user_id)

    click.echo("\n========== TRANSACTION SUCCESSFUL ==========")
    click.echo(reporting_service.render_invoice(tx))
    click.echo("Thank you for your purchase!")
    click.echo(f"Your member level: {user.to_actor().level_name}")


# ----------------------------------------------------------------------
# ledger
# ----------------------------------------------------------------------

@click.group("ledger")
def ledger_group():
    """Transaction history commands."""


def _ledger_for(username, password, show_all: bool):
    actor = _login(username, password, admin=show_all)
    if show_all:
        return store.oversight_ledger()
    return store.ledger_for(actor.user_id)


def ledger_scope(func):
    func = click.option("--all", "show_all", is_flag=True, help="Every customer's ledger (admin only)")(func)
    return credentials(func)


@ledger_group.command("list")
@ledger_scope
@with_appcontext
@domain_errors
def ledger_list(username, password, show_all):
    """List transactions with totals."""
    ledger = _ledger_for(username, password, show_all)
    click.echo(reporting_service.render_summary_table(ledger.transactions(), ledger.summary()))


@ledger_group.command("show")
@ledger_scope
@click.argument("transaction_id", type=int)
@click.option("--user-id", type=int, help="Owner of the transaction (with --all)")
@click.option("--json", "as_json", is_flag=True, help="Print the record as JSON")
@with_appcontext
@domain_errors
def ledger_show(username, password, show_all, transaction_id, user_id, as_json):
    """Print one transaction's invoice."""
    ledger = _ledger_for(username, password, show_all)
    tx = ledger.find(transaction_id, actor_id=user_id)
    if tx is None:
        _fail(f"Transaction ID {transaction_id} not found.")
    if as_json:
        click.echo(json.dumps(tx.to_dict(), indent=2))
        return
    click.echo(reporting_service.render_invoice(tx))


@ledger_group.command("by-date")
@ledger_scope
@click.argument("start")
@click.argument("end")
@with_appcontext
@domain_errors
def ledger_by_date(username, password, show_all, start, end):
    """Transactions between two dates (YYYY-MM-DD, inclusive)."""
    try:
        start_date, end_date = parse_date(start), parse_date(end)
    except ValueError:
        _fail("Dates must be YYYY-MM-DD")
    if start_date is None or end_date is None:
        _fail("Dates must be YYYY-MM-DD")
    ledger = _ledger_for(username, password, show_all)
    matches = ledger.filter_by_date_range(start_date, end_date)
    click.echo(reporting_service.render_summary_table(matches, summarize(matches)))


@ledger_group.command("by-amount")
@ledger_scope
@click.argument("minimum")
@click.argument("maximum")
@with_appcontext
@domain_errors
def ledger_by_amount(username, password, show_all, minimum, maximum):
    """Transactions whose final total lies in [MINIMUM, MAXIMUM]."""
    ledger = _ledger_for(username, password, show_all)
    matches = ledger.filter_by_amount_range(parse_money_cents(minimum), parse_money_cents(maximum))
    click.echo(reporting_service.render_summary_table(matches, summarize(matches)))


@ledger_group.command("summary")
@ledger_scope
@with_appcontext
@domain_errors
def ledger_summary(username, password, show_all):
    """Count, total and average of the visible transactions."""
    ledger = _ledger_for(username, password, show_all)
    click.echo(reporting_service.render_statistics(ledger.summary()))


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(cart_group)
    app.cli.add_command(checkout)
    app.cli.add_command(ledger_group)


def _create_app():
    from . import create_app
    return create_app()


@click.group(cls=FlaskGroup, create_app=_create_app, add_default_commands=False)
def main():
    """Stockroom inventory and checkout."""

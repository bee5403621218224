# Overview: Service-layer operations for reporting; plain-text invoices, listings and summaries.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

from ..models import Transaction, level_name
from ..validation import format_cents
from .ledger_service import LedgerSummary

RULE = "=" * 64
THIN_RULE = "-" * 64


def discount_percent(rate: Decimal) -> int:
    """Percentage taken off for a rate paid: 0.95 -> 5."""
    return int(((1 - rate) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def render_product(row: dict, *, with_category: bool = True) -> str:
    """One product listing line from InventoryIndex projections."""
    parts = [f"ID: {row['id']}", f"Name: {row['name']}"]
    if with_category:
        parts.append(f"Category: {row['category']}")
    parts.append(f"Section: {row['section']}")
    parts.append(f"Price: {row['price']}")
    parts.append(f"Total Stock: {row['total_stock']}")
    line = ", ".join(parts)
    if row.get("sizes"):
        line += "\n    " + ", ".join(f"{size}: {qty}" for size, qty in row["sizes"].items())
    return line


def render_products(rows: list[dict], *, empty_message: str = "No products found.") -> str:
    if not rows:
        return empty_message
    return "\n".join(render_product(row) for row in rows)


def render_cart(rows: list[dict], total_cents: int) -> str:
    if not rows:
        return "Your shopping cart is empty."
    out = ["Items in your shopping cart:"]
    for row in rows:
        if not row["found"]:
            out.append(f"Product ID: {row['product_id']} (no longer available)")
        else:
            out.append(f"Product ID: {row['product_id']}, Name: {row['name']}, Unit Price: {row['unit_price']}")
        for entry in row["sizes"]:
            line = f"  Size: {entry['size']}, Quantity: {entry['quantity']}"
            if "subtotal" in entry:
                line += f", Subtotal: {entry['subtotal']}"
            out.append(line)
    out.append(f"Total Price: {format_cents(total_cents)}")
    return "\n".join(out)


def render_shortages(shortages) -> str:
    out = ["========== STOCK SHORTAGE ALERT ==========",
           "The following items have insufficient stock:"]
    current = None
    for s in shortages:
        if s.product_id != current:
            current = s.product_id
            out.append(f"Product ID: {s.product_id} - {s.name or 'Unknown Product'}")
        out.append(f"  Size: {s.size.label} - Short by: {s.missing} (Available: {s.available})")
    return "\n".join(out)


def render_invoice(tx: Transaction) -> str:
    out = [
        RULE,
        "TRANSACTION INVOICE".center(64),
        RULE,
        f"  Transaction ID: {tx.transaction_id}          User ID: {tx.actor_id}",
        f"  Date/Time: {tx.timestamp}",
        f"  Customer Level: {tx.tier} ({level_name(tx.tier)})",
        THIN_RULE,
        "ITEMS PURCHASED".center(64),
        THIN_RULE,
    ]
    for number, item in enumerate(tx.items, start=1):
        out.append(f"  Item #{number}")
        out.append(f"  Product ID: {item.product_id}")
        out.append(f"  Name: {item.name}")
        out.append(f"  Category: {item.category.label} | Section: {item.section.label}")
        out.append(f"  Unit Price: ${format_cents(item.unit_price_cents)}")
        out.append("  Quantities: " + ", ".join(f"{size.label}={qty}" for size, qty in item.sizes()))
        out.append(f"  Subtotal: ${format_cents(item.subtotal_cents)}")
        out.append("  " + "-" * 62)
    out.extend([
        THIN_RULE,
        "PAYMENT SUMMARY".center(64),
        THIN_RULE,
        f"  Raw Total:       ${format_cents(tx.raw_total_cents)}",
        f"  Discount:         {discount_percent(tx.discount_rate)}%",
        f"  Discount Amount: ${format_cents(tx.discount_cents)}",
        "  " + "=" * 61,
        f"  FINAL TOTAL:     ${format_cents(tx.final_total_cents)}",
        RULE,
    ])
    return "\n".join(out)


def render_summary_table(transactions: list[Transaction], summary: LedgerSummary) -> str:
    if not transactions:
        return "No transaction records found."
    out = [
        f"{'User':<6}{'TX ID':<8}{'Date/Time':<22}{'Items':<8}{'Raw Total':<12}{'Discount':<10}{'Final':<12}",
        "-" * 78,
    ]
    for tx in transactions:
        out.append(
            f"{tx.actor_id:<6}{tx.transaction_id:<8}{tx.timestamp:<22}{len(tx.items):<8}"
            f"${format_cents(tx.raw_total_cents):<11}{discount_percent(tx.discount_rate):>3}%{'':<6}"
            f"${format_cents(tx.final_total_cents):<11}"
        )
    out.append("-" * 78)
    out.append(render_statistics(summary))
    return "\n".join(out)


def render_statistics(summary: LedgerSummary) -> str:
    return (
        f"Total Transactions: {summary.count} | "
        f"Total Spent: ${format_cents(summary.total_cents)} | "
        f"Average per Order: ${format_cents(summary.average_cents)}"
    )

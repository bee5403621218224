# Overview: Service-layer operations for the transaction ledger; append-only, per-actor scoped.

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterable, Optional

from ..models import Category, Transaction, TransactionItem, section_from_index
from ..models.catalog import SLOT_COUNT
from ..time_utils import timestamp_date
from ..validation import (
    PersistenceError,
    StockroomError,
    ValidationError,
    coerce_int,
    format_cents,
    parse_money_cents,
)
from .persistence_service import atomic_write_lines, read_lines, refuse_overwrite
"""
Stockroom Ledger Invariants (authoritative)

- Scope is per actor: one file per actor, ids unique within that file only.
  The oversight view merges every actor's ledger read-only and identifies a
  record by (actor_id, transaction_id).
- Append-only: records are never updated or deleted after append.
- append() persists before returning; a failed write rolls the append back.
- A ledger whose file exists but could not be read loads empty and refuses
  append(), so the file is never rewritten without its earlier records.
- Every record is a TX header that announces itemCount, followed by exactly
  that many ITEM lines. A record that is cut short or contains a malformed
  line is dropped on load without affecting the records before it.
- All queries are pure projections that respect the actor filter.
"""

logger = logging.getLogger(__name__)

TX_TAG = "TX"
ITEM_TAG = "ITEM"
TX_FIELDS = 9
ITEM_FIELDS = 7 + SLOT_COUNT


class LedgerError(StockroomError):
    """Raised for ledger operation errors."""


@dataclass(frozen=True)
class LedgerSummary:
    count: int
    total_cents: int
    average_cents: int

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "total": format_cents(self.total_cents),
            "average": format_cents(self.average_cents),
        }


def format_rate(rate: Decimal) -> str:
    return f"{rate:.2f}"


# ----------------------------------------------------------------------
# codec
# ----------------------------------------------------------------------

def encode_transaction(tx: Transaction) -> list[str]:
    header = "|".join([
        TX_TAG,
        str(tx.transaction_id),
        str(tx.actor_id),
        format_cents(tx.raw_total_cents),
        format_rate(tx.discount_rate),
        format_cents(tx.final_total_cents),
        tx.timestamp,
        str(tx.tier),
        str(len(tx.items)),
    ])
    lines = [header]
    for item in tx.items:
        fields = [
            ITEM_TAG,
            str(item.product_id),
            item.name,
            str(item.category.value),
            str(item.section.value),
            format_cents(item.unit_price_cents),
        ]
        fields.extend(str(q) for q in item.quantities)
        fields.append(format_cents(item.subtotal_cents))
        lines.append("|".join(fields))
    return lines


def _parse_rate(value: str) -> Decimal:
    try:
        rate = Decimal(value.strip())
    except InvalidOperation:
        raise ValidationError(f"Invalid discount rate: {value!r}")
    if not (Decimal(0) < rate <= Decimal(1)):
        raise ValidationError(f"Discount rate out of range: {value!r}")
    return rate


def decode_item(line: str) -> TransactionItem:
    parts = line.split("|")
    if len(parts) != ITEM_FIELDS or parts[0] != ITEM_TAG:
        raise LedgerError(f"Malformed ITEM line: {line!r}")
    category = Category.parse(coerce_int(parts[3], "categoryIndex"))
    return TransactionItem(
        product_id=coerce_int(parts[1], "productID"),
        name=parts[2],
        category=category,
        section=section_from_index(category, coerce_int(parts[4], "sectionIndex")),
        unit_price_cents=parse_money_cents(parts[5], "unitPrice"),
        quantities=tuple(coerce_int(q, "quantity") for q in parts[6:6 + SLOT_COUNT]),
        subtotal_cents=parse_money_cents(parts[-1], "subtotal"),
    )


def decode_transaction(lines: list[str]) -> Transaction:
    """Decode one complete record (header + item lines)."""
    parts = lines[0].split("|")
    if len(parts) != TX_FIELDS or parts[0] != TX_TAG:
        raise LedgerError(f"Malformed TX line: {lines[0]!r}")
    item_count = coerce_int(parts[8], "itemCount")
    if item_count != len(lines) - 1:
        raise LedgerError(
            f"Record announces {item_count} items but has {len(lines) - 1}",
            details={"transaction_id": parts[1]},
        )
    return Transaction(
        transaction_id=coerce_int(parts[1], "transactionID"),
        actor_id=coerce_int(parts[2], "actorID"),
        items=tuple(decode_item(line) for line in lines[1:]),
        raw_total_cents=parse_money_cents(parts[3], "rawTotal"),
        discount_rate=_parse_rate(parts[4]),
        final_total_cents=parse_money_cents(parts[5], "finalTotal"),
        timestamp=parts[6],
        tier=coerce_int(parts[7], "tier"),
    )


def decode_ledger(lines: list[str], path="<memory>") -> tuple[int, list[Transaction]]:
    """
    Parse a ledger file body. Returns (next_id, transactions).

    Records are split on TX headers; anything that is not a complete, well
    formed record is logged and skipped.
    """
    next_id = 1
    if lines and lines[0].strip():
        try:
            next_id = max(1, coerce_int(lines[0], "next transaction id"))
        except StockroomError:
            logger.warning("Invalid header in %s; counter recomputed from records", path)

    records: list[list[str]] = []
    stray = 0
    for line in lines[1:]:
        if not line.strip():
            continue
        if line.startswith(TX_TAG + "|"):
            records.append([line])
        elif records:
            records[-1].append(line)
        else:
            stray += 1
    if stray:
        logger.warning("Ignored %s line(s) before the first record in %s", stray, path)

    transactions: list[Transaction] = []
    for record in records:
        try:
            transactions.append(decode_transaction(record))
        except StockroomError as exc:
            logger.warning("Dropping corrupt ledger record in %s: %s", path, exc)

    if transactions:
        next_id = max(next_id, max(tx.transaction_id for tx in transactions) + 1)
    return next_id, transactions


# ----------------------------------------------------------------------
# ledger
# ----------------------------------------------------------------------

class Ledger:
    """
    Write-once, read-many transaction records.

    actor_id set: a per-actor ledger (appendable, queries filtered to that
    actor). actor_id None: the oversight view (read-only, no filter).
    """

    def __init__(
        self,
        actor_id: Optional[int],
        path=None,
        *,
        next_id: int = 1,
        transactions: Iterable[Transaction] = (),
    ):
        self.actor_id = actor_id
        self.path = Path(path) if path is not None else None
        self._next_id = max(1, next_id)
        self._transactions: list[Transaction] = list(transactions)
        self.load_error: Optional[str] = None

    @classmethod
    def load(cls, path, actor_id: int) -> "Ledger":
        """
        Load a per-actor ledger. A missing file is an empty ledger; an
        unreadable one is an empty ledger that refuses appends.
        """
        try:
            lines = read_lines(path)
        except PersistenceError as exc:
            logger.warning("%s; ledger is read-only until the file can be read", exc)
            ledger = cls(actor_id, path)
            ledger.load_error = str(exc)
            return ledger
        if lines is None:
            return cls(actor_id, path)
        next_id, transactions = decode_ledger(lines, path)
        return cls(actor_id, path, next_id=next_id, transactions=transactions)

    @classmethod
    def oversight(cls, ledgers: Iterable["Ledger"]) -> "Ledger":
        merged: list[Transaction] = []
        for ledger in ledgers:
            merged.extend(ledger.transactions())
        merged.sort(key=lambda tx: (tx.timestamp, tx.actor_id, tx.transaction_id))
        return cls(None, transactions=merged)

    @property
    def is_oversight(self) -> bool:
        return self.actor_id is None

    @property
    def scope_key(self) -> str:
        return "ledger:all" if self.is_oversight else f"ledger:user:{self.actor_id}"

    @property
    def next_id(self) -> int:
        return self._next_id

    def _allow(self, tx: Transaction) -> bool:
        return self.actor_id is None or tx.actor_id == self.actor_id

    def transactions(self) -> list[Transaction]:
        return [tx for tx in self._transactions if self._allow(tx)]

    def __len__(self) -> int:
        return len(self.transactions())

    def encode(self) -> list[str]:
        lines = [str(self._next_id)]
        for tx in self._transactions:
            lines.extend(encode_transaction(tx))
        return lines

    def append(self, transaction: Transaction) -> Transaction:
        """
        Assign the next id of this scope to `transaction` (its own id is
        ignored), store and persist it. Returns the stored record.
        """
        if self.is_oversight:
            raise LedgerError("The oversight ledger view is read-only")
        if transaction.actor_id != self.actor_id:
            raise LedgerError(
                f"Transaction for actor {transaction.actor_id} can not go to ledger of actor {self.actor_id}"
            )
        if self.path is not None:
            refuse_overwrite(self.load_error, self.path)
        record = dataclasses.replace(transaction, transaction_id=self._next_id)
        self._transactions.append(record)
        self._next_id += 1
        if self.path is not None:
            try:
                atomic_write_lines(self.path, self.encode())
            except StockroomError:
                self._transactions.pop()
                self._next_id -= 1
                raise
        logger.info(
            "Ledger %s appended transaction %s (final %s)",
            self.scope_key, record.transaction_id, format_cents(record.final_total_cents),
        )
        return record

    def find(self, transaction_id: int, actor_id: Optional[int] = None) -> Optional[Transaction]:
        for tx in self.transactions():
            if tx.transaction_id != transaction_id:
                continue
            if actor_id is not None and tx.actor_id != actor_id:
                continue
            return tx
        return None

    def filter_by_date_range(self, start: date, end: date) -> list[Transaction]:
        """Records whose timestamp date falls within [start, end]."""
        matches = []
        for tx in self.transactions():
            tx_date = timestamp_date(tx.timestamp)
            if tx_date is not None and start <= tx_date <= end:
                matches.append(tx)
        return matches

    def filter_by_amount_range(self, min_cents: int, max_cents: int) -> list[Transaction]:
        """Records whose final total falls within [min_cents, max_cents]."""
        return [tx for tx in self.transactions() if min_cents <= tx.final_total_cents <= max_cents]

    def summary(self) -> LedgerSummary:
        return summarize(self.transactions())


def summarize(transactions: Iterable[Transaction]) -> LedgerSummary:
    visible = list(transactions)
    count = len(visible)
    total = sum(tx.final_total_cents for tx in visible)
    # nearest-cent rounding (half-up)
    average = (total + count // 2) // count if count else 0
    return LedgerSummary(count=count, total_cents=total, average_cents=average)

"""
Tests for the transaction ledger: encoding, corrupt-record recovery, actor
scoping and read projections.
"""

import dataclasses
from datetime import date
from decimal import Decimal

import pytest

from stockroom.models import Category, KidsSection, MenWomenSection, Transaction, TransactionItem
from stockroom.services.ledger_service import (
    Ledger,
    LedgerError,
    decode_ledger,
    encode_transaction,
)
from stockroom.validation import PersistenceError


def make_tx(actor_id=1, final_cents=300_00, timestamp="2024-03-15 10:30:00", quantities=(0, 3)):
    item = TransactionItem(
        product_id=1,
        name="Shirt",
        category=Category.MEN,
        section=MenWomenSection.EASTERN,
        unit_price_cents=100_00,
        quantities=quantities,
    )
    return Transaction(
        transaction_id=0,
        actor_id=actor_id,
        items=(item,),
        raw_total_cents=item.subtotal_cents,
        discount_rate=Decimal("1.00"),
        final_total_cents=final_cents,
        timestamp=timestamp,
        tier=1,
    )


GOOD_RECORD = [
    "TX|1|1|300.00|1.00|300.00|2024-03-15 10:30:00|1|1",
    "ITEM|1|Shirt|0|0|100.00|0|3|0|0|0|0|300.00",
]


def test_encoding_layout():
    tx = make_tx()
    item = TransactionItem(
        product_id=7,
        name="Frock",
        category=Category.KIDS,
        section=KidsSection.GIRLS,
        unit_price_cents=19_99,
        quantities=(2, 0, 0, 0, 1, 0),
    )
    tx = Transaction(
        transaction_id=4,
        actor_id=2,
        items=(tx.items[0], item),
        raw_total_cents=tx.items[0].subtotal_cents + item.subtotal_cents,
        discount_rate=Decimal("0.98"),
        final_total_cents=352_77,
        timestamp="2024-03-15 10:30:00",
        tier=2,
    )
    assert encode_transaction(tx) == [
        "TX|4|2|359.97|0.98|352.77|2024-03-15 10:30:00|2|2",
        "ITEM|1|Shirt|0|0|100.00|0|3|0|0|0|0|300.00",
        "ITEM|7|Frock|2|1|19.99|2|0|0|0|1|0|59.97",
    ]


def test_append_assigns_ids_and_persists(tmp_path):
    path = tmp_path / "transactions_user_1.txt"
    ledger = Ledger(1, path)

    first = ledger.append(make_tx())
    second = ledger.append(make_tx(final_cents=100_00))

    assert (first.transaction_id, second.transaction_id) == (1, 2)
    lines = path.read_text().splitlines()
    assert lines[0] == "3"
    assert lines[1:3] == GOOD_RECORD

    reloaded = Ledger.load(path, 1)
    assert reloaded.transactions() == [first, second]
    assert reloaded.next_id == 3


def test_missing_file_is_empty_ledger(tmp_path):
    ledger = Ledger.load(tmp_path / "nope.txt", 5)
    assert len(ledger) == 0
    assert ledger.next_id == 1


def test_truncated_record_dropped_without_losing_earlier_ones(caplog):
    lines = ["3"] + GOOD_RECORD + [
        "TX|2|1|200.00|1.00|200.00|2024-03-16 09:00:00|1|2",
        "ITEM|1|Shirt|0|0|100.00|0|2|0|0|0|0|200.00",
    ]
    next_id, transactions = decode_ledger(lines)
    assert [tx.transaction_id for tx in transactions] == [1]
    assert next_id == 3
    assert "Dropping corrupt ledger record" in caplog.text


def test_record_cut_inside_multibyte_character_keeps_earlier_records(ledger_path):
    ledger = Ledger(1, ledger_path)
    ledger.append(make_tx())
    ledger.append(make_tx(final_cents=200_00))
    header = GOOD_RECORD[0].replace("TX|1|", "TX|3|").encode()
    with open(ledger_path, "ab") as fh:
        fh.write(header + b"\nITEM|1|Caf\xc3")

    reloaded = Ledger.load(ledger_path, 1)

    assert [tx.transaction_id for tx in reloaded.transactions()] == [1, 2]
    assert reloaded.next_id == 3
    assert reloaded.append(make_tx()).transaction_id == 3
    assert [tx.transaction_id for tx in Ledger.load(ledger_path, 1).transactions()] == [1, 2, 3]


def test_unreadable_ledger_refuses_append(tmp_path):
    path = tmp_path / "transactions_user_1.txt"
    path.mkdir()

    ledger = Ledger.load(path, 1)

    assert len(ledger) == 0
    with pytest.raises(PersistenceError):
        ledger.append(make_tx())
    assert len(ledger) == 0
    assert ledger.next_id == 1
    assert path.is_dir()


def test_malformed_item_drops_only_its_record():
    lines = ["4"] + GOOD_RECORD + [
        "TX|2|1|200.00|1.00|200.00|2024-03-16 09:00:00|1|1",
        "ITEM|1|Shirt|0|9|100.00|0|2|0|0|0|0|200.00",
    ] + [line.replace("TX|1|", "TX|3|") for line in GOOD_RECORD]
    _, transactions = decode_ledger(lines)
    assert [tx.transaction_id for tx in transactions] == [1, 3]


@pytest.mark.parametrize("rate", ["0.00", "1.50", "abc"])
def test_bad_discount_rate_drops_record(rate):
    header = GOOD_RECORD[0].replace("|1.00|", f"|{rate}|")
    _, transactions = decode_ledger(["2", header, GOOD_RECORD[1]])
    assert transactions == []


def test_bad_header_recomputed_from_records():
    next_id, transactions = decode_ledger(["garbage"] + GOOD_RECORD)
    assert next_id == 2
    assert len(transactions) == 1


def test_append_rejects_other_actor(ledger):
    with pytest.raises(LedgerError):
        ledger.append(make_tx(actor_id=2))
    assert ledger.next_id == 1


def test_actor_filter_applies_to_every_query():
    mine = Ledger(1, transactions=[
        dataclasses.replace(make_tx(), transaction_id=1),
        dataclasses.replace(make_tx(actor_id=2), transaction_id=1),
    ])
    assert [tx.actor_id for tx in mine.transactions()] == [1]
    assert mine.summary().count == 1
    assert mine.filter_by_amount_range(0, 10**9) == mine.transactions()


def test_oversight_merges_and_is_read_only():
    alice, bob = Ledger(1), Ledger(2)
    alice.append(make_tx(actor_id=1, timestamp="2024-03-15 12:00:00"))
    bob.append(make_tx(actor_id=2, final_cents=50_00, timestamp="2024-03-14 08:00:00"))

    view = Ledger.oversight([alice, bob])

    assert view.is_oversight
    assert [(tx.actor_id, tx.transaction_id) for tx in view.transactions()] == [(2, 1), (1, 1)]
    assert view.find(1, actor_id=2).final_total_cents == 50_00
    assert view.find(1, actor_id=3) is None
    with pytest.raises(LedgerError):
        view.append(make_tx())


def test_date_range_is_inclusive(ledger):
    for ts in ("2024-03-01 00:00:00", "2024-03-15 23:59:59", "2024-03-16 00:00:00"):
        ledger.append(make_tx(timestamp=ts))

    matches = ledger.filter_by_date_range(date(2024, 3, 1), date(2024, 3, 15))
    assert [tx.transaction_id for tx in matches] == [1, 2]
    assert ledger.filter_by_date_range(date(2024, 4, 1), date(2024, 4, 30)) == []


def test_amount_range_is_inclusive(ledger):
    for cents in (99_99, 100_00, 200_00, 200_01):
        ledger.append(make_tx(final_cents=cents))

    matches = ledger.filter_by_amount_range(100_00, 200_00)
    assert [tx.final_total_cents for tx in matches] == [100_00, 200_00]


def test_summary_rounds_average_half_up(ledger):
    assert ledger.summary().to_dict() == {"count": 0, "total": "0.00", "average": "0.00"}
    ledger.append(make_tx(final_cents=100))
    ledger.append(make_tx(final_cents=101))

    summary = ledger.summary()
    assert (summary.count, summary.total_cents, summary.average_cents) == (2, 201, 101)

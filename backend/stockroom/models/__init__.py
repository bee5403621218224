from .catalog import (
    Size,
    SIZED_SLOTS,
    Category,
    MenWomenSection,
    KidsSection,
    OtherSection,
    Section,
    sections_for,
    resolve_section,
    section_index,
    section_from_index,
)
from .inventory import SizeStock, Product
from .transactions import TransactionItem, Transaction
from .auth import Actor, UserRecord, level_name

__all__ = [
    "Size",
    "SIZED_SLOTS",
    "Category",
    "MenWomenSection",
    "KidsSection",
    "OtherSection",
    "Section",
    "sections_for",
    "resolve_section",
    "section_index",
    "section_from_index",
    "SizeStock",
    "Product",
    "TransactionItem",
    "Transaction",
    "Actor",
    "UserRecord",
    "level_name",
]

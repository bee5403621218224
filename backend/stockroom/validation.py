from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

# Characters that would break the comma/pipe delimited data files
FORBIDDEN_NAME_CHARS = (",", "|", "\n", "\r")


class StockroomError(Exception):
    """Base class for domain errors; carries optional structured details."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(StockroomError, ValueError):
    """Input problem; the operation is aborted with no state change."""


class NotFoundError(StockroomError, LookupError):
    """Unknown product, transaction or cart line."""


class PersistenceError(StockroomError):
    """A data file could not be read or written."""


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion.

    Rejects bools, floats, decimals-in-strings and scientific notation so that
    "12.5" or "1e3" never turn silently into a quantity.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def parse_money_cents(value: Any, field: str = "price") -> int:
    """Parse a decimal money amount ("100", "99.5", "19.99") into integer cents (half-up)."""
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    cents = (amount * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return int(cents)


def format_cents(cents: int) -> str:
    """Render integer cents as a fixed two-decimal amount ("-1.05", "950.00")."""
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole}.{frac:02d}"


def validate_price_cents(price_cents: int) -> int:
    price_cents = coerce_int(price_cents, "price_cents")
    if price_cents < 0:
        raise ValidationError("Price can not be negative")
    if price_cents > MAX_PRICE_CENTS:
        raise ValidationError(f"Price can not exceed {format_cents(MAX_PRICE_CENTS)}")
    return price_cents


def validate_product_name(name: Any) -> str:
    if not isinstance(name, str):
        raise ValidationError("Product name must be a string")
    cleaned = name.strip()
    if not cleaned:
        raise ValidationError("Product name is required")
    for ch in FORBIDDEN_NAME_CHARS:
        if ch in cleaned:
            raise ValidationError(
                f"Product name can not contain {ch!r}",
                details={"name": cleaned},
            )
    return cleaned

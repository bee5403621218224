# backend/stockroom/config.py
from __future__ import annotations
import os
from decimal import Decimal


def _optional_rate(value):
    return Decimal(value) if value else None


class Config:
    # Flat data files live here (products, users, carts, ledgers)
    DATA_DIR = os.environ.get("STOCKROOM_DATA_DIR", "data")

    INVENTORY_FILENAME = "products.txt"
    USERS_FILENAME = "users.txt"
    ADMIN_REQUESTS_FILENAME = "admin_requests.txt"
    CART_FILENAME_TEMPLATE = "cart_{user_id}.txt"
    LEDGER_FILENAME_TEMPLATE = "transactions_user_{user_id}.txt"

    # Admins pay this rate instead of their tier rate when set (e.g. "0.80")
    ADMIN_DISCOUNT_RATE = _optional_rate(os.environ.get("STOCKROOM_ADMIN_DISCOUNT_RATE"))

    # (minimum cumulative spend in cents, level), highest first
    LEVEL_THRESHOLDS = ((2000_00, 3), (500_00, 2))

    BCRYPT_ROUNDS = int(os.environ.get("STOCKROOM_BCRYPT_ROUNDS", "12"))

    LOG_LEVEL = os.environ.get("STOCKROOM_LOG_LEVEL", "INFO")

from __future__ import annotations

from typing import Tuple

# Transaction kinds.
TRANSACTION_SALE = "SALE"
TRANSACTION_EXPENSE = "EXPENSE"

TRANSACTION_TYPES: Tuple[str, ...] = (TRANSACTION_SALE, TRANSACTION_EXPENSE)

# History filters.
FILTER_ALL = "ALL"
TYPE_FILTERS: Tuple[str, ...] = (FILTER_ALL, TRANSACTION_SALE, TRANSACTION_EXPENSE)

RANGE_ALL = "ALL"
RANGE_TODAY = "TODAY"
RANGE_WEEK = "WEEK"
RANGE_MONTH = "MONTH"
DATE_RANGES: Tuple[str, ...] = (RANGE_ALL, RANGE_TODAY, RANGE_WEEK, RANGE_MONTH)

# Product form defaults.
DEFAULT_UNIT = "pcs"
DEFAULT_LOW_STOCK_THRESHOLD = 5

# Chat roles.
ROLE_USER = "user"
ROLE_MODEL = "model"

CURRENCY_SYMBOL = "₹"

DEFAULT_USER_NAME = "Shop Owner"
DEFAULT_SHOP_NAME = "My Shop"
DEFAULT_AVATAR = (
    "https://img.freepik.com/free-psd/3d-illustration-human-avatar-profile_23-2150671122.jpg"
    "?semt=ais_hybrid&w=740&q=80"
)

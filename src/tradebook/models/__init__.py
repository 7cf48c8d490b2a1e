from __future__ import annotations

from tradebook.models.account import Account
from tradebook.models.transaction import (
    Action,
    InvalidTransactionError,
    Transaction,
    normalize_instrument,
)

__all__ = [
    # account
    "Account",
    # transaction
    "Action",
    "InvalidTransactionError",
    "Transaction",
    "normalize_instrument",
]

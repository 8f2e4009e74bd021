"""SQLite storage for scanned receipts."""

from .receipts import ReceiptDB
from .schema import ensure_schema

__all__ = [
    "ReceiptDB",
    "ensure_schema",
]

"""Receipt storage backed by SQLite."""

from __future__ import annotations

import json
import logging
import sqlite3
from collections.abc import Callable
from datetime import date
from pathlib import Path
from typing import Any, TypeVar

from ..models import (
    InvoiceType,
    LineItem,
    Receipt,
    ReceiptFilter,
    ReceiptInput,
    ReceiptStats,
    new_receipt,
)
from .schema import ensure_schema

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UPDATE_SQL = """UPDATE receipts SET
    merchant_name = ?, receipt_date = ?, receipt_number = ?,
    invoice_type = ?, items = ?, subtotal = ?, tax = ?, total = ?,
    currency = ?, payment_method = ?, confidence_score = ?,
    image_uri = ?, raw_text = ?, error_message = ?
WHERE id = ?"""


def _row_to_receipt(row: sqlite3.Row) -> Receipt:
    try:
        items = [LineItem.from_dict(i) for i in json.loads(row["items"] or "[]")]
    except (json.JSONDecodeError, TypeError, AttributeError):
        logger.warning("Unreadable items column for receipt %s", row["id"])
        items = []

    return Receipt(
        id=row["id"],
        created_at=row["created_at"],
        image_uri=row["image_uri"],
        merchant_name=row["merchant_name"],
        receipt_date=row["receipt_date"],
        receipt_number=row["receipt_number"],
        invoice_type=InvoiceType.parse(row["invoice_type"]),
        items=items,
        subtotal=row["subtotal"],
        tax=row["tax"],
        total=row["total"],
        currency=row["currency"],
        payment_method=row["payment_method"],
        confidence_score=row["confidence_score"] or 0.0,
        raw_text=row["raw_text"],
        error_message=row["error_message"],
    )


def _items_json(items: list[LineItem]) -> str:
    return json.dumps([i.to_dict() for i in items], ensure_ascii=False)


def _is_stale_handle(exc: sqlite3.ProgrammingError) -> bool:
    return "closed" in str(exc).lower()


class ReceiptDB:
    """Manages the receipts table.

    The connection is opened lazily. If it turns out to be stale (closed
    underneath us), the operation reconnects once and is retried.
    """

    def __init__(
        self, db_path: str | Path = "~/.config/receiptscan/receipts.db"
    ) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def reconnect(self) -> None:
        """Drop the current connection and open a fresh one."""
        if self._conn is not None:
            try:
                self._conn.close()
            except sqlite3.Error:
                logger.debug("Ignoring error while closing stale connection")
        self._conn = None
        self._get_conn()

    def _run(self, op: Callable[[sqlite3.Connection], T]) -> T:
        try:
            return op(self._get_conn())
        except sqlite3.ProgrammingError as e:
            if not _is_stale_handle(e):
                raise
            logger.warning("Stale database handle (%s); reconnecting", e)
            self.reconnect()
            return op(self._get_conn())

    # --- writes -----------------------------------------------------------

    def create(self, data: ReceiptInput) -> Receipt:
        """Assign an id and timestamp to ``data`` and insert it."""
        return self.add(new_receipt(data))

    def add(self, receipt: Receipt) -> Receipt:
        """Insert an already-assembled receipt."""

        def op(conn: sqlite3.Connection) -> None:
            conn.execute(
                """INSERT INTO receipts
                   (id, merchant_name, receipt_date, receipt_number,
                    invoice_type, items, subtotal, tax, total, currency,
                    payment_method, confidence_score, image_uri, raw_text,
                    error_message, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    receipt.id,
                    receipt.merchant_name,
                    receipt.receipt_date,
                    receipt.receipt_number,
                    receipt.invoice_type.value,
                    _items_json(receipt.items),
                    receipt.subtotal,
                    receipt.tax,
                    receipt.total,
                    receipt.currency,
                    receipt.payment_method,
                    receipt.confidence_score,
                    receipt.image_uri,
                    receipt.raw_text,
                    receipt.error_message,
                    receipt.created_at,
                ),
            )
            conn.commit()

        self._run(op)
        logger.info("Saved receipt %s", receipt.id)
        return receipt

    def update(self, receipt_id: str, **fields: Any) -> Receipt | None:
        """Replace any subset of a receipt's editable fields.

        Returns:
            The updated receipt, or None if no receipt has that id.
        """
        existing = self.get_by_id(receipt_id)
        if existing is None:
            return None
        updated = existing.with_updates(**fields)

        def op(conn: sqlite3.Connection) -> None:
            conn.execute(
                _UPDATE_SQL,
                (
                    updated.merchant_name,
                    updated.receipt_date,
                    updated.receipt_number,
                    updated.invoice_type.value,
                    _items_json(updated.items),
                    updated.subtotal,
                    updated.tax,
                    updated.total,
                    updated.currency,
                    updated.payment_method,
                    updated.confidence_score,
                    updated.image_uri,
                    updated.raw_text,
                    updated.error_message,
                    receipt_id,
                ),
            )
            conn.commit()

        self._run(op)
        return updated

    def delete(self, receipt_id: str) -> bool:
        def op(conn: sqlite3.Connection) -> int:
            cur = conn.execute("DELETE FROM receipts WHERE id = ?", (receipt_id,))
            conn.commit()
            return cur.rowcount

        return self._run(op) > 0

    # --- reads ------------------------------------------------------------

    def get_by_id(self, receipt_id: str) -> Receipt | None:
        row = self._run(
            lambda conn: conn.execute(
                "SELECT * FROM receipts WHERE id = ?", (receipt_id,)
            ).fetchone()
        )
        return _row_to_receipt(row) if row else None

    def list(self, filter: ReceiptFilter | None = None) -> list[Receipt]:
        """Return receipts matching ``filter``, newest first."""
        query = "SELECT * FROM receipts WHERE 1=1"
        params: list[Any] = []

        if filter is not None:
            if filter.invoice_type:
                query += " AND invoice_type = ?"
                params.append(InvoiceType.parse(filter.invoice_type).value)
            if filter.start_date:
                query += " AND receipt_date >= ?"
                params.append(filter.start_date)
            if filter.end_date:
                query += " AND receipt_date <= ?"
                params.append(filter.end_date)
            if filter.merchant_name:
                query += " AND merchant_name LIKE ?"
                params.append(f"%{filter.merchant_name}%")
            if filter.min_total is not None:
                query += " AND total >= ?"
                params.append(filter.min_total)
            if filter.max_total is not None:
                query += " AND total <= ?"
                params.append(filter.max_total)

        query += " ORDER BY created_at DESC"
        rows = self._run(lambda conn: conn.execute(query, params).fetchall())
        return [_row_to_receipt(r) for r in rows]

    def recent(self, limit: int = 5) -> list[Receipt]:
        rows = self._run(
            lambda conn: conn.execute(
                "SELECT * FROM receipts ORDER BY created_at DESC LIMIT ?",
                (limit,),
            ).fetchall()
        )
        return [_row_to_receipt(r) for r in rows]

    def search(self, query: str) -> list[Receipt]:
        """Receipts whose merchant name contains ``query``."""
        return self.list(ReceiptFilter(merchant_name=query))

    def stats(self) -> ReceiptStats:
        """Aggregate counts and sums, overall, this month, by type and currency."""
        first_of_month = date.today().replace(day=1).isoformat()

        def op(conn: sqlite3.Connection) -> ReceiptStats:
            totals = conn.execute(
                "SELECT COUNT(*) AS count, SUM(total) AS amount FROM receipts"
            ).fetchone()
            monthly = conn.execute(
                """SELECT COUNT(*) AS count, SUM(total) AS amount FROM receipts
                   WHERE created_at >= ?""",
                (first_of_month,),
            ).fetchone()
            type_rows = conn.execute(
                """SELECT invoice_type, COUNT(*) AS count FROM receipts
                   GROUP BY invoice_type"""
            ).fetchall()
            currency_rows = conn.execute(
                """SELECT currency, SUM(total) AS amount FROM receipts
                   GROUP BY currency"""
            ).fetchall()

            stats = ReceiptStats(
                total_count=totals["count"] or 0,
                total_amount=totals["amount"] or 0.0,
                this_month_count=monthly["count"] or 0,
                this_month_amount=monthly["amount"] or 0.0,
            )
            for row in type_rows:
                if row["invoice_type"] in stats.by_type:
                    stats.by_type[row["invoice_type"]] = row["count"]
            for row in currency_rows:
                stats.by_currency[row["currency"]] = row["amount"] or 0.0
            return stats

        return self._run(op)

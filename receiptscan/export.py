"""JSON and CSV export of stored receipts."""

from __future__ import annotations

import csv
import io
import json
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .models import Receipt

logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("json", "csv")

_CSV_HEADERS = [
    "ID",
    "Merchant Name",
    "Receipt Date",
    "Receipt Number",
    "Invoice Type",
    "Item Name",
    "Item Quantity",
    "Item Price",
    "Subtotal",
    "Tax",
    "Total",
    "Currency",
    "Payment Method",
    "Confidence Score",
    "Created At",
]

_FLAT_CSV_HEADERS = [
    "ID",
    "Merchant Name",
    "Receipt Date",
    "Receipt Number",
    "Invoice Type",
    "Items (JSON)",
    "Item Count",
    "Subtotal",
    "Tax",
    "Total",
    "Currency",
    "Payment Method",
    "Confidence Score",
    "Has Error",
    "Created At",
]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _to_csv(rows: list[list[Any]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    for row in rows:
        writer.writerow([_cell(v) for v in row])
    return buf.getvalue()


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace(":", "-").replace(".", "-")


def receipts_to_json(receipts: Sequence[Receipt]) -> dict:
    """Wrap receipts with the export timestamp and aggregate total."""
    return {
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "total_receipts": len(receipts),
        "total_amount": sum(r.total for r in receipts),
        "receipts": [r.to_dict() for r in receipts],
    }


def receipts_to_csv(receipts: Sequence[Receipt]) -> str:
    """One row per line item; receipt fields only on each receipt's first row."""
    rows: list[list[Any]] = [_CSV_HEADERS]
    for r in receipts:
        head = [r.id, r.merchant_name, r.receipt_date, r.receipt_number,
                r.invoice_type.value]
        tail = [r.subtotal, r.tax, r.total, r.currency, r.payment_method,
                r.confidence_score, r.created_at]

        if not r.items:
            rows.append(head + ["", "", ""] + tail)
            continue

        for i, item in enumerate(r.items):
            item_cells = [item.name, item.quantity, item.price]
            if i == 0:
                rows.append(head + item_cells + tail)
            else:
                rows.append([""] * len(head) + item_cells + [""] * len(tail))
    return _to_csv(rows)


def receipt_to_csv(receipt: Receipt) -> str:
    """Summary section followed by a line items section."""
    r = receipt
    rows: list[list[Any]] = [
        ["=== RECEIPT SUMMARY ==="],
        ["Field", "Value"],
        ["Merchant Name", r.merchant_name],
        ["Receipt Date", r.receipt_date],
        ["Receipt Number", r.receipt_number],
        ["Invoice Type", r.invoice_type.value],
        ["Subtotal", r.subtotal],
        ["Tax", r.tax],
        ["Total", r.total],
        ["Currency", r.currency],
        ["Payment Method", r.payment_method],
        ["Confidence Score", r.confidence_score],
        [],
        ["=== LINE ITEMS ==="],
        ["Item Name", "Quantity", "Price"],
    ]
    rows.extend([item.name, item.quantity, item.price] for item in r.items)
    return _to_csv(rows)


def receipts_to_flat_csv(receipts: Sequence[Receipt]) -> str:
    """One row per receipt with the items embedded as JSON."""
    rows: list[list[Any]] = [_FLAT_CSV_HEADERS]
    for r in receipts:
        rows.append([
            r.id,
            r.merchant_name,
            r.receipt_date,
            r.receipt_number,
            r.invoice_type.value,
            json.dumps([i.to_dict() for i in r.items], ensure_ascii=False),
            len(r.items),
            r.subtotal,
            r.tax,
            r.total,
            r.currency,
            r.payment_method,
            r.confidence_score,
            "Yes" if r.error_message else "No",
            r.created_at,
        ])
    return _to_csv(rows)


class ReceiptExporter:
    """Writes receipt exports into a directory."""

    def __init__(self, export_dir: str | Path = "~/.config/receiptscan/exports") -> None:
        self._export_dir = Path(export_dir).expanduser()

    @property
    def export_dir(self) -> Path:
        return self._export_dir

    def _write(self, prefix: str, extension: str, content: str) -> Path:
        self._export_dir.mkdir(parents=True, exist_ok=True)
        path = self._export_dir / f"{prefix}_{_timestamp()}.{extension}"
        path.write_text(content, encoding="utf-8")
        logger.info("Exported %s", path)
        return path

    def export(self, receipts: Sequence[Receipt], fmt: str) -> Path:
        """Export receipts as ``json`` or ``csv``.

        A single receipt gets the single-record layout.
        """
        if fmt not in EXPORT_FORMATS:
            raise ValueError(f"Unsupported export format: {fmt!r}")
        if not receipts:
            raise ValueError("Nothing to export")

        if len(receipts) == 1:
            receipt = receipts[0]
            prefix = f"receipt_{receipt.id}"
            if fmt == "json":
                content = json.dumps(receipt.to_dict(), ensure_ascii=False, indent=2)
            else:
                content = receipt_to_csv(receipt)
            return self._write(prefix, fmt, content)

        if fmt == "json":
            content = json.dumps(receipts_to_json(receipts), ensure_ascii=False, indent=2)
        else:
            content = receipts_to_csv(receipts)
        return self._write("receipts_export", fmt, content)

    def export_flat_csv(self, receipts: Sequence[Receipt]) -> Path:
        return self._write("receipts_flat_export", "csv", receipts_to_flat_csv(receipts))

    def list_exports(self) -> list[Path]:
        if not self._export_dir.exists():
            return []
        return sorted(p for p in self._export_dir.iterdir() if p.is_file())

    def delete_export(self, path: str | Path) -> None:
        Path(path).unlink(missing_ok=True)

    def clear_exports(self) -> None:
        for path in self.list_exports():
            path.unlink(missing_ok=True)

"""CLI entry point for receipt scanning."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from dotenv import load_dotenv

from .config import ScanConfig, load_config
from .db import ReceiptDB
from .export import ReceiptExporter
from .image import validate_image
from .models import InvoiceType, PaymentMethod, Receipt, ReceiptFilter
from .normalize import (
    normalize_confidence,
    normalize_currency,
    normalize_date,
    normalize_items,
)
from .retry import scan_receipt
from .vision import create_backend


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1: {number}")
    return number


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="receiptscan",
        description="Extract structured data from receipt photos",
    )
    parser.add_argument(
        "--config", "-c", type=str, default=None, help="Path to a TOML config file"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command")

    check_parser = sub.add_parser("check", help="Check whether an image can be scanned")
    check_parser.add_argument("image", type=str)

    scan_parser = sub.add_parser("scan", help="Extract a receipt from an image")
    scan_parser.add_argument("image", type=str)
    scan_parser.add_argument("--json", action="store_true", help="Output as JSON")
    scan_parser.add_argument(
        "--no-save", action="store_true", help="Don't store the result"
    )
    scan_parser.add_argument(
        "--retries", type=_positive_int, default=None, help="Maximum model attempts"
    )

    list_parser = sub.add_parser("list", help="List stored receipts")
    list_parser.add_argument(
        "--type", dest="invoice_type", choices=[t.value for t in InvoiceType]
    )
    list_parser.add_argument("--from", dest="start_date", metavar="YYYY-MM-DD")
    list_parser.add_argument("--to", dest="end_date", metavar="YYYY-MM-DD")
    list_parser.add_argument("--merchant", type=str)
    list_parser.add_argument("--min", dest="min_total", type=float)
    list_parser.add_argument("--max", dest="max_total", type=float)
    list_parser.add_argument("--limit", type=int, default=None)
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    show_parser = sub.add_parser("show", help="Show one receipt")
    show_parser.add_argument("id", type=str)
    show_parser.add_argument("--json", action="store_true", help="Output as JSON")

    edit_parser = sub.add_parser("edit", help="Edit fields of a receipt")
    edit_parser.add_argument("id", type=str)
    edit_parser.add_argument(
        "--set", dest="assignments", action="append", required=True,
        metavar="FIELD=VALUE", help="Field to replace (repeatable)",
    )

    delete_parser = sub.add_parser("delete", help="Delete a receipt")
    delete_parser.add_argument("id", type=str)

    stats_parser = sub.add_parser("stats", help="Show receipt statistics")
    stats_parser.add_argument("--json", action="store_true", help="Output as JSON")

    export_parser = sub.add_parser("export", help="Export receipts to a file")
    export_parser.add_argument(
        "--format", dest="fmt", choices=["json", "csv", "flat-csv"], default="json"
    )
    export_parser.add_argument("ids", nargs="*", help="Receipt ids (default: all)")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    load_dotenv()

    config = load_config(args.config)

    match args.command:
        case "check":
            _cmd_check(args)
        case "scan":
            asyncio.run(_cmd_scan(config, args))
        case "list":
            _with_db(config, _cmd_list, args)
        case "show":
            _with_db(config, _cmd_show, args)
        case "edit":
            _with_db(config, _cmd_edit, args)
        case "delete":
            _with_db(config, _cmd_delete, args)
        case "stats":
            _with_db(config, _cmd_stats, args)
        case "export":
            _with_db(config, _cmd_export, args, config)


def _with_db(config: ScanConfig, func, *args) -> None:
    db = ReceiptDB(config.database.path)
    try:
        func(db, *args)
    finally:
        db.close()


def _fmt_amount(value: float | None, currency: str = "") -> str:
    if value is None:
        return "-"
    return f"{value:,.2f} {currency}".strip()


def format_receipt(r: Receipt) -> str:
    """Human-readable multi-line rendering of a receipt."""
    family = PaymentMethod.classify(r.payment_method)
    payment = r.payment_method or "-"
    if family is not None:
        payment += f" ({family.value})"

    lines = [
        f"{r.merchant_name or 'Unknown merchant'}  [{r.invoice_type.value}]",
        f"  id:         {r.id}",
        f"  date:       {r.receipt_date or '-'}",
        f"  number:     {r.receipt_number or '-'}",
        f"  payment:    {payment}",
        f"  confidence: {r.confidence_score:.0%}",
    ]
    if r.items:
        lines.append("  items:")
        for item in r.items:
            qty = f"{item.quantity:g} x " if item.quantity is not None else ""
            lines.append(f"    {qty}{item.name:<30} {_fmt_amount(item.price)}")
    lines.append(f"  subtotal:   {_fmt_amount(r.subtotal, r.currency)}")
    lines.append(f"  tax:        {_fmt_amount(r.tax, r.currency)}")
    lines.append(f"  total:      {_fmt_amount(r.total, r.currency)}")
    if r.error_message:
        lines.append(f"  error:      {r.error_message}")
    return "\n".join(lines)


def _cmd_check(args) -> None:
    check = validate_image(args.image)
    if not check.valid:
        print(f"Not eligible: {check.error}", file=sys.stderr)
        sys.exit(1)
    print(
        f"OK: {check.width}x{check.height}, "
        f"{check.file_size / 1024 / 1024:.1f}MB"
    )


async def _cmd_scan(config: ScanConfig, args) -> None:
    backend = create_backend(config)
    max_retries = args.retries if args.retries is not None else config.retry.max_retries

    receipt = await scan_receipt(args.image, backend, max_retries=max_retries)

    if not args.no_save:
        db = ReceiptDB(config.database.path)
        try:
            db.add(receipt)
        finally:
            db.close()

    if args.json:
        print(json.dumps(receipt.to_dict(), ensure_ascii=False, indent=2))
    else:
        print(format_receipt(receipt))
        if not args.no_save:
            print(f"\nSaved as {receipt.id}")

    if receipt.error_message:
        sys.exit(2)


def _cmd_list(db: ReceiptDB, args) -> None:
    receipts = db.list(
        ReceiptFilter(
            invoice_type=InvoiceType(args.invoice_type) if args.invoice_type else None,
            start_date=args.start_date,
            end_date=args.end_date,
            merchant_name=args.merchant,
            min_total=args.min_total,
            max_total=args.max_total,
        )
    )
    if args.limit is not None:
        receipts = receipts[: args.limit]

    if args.json:
        print(json.dumps([r.to_dict() for r in receipts], ensure_ascii=False, indent=2))
        return
    if not receipts:
        print("No receipts found.")
        return
    for r in receipts:
        flag = " !" if r.error_message else ""
        print(
            f"{r.id}  {r.receipt_date or '----------'}  "
            f"{(r.merchant_name or 'Unknown merchant')[:30]:<30} "
            f"{_fmt_amount(r.total, r.currency):>16}{flag}"
        )


def _cmd_show(db: ReceiptDB, args) -> None:
    receipt = db.get_by_id(args.id)
    if receipt is None:
        print(f"Receipt not found: {args.id}", file=sys.stderr)
        sys.exit(1)
    if args.json:
        print(json.dumps(receipt.to_dict(), ensure_ascii=False, indent=2))
    else:
        print(format_receipt(receipt))


def parse_assignment(assignment: str) -> tuple[str, Any]:
    """Parse ``field=value`` from the edit command into a typed update.

    Raises:
        ValueError: For malformed assignments or values of the wrong type.
    """
    name, sep, raw = assignment.partition("=")
    name = name.strip()
    if not sep or not name:
        raise ValueError(f"Expected FIELD=VALUE, got {assignment!r}")

    try:
        value: Any = json.loads(raw)
    except json.JSONDecodeError:
        value = raw

    match name:
        case "items":
            if not isinstance(value, list):
                raise ValueError("items must be a JSON list")
            return name, normalize_items(value)
        case "total":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError("total must be a number")
            return name, value
        case "subtotal" | "tax":
            if value is not None and (
                isinstance(value, bool) or not isinstance(value, (int, float))
            ):
                raise ValueError(f"{name} must be a number or null")
            return name, value
        case "confidence_score":
            return name, normalize_confidence(value)
        case "currency":
            return name, normalize_currency(value)
        case "receipt_date":
            if value is None:
                return name, None
            date_value = normalize_date(str(value))
            if date_value is None:
                raise ValueError(f"Not a date: {raw!r}")
            return name, date_value
        case "image_uri":
            if not raw.strip():
                raise ValueError("image_uri is required")
            return name, raw.strip()
        case _:
            if value is not None and not isinstance(value, str):
                value = raw
            return name, value


def _cmd_edit(db: ReceiptDB, args) -> None:
    try:
        changes = dict(parse_assignment(a) for a in args.assignments)
        updated = db.update(args.id, **changes)
    except ValueError as e:
        print(f"Invalid edit: {e}", file=sys.stderr)
        sys.exit(1)

    if updated is None:
        print(f"Receipt not found: {args.id}", file=sys.stderr)
        sys.exit(1)
    print(format_receipt(updated))


def _cmd_delete(db: ReceiptDB, args) -> None:
    if not db.delete(args.id):
        print(f"Receipt not found: {args.id}", file=sys.stderr)
        sys.exit(1)
    print(f"Deleted {args.id}")


def _cmd_stats(db: ReceiptDB, args) -> None:
    stats = db.stats()
    if args.json:
        print(json.dumps(vars(stats), ensure_ascii=False, indent=2))
        return
    print(f"Receipts:   {stats.total_count} ({stats.total_amount:,.2f})")
    print(f"This month: {stats.this_month_count} ({stats.this_month_amount:,.2f})")
    print("By type:")
    for name, count in stats.by_type.items():
        print(f"  {name:<12} {count}")
    if stats.by_currency:
        print("By currency:")
        for currency, amount in sorted(stats.by_currency.items()):
            print(f"  {currency:<12} {amount:,.2f}")


def _cmd_export(db: ReceiptDB, args, config: ScanConfig) -> None:
    if args.ids:
        receipts = []
        for receipt_id in args.ids:
            receipt = db.get_by_id(receipt_id)
            if receipt is None:
                print(f"Receipt not found: {receipt_id}", file=sys.stderr)
                sys.exit(1)
            receipts.append(receipt)
    else:
        receipts = db.list()

    if not receipts:
        print("No receipts to export.")
        return

    exporter = ReceiptExporter(config.export.dir)
    if args.fmt == "flat-csv":
        path = exporter.export_flat_csv(receipts)
    else:
        path = exporter.export(receipts, args.fmt)
    print(f"Exported {len(receipts)} receipt(s) to {path}")

"""Validate and repair the model's loosely-typed JSON reply.

Everything here is a pure function. :func:`normalize_response` accepts any
JSON-like value and always returns a well-formed
:class:`~receiptscan.models.ExtractionResult`; malformed fields collapse to
safe defaults instead of raising.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from dateutil import parser as date_parser

from .errors import MalformedResponseError
from .models import (
    DEFAULT_CURRENCY,
    UNKNOWN_ITEM_NAME,
    ExtractionResult,
    InvoiceType,
    LineItem,
)

# Differ in year, month and day, so any component dateutil fills in from
# the default makes the two parses disagree.
_DATE_DEFAULT_A = datetime(2000, 1, 1)
_DATE_DEFAULT_B = datetime(2001, 2, 2)


def _is_number(value: Any) -> bool:
    # bool is an int subclass but "true" is not a price
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    # ints are always finite
    return isinstance(value, int) or math.isfinite(value)


def _number_or(value: Any, default: float | None) -> float | None:
    return value if _is_number(value) else default


def _text_or_none(value: Any) -> str | None:
    """Truthy text passes through (stripped), everything else is None.

    Non-zero numbers are stringified since receipt numbers often come back
    as integers.
    """
    if isinstance(value, str):
        return value.strip() or None
    if _is_number(value) and value:
        return str(value)
    return None


def normalize_item(raw: Any) -> LineItem:
    if not isinstance(raw, Mapping):
        raw = {}

    name = raw.get("name")
    name = str(name).strip() if name else ""

    return LineItem(
        name=name or UNKNOWN_ITEM_NAME,
        quantity=_number_or(raw.get("quantity"), None),
        price=_number_or(raw.get("price"), 0),
        unit_price=_number_or(raw.get("unit_price"), None),
    )


def normalize_items(raw: Any) -> list[LineItem]:
    if not isinstance(raw, list):
        return []
    return [normalize_item(item) for item in raw]


def normalize_date(raw: Any) -> str | None:
    """Rewrite a complete date as YYYY-MM-DD; anything else becomes None.

    Text missing its year, month or day is rejected rather than completed
    from today's date.
    """
    if not isinstance(raw, str) or not raw.strip():
        return None
    text = raw.strip()
    try:
        first = date_parser.parse(text, default=_DATE_DEFAULT_A)
        second = date_parser.parse(text, default=_DATE_DEFAULT_B)
    except (ValueError, OverflowError, TypeError):
        return None
    if first.date() != second.date():
        return None
    return first.date().isoformat()


def normalize_currency(raw: Any) -> str:
    if isinstance(raw, str) and raw.strip():
        return raw.strip().upper()
    return DEFAULT_CURRENCY


def normalize_confidence(raw: Any) -> float:
    """Clamp a confidence score into [0, 1].

    Values in (1, 100] are read as percentages; anything above 100 is
    clamped to 1.
    """
    if not _is_number(raw) or raw < 0:
        return 0.0
    if raw > 1:
        return 1.0 if raw > 100 else raw / 100
    return float(raw)


def normalize_response(data: Any) -> ExtractionResult:
    """Turn an untrusted model reply into an :class:`ExtractionResult`."""
    if not isinstance(data, Mapping):
        data = {}

    raw_text = data.get("raw_text")

    return ExtractionResult(
        merchant_name=_text_or_none(data.get("merchant_name")),
        receipt_date=normalize_date(data.get("receipt_date")),
        receipt_number=_text_or_none(data.get("receipt_number")),
        invoice_type=InvoiceType.parse(data.get("invoice_type")),
        items=tuple(normalize_items(data.get("items"))),
        subtotal=_number_or(data.get("subtotal"), None),
        tax=_number_or(data.get("tax"), None),
        total=_number_or(data.get("total"), None),
        currency=normalize_currency(data.get("currency")),
        payment_method=_text_or_none(data.get("payment_method")),
        confidence_score=normalize_confidence(data.get("confidence_score")),
        error_message=_text_or_none(data.get("error_message")),
        raw_text=raw_text if isinstance(raw_text, str) and raw_text else None,
    )


def parse_model_content(text: Any) -> Any:
    """Decode the model's message content into a JSON value.

    Markdown code fences around the JSON are tolerated.

    Raises:
        MalformedResponseError: If the content is not valid JSON.
    """
    if not isinstance(text, str):
        raise MalformedResponseError(
            f"Model content is {type(text).__name__}, expected text"
        )

    cleaned = text.strip()
    if cleaned.startswith("```"):
        lines = cleaned.split("\n")
        lines = [l for l in lines[1:] if not l.strip().startswith("```")]
        cleaned = "\n".join(lines)

    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedResponseError(
            f"Model reply is not valid JSON: {e.msg} (line {e.lineno})"
        ) from e

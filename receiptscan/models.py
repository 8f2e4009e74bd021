"""Receipt data types and the record assembler."""

from __future__ import annotations

import dataclasses
import secrets
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class InvoiceType(str, Enum):
    RETAIL = "retail"
    RESTAURANT = "restaurant"
    UTILITY = "utility"
    SERVICE = "service"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Any) -> InvoiceType:
        """Map untrusted text onto the enumeration; anything else is UNKNOWN."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                pass
        return cls.UNKNOWN


# Keyword → family. Order matters: "mobile banking" should not match "bank".
_PAYMENT_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("mobile", ("bkash", "nagad", "rocket", "upay", "mobile", "apple pay",
                "google pay", "wallet")),
    ("card", ("card", "visa", "master", "amex", "credit", "debit", "pos")),
    ("cash", ("cash",)),
    ("online", ("online", "transfer", "bank", "paypal", "internet")),
]


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    MOBILE = "mobile"
    ONLINE = "online"
    OTHER = "other"

    @classmethod
    def classify(cls, text: str | None) -> PaymentMethod | None:
        """Group a free-text payment method into its family.

        Returns None when no payment method was recorded.
        """
        if not text or not text.strip():
            return None
        lowered = text.strip().lower()
        for family, keywords in _PAYMENT_KEYWORDS:
            if any(k in lowered for k in keywords):
                return cls(family)
        return cls.OTHER


UNKNOWN_ITEM_NAME = "Unknown Item"
DEFAULT_CURRENCY = "BDT"


@dataclass(frozen=True)
class LineItem:
    name: str
    quantity: float | None = None  # None = unknown, not zero
    price: float = 0.0
    unit_price: float | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "name": self.name,
            "quantity": self.quantity,
            "price": self.price,
        }
        if self.unit_price is not None:
            d["unit_price"] = self.unit_price
        return d

    @classmethod
    def from_dict(cls, data: dict) -> LineItem:
        """Rebuild an item from previously stored data."""
        return cls(
            name=data.get("name") or UNKNOWN_ITEM_NAME,
            quantity=data.get("quantity"),
            price=data.get("price") or 0.0,
            unit_price=data.get("unit_price"),
        )


@dataclass(frozen=True)
class ExtractionResult:
    """Outcome of one model inference, already normalized."""

    merchant_name: str | None = None
    receipt_date: str | None = None  # YYYY-MM-DD
    receipt_number: str | None = None
    invoice_type: InvoiceType = InvoiceType.UNKNOWN
    items: tuple[LineItem, ...] = ()
    subtotal: float | None = None
    tax: float | None = None
    total: float | None = None
    currency: str = DEFAULT_CURRENCY
    payment_method: str | None = None
    confidence_score: float = 0.0
    error_message: str | None = None
    raw_text: str | None = None

    @classmethod
    def failure(cls, message: str) -> ExtractionResult:
        """Terminal result for a scan that produced no usable data."""
        return cls(error_message=message)

    @property
    def has_data(self) -> bool:
        """True when the result is worth keeping (a total or a stated error)."""
        return self.total is not None or bool(self.error_message)

    def to_dict(self) -> dict:
        d = dataclasses.asdict(self)
        d["invoice_type"] = self.invoice_type.value
        d["items"] = [i.to_dict() for i in self.items]
        return d


@dataclass(kw_only=True)
class ReceiptInput:
    """A receipt before an id and creation timestamp have been assigned."""

    image_uri: str
    merchant_name: str | None = None
    receipt_date: str | None = None
    receipt_number: str | None = None
    invoice_type: InvoiceType = InvoiceType.UNKNOWN
    items: list[LineItem] = field(default_factory=list)
    subtotal: float | None = None
    tax: float | None = None
    total: float = 0.0
    currency: str = DEFAULT_CURRENCY
    payment_method: str | None = None
    confidence_score: float = 0.0
    raw_text: str | None = None
    error_message: str | None = None

    def to_dict(self) -> dict:
        d = dataclasses.asdict(self)
        d["invoice_type"] = self.invoice_type.value
        d["items"] = [i.to_dict() for i in self.items]
        return d


EDITABLE_FIELDS: frozenset[str] = frozenset(
    f.name for f in dataclasses.fields(ReceiptInput)
)


@dataclass(kw_only=True)
class Receipt(ReceiptInput):
    """A persisted receipt. ``id`` and ``created_at`` never change."""

    id: str
    created_at: str

    def to_input(self) -> ReceiptInput:
        return ReceiptInput(
            **{name: getattr(self, name) for name in EDITABLE_FIELDS}
        )

    def with_updates(self, **changes: Any) -> Receipt:
        """Return a copy with the given fields replaced.

        Raises:
            ValueError: For identity fields, unknown fields or a null total.
        """
        for name in changes:
            if name in ("id", "created_at"):
                raise ValueError(f"{name} is immutable")
            if name not in EDITABLE_FIELDS:
                raise ValueError(f"Unknown receipt field: {name!r}")

        if "total" in changes and changes["total"] is None:
            raise ValueError("total must be a number")
        if "invoice_type" in changes:
            changes["invoice_type"] = InvoiceType.parse(changes["invoice_type"])
        if "items" in changes:
            changes["items"] = [
                i if isinstance(i, LineItem) else LineItem.from_dict(i)
                for i in changes["items"] or []
            ]
        return dataclasses.replace(self, **changes)


@dataclass
class ReceiptFilter:
    invoice_type: InvoiceType | None = None
    start_date: str | None = None
    end_date: str | None = None
    merchant_name: str | None = None
    min_total: float | None = None
    max_total: float | None = None


@dataclass
class ReceiptStats:
    total_count: int = 0
    total_amount: float = 0.0
    this_month_count: int = 0
    this_month_amount: float = 0.0
    by_type: dict[str, int] = field(
        default_factory=lambda: {t.value: 0 for t in InvoiceType}
    )
    by_currency: dict[str, float] = field(default_factory=dict)


_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_receipt_id() -> str:
    """Opaque id of the form ``receipt_<epoch ms>_<7 random chars>``."""
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(7))
    return f"receipt_{int(time.time() * 1000)}_{suffix}"


def new_receipt(
    data: ReceiptInput,
    *,
    receipt_id: str | None = None,
    created_at: str | None = None,
) -> Receipt:
    """Give a ReceiptInput its identity.

    This and :func:`assemble_receipt` are the only places ids and creation
    timestamps are minted.
    """
    if not data.image_uri:
        raise ValueError("image_uri is required")

    fields_ = {name: getattr(data, name) for name in EDITABLE_FIELDS}
    if fields_["total"] is None:
        fields_["total"] = 0.0
    fields_["invoice_type"] = InvoiceType.parse(fields_["invoice_type"])
    fields_["items"] = list(fields_["items"])

    return Receipt(
        id=receipt_id or generate_receipt_id(),
        created_at=created_at or datetime.now(timezone.utc).isoformat(),
        **fields_,
    )


def assemble_receipt(
    result: ExtractionResult,
    image_uri: str,
    *,
    receipt_id: str | None = None,
    created_at: str | None = None,
    raw_text: str | None = None,
) -> Receipt:
    """Merge an extraction with capture metadata into a storable Receipt.

    A missing total becomes 0 so every stored receipt has a number there.
    All other fields are copied unchanged.
    """
    data = ReceiptInput(
        image_uri=image_uri,
        merchant_name=result.merchant_name,
        receipt_date=result.receipt_date,
        receipt_number=result.receipt_number,
        invoice_type=result.invoice_type,
        items=list(result.items),
        subtotal=result.subtotal,
        tax=result.tax,
        total=result.total if result.total is not None else 0.0,
        currency=result.currency,
        payment_method=result.payment_method,
        confidence_score=result.confidence_score,
        raw_text=raw_text if raw_text is not None else result.raw_text,
        error_message=result.error_message,
    )
    return new_receipt(data, receipt_id=receipt_id, created_at=created_at)

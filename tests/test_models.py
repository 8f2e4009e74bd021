"""Tests for receipt data types and record assembly."""

import re

import pytest

from receiptscan.models import (
    ExtractionResult,
    InvoiceType,
    LineItem,
    PaymentMethod,
    Receipt,
    ReceiptInput,
    assemble_receipt,
    generate_receipt_id,
    new_receipt,
)


def _result(**kwargs) -> ExtractionResult:
    defaults = dict(
        merchant_name="Star Kabab",
        receipt_date="2025-02-01",
        invoice_type=InvoiceType.RESTAURANT,
        items=(LineItem(name="Kacchi", quantity=2, price=640),),
        total=640.0,
        currency="BDT",
        confidence_score=0.8,
    )
    defaults.update(kwargs)
    return ExtractionResult(**defaults)


class TestInvoiceType:
    def test_parse_member(self):
        assert InvoiceType.parse("utility") is InvoiceType.UTILITY

    def test_parse_passthrough(self):
        assert InvoiceType.parse(InvoiceType.SERVICE) is InvoiceType.SERVICE

    @pytest.mark.parametrize("value", ["grocery", None, 1, ""])
    def test_parse_outsider(self, value):
        assert InvoiceType.parse(value) is InvoiceType.UNKNOWN


class TestPaymentMethod:
    @pytest.mark.parametrize(
        "text, family",
        [
            ("Cash", PaymentMethod.CASH),
            ("VISA card", PaymentMethod.CARD),
            ("bKash", PaymentMethod.MOBILE),
            ("Bank transfer", PaymentMethod.ONLINE),
            ("Voucher", PaymentMethod.OTHER),
        ],
    )
    def test_classify(self, text, family):
        assert PaymentMethod.classify(text) is family

    def test_classify_empty(self):
        assert PaymentMethod.classify(None) is None
        assert PaymentMethod.classify("  ") is None


class TestExtractionResult:
    def test_failure(self):
        result = ExtractionResult.failure("boom")
        assert result.error_message == "boom"
        assert result.total is None
        assert result.invoice_type is InvoiceType.UNKNOWN
        assert result.currency == "BDT"
        assert result.confidence_score == 0
        assert result.items == ()

    def test_has_data(self):
        assert _result().has_data
        assert ExtractionResult.failure("x").has_data
        assert not ExtractionResult().has_data

    def test_zero_total_counts_as_data(self):
        assert ExtractionResult(total=0).has_data

    def test_immutable(self):
        with pytest.raises(Exception):
            _result().total = 1  # type: ignore[misc]

    def test_to_dict(self):
        d = _result().to_dict()
        assert d["invoice_type"] == "restaurant"
        assert d["items"] == [{"name": "Kacchi", "quantity": 2, "price": 640}]


class TestAssembleReceipt:
    def test_copies_fields(self):
        receipt = assemble_receipt(_result(), "/photos/r1.jpg")
        assert receipt.merchant_name == "Star Kabab"
        assert receipt.receipt_date == "2025-02-01"
        assert receipt.invoice_type is InvoiceType.RESTAURANT
        assert receipt.items == [LineItem(name="Kacchi", quantity=2, price=640)]
        assert receipt.total == 640.0
        assert receipt.image_uri == "/photos/r1.jpg"
        assert receipt.confidence_score == 0.8

    def test_null_total_becomes_zero(self):
        receipt = assemble_receipt(_result(total=None), "/photos/r1.jpg")
        assert receipt.total == 0

    def test_failure_result_is_savable(self):
        receipt = assemble_receipt(
            ExtractionResult.failure("Failed after 3 attempts: timeout"), "/p.jpg"
        )
        assert receipt.total == 0
        assert receipt.error_message == "Failed after 3 attempts: timeout"

    def test_mints_identity(self):
        a = assemble_receipt(_result(), "/p.jpg")
        b = assemble_receipt(_result(), "/p.jpg")
        assert a.id != b.id
        assert a.created_at
        assert re.match(r"^receipt_\d+_[a-z0-9]{7}$", a.id)

    def test_explicit_identity(self):
        receipt = assemble_receipt(
            _result(), "/p.jpg", receipt_id="r-1", created_at="2025-01-01T00:00:00+00:00"
        )
        assert receipt.id == "r-1"
        assert receipt.created_at == "2025-01-01T00:00:00+00:00"

    def test_image_uri_required(self):
        with pytest.raises(ValueError, match="image_uri"):
            assemble_receipt(_result(), "")


class TestReceipt:
    def test_new_receipt_from_input(self):
        receipt = new_receipt(ReceiptInput(image_uri="/p.jpg", total=10))
        assert isinstance(receipt, Receipt)
        assert receipt.total == 10
        assert receipt.id.startswith("receipt_")

    def test_with_updates_preserves_identity(self):
        receipt = assemble_receipt(_result(), "/p.jpg")
        updated = receipt.with_updates(merchant_name="Sultan's Dine", total=700)
        assert updated.id == receipt.id
        assert updated.created_at == receipt.created_at
        assert updated.merchant_name == "Sultan's Dine"
        assert updated.total == 700
        # original untouched
        assert receipt.merchant_name == "Star Kabab"

    @pytest.mark.parametrize("field", ["id", "created_at"])
    def test_with_updates_rejects_identity(self, field):
        receipt = assemble_receipt(_result(), "/p.jpg")
        with pytest.raises(ValueError, match="immutable"):
            receipt.with_updates(**{field: "x"})

    def test_with_updates_rejects_unknown(self):
        receipt = assemble_receipt(_result(), "/p.jpg")
        with pytest.raises(ValueError, match="Unknown receipt field"):
            receipt.with_updates(colour="red")

    def test_with_updates_rejects_null_total(self):
        receipt = assemble_receipt(_result(), "/p.jpg")
        with pytest.raises(ValueError, match="total"):
            receipt.with_updates(total=None)

    def test_with_updates_coerces(self):
        receipt = assemble_receipt(_result(), "/p.jpg")
        updated = receipt.with_updates(
            invoice_type="grocery",
            items=[{"name": "Borhani", "quantity": 1, "price": 80}],
        )
        assert updated.invoice_type is InvoiceType.UNKNOWN
        assert updated.items == [LineItem(name="Borhani", quantity=1, price=80)]

    def test_to_input_drops_identity(self):
        receipt = assemble_receipt(_result(), "/p.jpg")
        data = receipt.to_input()
        assert not isinstance(data, Receipt)
        assert data.merchant_name == receipt.merchant_name


def test_generate_receipt_id_unique():
    ids = {generate_receipt_id() for _ in range(100)}
    assert len(ids) == 100

"""Tests for JSON/CSV receipt export."""

import csv
import io
import json

import pytest

from receiptscan.export import (
    ReceiptExporter,
    receipt_to_csv,
    receipts_to_csv,
    receipts_to_flat_csv,
    receipts_to_json,
)
from receiptscan.models import InvoiceType, LineItem, ReceiptInput, new_receipt


def _receipt(receipt_id, **fields):
    fields.setdefault("image_uri", "/p.jpg")
    return new_receipt(
        ReceiptInput(**fields),
        receipt_id=receipt_id,
        created_at="2025-01-12T10:00:00+00:00",
    )


@pytest.fixture
def lunch():
    return _receipt(
        "r1",
        merchant_name="Star Kabab",
        receipt_date="2025-01-12",
        invoice_type=InvoiceType.RESTAURANT,
        items=[
            LineItem(name="Kacchi", quantity=2, price=640.0),
            LineItem(name="Borhani, large", quantity=1, price=80.0),
        ],
        total=720.0,
        confidence_score=0.9,
    )


@pytest.fixture
def bill():
    return _receipt(
        "r2", merchant_name="DESCO", invoice_type=InvoiceType.UTILITY, total=1500.5
    )


def _rows(text):
    return list(csv.reader(io.StringIO(text)))


class TestJson:
    def test_envelope(self, lunch, bill):
        data = receipts_to_json([lunch, bill])
        assert data["total_receipts"] == 2
        assert data["total_amount"] == pytest.approx(2220.5)
        assert data["exported_at"]
        assert [r["id"] for r in data["receipts"]] == ["r1", "r2"]
        assert data["receipts"][0]["invoice_type"] == "restaurant"


class TestCsv:
    def test_item_rows(self, lunch, bill):
        rows = _rows(receipts_to_csv([lunch, bill]))
        header, first, second, third = rows

        assert header[0] == "ID"
        assert header[5] == "Item Name"
        assert first[:8] == ["r1", "Star Kabab", "2025-01-12", "", "restaurant",
                             "Kacchi", "2", "640"]
        assert first[10] == "720"
        # continuation row only carries item cells
        assert second[:5] == [""] * 5
        assert second[5:8] == ["Borhani, large", "1", "80"]
        assert second[8:] == [""] * 7
        # receipt without items still gets a row
        assert third[0] == "r2"
        assert third[5:8] == ["", "", ""]
        assert third[10] == "1500.5"

    def test_single_receipt_layout(self, lunch):
        rows = _rows(receipt_to_csv(lunch))
        assert rows[0] == ["=== RECEIPT SUMMARY ==="]
        assert ["Merchant Name", "Star Kabab"] in rows
        assert ["Total", "720"] in rows
        assert ["Receipt Number", ""] in rows
        idx = rows.index(["=== LINE ITEMS ==="])
        assert rows[idx + 1] == ["Item Name", "Quantity", "Price"]
        assert rows[idx + 2] == ["Kacchi", "2", "640"]

    def test_flat_csv(self, lunch, bill):
        rows = _rows(receipts_to_flat_csv([lunch, bill]))
        assert len(rows) == 3
        items = json.loads(rows[1][5])
        assert items[0]["name"] == "Kacchi"
        assert rows[1][6] == "2"
        assert rows[2][6] == "0"
        assert rows[1][13] == "No"

    def test_flat_csv_flags_errors(self):
        failed = _receipt("r9", error_message="Failed after 3 attempts: timeout")
        rows = _rows(receipts_to_flat_csv([failed]))
        assert rows[1][13] == "Yes"


class TestReceiptExporter:
    def test_single_json(self, tmp_path, lunch):
        exporter = ReceiptExporter(tmp_path / "exports")
        path = exporter.export([lunch], "json")

        assert path.name.startswith("receipt_r1_")
        assert path.suffix == ".json"
        assert json.loads(path.read_text(encoding="utf-8"))["merchant_name"] == "Star Kabab"

    def test_many_csv(self, tmp_path, lunch, bill):
        exporter = ReceiptExporter(tmp_path)
        path = exporter.export([lunch, bill], "csv")

        assert path.name.startswith("receipts_export_")
        assert _rows(path.read_text(encoding="utf-8"))[0][0] == "ID"

    def test_flat_export(self, tmp_path, lunch):
        path = ReceiptExporter(tmp_path).export_flat_csv([lunch])
        assert path.name.startswith("receipts_flat_export_")

    def test_bad_format(self, tmp_path, lunch):
        with pytest.raises(ValueError, match="format"):
            ReceiptExporter(tmp_path).export([lunch], "xml")

    def test_empty_export(self, tmp_path):
        with pytest.raises(ValueError):
            ReceiptExporter(tmp_path).export([], "json")

    def test_list_delete_clear(self, tmp_path, lunch, bill):
        exporter = ReceiptExporter(tmp_path / "exports")
        assert exporter.list_exports() == []

        first = exporter.export([lunch], "json")
        second = exporter.export([bill], "csv")
        assert sorted(exporter.list_exports()) == sorted([first, second])

        exporter.delete_export(first)
        assert exporter.list_exports() == [second]
        exporter.delete_export(first)  # already gone

        exporter.clear_exports()
        assert exporter.list_exports() == []

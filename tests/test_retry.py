"""Tests for the retry controller."""

import sys
from unittest.mock import AsyncMock, MagicMock, patch

import numpy as np
import pytest

from receiptscan.errors import (
    ConfigurationError,
    EmptyResponseError,
    MalformedResponseError,
    ModelAPIError,
)
from receiptscan.models import ExtractionResult, InvoiceType, Receipt
from receiptscan.retry import (
    FailureKind,
    backoff_delay,
    classify_failure,
    parse_receipt_with_retry,
    scan_receipt,
)
from receiptscan.vision import VisionBackend


@pytest.fixture
def mock_cv2():
    mock = MagicMock()
    mock.imread.return_value = np.zeros((800, 600, 3), dtype=np.uint8)
    with patch.dict(sys.modules, {"cv2": mock}):
        yield mock


@pytest.fixture
def image_file(tmp_path):
    img = tmp_path / "receipt.jpg"
    img.write_bytes(b"\xff\xd8\xff\xe0fake-jpeg")
    return img


@pytest.fixture
def sleep():
    return AsyncMock()


def _backend(*effects) -> MagicMock:
    backend = MagicMock(spec=VisionBackend)
    backend.name = "fake"
    backend.extract_receipt = AsyncMock(side_effect=list(effects))
    return backend


GOOD = ExtractionResult(merchant_name="Agora", total=250.0, confidence_score=0.9)
EMPTY = ExtractionResult(merchant_name="Agora")


class TestClassification:
    def test_config_is_fatal(self):
        assert classify_failure(ConfigurationError("no key")) is FailureKind.FATAL

    @pytest.mark.parametrize(
        "exc",
        [
            ModelAPIError("429", status_code=429),
            EmptyResponseError(),
            MalformedResponseError("bad json"),
            RuntimeError("network"),
        ],
    )
    def test_transient(self, exc):
        assert classify_failure(exc) is FailureKind.TRANSIENT

    def test_backoff_doubles(self):
        assert [backoff_delay(n) for n in (1, 2, 3)] == [2, 4, 8]


@pytest.mark.asyncio
class TestParseReceiptWithRetry:
    async def test_first_attempt_success(self, mock_cv2, image_file, sleep):
        backend = _backend(GOOD)
        result = await parse_receipt_with_retry(image_file, backend, sleep=sleep)

        assert result is GOOD
        assert backend.extract_receipt.await_count == 1
        sleep.assert_not_awaited()

    async def test_always_throws_exhausts_attempts(self, mock_cv2, image_file, sleep):
        backend = _backend(*[ModelAPIError("Groq API error: 503", 503)] * 3)
        result = await parse_receipt_with_retry(image_file, backend, 3, sleep=sleep)

        assert backend.extract_receipt.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [2, 4]
        assert "3 attempts" in result.error_message
        assert "503" in result.error_message
        assert result.total is None
        assert result.invoice_type is InvoiceType.UNKNOWN
        assert result.currency == "BDT"
        assert result.confidence_score == 0

    async def test_error_message_short_circuits(self, mock_cv2, image_file, sleep):
        not_a_receipt = ExtractionResult(error_message="Image is not a receipt")
        backend = _backend(not_a_receipt, GOOD)
        result = await parse_receipt_with_retry(image_file, backend, sleep=sleep)

        assert result is not_a_receipt
        assert backend.extract_receipt.await_count == 1

    async def test_soft_failure_retries_without_delay(self, mock_cv2, image_file, sleep):
        backend = _backend(EMPTY, GOOD)
        result = await parse_receipt_with_retry(image_file, backend, sleep=sleep)

        assert result is GOOD
        assert backend.extract_receipt.await_count == 2
        sleep.assert_not_awaited()

    async def test_soft_failures_exhausted(self, mock_cv2, image_file, sleep):
        backend = _backend(EMPTY, EMPTY, EMPTY)
        result = await parse_receipt_with_retry(image_file, backend, sleep=sleep)

        assert result.error_message == (
            "Failed after 3 attempts: Failed to extract receipt total"
        )
        sleep.assert_not_awaited()

    async def test_recovers_after_hard_failure(self, mock_cv2, image_file, sleep):
        backend = _backend(MalformedResponseError("bad json"), GOOD)
        result = await parse_receipt_with_retry(image_file, backend, sleep=sleep)

        assert result is GOOD
        sleep.assert_awaited_once_with(2.0)

    async def test_missing_key_is_not_retried(self, mock_cv2, image_file, sleep):
        backend = _backend(ConfigurationError("GROQ_API_KEY not found."))
        result = await parse_receipt_with_retry(image_file, backend, sleep=sleep)

        assert backend.extract_receipt.await_count == 1
        assert "GROQ_API_KEY" in result.error_message
        assert "1 attempt" in result.error_message
        sleep.assert_not_awaited()

    async def test_missing_image_never_calls_model(self, mock_cv2, tmp_path, sleep):
        backend = _backend(GOOD)
        result = await parse_receipt_with_retry(tmp_path / "gone.jpg", backend, sleep=sleep)

        assert result.error_message == "Image file not found"
        backend.extract_receipt.assert_not_awaited()

    async def test_oversized_payload_never_calls_model(self, mock_cv2, image_file, sleep):
        backend = _backend(GOOD)
        with patch("receiptscan.retry.ensure_payload_size") as ensure:
            from receiptscan.errors import PayloadTooLargeError

            ensure.side_effect = PayloadTooLargeError("Image too large (5.0MB).")
            result = await parse_receipt_with_retry(image_file, backend, sleep=sleep)

        assert result.error_message == "Image too large (5.0MB)."
        backend.extract_receipt.assert_not_awaited()

    async def test_unreadable_image_returns_failure(self, image_file, sleep):
        backend = _backend(GOOD)
        with patch("receiptscan.retry.check_image"), patch(
            "receiptscan.retry.encode_image", side_effect=OSError("disk gone")
        ):
            result = await parse_receipt_with_retry(image_file, backend, sleep=sleep)

        assert result.error_message == "Failed to prepare image: disk gone"
        assert result.total is None
        backend.extract_receipt.assert_not_awaited()

    async def test_missing_opencv_returns_failure(self, image_file, sleep):
        backend = _backend(GOOD)
        with patch(
            "receiptscan.retry.check_image",
            side_effect=ImportError("opencv-python is required"),
        ):
            result = await parse_receipt_with_retry(image_file, backend, sleep=sleep)

        assert "opencv-python is required" in result.error_message
        backend.extract_receipt.assert_not_awaited()

    async def test_single_attempt_no_sleep(self, mock_cv2, image_file, sleep):
        backend = _backend(RuntimeError("boom"))
        result = await parse_receipt_with_retry(image_file, backend, 1, sleep=sleep)

        assert result.error_message == "Failed after 1 attempt: boom"
        sleep.assert_not_awaited()

    async def test_invalid_max_retries(self, image_file):
        with pytest.raises(ValueError):
            await parse_receipt_with_retry(image_file, _backend(), 0)


@pytest.mark.asyncio
async def test_scan_receipt_assembles(mock_cv2, image_file, sleep):
    receipt = await scan_receipt(image_file, _backend(GOOD), sleep=sleep)

    assert isinstance(receipt, Receipt)
    assert receipt.merchant_name == "Agora"
    assert receipt.total == 250.0
    assert receipt.image_uri == str(image_file)


@pytest.mark.asyncio
async def test_scan_receipt_keeps_failed_scan(mock_cv2, image_file, sleep):
    backend = _backend(*[RuntimeError("offline")] * 3)
    receipt = await scan_receipt(image_file, backend, sleep=sleep)

    assert receipt.total == 0
    assert receipt.error_message.startswith("Failed after 3 attempts")
    assert receipt.id

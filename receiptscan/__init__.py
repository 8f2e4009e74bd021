"""Receipt photo extraction: vision model call, normalization, storage."""

from .config import ScanConfig, load_config
from .db import ReceiptDB
from .errors import (
    ConfigurationError,
    EligibilityError,
    EmptyResponseError,
    ExtractionError,
    ImageNotFoundError,
    ImageTooLargeError,
    ImageValidationError,
    MalformedResponseError,
    ModelAPIError,
    PayloadTooLargeError,
    ReceiptScanError,
    ResolutionTooHighError,
)
from .export import ReceiptExporter
from .image import EncodedImage, ImageCheck, check_image, encode_image, validate_image
from .models import (
    ExtractionResult,
    InvoiceType,
    LineItem,
    PaymentMethod,
    Receipt,
    ReceiptFilter,
    ReceiptInput,
    ReceiptStats,
    assemble_receipt,
)
from .normalize import normalize_response
from .retry import parse_receipt_with_retry, scan_receipt
from .vision import VisionBackend, create_backend

__all__ = [
    "ScanConfig",
    "load_config",
    "ReceiptDB",
    "ReceiptExporter",
    "ReceiptScanError",
    "ConfigurationError",
    "EligibilityError",
    "ImageNotFoundError",
    "ImageTooLargeError",
    "ResolutionTooHighError",
    "ImageValidationError",
    "PayloadTooLargeError",
    "ExtractionError",
    "ModelAPIError",
    "EmptyResponseError",
    "MalformedResponseError",
    "EncodedImage",
    "ImageCheck",
    "check_image",
    "encode_image",
    "validate_image",
    "ExtractionResult",
    "InvoiceType",
    "LineItem",
    "PaymentMethod",
    "Receipt",
    "ReceiptFilter",
    "ReceiptInput",
    "ReceiptStats",
    "assemble_receipt",
    "normalize_response",
    "parse_receipt_with_retry",
    "scan_receipt",
    "VisionBackend",
    "create_backend",
]

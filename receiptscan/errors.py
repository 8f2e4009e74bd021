"""Exception hierarchy for receipt scanning."""

from __future__ import annotations


class ReceiptScanError(Exception):
    """Base exception for all receipt scanning errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ConfigurationError(ReceiptScanError):
    """Raised when a required setting (e.g. an API key) is missing."""


# --- Eligibility: the image can't be sent at all -------------------------


class EligibilityError(ReceiptScanError):
    """Raised when an image fails the pre-flight checks."""


class ImageNotFoundError(EligibilityError):
    def __init__(self, message: str = "Image file not found") -> None:
        super().__init__(message)


class ImageTooLargeError(EligibilityError):
    def __init__(self, message: str = "Image file is too large (max 20MB)") -> None:
        super().__init__(message)


class ResolutionTooHighError(EligibilityError):
    def __init__(
        self, message: str = "Image resolution too high (max 33 megapixels)"
    ) -> None:
        super().__init__(message)


class ImageValidationError(EligibilityError):
    """Unexpected failure while probing an image file."""


class PayloadTooLargeError(EligibilityError):
    """Raised when the encoded image exceeds the model's upload limit."""


# --- Extraction: the model call failed, worth retrying -------------------


class ExtractionError(ReceiptScanError):
    """Base for recoverable failures of a single model round trip."""


class ModelAPIError(ExtractionError):
    """Non-success status or transport failure talking to the model."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class EmptyResponseError(ExtractionError):
    def __init__(self, message: str = "No response content from model") -> None:
        super().__init__(message)


class MalformedResponseError(ExtractionError):
    """The model replied, but the content isn't a JSON document."""

"""Image eligibility checks and upload encoding."""

from __future__ import annotations

import base64
import logging
import mimetypes
from dataclasses import dataclass
from pathlib import Path

from .errors import (
    EligibilityError,
    ImageNotFoundError,
    ImageTooLargeError,
    ImageValidationError,
    ResolutionTooHighError,
)

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 20 * 1024 * 1024  # 20MB
MAX_PIXELS = 33_177_600  # ~33MP
MAX_IMAGE_DIMENSION = 2048
JPEG_QUALITY = 80


@dataclass
class ImageCheck:
    valid: bool
    width: int = 0
    height: int = 0
    file_size: int = 0
    error: str | None = None


@dataclass
class EncodedImage:
    """An image ready to be embedded in a model request."""

    path: str
    base64: str
    media_type: str
    width: int
    height: int
    byte_size: int  # size of the (possibly re-encoded) bytes

    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.base64}"


def _read_image(path: Path):
    try:
        import cv2
    except ImportError:
        raise ImportError(
            "opencv-python is required: pip install opencv-python"
        ) from None

    img = cv2.imread(str(path))
    if img is None:
        raise ImageValidationError(f"Unable to decode image: {path.name}")
    return cv2, img


def check_image(path: str | Path) -> ImageCheck:
    """Pre-flight check of an image before it is sent to the model.

    Raises:
        ImageNotFoundError: The file does not exist.
        ImageTooLargeError: The file is larger than 20MB.
        ResolutionTooHighError: width * height exceeds 33,177,600 pixels.
        ImageValidationError: Anything else went wrong while probing.
    """
    p = Path(path).expanduser()
    try:
        if not p.is_file():
            raise ImageNotFoundError()

        size = p.stat().st_size
        if size > MAX_FILE_SIZE:
            raise ImageTooLargeError()

        _, img = _read_image(p)
        height, width = img.shape[:2]
        if width * height > MAX_PIXELS:
            raise ResolutionTooHighError()
    except (EligibilityError, ImportError):
        raise
    except Exception as e:
        raise ImageValidationError(f"Failed to validate image: {e}") from e

    return ImageCheck(valid=True, width=width, height=height, file_size=size)


def validate_image(path: str | Path) -> ImageCheck:
    """Like :func:`check_image` but reports ineligibility as a value."""
    try:
        return check_image(path)
    except EligibilityError as e:
        logger.info("Image rejected: %s (%s)", path, e.message)
        return ImageCheck(valid=False, error=e.message)


def encode_image(
    path: str | Path,
    *,
    max_dimension: int = MAX_IMAGE_DIMENSION,
    jpeg_quality: int = JPEG_QUALITY,
) -> EncodedImage:
    """Base64-encode an image for upload.

    Images whose longer side exceeds ``max_dimension`` are downscaled and
    re-encoded as JPEG; smaller ones are sent as-is.
    """
    p = Path(path).expanduser()
    if not p.is_file():
        raise ImageNotFoundError()

    cv2, img = _read_image(p)
    height, width = img.shape[:2]
    longest = max(width, height)

    if longest > max_dimension:
        ratio = max_dimension / longest
        width = round(width * ratio)
        height = round(height * ratio)
        resized = cv2.resize(img, (width, height), interpolation=cv2.INTER_AREA)
        ok, buf = cv2.imencode(
            ".jpg", resized, [cv2.IMWRITE_JPEG_QUALITY, jpeg_quality]
        )
        if not ok:
            raise ImageValidationError(f"Failed to re-encode image: {p.name}")
        data = buf.tobytes()
        media_type = "image/jpeg"
        logger.debug("Downscaled %s to %dx%d", p.name, width, height)
    else:
        data = p.read_bytes()
        media_type = mimetypes.guess_type(p.name)[0] or "image/jpeg"

    return EncodedImage(
        path=str(p),
        base64=base64.standard_b64encode(data).decode(),
        media_type=media_type,
        width=width,
        height=height,
        byte_size=len(data),
    )

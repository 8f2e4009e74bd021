"""Retry controller around the remote extraction call."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path

from .errors import ConfigurationError, EligibilityError
from .image import check_image, encode_image
from .models import ExtractionResult, Receipt, assemble_receipt
from .vision import VisionBackend
from .vision.request import ensure_payload_size

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
SOFT_FAILURE_MESSAGE = "Failed to extract receipt total"

SleepFunc = Callable[[float], Awaitable[object]]


class FailureKind(Enum):
    FATAL = "fatal"  # give up now, retrying can't help
    TRANSIENT = "transient"  # back off and try again


def classify_failure(exc: BaseException) -> FailureKind:
    if isinstance(exc, (ConfigurationError, EligibilityError)):
        return FailureKind.FATAL
    return FailureKind.TRANSIENT


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after failed attempt ``attempt`` (1-based)."""
    return float(2**attempt)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _plural(n: int) -> str:
    return f"{n} attempt" if n == 1 else f"{n} attempts"


async def parse_receipt_with_retry(
    image_path: str | Path,
    backend: VisionBackend,
    max_retries: int = DEFAULT_MAX_RETRIES,
    *,
    sleep: SleepFunc = asyncio.sleep,
) -> ExtractionResult:
    """Extract a receipt, retrying failed model calls.

    Never raises for extraction problems: when every attempt fails, or the
    image/config make an attempt pointless, the returned result carries an
    ``error_message`` instead.

    * A reply with a total or an error message ends the loop.
    * A reply with neither is a soft failure: retried without delay.
    * An exception is a hard failure: retried after ``2 ** attempt`` seconds.
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    try:
        await asyncio.to_thread(check_image, image_path)
        image = await asyncio.to_thread(encode_image, image_path)
        ensure_payload_size(image)
    except EligibilityError as e:
        logger.warning("Image not eligible for extraction: %s", e.message)
        return ExtractionResult.failure(e.message)
    except Exception as e:
        logger.exception("Failed to prepare image %s", image_path)
        return ExtractionResult.failure(f"Failed to prepare image: {_describe(e)}")

    last_error = ""
    for attempt in range(1, max_retries + 1):
        logger.info(
            "Extraction attempt %d/%d (%s, %s)",
            attempt, max_retries, backend.name, Path(image_path).name,
        )
        try:
            result = await backend.extract_receipt(image)
        except Exception as e:
            last_error = _describe(e)
            if classify_failure(e) is FailureKind.FATAL:
                logger.error("Extraction aborted: %s", last_error)
                return ExtractionResult.failure(
                    f"Failed after {_plural(attempt)}: {last_error}"
                )

            logger.warning(
                "Attempt %d/%d failed: %s", attempt, max_retries, last_error
            )
            if attempt < max_retries:
                delay = backoff_delay(attempt)
                logger.debug("Backing off for %.0fs", delay)
                await sleep(delay)
            continue

        if result.has_data:
            return result

        last_error = SOFT_FAILURE_MESSAGE
        logger.warning(
            "Attempt %d/%d returned no total; retrying", attempt, max_retries
        )

    return ExtractionResult.failure(
        f"Failed after {_plural(max_retries)}: {last_error}"
    )


async def scan_receipt(
    image_path: str | Path,
    backend: VisionBackend,
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    sleep: SleepFunc = asyncio.sleep,
) -> Receipt:
    """Extract and assemble a receipt ready to be stored.

    Failed scans still come back as a Receipt (with ``error_message`` set)
    so the captured image isn't lost.
    """
    result = await parse_receipt_with_retry(
        image_path, backend, max_retries, sleep=sleep
    )
    return assemble_receipt(result, str(image_path))

"""Groq (OpenAI-compatible) vision backend for receipt extraction."""

from __future__ import annotations

import logging

from ..errors import EmptyResponseError, ModelAPIError
from ..image import EncodedImage
from ..models import ExtractionResult
from ..normalize import normalize_response, parse_model_content
from . import VisionBackend
from .request import build_request

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "meta-llama/llama-4-scout-17b-16e-instruct"


class GroqVisionBackend(VisionBackend):
    """Extract receipts with a vision model served by Groq."""

    name = "groq"

    def __init__(self, api_key: str = "", model: str = DEFAULT_MODEL) -> None:
        super().__init__(api_key=api_key, model=model)

    async def extract_receipt(self, image: EncodedImage) -> ExtractionResult:
        api_key = self._require_api_key("GROQ_API_KEY")

        try:
            import groq
        except ImportError:
            raise ImportError("groq SDK is required: pip install groq") from None

        # Size ceiling is enforced here, before the client is even created.
        body = build_request(image, model=self._model)

        client = groq.AsyncGroq(api_key=api_key, max_retries=0)
        try:
            response = await client.chat.completions.create(**body)
        except groq.APIStatusError as e:
            raise ModelAPIError(
                f"Groq API error: {e.status_code} - {e.message}",
                status_code=e.status_code,
            ) from e
        except groq.APIError as e:
            raise ModelAPIError(f"Groq API error: {e}") from e

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content:
            raise EmptyResponseError("No response from Groq API")

        logger.debug("Groq reply: %d chars", len(content))
        return normalize_response(parse_model_content(content))

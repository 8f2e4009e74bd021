"""Gemini API vision backend for receipt extraction."""

from __future__ import annotations

import base64

from ..errors import EmptyResponseError, ModelAPIError
from ..image import EncodedImage
from ..models import ExtractionResult
from ..normalize import normalize_response, parse_model_content
from . import VisionBackend
from .request import EXTRACTION_PROMPT, MAX_OUTPUT_TOKENS, TEMPERATURE, ensure_payload_size


class GeminiVisionBackend(VisionBackend):
    """Extract receipts using Google Gemini's vision capability."""

    name = "gemini"

    def __init__(self, api_key: str = "", model: str = "gemini-2.0-flash") -> None:
        super().__init__(api_key=api_key, model=model)

    async def extract_receipt(self, image: EncodedImage) -> ExtractionResult:
        api_key = self._require_api_key("GEMINI_API_KEY")

        try:
            import google.generativeai as genai
        except ImportError:
            raise ImportError(
                "google-generativeai SDK is required: "
                "pip install 'receiptscan[gemini]'"
            ) from None

        ensure_payload_size(image)
        genai.configure(api_key=api_key)
        model = genai.GenerativeModel(
            self._model,
            generation_config={
                "temperature": TEMPERATURE,
                "max_output_tokens": MAX_OUTPUT_TOKENS,
                "response_mime_type": "application/json",
            },
        )
        parts = [
            {"mime_type": image.media_type, "data": base64.b64decode(image.base64)},
            EXTRACTION_PROMPT,
        ]

        try:
            response = await model.generate_content_async(parts)
        except Exception as e:
            # google-api-core errors carry the HTTP status as ``code``
            code = getattr(e, "code", None)
            raise ModelAPIError(
                f"Gemini API error: {e}",
                status_code=code if isinstance(code, int) else None,
            ) from e

        try:
            text = response.text
        except ValueError:
            # raised when the candidate was blocked or has no text part
            text = None
        if not text:
            raise EmptyResponseError("No response from Gemini API")
        return normalize_response(parse_model_content(text))

"""Claude API vision backend for receipt extraction."""

from __future__ import annotations

from ..errors import EmptyResponseError, ModelAPIError
from ..image import EncodedImage
from ..models import ExtractionResult
from ..normalize import normalize_response, parse_model_content
from . import VisionBackend
from .request import EXTRACTION_PROMPT, MAX_OUTPUT_TOKENS, TEMPERATURE, ensure_payload_size


class ClaudeVisionBackend(VisionBackend):
    """Extract receipts using Claude's vision capability."""

    name = "claude"

    def __init__(
        self, api_key: str = "", model: str = "claude-sonnet-4-5-20250929"
    ) -> None:
        super().__init__(api_key=api_key, model=model)

    async def extract_receipt(self, image: EncodedImage) -> ExtractionResult:
        api_key = self._require_api_key("ANTHROPIC_API_KEY")

        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic SDK is required: pip install 'receiptscan[claude]'"
            ) from None

        ensure_payload_size(image)
        content = [
            {
                "type": "image",
                "source": {
                    "type": "base64",
                    "media_type": image.media_type,
                    "data": image.base64,
                },
            },
            {"type": "text", "text": EXTRACTION_PROMPT},
        ]

        client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)
        try:
            response = await client.messages.create(
                model=self._model,
                max_tokens=MAX_OUTPUT_TOKENS,
                temperature=TEMPERATURE,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.APIStatusError as e:
            raise ModelAPIError(
                f"Anthropic API error: {e.status_code} - {e.message}",
                status_code=e.status_code,
            ) from e
        except anthropic.APIError as e:
            raise ModelAPIError(f"Anthropic API error: {e}") from e

        blocks = getattr(response, "content", None) or []
        text = getattr(blocks[0], "text", None) if blocks else None
        if not text:
            raise EmptyResponseError("No response from Anthropic API")
        return normalize_response(parse_model_content(text))

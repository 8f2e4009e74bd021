"""Extraction prompt and chat-completions request construction."""

from __future__ import annotations

from ..errors import PayloadTooLargeError
from ..image import EncodedImage

MAX_PAYLOAD_SIZE = 4 * 1024 * 1024  # 4MB, decoded
MAX_OUTPUT_TOKENS = 2048
TEMPERATURE = 0.0

EXTRACTION_PROMPT = """\
You are a receipt/invoice data extraction expert. Analyze this receipt image \
and extract structured information.

Return a JSON object with EXACTLY these fields:
{
  "merchant_name": "string or null - the store/business name",
  "receipt_date": "string or null - date in ISO format (YYYY-MM-DD)",
  "receipt_number": "string or null - receipt/invoice number if visible",
  "invoice_type": "one of: retail, restaurant, utility, service, unknown",
  "items": [
    {
      "name": "string - item description",
      "quantity": "number or null",
      "price": "number - item total price"
    }
  ],
  "subtotal": "number or null",
  "tax": "number or null",
  "total": "number - the final total amount",
  "currency": "string - currency code like BDT, USD, EUR",
  "payment_method": "string or null - Cash, Card, Mobile, etc.",
  "confidence_score": "number between 0 and 1 based on image quality and text clarity",
  "error_message": "string or null - only if image is not a valid receipt"
}

Rules:
- If a field cannot be determined, use null (except required fields)
- total is required - estimate if not clearly visible
- currency defaults to "BDT" if not detectable
- confidence_score should reflect image quality and extraction certainty
- For invoice_type:
  - "retail" for stores, supermarkets, shops
  - "restaurant" for food establishments
  - "utility" for electricity, water, gas, internet bills
  - "service" for services like repairs, maintenance
  - "unknown" if cannot determine or not a valid receipt
- If the image is NOT a receipt/invoice, set invoice_type to "unknown" and \
provide a clear error_message

Return ONLY valid JSON, no markdown or explanation.
"""


def payload_size(image: EncodedImage) -> int:
    """Approximate decoded size of the base64 payload in bytes."""
    return len(image.base64) * 3 // 4


def ensure_payload_size(image: EncodedImage, limit: int = MAX_PAYLOAD_SIZE) -> None:
    """Raise PayloadTooLargeError if the image can't be uploaded."""
    size = payload_size(image)
    if size > limit:
        raise PayloadTooLargeError(
            f"Image too large ({size / 1024 / 1024:.1f}MB). "
            f"Maximum size is {limit // (1024 * 1024)}MB. "
            "Please use a smaller image."
        )


def build_request(
    image: EncodedImage,
    *,
    model: str,
    prompt: str = EXTRACTION_PROMPT,
) -> dict:
    """Build the chat-completions body for one extraction call.

    Raises:
        PayloadTooLargeError: If the encoded image exceeds 4MB.
    """
    ensure_payload_size(image)
    return {
        "model": model,
        "messages": [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": image.data_url}},
                ],
            }
        ],
        "temperature": TEMPERATURE,
        "max_completion_tokens": MAX_OUTPUT_TOKENS,
        "response_format": {"type": "json_object"},
    }

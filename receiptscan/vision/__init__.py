"""Vision backend base class and factory."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from ..errors import ConfigurationError

if TYPE_CHECKING:
    from ..config import ScanConfig
    from ..image import EncodedImage
    from ..models import ExtractionResult


class VisionBackend(ABC):
    """Abstract base for receipt extraction from an image.

    One call is one round trip to the remote model. Implementations raise
    :class:`~receiptscan.errors.ExtractionError` subclasses for transport,
    status and parse failures and leave retrying to the caller.
    """

    name: str = ""

    def __init__(self, api_key: str = "", model: str = "") -> None:
        self._api_key = api_key
        self._model = model

    @property
    def model(self) -> str:
        return self._model

    def _require_api_key(self, env_var: str) -> str:
        if not self._api_key:
            raise ConfigurationError(
                f"{env_var} not found. Set it in the config file "
                f"or the {env_var} environment variable."
            )
        return self._api_key

    @abstractmethod
    async def extract_receipt(self, image: EncodedImage) -> ExtractionResult:
        """Send one image to the model and return the normalized reply."""
        ...


def create_backend(config: ScanConfig) -> VisionBackend:
    """Create a vision backend based on configuration."""
    backend_name = config.vision.backend

    match backend_name:
        case "groq":
            from .groq import GroqVisionBackend

            return GroqVisionBackend(
                api_key=config.vision.groq.api_key,
                model=config.vision.groq.model,
            )
        case "claude":
            from .claude import ClaudeVisionBackend

            return ClaudeVisionBackend(
                api_key=config.vision.claude.api_key,
                model=config.vision.claude.model,
            )
        case "gemini":
            from .gemini import GeminiVisionBackend

            return GeminiVisionBackend(
                api_key=config.vision.gemini.api_key,
                model=config.vision.gemini.model,
            )
        case _:
            raise ValueError(
                f"Unknown vision backend: {backend_name!r} "
                f"(choose one of groq / claude / gemini)"
            )

# src/adaptors/base_adaptor.py — v1
"""Abstract adaptor interface shared by every AI provider backend.

Subclasses declare the capabilities they implement; calling an
unsupported capability raises AdaptorUnavailable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from genstage.adaptors.models import ImageResult, TextResult, VideoResult
from genstage.core.errors import AdaptorUnavailable


class BaseAdaptor(ABC):
    """Unified interface for text, image and video generation.

    Args:
        model: Provider model id.
        api_key: Provider API key.
        **config: Adaptor-level defaults merged under per-call options.
    """

    def __init__(self, model: str, api_key: str = "", **config: Any) -> None:
        self._model = model
        self._api_key = api_key
        self._config = dict(config)

    @property
    def model_id(self) -> str:
        return self._model

    @property
    @abstractmethod
    def adaptor_id(self) -> str:
        """Registry identifier (gemini, openai, anthropic)."""

    @property
    @abstractmethod
    def capabilities(self) -> frozenset[str]:
        """Subset of {text, image, video} this adaptor implements."""

    def supports(self, capability: str) -> bool:
        return capability in self.capabilities

    @abstractmethod
    async def generate_text(self, prompt: str, **options: Any) -> TextResult:
        """Text completion from a single prompt string."""

    async def generate_image(self, prompt: str, **options: Any) -> ImageResult:
        raise AdaptorUnavailable(
            f"Adaptor '{self.adaptor_id}' does not support image generation",
            adaptor_id=self.adaptor_id,
        )

    async def generate_video(self, prompt: str, **options: Any) -> VideoResult:
        raise AdaptorUnavailable(
            f"Adaptor '{self.adaptor_id}' does not support video generation",
            adaptor_id=self.adaptor_id,
        )

    async def health_check(self) -> dict[str, Any]:
        """Ping the provider with a tiny text call.

        Returns:
            Dict with status ('ok' or 'error'), latency_ms or error, adaptor, model.
        """
        try:
            result = await self.generate_text("ping", max_tokens=8)
        except Exception as exc:  # provider errors become a status, not a raise
            return {
                "status": "error",
                "error": str(exc),
                "adaptor": self.adaptor_id,
                "model": self._model,
            }
        return {
            "status": "ok",
            "latency_ms": result.usage.latency_ms,
            "adaptor": self.adaptor_id,
            "model": self._model,
        }

    def _options(self, options: dict[str, Any]) -> dict[str, Any]:
        merged = dict(self._config)
        merged.update({k: v for k, v in options.items() if v is not None})
        return merged

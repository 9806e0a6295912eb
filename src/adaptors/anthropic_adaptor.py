# src/adaptors/anthropic_adaptor.py — v1
"""Anthropic Claude adaptor implementing BaseAdaptor (text only)."""

from __future__ import annotations

import logging
import time
from typing import Any

from genstage.adaptors.base_adaptor import BaseAdaptor
from genstage.adaptors.models import TextResult
from genstage.core.models import Usage

logger = logging.getLogger(__name__)


class AnthropicAdaptor(BaseAdaptor):
    """Adapter for Anthropic Claude models."""

    def __init__(
        self,
        model: str = "claude-sonnet-4-20250514",
        api_key: str = "",
        **config: Any,
    ) -> None:
        super().__init__(model, api_key, **config)
        self.__client = None  # Lazy initialization

    @property
    def _client(self):
        """Lazy-init Anthropic client (only on first API call)."""
        if self.__client is None:
            try:
                import anthropic
            except ImportError as e:
                raise ImportError(
                    "anthropic package required: pip install anthropic"
                ) from e
            self.__client = anthropic.AsyncAnthropic(api_key=self._api_key or "")
        return self.__client

    @property
    def adaptor_id(self) -> str:
        return "anthropic"

    @property
    def capabilities(self) -> frozenset[str]:
        return frozenset({"text"})

    async def generate_text(self, prompt: str, **options: Any) -> TextResult:
        opts = self._options(options)
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": opts.get("max_tokens", 4096),
            "temperature": opts.get("temperature", 0.7),
            "messages": [{"role": "user", "content": prompt}],
        }
        if opts.get("system"):
            kwargs["system"] = opts["system"]

        start = time.monotonic()
        response = await self._client.messages.create(**kwargs)
        latency_ms = int((time.monotonic() - start) * 1000)

        text = ""
        for block in response.content:
            if getattr(block, "type", None) == "text":
                text = block.text
                break

        return TextResult(
            text=text,
            model_id=getattr(response, "model", self._model),
            usage=Usage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
                latency_ms=latency_ms,
            ),
            raw_response=response,
        )

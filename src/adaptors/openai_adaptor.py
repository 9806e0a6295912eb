# src/adaptors/openai_adaptor.py — v1
"""OpenAI adaptor implementing BaseAdaptor.

Uses the official openai SDK: chat completions for text, the images API
for image generation.
"""

from __future__ import annotations

import base64
import time
from typing import Any

from genstage.adaptors.base_adaptor import BaseAdaptor
from genstage.adaptors.models import ImageResult, TextResult
from genstage.core.errors import GenerationFailed
from genstage.core.models import Usage


class OpenAIAdaptor(BaseAdaptor):
    """OpenAI GPT and image-model adaptor."""

    def __init__(
        self,
        model: str = "gpt-4o",
        api_key: str = "",
        organization: str | None = None,
        image_model: str = "dall-e-3",
        **config: Any,
    ) -> None:
        super().__init__(model, api_key, **config)
        self._organization = organization
        self._image_model = image_model
        self.__client = None

    @property
    def _client(self):
        if self.__client is None:
            try:
                import openai
            except ImportError as e:
                raise ImportError("openai package required: pip install openai") from e
            self.__client = openai.AsyncOpenAI(
                api_key=self._api_key, organization=self._organization
            )
        return self.__client

    @property
    def adaptor_id(self) -> str:
        return "openai"

    @property
    def capabilities(self) -> frozenset[str]:
        return frozenset({"text", "image"})

    async def generate_text(self, prompt: str, **options: Any) -> TextResult:
        opts = self._options(options)
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": opts.get("max_tokens", 4096),
            "temperature": opts.get("temperature", 0.7),
        }
        if opts.get("response_format") == "json":
            kwargs["response_format"] = {"type": "json_object"}

        t0 = time.monotonic()
        resp = await self._client.chat.completions.create(**kwargs)
        latency = int((time.monotonic() - t0) * 1000)

        choice = resp.choices[0]
        usage = resp.usage
        return TextResult(
            text=choice.message.content or "",
            model_id=self._model,
            usage=Usage(
                input_tokens=usage.prompt_tokens if usage else 0,
                output_tokens=usage.completion_tokens if usage else 0,
                total_tokens=usage.total_tokens if usage else 0,
                latency_ms=latency,
            ),
            raw_response=resp,
        )

    async def generate_image(self, prompt: str, **options: Any) -> ImageResult:
        opts = self._options(options)
        model = opts.get("image_model") or self._image_model
        kwargs: dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "n": 1,
            "size": opts.get("size", "1024x1024"),
        }
        if opts.get("quality"):
            kwargs["quality"] = opts["quality"]

        t0 = time.monotonic()
        resp = await self._client.images.generate(**kwargs)
        latency = int((time.monotonic() - t0) * 1000)

        if not resp.data:
            raise GenerationFailed("OpenAI image response contained no data")
        image = resp.data[0]
        b64 = getattr(image, "b64_json", None)
        return ImageResult(
            image_url=getattr(image, "url", None),
            image_bytes=base64.b64decode(b64) if b64 else None,
            revised_prompt=getattr(image, "revised_prompt", None),
            model_id=model,
            usage=Usage(latency_ms=latency),
        )

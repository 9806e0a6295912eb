# src/adaptors/gemini_adaptor.py — v1
"""Google Gemini adaptor implementing BaseAdaptor.

Uses the google-genai SDK (``genai.Client``) for all three capabilities:
  text   models.generate_content
  image  models.generate_content with IMAGE response modality, inline bytes
  video  models.generate_videos (Veo), polled until the operation is done
"""

from __future__ import annotations

import asyncio
import base64
import logging
import time
from typing import Any

from genstage.adaptors.base_adaptor import BaseAdaptor
from genstage.adaptors.models import ImageResult, ReferenceImage, TextResult, VideoResult
from genstage.core.errors import GenerationFailed
from genstage.core.models import Usage

logger = logging.getLogger(__name__)

ALLOWED_VIDEO_DURATIONS = (4, 6, 8)
DEFAULT_IMAGE_MODEL = "gemini-2.5-flash-image"


class GeminiAdaptor(BaseAdaptor):
    """Adapter for Gemini text/image models and Veo video models."""

    def __init__(
        self,
        model: str = "gemini-2.0-flash",
        api_key: str = "",
        poll_interval_s: float = 10.0,
        **config: Any,
    ) -> None:
        super().__init__(model, api_key, **config)
        self._poll_interval_s = poll_interval_s
        self.__client = None  # Lazy initialization

    @property
    def _client(self):
        """Lazy-init genai client (only on first API call)."""
        if self.__client is None:
            try:
                from google import genai
            except ImportError as e:
                raise ImportError(
                    "google-genai package required: pip install google-genai"
                ) from e
            self.__client = genai.Client(api_key=self._api_key or None)
        return self.__client

    @property
    def adaptor_id(self) -> str:
        return "gemini"

    @property
    def capabilities(self) -> frozenset[str]:
        return frozenset({"text", "image", "video"})

    async def generate_text(self, prompt: str, **options: Any) -> TextResult:
        from google.genai import types

        opts = self._options(options)
        config_kwargs: dict[str, Any] = {
            "temperature": opts.get("temperature", 0.7),
            "max_output_tokens": opts.get("max_tokens", 8192),
        }
        if opts.get("response_format") == "json":
            config_kwargs["response_mime_type"] = "application/json"

        start = time.monotonic()
        response = await self._client.aio.models.generate_content(
            model=self._model,
            contents=prompt,
            config=types.GenerateContentConfig(**config_kwargs),
        )
        latency_ms = int((time.monotonic() - start) * 1000)

        return TextResult(
            text=response.text or "",
            model_id=self._model,
            usage=_usage_from(getattr(response, "usage_metadata", None), latency_ms),
            raw_response=response,
        )

    async def generate_image(self, prompt: str, **options: Any) -> ImageResult:
        from google.genai import types

        opts = self._options(options)
        contents: list[Any] = [prompt]
        for ref in opts.get("reference_images") or []:
            image = ref if isinstance(ref, ReferenceImage) else ReferenceImage.model_validate(ref)
            contents.append(types.Part.from_bytes(data=image.data, mime_type=image.mime_type))

        model = self._model if "image" in self._model else DEFAULT_IMAGE_MODEL
        start = time.monotonic()
        response = await self._client.aio.models.generate_content(
            model=model,
            contents=contents,
            config=types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"]),
        )
        latency_ms = int((time.monotonic() - start) * 1000)

        data, mime_type = _extract_inline_image(response)
        if data is None:
            raise GenerationFailed("Gemini response did not return any image data")

        return ImageResult(
            image_bytes=data,
            mime_type=mime_type,
            model_id=model,
            usage=_usage_from(getattr(response, "usage_metadata", None), latency_ms),
        )

    async def generate_video(self, prompt: str, **options: Any) -> VideoResult:
        from google.genai import types

        opts = self._options(options)
        duration = int(opts.get("duration_seconds", 6))
        if duration not in ALLOWED_VIDEO_DURATIONS:
            raise GenerationFailed(
                f"Invalid duration: {duration}s. Veo only supports: "
                f"{', '.join(str(d) for d in ALLOWED_VIDEO_DURATIONS)}s"
            )

        request: dict[str, Any] = {
            "model": self._model,
            "prompt": prompt,
            "config": types.GenerateVideosConfig(
                duration_seconds=duration,
                aspect_ratio=opts.get("aspect_ratio", "16:9"),
            ),
        }
        refs = opts.get("reference_images") or []
        if refs:
            first = refs[0] if isinstance(refs[0], ReferenceImage) else ReferenceImage.model_validate(refs[0])
            request["image"] = types.Image(image_bytes=first.data, mime_type=first.mime_type)

        start = time.monotonic()
        operation = await self._client.aio.models.generate_videos(**request)
        logger.info("Veo operation started: %s", getattr(operation, "name", "?"))

        polls = 0
        while not operation.done:
            await asyncio.sleep(self._poll_interval_s)
            operation = await self._client.aio.operations.get(operation)
            polls += 1
        latency_ms = int((time.monotonic() - start) * 1000)
        logger.info("Veo operation completed after %d polls", polls)

        if getattr(operation, "error", None):
            raise GenerationFailed(f"Veo operation failed: {operation.error}")
        videos = getattr(operation.response, "generated_videos", None) or []
        if not videos:
            raise GenerationFailed("Veo operation returned no video")

        video = videos[0].video
        return VideoResult(
            video_url=getattr(video, "uri", None),
            video_bytes=getattr(video, "video_bytes", None),
            mime_type=getattr(video, "mime_type", None) or "video/mp4",
            duration_seconds=duration,
            model_id=self._model,
            usage=Usage(latency_ms=latency_ms),
        )


def _usage_from(metadata: Any, latency_ms: int) -> Usage:
    if metadata is None:
        return Usage(latency_ms=latency_ms)
    return Usage(
        input_tokens=getattr(metadata, "prompt_token_count", 0) or 0,
        output_tokens=getattr(metadata, "candidates_token_count", 0) or 0,
        total_tokens=getattr(metadata, "total_token_count", 0) or 0,
        latency_ms=latency_ms,
    )


def _extract_inline_image(response: Any) -> tuple[bytes | None, str]:
    """First inline image part of a generate_content response."""
    for cand in getattr(response, "candidates", None) or []:
        content = getattr(cand, "content", None)
        for part in (getattr(content, "parts", None) or []) if content else []:
            inline = getattr(part, "inline_data", None)
            if not inline:
                continue
            data = getattr(inline, "data", None)
            mime_type = getattr(inline, "mime_type", None) or "image/png"
            if isinstance(data, str):
                return base64.b64decode(data), mime_type
            if isinstance(data, (bytes, bytearray)):
                return bytes(data), mime_type
            logger.warning("Unexpected image payload type from Gemini: %s", type(data))
    return None, "image/png"

# src/engine/executor.py — v1
"""Execute one GenerationJob: resolve, render, invoke, store media.

Resolution happens here, at execution time, so a template or model edit
made between planning and execution is picked up by jobs not yet started.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any

from genstage.adaptors.models import ImageResult, ReferenceImage, TextResult, VideoResult
from genstage.adaptors.resolver import AdaptorHandle, ModelResolver
from genstage.core.errors import GenerationFailed
from genstage.core.models import GenerationJob, ModelConfig, ResolvedPrompt, Usage
from genstage.prompts.resolver import PromptResolver
from genstage.storage.base_blob_store import BaseBlobStore, decode_data_url, extension_for

logger = logging.getLogger(__name__)

# Item input keys consumed by the executor rather than the template.
MODEL_OVERRIDE_KEY = "model_override"
OPTIONS_KEY = "options"
REFERENCE_KEYS = ("reference_image_url", "reference_image_urls", "image_url")

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$")


@dataclass
class JobOutput:
    """What a successful job produced."""

    result: dict[str, Any]
    usage: Usage
    model: ModelConfig


def build_variables(
    item_input: dict[str, Any], predecessor_results: dict[str, dict[str, Any]]
) -> dict[str, Any]:
    """Template variables for a job.

    Item input keys are used as-is, nested dicts also flattened with dots
    (``theme.name``). Each predecessor step contributes ``{step}`` (its
    primary output) and, for parsed JSON, ``{step}.{key}``.
    """
    variables: dict[str, Any] = {}
    _flatten(item_input, "", variables)
    for step, result in predecessor_results.items():
        primary = result.get("text") or result.get("image_url") or result.get("video_url")
        if primary is not None:
            variables[step] = primary
        data = result.get("data")
        if isinstance(data, dict):
            _flatten(data, f"{step}.", variables)
        elif data is not None:
            variables[step] = json.dumps(data)
        for key in ("image_url", "video_url"):
            if result.get(key):
                variables[f"{step}.{key}"] = result[key]
    return variables


def _flatten(data: dict[str, Any], prefix: str, out: dict[str, Any]) -> None:
    for key, value in data.items():
        if key in (MODEL_OVERRIDE_KEY, OPTIONS_KEY) and not prefix:
            continue
        name = f"{prefix}{key}"
        out[name] = json.dumps(value) if isinstance(value, (dict, list)) else value
        if isinstance(value, dict):
            _flatten(value, f"{name}.", out)


def parse_json_text(text: str) -> Any:
    """Parse model JSON output, tolerating a Markdown code fence.

    Raises:
        GenerationFailed: If the text is not valid JSON.
    """
    cleaned = _FENCE_RE.sub("", text.strip())
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise GenerationFailed(f"Model returned invalid JSON: {e}") from e


class JobExecutor:
    """Run single jobs against the resolvers, adaptors and blob store.

    Args:
        prompt_resolver: Template lookup and rendering.
        model_resolver: Adaptor/model lookup.
        blob_store: Destination for generated media.
        timeout_s: Per adaptor call timeout.
    """

    def __init__(
        self,
        prompt_resolver: PromptResolver,
        model_resolver: ModelResolver,
        blob_store: BaseBlobStore,
        timeout_s: float = 300.0,
    ) -> None:
        self._prompts = prompt_resolver
        self._models = model_resolver
        self._blobs = blob_store
        self._timeout_s = timeout_s

    async def execute(
        self,
        job: GenerationJob,
        project_id: str,
        task: str,
        predecessor_results: dict[str, dict[str, Any]],
    ) -> JobOutput:
        """Run ``job`` and return its result payload.

        Raises:
            GenerationError: Or any provider exception; the engine classifies.
        """
        ref = await self._prompts.resolve(job.stage_type, job.capability, project_id)
        handle = await self._models.resolve(
            project_id, job.stage_type, job.capability,
            explicit_override=job.input.get(MODEL_OVERRIDE_KEY),
        )
        job.model = handle.config

        variables = build_variables(job.input, predecessor_results)
        rendered = self._prompts.render(ref, variables)

        options = dict(job.options)
        options.update(job.input.get(OPTIONS_KEY) or {})
        if rendered.output_format == "json" and job.capability == "text":
            options.setdefault("response_format", "json")

        logger.info(
            "Running %s/%s via %s (prompt %s, %s)",
            job.step, job.capability, handle.config.key, ref.template.id, ref.source,
        )
        result = await self._invoke(job, handle, rendered, options, predecessor_results)
        payload = await self._to_payload(job, project_id, task, result, rendered)
        payload["model"] = handle.config.key
        payload["prompt_id"] = ref.template.id
        payload["prompt_source"] = ref.source
        return JobOutput(result=payload, usage=result.usage, model=handle.config)

    async def _invoke(
        self,
        job: GenerationJob,
        handle: AdaptorHandle,
        rendered: ResolvedPrompt,
        options: dict[str, Any],
        predecessor_results: dict[str, dict[str, Any]],
    ) -> TextResult | ImageResult | VideoResult:
        adaptor = handle.adaptor
        if job.capability == "text":
            call = adaptor.generate_text(rendered.full_text, **options)
        else:
            refs = await self._reference_images(job.input, predecessor_results)
            if refs:
                options["reference_images"] = refs
            if job.capability == "image":
                call = adaptor.generate_image(rendered.full_text, **options)
            else:
                call = adaptor.generate_video(rendered.full_text, **options)
        return await asyncio.wait_for(call, timeout=self._timeout_s)

    async def _reference_images(
        self, item_input: dict[str, Any], predecessor_results: dict[str, dict[str, Any]]
    ) -> list[ReferenceImage]:
        urls: list[str] = []
        for key in REFERENCE_KEYS:
            value = item_input.get(key)
            if isinstance(value, str) and value:
                urls.append(value)
            elif isinstance(value, list):
                urls.extend(v for v in value if isinstance(v, str) and v)
        for result in predecessor_results.values():
            if result.get("image_url"):
                urls.append(result["image_url"])

        refs: list[ReferenceImage] = []
        for url in urls:
            if url.startswith("data:"):
                data, mime = decode_data_url(url)
            else:
                try:
                    data = await self._blobs.download(url)
                except (ValueError, FileNotFoundError) as e:
                    raise GenerationFailed(f"Cannot load reference image {url}: {e}") from e
                mime = _guess_image_mime(url)
            refs.append(ReferenceImage(data=data, mime_type=mime))
        return refs

    async def _to_payload(
        self,
        job: GenerationJob,
        project_id: str,
        task: str,
        result: TextResult | ImageResult | VideoResult,
        rendered: ResolvedPrompt,
    ) -> dict[str, Any]:
        if isinstance(result, TextResult):
            payload: dict[str, Any] = {"text": result.text}
            if job.parse_json or rendered.output_format == "json":
                payload["data"] = parse_json_text(result.text)
            return payload

        if isinstance(result, ImageResult):
            url, mime_type = await self._store_media(
                job, project_id, task, result.image_url, result.image_bytes, result.mime_type
            )
            payload = {"image_url": url, "mime_type": mime_type}
            if result.revised_prompt:
                payload["revised_prompt"] = result.revised_prompt
            return payload

        url, mime_type = await self._store_media(
            job, project_id, task, result.video_url, result.video_bytes, result.mime_type
        )
        return {
            "video_url": url,
            "mime_type": mime_type,
            "duration_seconds": result.duration_seconds,
        }

    async def _store_media(
        self,
        job: GenerationJob,
        project_id: str,
        task: str,
        url: str | None,
        data: bytes | None,
        mime_type: str,
    ) -> tuple[str, str]:
        """Upload raw bytes or data URLs; pass hosted URLs through.

        Returns:
            The media URL and its MIME type.
        """
        if data is None and url and url.startswith("data:"):
            data, mime_type = decode_data_url(url)
        if data is None:
            if not url:
                raise GenerationFailed(f"Adaptor returned no {job.capability} data")
            return url, mime_type

        path = (
            f"projects/{project_id}/{task}/{job.item_id}/"
            f"{job.step}-{uuid.uuid4().hex[:8]}.{extension_for(mime_type)}"
        )
        stored = await self._blobs.upload(data, path, content_type=mime_type)
        logger.debug("Stored %d bytes of %s at %s", len(data), mime_type, stored)
        return stored, mime_type


def _guess_image_mime(url: str) -> str:
    lower = url.lower().split("?", 1)[0]
    if lower.endswith((".jpg", ".jpeg")):
        return "image/jpeg"
    if lower.endswith(".webp"):
        return "image/webp"
    return "image/png"

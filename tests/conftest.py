# tests/conftest.py — v3
"""Shared test fixtures for all unit and integration tests.

Provides in-memory stores, a scripted fake adaptor, seeded prompt
templates and a fully wired service. No network access: every adaptor
call goes to FakeAdaptor.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Awaitable, Callable

import pytest
import pytest_asyncio

from genstage.adaptors.base_adaptor import BaseAdaptor
from genstage.adaptors.models import ImageResult, TextResult, VideoResult
from genstage.api.facade import GenStageService
from genstage.config.settings import Settings
from genstage.core.models import Usage
from genstage.prompts.cache import ResolverCache
from genstage.prompts.resolver import PromptResolver
from genstage.prompts.template_service import PromptTemplateService
from genstage.storage.local_blob_store import LocalBlobStore
from genstage.store.memory_store import MemoryDocumentStore

_CAPS = {
    "gemini": frozenset({"text", "image", "video"}),
    "openai": frozenset({"text", "image"}),
    "anthropic": frozenset({"text"}),
}


# === FAKE ADAPTOR ===


class FakeAdaptor(BaseAdaptor):
    """Scripted adaptor.

    ``behaviour`` maps a capability to a callable(prompt, options) that
    returns a result, raises, or returns an awaitable (for delays).
    Calls are recorded in ``calls`` as (capability, prompt, options).
    """

    def __init__(
        self,
        model: str = "fake-model",
        api_key: str = "",
        adaptor: str = "gemini",
        behaviour: dict[str, Callable[..., Any]] | None = None,
        **config: Any,
    ) -> None:
        super().__init__(model, api_key, **config)
        self._adaptor = adaptor
        self.behaviour = behaviour or {}
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    @property
    def adaptor_id(self) -> str:
        return self._adaptor

    @property
    def capabilities(self) -> frozenset[str]:
        return _CAPS.get(self._adaptor, frozenset({"text"}))

    async def _run(self, capability: str, prompt: str, options: dict[str, Any], default: Any) -> Any:
        self.calls.append((capability, prompt, options))
        fn = self.behaviour.get(capability)
        if fn is None:
            return default
        value = fn(prompt, options)
        if asyncio.iscoroutine(value):
            value = await value
        return value

    async def generate_text(self, prompt: str, **options: Any) -> TextResult:
        return await self._run(
            "text", prompt, options,
            TextResult(text=f"text:{prompt[:40]}", model_id=self._model,
                       usage=Usage(input_tokens=10, output_tokens=5, total_tokens=15)),
        )

    async def generate_image(self, prompt: str, **options: Any) -> ImageResult:
        return await self._run(
            "image", prompt, options,
            ImageResult(image_bytes=b"\x89PNG fake", mime_type="image/png", model_id=self._model),
        )

    async def generate_video(self, prompt: str, **options: Any) -> VideoResult:
        return await self._run(
            "video", prompt, options,
            VideoResult(video_url="https://cdn.example.com/v.mp4", duration_seconds=4,
                        model_id=self._model),
        )


class FakeAdaptorFactory:
    """Stands in for the registry's create_adaptor; shares one behaviour map."""

    def __init__(self) -> None:
        self.behaviour: dict[str, Callable[..., Any]] = {}
        self.created: list[tuple[str, str, dict[str, Any]]] = []
        self.instances: list[FakeAdaptor] = []

    def __call__(
        self, adaptor_id: str, model: str, credentials: dict[str, Any] | None = None, **kwargs: Any
    ) -> FakeAdaptor:
        self.created.append((adaptor_id, model, dict(credentials or {})))
        adaptor = FakeAdaptor(model=model, adaptor=adaptor_id, behaviour=self.behaviour)
        self.instances.append(adaptor)
        return adaptor

    @property
    def calls(self) -> list[tuple[str, str, dict[str, Any]]]:
        return [call for a in self.instances for call in a.calls]


# === FIXTURES: Configuration and stores ===


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from any .env file."""
    return Settings(
        _env_file=None,
        store_backend="memory",
        blob_root=tmp_path / "blobs",
        gemini_api_key="global-gemini-key",
        openai_api_key="global-openai-key",
    )


@pytest.fixture
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def cache() -> ResolverCache:
    return ResolverCache()


@pytest.fixture
def blob_store(tmp_path: Path) -> LocalBlobStore:
    return LocalBlobStore(tmp_path / "blobs")


@pytest.fixture
def templates(store: MemoryDocumentStore, cache: ResolverCache) -> PromptTemplateService:
    return PromptTemplateService(store, cache)


@pytest.fixture
def prompt_resolver(store: MemoryDocumentStore, cache: ResolverCache) -> PromptResolver:
    return PromptResolver(store, cache)


@pytest.fixture
def adaptor_factory() -> FakeAdaptorFactory:
    return FakeAdaptorFactory()


# === FIXTURES: Sample prompts ===


THEMES_TEXT_PROMPT: dict[str, Any] = {
    "id": "themes_text_default",
    "capability": "text",
    "name": "Theme ideation",
    "is_default": True,
    "system_prompt": "You are a sports marketing copywriter.",
    "user_prompt": "Suggest themes for {{team}} about {{topic}}.",
    "variables": ["team", "topic"],
    "output_format": "text",
}

THEMES_IMAGE_PROMPT: dict[str, Any] = {
    "id": "themes_image_default",
    "capability": "image",
    "name": "Theme image",
    "is_default": True,
    "user_prompt": "Poster for {{team}}.",
    "variables": ["team"],
}

ANIMATION_TEXT_PROMPT: dict[str, Any] = {
    "id": "animation_screenplay",
    "capability": "text",
    "name": "Screenplay",
    "is_default": True,
    "user_prompt": "Write a 4 second screenplay for {{team}} as JSON.",
    "output_format": "json",
}

ANIMATION_VIDEO_PROMPT: dict[str, Any] = {
    "id": "animation_video",
    "capability": "video",
    "name": "Animation",
    "is_default": True,
    "user_prompt": "Animate: {{screenplay.scene}}",
}


@pytest_asyncio.fixture
async def seeded_templates(templates: PromptTemplateService) -> PromptTemplateService:
    """Template service with default prompts for themes and animation stages."""
    await templates.seed_stage("stage_2_themes", [THEMES_TEXT_PROMPT, THEMES_IMAGE_PROMPT])
    await templates.seed_stage("stage_5_animation", [ANIMATION_TEXT_PROMPT, ANIMATION_VIDEO_PROMPT])
    return templates


@pytest.fixture
def make_service(
    settings: Settings,
    store: MemoryDocumentStore,
    blob_store: LocalBlobStore,
    adaptor_factory: FakeAdaptorFactory,
) -> Callable[..., Awaitable[GenStageService]]:
    """Build seeded services sharing backends, with settings overrides."""

    async def _make(**overrides: Any) -> GenStageService:
        svc = GenStageService.build(
            settings=settings.model_copy(update=overrides),
            store=store,
            blob_store=blob_store,
            adaptor_factory=adaptor_factory,
        )
        await svc.templates.seed_stage("stage_2_themes", [THEMES_TEXT_PROMPT, THEMES_IMAGE_PROMPT])
        await svc.templates.seed_stage(
            "stage_5_animation", [ANIMATION_TEXT_PROMPT, ANIMATION_VIDEO_PROMPT]
        )
        return svc

    return _make


@pytest_asyncio.fixture
async def service(make_service: Callable[..., Awaitable[GenStageService]]) -> GenStageService:
    """Fully wired service over in-memory backends with seeded prompts."""
    return await make_service()

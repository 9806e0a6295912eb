# src/api/facade.py — v3
"""Public API facade: resolver contract and batch execution.

Usage:
    from genstage.api.facade import GenStageService
    service = GenStageService.build()
    ref = await service.resolve_prompt("stage_2_themes", "text", project_id="p1")
    summary = await service.run_batch(request, sink)

One service instance owns one ResolverCache; nothing here is a module
singleton, so tests and multi-tenant hosts can build as many as they need.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from genstage.adaptors.model_config_service import ModelConfigService
from genstage.adaptors.resolver import AdaptorFactory, AdaptorHandle, ModelResolver
from genstage.config.settings import Settings
from genstage.core.errors import InvalidBatchRequest
from genstage.core.models import BatchRequest, BatchRun, FinalSummary, ModelConfig, ResolvedTemplateRef
from genstage.engine.events import MemorySink, ProgressSink
from genstage.engine.executor import JobExecutor
from genstage.engine.planner import JobPlanner
from genstage.engine.recorder import ResultRecorder
from genstage.engine.runner import StreamingEngine
from genstage.prompts.cache import ResolverCache
from genstage.prompts.resolver import PromptResolver
from genstage.prompts.template_service import PromptTemplateService
from genstage.storage.base_blob_store import BaseBlobStore
from genstage.storage.blob_factory import create_blob_store
from genstage.store.base_document_store import BaseDocumentStore
from genstage.store.store_factory import create_document_store

logger = logging.getLogger(__name__)


@dataclass
class GenStageService:
    """Wired set of collaborators sharing one store, blob store and cache."""

    settings: Settings
    store: BaseDocumentStore
    blob_store: BaseBlobStore
    cache: ResolverCache
    templates: PromptTemplateService
    prompts: PromptResolver
    models: ModelResolver
    model_configs: ModelConfigService
    planner: JobPlanner
    engine: StreamingEngine

    @classmethod
    def build(
        cls,
        settings: Settings | None = None,
        store: BaseDocumentStore | None = None,
        blob_store: BaseBlobStore | None = None,
        adaptor_factory: AdaptorFactory | None = None,
        planner: JobPlanner | None = None,
    ) -> GenStageService:
        """Wire every component from settings, accepting injected backends.

        Args:
            settings: Global settings. Loaded from .env if None.
            store: Document store. Built from settings if None.
            blob_store: Media store. Built from settings if None.
            adaptor_factory: Replaces the adaptor registry (tests, custom hosts).
            planner: Replaces the default product job graphs.
        """
        settings = settings or Settings()
        store = store or create_document_store(settings)
        blob_store = blob_store or create_blob_store(settings)
        cache = ResolverCache()

        prompts = PromptResolver(store, cache)
        models = ModelResolver(store, cache, settings, prompts, adaptor_factory)
        executor = JobExecutor(prompts, models, blob_store, timeout_s=settings.adaptor_timeout_s)
        engine = StreamingEngine(
            executor, ResultRecorder(store), max_concurrency=settings.engine_max_concurrency
        )

        logger.debug(
            "Built service: store=%s, blobs=%s, concurrency=%d",
            type(store).__name__, type(blob_store).__name__, settings.engine_max_concurrency,
        )
        return cls(
            settings=settings,
            store=store,
            blob_store=blob_store,
            cache=cache,
            templates=PromptTemplateService(store, cache),
            prompts=prompts,
            models=models,
            model_configs=ModelConfigService(store, cache),
            planner=planner or JobPlanner(),
            engine=engine,
        )

    # --- Resolver contract ---

    async def resolve_prompt(
        self, stage_type: str, capability: str, project_id: str | None = None
    ) -> ResolvedTemplateRef:
        return await self.prompts.resolve(stage_type, capability, project_id)

    async def resolve_adaptor(
        self,
        project_id: str | None,
        stage_type: str,
        capability: str,
        explicit_override: ModelConfig | str | dict[str, Any] | None = None,
    ) -> AdaptorHandle:
        return await self.models.resolve(project_id, stage_type, capability, explicit_override)

    def invalidate_cache(self) -> None:
        """Drop every cached resolution and adaptor instance."""
        self.cache.invalidate_all()

    # --- Batches ---

    def plan(self, request: BatchRequest | dict[str, Any]) -> BatchRun:
        """Validate and plan a batch synchronously.

        Raises:
            PlannerValidationError: Malformed request, empty batch, unknown
                pipeline or bad graph.
        """
        if not isinstance(request, BatchRequest):
            try:
                request = BatchRequest.model_validate(request)
            except ValidationError as exc:
                raise InvalidBatchRequest(f"Malformed batch request: {exc}") from exc
        return self.planner.plan(request)

    async def run_batch(
        self,
        request: BatchRequest | dict[str, Any],
        sink: ProgressSink | None = None,
    ) -> FinalSummary:
        """Plan and execute a batch, streaming events to ``sink``.

        Planner validation errors are raised before any event is emitted.
        """
        batch = self.plan(request)
        return await self.engine.run(batch, sink or MemorySink())

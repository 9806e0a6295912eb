# tests/unit/api/test_unit_facade.py — v3
"""Tests for api.facade — public entry point."""

from __future__ import annotations

import pytest

from genstage.api.facade import GenStageService
from genstage.core.errors import EmptyBatch, InvalidBatchRequest, PlannerValidationError, UnknownPipeline
from genstage.engine.events import MemorySink
from genstage.engine.planner import JobPlanner
from genstage.storage.local_blob_store import LocalBlobStore
from genstage.store.base_document_store import PROMPT_TEMPLATES
from genstage.store.memory_store import MemoryDocumentStore

BASE_PROMPT = {
    "id": "themes_text_default",
    "capability": "text",
    "name": "Theme ideation",
    "is_default": True,
    "system_prompt": "You write slogans.",
    "user_prompt": "Themes for {{team}}.",
}


class TestBuild:
    def test_backends_from_settings(self, settings):
        service = GenStageService.build(settings)
        assert isinstance(service.store, MemoryDocumentStore)
        assert isinstance(service.blob_store, LocalBlobStore)
        assert service.engine is not None
        assert isinstance(service.planner, JobPlanner)

    def test_injected_backends_kept(self, settings, store, blob_store):
        service = GenStageService.build(settings, store=store, blob_store=blob_store)
        assert service.store is store
        assert service.blob_store is blob_store

    def test_services_are_isolated(self, settings):
        a = GenStageService.build(settings)
        b = GenStageService.build(settings)
        assert a.cache is not b.cache
        assert a.store is not b.store


class TestResolvePrompt:
    @pytest.mark.asyncio
    async def test_override_returned_verbatim(self, service):
        await service.templates.save_override(
            "p1", "stage_2_themes", "text", {"user_prompt": "Only {{team}}."}
        )
        ref = await service.resolve_prompt("stage_2_themes", "text", "p1")
        assert ref.source == "project_override"
        assert ref.template.user_prompt == "Only {{team}}."
        assert ref.template.system_prompt == ""

    @pytest.mark.asyncio
    async def test_invalidate_cache_after_external_write(self, settings, store):
        service = GenStageService.build(settings, store=store)
        await service.templates.seed_stage("stage_2_themes", [BASE_PROMPT])
        assert (await service.resolve_prompt("stage_2_themes", "text")).template.user_prompt == (
            "Themes for {{team}}."
        )

        doc = await store.get(PROMPT_TEMPLATES, "stage_2_themes")
        doc["prompts"][0]["fragments"][-1]["content"] = "Edited elsewhere for {{team}}."
        await store.set(PROMPT_TEMPLATES, "stage_2_themes", doc)

        stale = await service.resolve_prompt("stage_2_themes", "text")
        assert stale.template.user_prompt == "Themes for {{team}}."
        service.invalidate_cache()
        fresh = await service.resolve_prompt("stage_2_themes", "text")
        assert fresh.template.user_prompt == "Edited elsewhere for {{team}}."


class TestResolveAdaptor:
    """Same (project, stage, capability) with each layer present in turn."""

    @pytest.mark.asyncio
    async def test_stage_default(self, service):
        handle = await service.resolve_adaptor("p1", "stage_2_themes", "text")
        assert handle.source == "stage-default"
        assert handle.adaptor_id == "gemini"

    @pytest.mark.asyncio
    async def test_project_config_beats_stage_default(self, service):
        await service.model_configs.set_stage_model("p1", "stage_2_themes", "text", "openai", "gpt-4o")
        handle = await service.resolve_adaptor("p1", "stage_2_themes", "text")
        assert handle.source == "project"
        assert (handle.adaptor_id, handle.model_id) == ("openai", "gpt-4o")

    @pytest.mark.asyncio
    async def test_explicit_beats_project_config(self, service):
        await service.model_configs.set_stage_model("p1", "stage_2_themes", "text", "openai", "gpt-4o")
        handle = await service.resolve_adaptor(
            "p1", "stage_2_themes", "text", explicit_override="anthropic:claude-sonnet-4-5"
        )
        assert handle.source == "explicit"
        assert handle.adaptor_id == "anthropic"

    @pytest.mark.asyncio
    async def test_project_override_model_ref(self, service):
        await service.templates.save_override("p1", "stage_2_themes", "text", {
            "user_prompt": "Only {{team}}.",
            "model_ref": {"adaptor_id": "openai", "model_id": "override-model"},
        })
        handle = await service.resolve_adaptor("p1", "stage_2_themes", "text")
        assert (handle.adaptor_id, handle.model_id, handle.source) == ("openai", "override-model", "project")
        other = await service.resolve_adaptor("p2", "stage_2_themes", "text")
        assert other.adaptor_id == "gemini"


class TestPlan:
    def test_plan_from_dict(self, service):
        batch = service.plan({
            "project_id": "p1", "product": "gamelab", "task": "animation",
            "items": [{"item_id": "a", "input": {}}],
        })
        assert [j.step for j in batch.jobs] == ["screenplay", "render"]
        assert batch.status == "accepted"

    def test_plan_empty(self, service):
        with pytest.raises(EmptyBatch):
            service.plan({"project_id": "p1", "product": "gamelab", "task": "themes"})

    def test_plan_unknown_task(self, service):
        with pytest.raises(UnknownPipeline):
            service.plan({
                "project_id": "p1", "product": "gamelab", "task": "export",
                "items": [{"item_id": "a"}],
            })

    def test_plan_malformed_request(self, service):
        with pytest.raises(InvalidBatchRequest) as exc_info:
            service.plan({"product": "gamelab", "task": "themes", "items": "hawks"})
        assert isinstance(exc_info.value, PlannerValidationError)
        assert exc_info.value.kind == "invalid_request"
        assert "project_id" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_run_batch_malformed_request_emits_nothing(self, service):
        sink = MemorySink()
        with pytest.raises(InvalidBatchRequest):
            await service.run_batch(
                {"project_id": "p1", "product": "gamelab", "task": "themes", "items": [{"input": {}}]},
                sink,
            )
        assert sink.events == []

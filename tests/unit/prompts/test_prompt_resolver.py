# tests/unit/prompts/test_prompt_resolver.py — v1
"""Tests for prompts/resolver.py — lookup order, caching, substitution."""

from __future__ import annotations

import pytest

from genstage.core.errors import TemplateNotFound
from genstage.prompts.resolver import substitute_variables

STAGE = "stage_2_themes"


class TestSubstituteVariables:
    def test_replaces_known(self):
        assert substitute_variables("Go {{team}}!", {"team": "Hawks"}) == "Go Hawks!"

    def test_unknown_left_literal(self):
        assert substitute_variables("{{team}} vs {{rival}}", {"team": "Hawks"}) == "Hawks vs {{rival}}"

    def test_dotted_names(self):
        assert substitute_variables("{{theme.name}}", {"theme.name": "Rivalry"}) == "Rivalry"

    def test_single_pass(self):
        out = substitute_variables("{{a}}", {"a": "{{b}}", "b": "nope"})
        assert out == "{{b}}"

    def test_non_string_values(self):
        assert substitute_variables("{{n}} goals", {"n": 3}) == "3 goals"

    def test_empty_template(self):
        assert substitute_variables("", {"a": 1}) == ""


class TestResolve:
    @pytest.mark.asyncio
    async def test_stage_default(self, seeded_templates, prompt_resolver):
        ref = await prompt_resolver.resolve(STAGE, "text")
        assert ref.source == "stage_default"
        assert ref.template.id == "themes_text_default"
        assert ref.project_id is None

    @pytest.mark.asyncio
    async def test_project_override_wins(self, seeded_templates, prompt_resolver):
        await seeded_templates.save_override("p1", STAGE, "text", {"user_prompt": "Custom {{team}}"})
        ref = await prompt_resolver.resolve(STAGE, "text", project_id="p1")
        assert ref.source == "project_override"
        assert ref.template.user_prompt == "Custom {{team}}"

    @pytest.mark.asyncio
    async def test_override_scoped_to_project(self, seeded_templates, prompt_resolver):
        await seeded_templates.save_override("p1", STAGE, "text", {"user_prompt": "Custom"})
        ref = await prompt_resolver.resolve(STAGE, "text", project_id="p2")
        assert ref.source == "stage_default"

    @pytest.mark.asyncio
    async def test_override_scoped_to_capability(self, seeded_templates, prompt_resolver):
        await seeded_templates.save_override("p1", STAGE, "text", {"user_prompt": "Custom"})
        ref = await prompt_resolver.resolve(STAGE, "image", project_id="p1")
        assert ref.template.id == "themes_image_default"

    @pytest.mark.asyncio
    async def test_not_found(self, seeded_templates, prompt_resolver):
        with pytest.raises(TemplateNotFound) as exc_info:
            await prompt_resolver.resolve(STAGE, "video", project_id="p1")
        assert exc_info.value.kind == "template_not_found"

    @pytest.mark.asyncio
    async def test_first_active_when_no_default(self, templates, prompt_resolver):
        await templates.add_prompt("stage_3_players", {
            "id": "a", "capability": "text", "name": "A", "user_prompt": "A"})
        await templates.add_prompt("stage_3_players", {
            "id": "b", "capability": "text", "name": "B", "user_prompt": "B"})
        await templates.deactivate_prompt("stage_3_players", "a")
        ref = await prompt_resolver.resolve("stage_3_players", "text")
        assert ref.template.id == "b"

    @pytest.mark.asyncio
    async def test_default_preferred_over_order(self, templates, prompt_resolver):
        await templates.add_prompt("stage_3_players", {
            "id": "a", "capability": "text", "name": "A", "user_prompt": "A"})
        await templates.add_prompt("stage_3_players", {
            "id": "b", "capability": "text", "name": "B", "user_prompt": "B", "is_default": True})
        ref = await prompt_resolver.resolve("stage_3_players", "text")
        assert ref.template.id == "b"


class TestCaching:
    @pytest.mark.asyncio
    async def test_second_resolve_hits_cache(self, seeded_templates, prompt_resolver, cache):
        await prompt_resolver.resolve(STAGE, "text", project_id="p1")
        hits = cache.hits
        await prompt_resolver.resolve(STAGE, "text", project_id="p1")
        assert cache.hits == hits + 1

    @pytest.mark.asyncio
    async def test_edit_visible_after_write(self, seeded_templates, prompt_resolver):
        before = await prompt_resolver.resolve(STAGE, "text", project_id="p1")
        assert before.source == "stage_default"
        await seeded_templates.save_override("p1", STAGE, "text", {"user_prompt": "Now"})
        after = await prompt_resolver.resolve(STAGE, "text", project_id="p1")
        assert after.source == "project_override"

    @pytest.mark.asyncio
    async def test_version_activation_visible(self, seeded_templates, prompt_resolver):
        await prompt_resolver.resolve(STAGE, "text")
        await seeded_templates.save_as_new_version(
            STAGE, "themes_text_default", {"user_prompt": "V2 {{team}}"}, activate=True
        )
        ref = await prompt_resolver.resolve(STAGE, "text")
        assert ref.template.user_prompt == "V2 {{team}}"


class TestRender:
    @pytest.mark.asyncio
    async def test_render(self, seeded_templates, prompt_resolver):
        ref = await prompt_resolver.resolve(STAGE, "text")
        rendered = prompt_resolver.render(ref, {"team": "Hawks", "topic": "derby day"})
        assert rendered.system == "You are a sports marketing copywriter."
        assert rendered.user == "Suggest themes for Hawks about derby day."
        assert rendered.full_text.endswith("derby day.")
        assert rendered.output_format == "text"

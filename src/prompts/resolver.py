# src/prompts/resolver.py — v2
"""Effective prompt template lookup and variable substitution.

Lookup order for (stage_type, capability, project_id):
  1. Project override in project_ai_config/{project}.prompt_overrides
  2. Stage default: default-flagged active prompt of that capability,
     else the first active prompt of that capability
  3. TemplateNotFound (never synthesized)

Resolutions are cached in the injected ResolverCache; writes through
PromptTemplateService invalidate it.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from genstage.core.errors import TemplateNotFound
from genstage.core.models import PromptTemplate, ResolvedPrompt, ResolvedTemplateRef
from genstage.prompts.cache import ResolverCache
from genstage.store.base_document_store import (
    PROJECT_AI_CONFIG,
    PROMPT_TEMPLATES,
    BaseDocumentStore,
)

logger = logging.getLogger(__name__)

_VARIABLE_RE = re.compile(r"\{\{([A-Za-z_][\w.]*)\}\}")


def substitute_variables(template: str, variables: dict[str, Any]) -> str:
    """Replace every ``{{name}}`` with ``str(variables[name])``.

    Single pass: substituted values are never re-scanned. Unknown names
    stay as literal text.
    """
    if not template:
        return template

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in variables:
            return str(variables[name])
        logger.debug("Unresolved template variable: %s", name)
        return match.group(0)

    return _VARIABLE_RE.sub(_replace, template)


class PromptResolver:
    """Resolve and render prompt templates.

    Args:
        store: Document store holding templates and project config.
        cache: Shared resolver cache.
    """

    def __init__(self, store: BaseDocumentStore, cache: ResolverCache) -> None:
        self._store = store
        self._cache = cache

    async def resolve(
        self,
        stage_type: str,
        capability: str,
        project_id: str | None = None,
    ) -> ResolvedTemplateRef:
        """Return the effective template for a (stage, capability, project).

        Raises:
            TemplateNotFound: Neither an override nor a stage default exists.
        """
        key = ("prompt", stage_type, project_id or "", capability)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        ref: ResolvedTemplateRef | None = None
        if project_id:
            override = await self.project_override(project_id, stage_type, capability)
            if override is not None:
                ref = ResolvedTemplateRef(
                    stage_type=stage_type,
                    capability=capability,
                    project_id=project_id,
                    source="project_override",
                    template=override,
                )

        if ref is None:
            default = await self.stage_default(stage_type, capability)
            if default is None:
                raise TemplateNotFound(stage_type, capability, project_id)
            ref = ResolvedTemplateRef(
                stage_type=stage_type,
                capability=capability,
                project_id=project_id,
                source="stage_default",
                template=default,
            )

        logger.debug(
            "Resolved prompt %s:%s for project %s -> %s (%s)",
            stage_type, capability, project_id or "-", ref.template.id, ref.source,
        )
        self._cache.put(key, ref)
        return ref

    async def stage_default(
        self, stage_type: str, capability: str
    ) -> PromptTemplate | None:
        """Default prompt of a stage for one capability, or None."""
        doc = await self._store.get(PROMPT_TEMPLATES, stage_type) or {}
        candidates = [
            PromptTemplate.model_validate(p)
            for p in doc.get("prompts", [])
            if p.get("capability") == capability and p.get("is_active", True)
        ]
        for prompt in candidates:
            if prompt.is_default:
                return prompt
        return candidates[0] if candidates else None

    def render(
        self, ref: ResolvedTemplateRef, variables: dict[str, Any]
    ) -> ResolvedPrompt:
        """Substitute variables into the system and user parts of a template."""
        template = ref.template
        return ResolvedPrompt(
            system=substitute_variables(template.system_prompt, variables),
            user=substitute_variables(template.user_prompt, variables),
            output_format=template.output_format,
        )

    async def project_override(
        self, project_id: str, stage_type: str, capability: str
    ) -> PromptTemplate | None:
        """Project override template for one capability, or None."""
        config = await self._store.get(PROJECT_AI_CONFIG, project_id)
        if not config:
            return None
        stage = (config.get("prompt_overrides") or {}).get(stage_type) or {}
        data = stage.get(capability)
        if not data:
            return None
        return PromptTemplate.model_validate(data)

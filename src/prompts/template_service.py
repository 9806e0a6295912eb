# src/prompts/template_service.py — v1
"""Prompt template CRUD, version history and project overrides.

Storage layout:
  prompt_templates/{stage_type}      one document per stage, list of prompts
  prompt_versions/{stage}__{id}_vN   one document per saved version
  project_ai_config/{project_id}     prompt_overrides[stage][capability]

Every successful write invalidates the resolver cache before returning, so
the next resolve in this process sees the edit.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from genstage.core.errors import PromptNotFound, PromptValidationError, VersionConflict
from genstage.core.models import PromptFragment, PromptTemplate, PromptVersion
from genstage.prompts.cache import ResolverCache
from genstage.store.base_document_store import (
    PROJECT_AI_CONFIG,
    PROMPT_TEMPLATES,
    PROMPT_VERSIONS,
    BaseDocumentStore,
)

logger = logging.getLogger(__name__)

_IMMUTABLE_FIELDS = {"id", "capability", "stage_type", "created_at", "created_by"}
_BODY_FIELDS = ("fragments", "variables", "output_format", "model_ref")


class PromptTemplateService:
    """Store-backed prompt management.

    Args:
        store: Document store holding templates, versions and project config.
        cache: Resolver cache invalidated on every write.
    """

    def __init__(self, store: BaseDocumentStore, cache: ResolverCache) -> None:
        self._store = store
        self._cache = cache

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_stage_template(self, stage_type: str) -> dict[str, Any] | None:
        """Raw stage document (all prompts of the stage), or None."""
        return await self._store.get(PROMPT_TEMPLATES, stage_type)

    async def list_prompts(
        self, stage_type: str, active_only: bool = True
    ) -> list[PromptTemplate]:
        """All prompts of a stage, optionally only active ones."""
        prompts = await self._load_prompts(stage_type)
        if active_only:
            prompts = [p for p in prompts if p.is_active]
        return prompts

    async def get_prompt(self, stage_type: str, prompt_id: str) -> PromptTemplate:
        """Fetch one prompt.

        Raises:
            PromptNotFound: If the prompt id is unknown in this stage.
        """
        for prompt in await self._load_prompts(stage_type):
            if prompt.id == prompt_id:
                return prompt
        raise PromptNotFound(f"Prompt '{prompt_id}' not found in stage '{stage_type}'")

    async def get_version_history(
        self, stage_type: str, prompt_id: str
    ) -> list[PromptVersion]:
        """Versions of a prompt, newest first."""
        docs = await self._store.list_versions(stage_type, prompt_id)
        return [PromptVersion.model_validate(d) for d in docs]

    async def get_version(
        self, stage_type: str, prompt_id: str, version: int
    ) -> PromptVersion | None:
        doc = await self._store.get(
            PROMPT_VERSIONS, _version_doc_id(stage_type, prompt_id, version)
        )
        return PromptVersion.model_validate(doc) if doc else None

    async def get_override(
        self, project_id: str, stage_type: str, capability: str
    ) -> PromptTemplate | None:
        config = await self._store.get(PROJECT_AI_CONFIG, project_id) or {}
        body = (config.get("prompt_overrides") or {}).get(stage_type, {}) or {}
        data = body.get(capability)
        return PromptTemplate.model_validate(data) if data else None

    # ------------------------------------------------------------------
    # Prompt writes
    # ------------------------------------------------------------------

    async def add_prompt(
        self, stage_type: str, data: dict[str, Any], user_id: str = ""
    ) -> str:
        """Add a prompt to a stage and record it as version 1.

        Returns:
            The new prompt id.

        Raises:
            PromptValidationError: If capability, name or text is missing.
        """
        errors = validate_prompt_data(data)
        if errors:
            raise PromptValidationError("; ".join(errors))

        prompts = await self._load_prompts(stage_type)
        prompt_id = data.get("id") or f"prompt_{data['capability']}_{uuid.uuid4().hex[:8]}"
        if any(p.id == prompt_id for p in prompts):
            raise PromptValidationError(f"Prompt '{prompt_id}' already exists in '{stage_type}'")

        now = _now()
        prompt = PromptTemplate(
            id=prompt_id,
            stage_type=stage_type,
            capability=data["capability"],
            name=data["name"],
            description=data.get("description", ""),
            is_default=bool(data.get("is_default", False)),
            is_active=True,
            current_version=1,
            latest_version=1,
            created_by=user_id,
            updated_by=user_id,
            created_at=now,
            updated_at=now,
            **_body_from(data),
        )
        prompts.append(prompt)

        await self._save_prompts(stage_type, prompts, user_id)
        await self._write_version(prompt, version=1, note="Initial version",
                                  user_id=user_id, chosen=True)
        self._cache.invalidate_all()
        logger.info("Added prompt %s to stage %s", prompt_id, stage_type)
        return prompt_id

    async def update_prompt(
        self,
        stage_type: str,
        prompt_id: str,
        updates: dict[str, Any],
        user_id: str = "",
    ) -> PromptTemplate:
        """Update mutable fields of a prompt in place (no new version)."""
        prompts = await self._load_prompts(stage_type)
        idx = _index_of(prompts, prompt_id, stage_type)

        safe = {k: v for k, v in updates.items() if k not in _IMMUTABLE_FIELDS}
        if any(k in safe for k in ("system_prompt", "user_prompt", "fragments")):
            safe.update(_body_from(safe, fallback=prompts[idx]))
            safe.pop("system_prompt", None)
            safe.pop("user_prompt", None)

        merged = prompts[idx].model_dump()
        merged.update(safe)
        merged.update(updated_at=_now(), updated_by=user_id)
        prompts[idx] = PromptTemplate.model_validate(merged)

        await self._save_prompts(stage_type, prompts, user_id)
        self._cache.invalidate_all()
        logger.info("Updated prompt %s in stage %s", prompt_id, stage_type)
        return prompts[idx]

    async def deactivate_prompt(
        self, stage_type: str, prompt_id: str, user_id: str = ""
    ) -> None:
        prompts = await self._load_prompts(stage_type)
        idx = _index_of(prompts, prompt_id, stage_type)
        if prompts[idx].is_default:
            raise PromptValidationError("Cannot deactivate default prompt")

        prompts[idx] = prompts[idx].model_copy(
            update={"is_active": False, "updated_at": _now(), "updated_by": user_id}
        )
        await self._save_prompts(stage_type, prompts, user_id)
        self._cache.invalidate_all()
        logger.info("Deactivated prompt %s in stage %s", prompt_id, stage_type)

    async def delete_prompt(
        self, stage_type: str, prompt_id: str, user_id: str = ""
    ) -> None:
        prompts = await self._load_prompts(stage_type)
        idx = _index_of(prompts, prompt_id, stage_type)
        if prompts[idx].is_default:
            raise PromptValidationError("Cannot delete default prompts")

        del prompts[idx]
        await self._save_prompts(stage_type, prompts, user_id)
        self._cache.invalidate_all()
        logger.info("Deleted prompt %s from stage %s", prompt_id, stage_type)

    async def seed_stage(
        self, stage_type: str, prompts: list[dict[str, Any]], user_id: str = "seed"
    ) -> list[str]:
        """Insert prompts that are not present yet; existing ids are left alone."""
        existing = {p.id for p in await self._load_prompts(stage_type)}
        added: list[str] = []
        for data in prompts:
            if data.get("id") and data["id"] in existing:
                logger.debug("Seed skip: %s already in %s", data["id"], stage_type)
                continue
            added.append(await self.add_prompt(stage_type, data, user_id))
        logger.info("Seeded %d prompts into %s", len(added), stage_type)
        return added

    # ------------------------------------------------------------------
    # Versions
    # ------------------------------------------------------------------

    async def save_as_new_version(
        self,
        stage_type: str,
        prompt_id: str,
        data: dict[str, Any],
        version_note: str = "",
        user_id: str = "",
        activate: bool = False,
    ) -> int:
        """Snapshot a new version of a prompt body, optionally activating it.

        Returns:
            The new version number.
        """
        prompts = await self._load_prompts(stage_type)
        idx = _index_of(prompts, prompt_id, stage_type)
        prompt = prompts[idx]

        new_version = prompt.latest_version + 1
        body = _body_from(data, fallback=prompt)
        candidate = prompt.model_copy(update=body)

        if activate and prompt.current_version:
            await self._set_chosen(stage_type, prompt_id, prompt.current_version, False)
        await self._write_version(candidate, version=new_version, note=version_note,
                                  user_id=user_id, chosen=activate)

        update: dict[str, Any] = {
            "latest_version": new_version,
            "updated_at": _now(),
            "updated_by": user_id,
        }
        if activate:
            update.update(body)
            update["current_version"] = new_version
        prompts[idx] = prompt.model_copy(update=update)

        await self._save_prompts(stage_type, prompts, user_id)
        self._cache.invalidate_all()
        logger.info(
            "Created version %d for %s:%s%s",
            new_version, stage_type, prompt_id, " (activated)" if activate else "",
        )
        return new_version

    async def activate_version(
        self, stage_type: str, prompt_id: str, version: int, user_id: str = ""
    ) -> None:
        """Make ``version`` the active body of the prompt."""
        snapshot = await self.get_version(stage_type, prompt_id, version)
        if snapshot is None:
            raise PromptNotFound(f"Version {version} of '{prompt_id}' not found")

        prompts = await self._load_prompts(stage_type)
        idx = _index_of(prompts, prompt_id, stage_type)
        prompt = prompts[idx]

        if prompt.current_version and prompt.current_version != version:
            await self._set_chosen(stage_type, prompt_id, prompt.current_version, False)
        await self._set_chosen(stage_type, prompt_id, version, True)

        prompts[idx] = prompt.model_copy(
            update={
                "fragments": snapshot.fragments,
                "variables": snapshot.variables,
                "output_format": snapshot.output_format,
                "model_ref": snapshot.model_ref,
                "current_version": version,
                "updated_at": _now(),
                "updated_by": user_id,
            }
        )
        await self._save_prompts(stage_type, prompts, user_id)
        self._cache.invalidate_all()
        logger.info("Activated version %d for %s:%s", version, stage_type, prompt_id)

    async def delete_version(
        self, stage_type: str, prompt_id: str, version: int, user_id: str = ""
    ) -> None:
        """Delete a version.

        Raises:
            PromptNotFound: If the version does not exist.
            VersionConflict: If the version is the active one.
        """
        snapshot = await self.get_version(stage_type, prompt_id, version)
        if snapshot is None:
            raise PromptNotFound(f"Version {version} of '{prompt_id}' not found")
        if snapshot.is_chosen:
            raise VersionConflict("Cannot delete the active version")

        await self._store.delete(
            PROMPT_VERSIONS, _version_doc_id(stage_type, prompt_id, version)
        )
        self._cache.invalidate_all()
        logger.info("Deleted version %d for %s:%s (by %s)", version, stage_type,
                    prompt_id, user_id or "unknown")

    # ------------------------------------------------------------------
    # Project overrides
    # ------------------------------------------------------------------

    async def save_override(
        self,
        project_id: str,
        stage_type: str,
        capability: str,
        data: dict[str, Any],
        user_id: str = "",
    ) -> PromptTemplate:
        """Store a full prompt body used instead of the stage default for one project."""
        payload = {"capability": capability, "name": data.get("name") or "Project override", **data}
        errors = validate_prompt_data(payload)
        if errors:
            raise PromptValidationError("; ".join(errors))

        override = PromptTemplate(
            id=data.get("id") or f"override_{project_id}_{stage_type}_{capability}",
            stage_type=stage_type,
            capability=capability,
            name=payload["name"],
            description=data.get("description", ""),
            created_by=user_id,
            updated_by=user_id,
            **_body_from(payload),
        )
        await self._store.set(
            PROJECT_AI_CONFIG,
            project_id,
            {"prompt_overrides": {stage_type: {capability: override.model_dump(mode="json")}}},
            merge=True,
        )
        self._cache.invalidate_all()
        logger.info("Saved prompt override for %s:%s:%s", project_id, stage_type, capability)
        return override

    async def remove_override(
        self, project_id: str, stage_type: str, capability: str
    ) -> None:
        await self._store.set(
            PROJECT_AI_CONFIG,
            project_id,
            {"prompt_overrides": {stage_type: {capability: None}}},
            merge=True,
        )
        self._cache.invalidate_all()
        logger.info("Removed prompt override for %s:%s:%s", project_id, stage_type, capability)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _load_prompts(self, stage_type: str) -> list[PromptTemplate]:
        doc = await self._store.get(PROMPT_TEMPLATES, stage_type) or {}
        return [PromptTemplate.model_validate(p) for p in doc.get("prompts", [])]

    async def _save_prompts(
        self, stage_type: str, prompts: list[PromptTemplate], user_id: str
    ) -> None:
        await self._store.set(
            PROMPT_TEMPLATES,
            stage_type,
            {
                "stage_type": stage_type,
                "prompts": [p.model_dump(mode="json") for p in prompts],
                "updated_at": _now().isoformat(),
                "updated_by": user_id,
            },
        )

    async def _write_version(
        self,
        prompt: PromptTemplate,
        version: int,
        note: str,
        user_id: str,
        chosen: bool,
    ) -> None:
        snapshot = PromptVersion(
            id=f"{prompt.id}_v{version}",
            prompt_id=prompt.id,
            stage_type=prompt.stage_type,
            version=version,
            fragments=prompt.fragments,
            variables=prompt.variables,
            output_format=prompt.output_format,
            model_ref=prompt.model_ref,
            version_note=note,
            is_chosen=chosen,
            created_by=user_id,
        )
        await self._store.set(
            PROMPT_VERSIONS,
            _version_doc_id(prompt.stage_type, prompt.id, version),
            snapshot.model_dump(mode="json"),
        )

    async def _set_chosen(
        self, stage_type: str, prompt_id: str, version: int, chosen: bool
    ) -> None:
        doc_id = _version_doc_id(stage_type, prompt_id, version)
        if await self._store.get(PROMPT_VERSIONS, doc_id) is None:
            return
        await self._store.set(PROMPT_VERSIONS, doc_id, {"is_chosen": chosen}, merge=True)


def validate_prompt_data(data: dict[str, Any]) -> list[str]:
    """Return validation errors for a prompt payload (empty when valid)."""
    errors: list[str] = []
    if not data.get("capability"):
        errors.append("capability is required")
    elif data["capability"] not in ("text", "image", "video"):
        errors.append(f"unknown capability {data['capability']!r}")
    if not data.get("name"):
        errors.append("name is required")
    has_text = bool(data.get("system_prompt") or data.get("user_prompt")) or any(
        (f.get("content") if isinstance(f, dict) else f.content)
        for f in data.get("fragments", [])
    )
    if not has_text:
        errors.append("At least one of system_prompt or user_prompt is required")
    return errors


def _body_from(
    data: dict[str, Any], fallback: PromptTemplate | None = None
) -> dict[str, Any]:
    """Build the versioned body fields from a payload.

    Accepts either explicit ``fragments`` or ``system_prompt``/``user_prompt``
    shorthands; missing fields fall back to the existing prompt.
    """
    if "fragments" in data and data["fragments"] is not None:
        fragments = [
            f if isinstance(f, PromptFragment) else PromptFragment.model_validate(f)
            for f in data["fragments"]
        ]
    elif "system_prompt" in data or "user_prompt" in data:
        system = data.get("system_prompt", fallback.system_prompt if fallback else "")
        user = data.get("user_prompt", fallback.user_prompt if fallback else "")
        fragments = []
        if system:
            fragments.append(PromptFragment(role="system", content=system))
        if user:
            fragments.append(PromptFragment(role="user", content=user))
    else:
        fragments = list(fallback.fragments) if fallback else []

    body: dict[str, Any] = {"fragments": fragments}
    for name in _BODY_FIELDS[1:]:
        if name in data and data[name] is not None:
            body[name] = data[name]
        elif fallback is not None:
            body[name] = getattr(fallback, name)
    return body


def _index_of(prompts: list[PromptTemplate], prompt_id: str, stage_type: str) -> int:
    for i, prompt in enumerate(prompts):
        if prompt.id == prompt_id:
            return i
    raise PromptNotFound(f"Prompt '{prompt_id}' not found in stage '{stage_type}'")


def _version_doc_id(stage_type: str, prompt_id: str, version: int) -> str:
    return f"{stage_type}__{prompt_id}_v{version}"


def _now() -> datetime:
    return datetime.now(timezone.utc)

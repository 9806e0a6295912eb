# src/adaptors/model_config_service.py — v1
"""Writes to project_ai_config: per-stage models, project defaults, credentials.

Every write invalidates the resolver cache before returning.
"""

from __future__ import annotations

import logging
from typing import Any

from genstage.adaptors.registry import declared_capabilities, is_registered
from genstage.core.errors import AdaptorUnavailable
from genstage.prompts.cache import ResolverCache
from genstage.store.base_document_store import PROJECT_AI_CONFIG, BaseDocumentStore

logger = logging.getLogger(__name__)


class ModelConfigService:
    """Project-level model selection."""

    def __init__(self, store: BaseDocumentStore, cache: ResolverCache) -> None:
        self._store = store
        self._cache = cache

    async def get_project_config(self, project_id: str) -> dict[str, Any]:
        return await self._store.get(PROJECT_AI_CONFIG, project_id) or {}

    async def set_stage_model(
        self,
        project_id: str,
        stage_type: str,
        capability: str,
        adaptor_id: str,
        model_id: str,
    ) -> None:
        """Pin an adaptor/model for one stage capability of a project."""
        _check_adaptor(adaptor_id, capability)
        await self._write(
            project_id,
            {"stage_configs": {stage_type: {capability: {"adaptor": adaptor_id, "model": model_id}}}},
        )
        logger.info(
            "Set model for %s:%s:%s -> %s:%s",
            project_id, stage_type, capability, adaptor_id, model_id,
        )

    async def clear_stage_model(
        self, project_id: str, stage_type: str, capability: str
    ) -> None:
        await self._write(project_id, {"stage_configs": {stage_type: {capability: None}}})
        logger.info("Cleared model for %s:%s:%s", project_id, stage_type, capability)

    async def set_project_default(
        self, project_id: str, adaptor_id: str, model_id: str
    ) -> None:
        _check_adaptor(adaptor_id)
        await self._write(project_id, {"default_adaptor": adaptor_id, "default_model": model_id})
        logger.info("Set project default for %s -> %s:%s", project_id, adaptor_id, model_id)

    async def set_credentials(
        self, project_id: str, adaptor_id: str, credentials: dict[str, Any]
    ) -> None:
        """Store project-specific credentials (api_key, organization...)."""
        _check_adaptor(adaptor_id)
        await self._write(project_id, {"adaptor_credentials": {adaptor_id: credentials}})
        logger.info("Updated %s credentials for project %s", adaptor_id, project_id)

    async def _write(self, project_id: str, update: dict[str, Any]) -> None:
        await self._store.set(PROJECT_AI_CONFIG, project_id, update, merge=True)
        self._cache.invalidate_all()


def _check_adaptor(adaptor_id: str, capability: str | None = None) -> None:
    if not is_registered(adaptor_id):
        raise AdaptorUnavailable(f"Adaptor '{adaptor_id}' is not registered", adaptor_id=adaptor_id)
    if capability and capability not in declared_capabilities(adaptor_id):
        raise AdaptorUnavailable(
            f"Adaptor '{adaptor_id}' does not support capability '{capability}'",
            adaptor_id=adaptor_id,
        )

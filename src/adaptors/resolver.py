# src/adaptors/resolver.py — v2
"""Per-request adaptor/model resolution with layered precedence.

Resolution order:
  1. Explicit override passed by the caller (no store access)
  2. Project config: stage_configs[stage][capability], then model_ref on
     the project's prompt override, then the project's
     default_adaptor/default_model
  3. Stage default: model_ref on the stage's default prompt (skipped when
     the project has an override for the capability), then the
     STAGE_MODEL_DEFAULTS map (settings JSON over the declarative table),
     then the global default_adaptor/default_model from settings
  4. AdaptorUnavailable("no adaptor configured")

The resolved ModelConfig is cached in the shared ResolverCache. Adaptor
instances are cached separately per (adaptor, model, credentials) and
dropped whenever the resolver cache is invalidated.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

from genstage.adaptors.base_adaptor import BaseAdaptor
from genstage.adaptors.registry import create_adaptor, declared_capabilities, is_registered
from genstage.config.stages import STAGE_MODEL_DEFAULTS, parse_model_ref
from genstage.core.errors import AdaptorUnavailable
from genstage.core.models import ModelConfig, PromptTemplate
from genstage.prompts.cache import ResolverCache
from genstage.store.base_document_store import PROJECT_AI_CONFIG, BaseDocumentStore

if TYPE_CHECKING:
    from genstage.config.settings import Settings
    from genstage.prompts.resolver import PromptResolver

logger = logging.getLogger(__name__)

AdaptorFactory = Callable[..., BaseAdaptor]


@dataclass(frozen=True)
class AdaptorHandle:
    """Ready-to-call adaptor plus the config that selected it."""

    adaptor: BaseAdaptor
    adaptor_id: str
    model_id: str
    source: str

    @property
    def config(self) -> ModelConfig:
        return ModelConfig(adaptor_id=self.adaptor_id, model_id=self.model_id, source=self.source)


def coerce_model_config(value: Any, source: str = "explicit") -> ModelConfig | None:
    """Accept a ModelConfig, an 'adaptor:model' string or an {adaptor, model} dict."""
    if value is None or value == "":
        return None
    if isinstance(value, ModelConfig):
        return value.model_copy(update={"source": source})
    if isinstance(value, str):
        parsed = parse_model_ref(value)
        if parsed is None:
            return None
        return ModelConfig(adaptor_id=parsed[0], model_id=parsed[1], source=source)
    if isinstance(value, dict):
        adaptor = value.get("adaptor_id") or value.get("adaptor")
        model = value.get("model_id") or value.get("model")
        if adaptor and model:
            return ModelConfig(adaptor_id=adaptor, model_id=model, source=source)
    return None


class ModelResolver:
    """Resolve which adaptor instance and model serve a (project, stage, capability).

    Args:
        store: Document store holding project_ai_config.
        cache: Shared resolver cache.
        settings: Global settings (credentials, defaults).
        prompt_resolver: Used to read model_ref from the project override
            and the stage default prompt.
        adaptor_factory: Builds adaptor instances; defaults to the registry.
    """

    def __init__(
        self,
        store: BaseDocumentStore,
        cache: ResolverCache,
        settings: Settings,
        prompt_resolver: PromptResolver | None = None,
        adaptor_factory: AdaptorFactory | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._settings = settings
        self._prompt_resolver = prompt_resolver
        self._factory = adaptor_factory or create_adaptor
        self._adaptors: dict[str, BaseAdaptor] = {}
        cache.add_invalidation_hook(self._adaptors.clear)

    async def resolve(
        self,
        project_id: str | None,
        stage_type: str,
        capability: str,
        explicit_override: ModelConfig | str | dict[str, Any] | None = None,
    ) -> AdaptorHandle:
        """Resolve an adaptor handle.

        Raises:
            AdaptorUnavailable: Unregistered adaptor, unsupported capability,
                or no layer supplies a config.
        """
        explicit = coerce_model_config(explicit_override, source="explicit")
        if explicit is not None:
            return self._handle(explicit, capability, credentials=None)

        config = await self.resolve_config(project_id, stage_type, capability)
        credentials = await self._project_credentials(project_id, config.adaptor_id)
        return self._handle(config, capability, credentials)

    async def resolve_config(
        self, project_id: str | None, stage_type: str, capability: str
    ) -> ModelConfig:
        """Resolve the ModelConfig only (no adaptor instance)."""
        key = ("model", stage_type, project_id or "", capability)
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        config = None
        override = None
        if project_id:
            if self._prompt_resolver is not None:
                override = await self._prompt_resolver.project_override(
                    project_id, stage_type, capability
                )
            config = await self._project_config(project_id, stage_type, capability, override)
        if config is None:
            # An override replaces the base template, model_ref included.
            config = await self._stage_default(
                stage_type, capability, use_prompt_ref=override is None
            )
        if config is None:
            raise AdaptorUnavailable(
                f"no adaptor configured for stage '{stage_type}' capability '{capability}'"
            )

        logger.debug(
            "Resolved model %s:%s for project %s -> %s (%s)",
            stage_type, capability, project_id or "-", config.key, config.source,
        )
        self._cache.put(key, config)
        return config

    # --- Layers ---

    async def _project_config(
        self,
        project_id: str,
        stage_type: str,
        capability: str,
        override: PromptTemplate | None = None,
    ) -> ModelConfig | None:
        doc = await self._store.get(PROJECT_AI_CONFIG, project_id)
        if not doc:
            return None
        stage_cfg = (doc.get("stage_configs") or {}).get(stage_type) or {}
        config = coerce_model_config(stage_cfg.get(capability), source="project")
        if config is not None:
            return config
        if override is not None and override.model_ref is not None:
            return override.model_ref.model_copy(update={"source": "project"})
        if doc.get("default_adaptor") and doc.get("default_model"):
            return ModelConfig(
                adaptor_id=doc["default_adaptor"],
                model_id=doc["default_model"],
                source="project",
            )
        return None

    async def _stage_default(
        self, stage_type: str, capability: str, use_prompt_ref: bool = True
    ) -> ModelConfig | None:
        if use_prompt_ref and self._prompt_resolver is not None:
            prompt = await self._prompt_resolver.stage_default(stage_type, capability)
            if prompt is not None and prompt.model_ref is not None:
                return prompt.model_ref.model_copy(update={"source": "stage-default"})

        override = self._settings.stage_model_defaults_map.get(stage_type, {}).get(capability)
        declared = STAGE_MODEL_DEFAULTS.get(stage_type, {}).get(capability)
        for value in (override, declared):
            config = coerce_model_config(value, source="stage-default")
            if config is not None:
                return config

        if self._settings.default_adaptor and self._settings.default_model:
            return ModelConfig(
                adaptor_id=self._settings.default_adaptor,
                model_id=self._settings.default_model,
                source="stage-default",
            )
        return None

    async def _project_credentials(
        self, project_id: str | None, adaptor_id: str
    ) -> dict[str, Any] | None:
        if not project_id:
            return None
        doc = await self._store.get(PROJECT_AI_CONFIG, project_id) or {}
        creds = (doc.get("adaptor_credentials") or {}).get(adaptor_id)
        return dict(creds) if creds else None

    # --- Instances ---

    def _handle(
        self,
        config: ModelConfig,
        capability: str,
        credentials: dict[str, Any] | None,
    ) -> AdaptorHandle:
        if not is_registered(config.adaptor_id):
            raise AdaptorUnavailable(
                f"Adaptor '{config.adaptor_id}' is not registered",
                adaptor_id=config.adaptor_id,
            )
        if capability not in declared_capabilities(config.adaptor_id):
            raise AdaptorUnavailable(
                f"Adaptor '{config.adaptor_id}' does not support capability '{capability}'",
                adaptor_id=config.adaptor_id,
            )

        creds = credentials or self._settings.credentials_for(config.adaptor_id)
        instance_key = f"{config.key}:{_fingerprint(creds)}"
        adaptor = self._adaptors.get(instance_key)
        if adaptor is None:
            kwargs: dict[str, Any] = {}
            if config.adaptor_id == "gemini":
                kwargs["poll_interval_s"] = self._settings.video_poll_interval_s
            adaptor = self._factory(config.adaptor_id, config.model_id, creds, **kwargs)
            self._adaptors[instance_key] = adaptor
            logger.info("Created adaptor %s (source: %s)", config.key, config.source)

        return AdaptorHandle(
            adaptor=adaptor,
            adaptor_id=config.adaptor_id,
            model_id=config.model_id,
            source=config.source,
        )


def _fingerprint(credentials: dict[str, Any]) -> str:
    raw = json.dumps(credentials, sort_keys=True, default=str)
    return hashlib.sha256(raw.encode()).hexdigest()[:12]

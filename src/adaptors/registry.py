# src/adaptors/registry.py — v1
"""Adaptor registry: adaptor id -> lazily imported class path.

Provider SDKs are only imported when an adaptor of that kind is first
instantiated, so a deployment without the openai package can still run
Gemini-only batches.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any

from genstage.adaptors.base_adaptor import BaseAdaptor
from genstage.core.errors import AdaptorUnavailable

logger = logging.getLogger(__name__)

_ADAPTOR_REGISTRY: dict[str, str] = {
    "gemini": "genstage.adaptors.gemini_adaptor.GeminiAdaptor",
    "openai": "genstage.adaptors.openai_adaptor.OpenAIAdaptor",
    "anthropic": "genstage.adaptors.anthropic_adaptor.AnthropicAdaptor",
}

# Declared capabilities, checked before any SDK import.
_CAPABILITIES: dict[str, frozenset[str]] = {
    "gemini": frozenset({"text", "image", "video"}),
    "openai": frozenset({"text", "image"}),
    "anthropic": frozenset({"text"}),
}


def is_registered(adaptor_id: str) -> bool:
    return adaptor_id in _ADAPTOR_REGISTRY


def available_adaptors() -> list[str]:
    return sorted(_ADAPTOR_REGISTRY)


def declared_capabilities(adaptor_id: str) -> frozenset[str]:
    """Capabilities registered for an adaptor id (empty if unknown)."""
    return _CAPABILITIES.get(adaptor_id, frozenset())


def create_adaptor(
    adaptor_id: str,
    model: str,
    credentials: dict[str, Any] | None = None,
    **kwargs: Any,
) -> BaseAdaptor:
    """Instantiate the adaptor registered under ``adaptor_id``.

    Args:
        adaptor_id: Registry key (gemini, openai, anthropic or a custom one).
        model: Provider model id.
        credentials: Constructor keyword arguments such as api_key.
        **kwargs: Adaptor-level configuration defaults.

    Raises:
        AdaptorUnavailable: If the adaptor id is not registered.
    """
    if adaptor_id not in _ADAPTOR_REGISTRY:
        raise AdaptorUnavailable(
            f"Unknown adaptor: {adaptor_id!r}. "
            f"Available: {', '.join(available_adaptors())}",
            adaptor_id=adaptor_id,
        )

    adaptor_cls = _import_class(_ADAPTOR_REGISTRY[adaptor_id])
    init_kwargs = dict(kwargs)
    init_kwargs.update(credentials or {})
    init_kwargs["model"] = model

    logger.debug("Creating adaptor: id=%s, model=%s", adaptor_id, model)
    return adaptor_cls(**init_kwargs)


def register_adaptor(
    adaptor_id: str,
    class_path: str,
    capabilities: frozenset[str] | set[str] = frozenset({"text"}),
) -> None:
    """Register a custom adaptor backend.

    Args:
        adaptor_id: Registry identifier.
        class_path: Fully qualified class path implementing BaseAdaptor.
        capabilities: Capabilities the backend implements.
    """
    _ADAPTOR_REGISTRY[adaptor_id] = class_path
    _CAPABILITIES[adaptor_id] = frozenset(capabilities)
    logger.info("Registered adaptor: %s -> %s", adaptor_id, class_path)


def unregister_adaptor(adaptor_id: str) -> None:
    _ADAPTOR_REGISTRY.pop(adaptor_id, None)
    _CAPABILITIES.pop(adaptor_id, None)


def _import_class(class_path: str) -> type:
    """Dynamically import a class from its fully qualified path."""
    module_path, class_name = class_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)

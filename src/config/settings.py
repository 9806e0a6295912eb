# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for all deployment-specific settings: provider
credentials, stage model defaults, engine limits, store and blob backends,
and logging.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === ADAPTORS ===
    # Last-resort adaptor when neither the stage map nor a template names one.
    default_adaptor: str = "gemini"
    default_model: str = "gemini-2.0-flash"

    # Provider API keys (global credentials)
    gemini_api_key: str = ""
    openai_api_key: str = ""
    openai_org_id: str = ""
    anthropic_api_key: str = ""

    # JSON object: {"stage_4_images": {"image": "gemini:imagen-3.0-generate-001"}}
    stage_model_defaults: str = ""

    # === ENGINE ===
    engine_max_concurrency: int = 3
    adaptor_timeout_s: float = 300.0
    video_poll_interval_s: float = 10.0

    # === DOCUMENT STORE ===
    store_backend: Literal["memory", "json", "redis"] = "json"
    store_root: Path = Path("~/.genstage/store")
    store_redis_url: str = ""

    # === BLOB STORE ===
    blob_backend: Literal["local", "s3"] = "local"
    blob_root: Path = Path("~/.genstage/blobs")
    blob_public_base_url: str = ""
    blob_s3_bucket: str = ""
    blob_s3_prefix: str = "genstage/"
    blob_s3_region: str = ""

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "json"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 30

    # --- Validators ---

    @field_validator("engine_max_concurrency")
    @classmethod
    def validate_concurrency(cls, v: int) -> int:  # noqa: N805
        if v < 1:
            raise ValueError("engine_max_concurrency must be >= 1")
        return v

    @field_validator("adaptor_timeout_s")
    @classmethod
    def validate_timeout(cls, v: float) -> float:  # noqa: N805
        if v <= 0:
            raise ValueError("adaptor_timeout_s must be > 0")
        return v

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Validate cross-field consistency rules."""
        errors: list[str] = []

        if self.store_backend == "redis" and not self.store_redis_url:
            errors.append("STORE_BACKEND=redis requires STORE_REDIS_URL")

        if self.blob_backend == "s3" and not self.blob_s3_bucket:
            errors.append("BLOB_BACKEND=s3 requires BLOB_S3_BUCKET")

        if self.stage_model_defaults:
            try:
                parsed = json.loads(self.stage_model_defaults)
            except json.JSONDecodeError as exc:
                errors.append(f"STAGE_MODEL_DEFAULTS is not valid JSON: {exc}")
            else:
                if not isinstance(parsed, dict):
                    errors.append("STAGE_MODEL_DEFAULTS must be a JSON object")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    @property
    def stage_model_defaults_map(self) -> dict[str, dict[str, str]]:
        """Parse the STAGE_MODEL_DEFAULTS JSON override map."""
        if not self.stage_model_defaults:
            return {}
        return json.loads(self.stage_model_defaults)

    def credentials_for(self, adaptor_id: str) -> dict[str, str]:
        """Global credentials for an adaptor, empty when unknown."""
        if adaptor_id == "gemini":
            return {"api_key": self.gemini_api_key}
        if adaptor_id == "openai":
            creds = {"api_key": self.openai_api_key}
            if self.openai_org_id:
                creds["organization"] = self.openai_org_id
            return creds
        if adaptor_id == "anthropic":
            return {"api_key": self.anthropic_api_key}
        return {}


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-request config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]

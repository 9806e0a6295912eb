# src/core/models.py — v2
"""Shared Pydantic domain models used across modules.

No module redefines these types; all imports come from core.models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

Capability = Literal["text", "image", "video"]
JobStatus = Literal["pending", "running", "done", "failed"]
BatchStatus = Literal["accepted", "executing", "terminal"]
ModelSource = Literal["explicit", "project", "stage-default"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# === MODEL SELECTION ===


class ModelConfig(BaseModel):
    """Which adaptor and model to use, and which layer chose them."""

    model_config = ConfigDict(protected_namespaces=())

    adaptor_id: str
    model_id: str
    source: ModelSource = "explicit"

    @property
    def key(self) -> str:
        """Return 'adaptor:model' string."""
        return f"{self.adaptor_id}:{self.model_id}"


class Usage(BaseModel):
    """Provider usage metadata attached to every adaptor result."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    latency_ms: int = 0


# === PROMPTS ===


class PromptFragment(BaseModel):
    """One role-tagged piece of a prompt."""

    role: Literal["system", "user"]
    content: str


class PromptTemplate(BaseModel):
    """A stage prompt, or a project override body for one stage."""

    id: str
    stage_type: str
    capability: Capability
    name: str
    description: str = ""
    fragments: list[PromptFragment] = Field(default_factory=list)
    variables: list[str] = Field(default_factory=list)
    output_format: Literal["text", "json"] = "text"
    model_ref: ModelConfig | None = None
    is_default: bool = False
    is_active: bool = True
    current_version: int | None = None
    latest_version: int = 0
    created_by: str = ""
    updated_by: str = ""
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def system_prompt(self) -> str:
        return "\n\n".join(f.content for f in self.fragments if f.role == "system")

    @property
    def user_prompt(self) -> str:
        return "\n\n".join(f.content for f in self.fragments if f.role == "user")


class PromptVersion(BaseModel):
    """Immutable snapshot of a prompt body."""

    id: str
    prompt_id: str
    stage_type: str
    version: int
    fragments: list[PromptFragment] = Field(default_factory=list)
    variables: list[str] = Field(default_factory=list)
    output_format: Literal["text", "json"] = "text"
    model_ref: ModelConfig | None = None
    version_note: str = ""
    is_chosen: bool = False
    created_by: str = ""
    created_at: datetime = Field(default_factory=_utcnow)


class ResolvedTemplateRef(BaseModel):
    """Effective template for a (stage, capability, project) lookup."""

    stage_type: str
    capability: Capability
    project_id: str | None = None
    source: Literal["project_override", "stage_default"]
    template: PromptTemplate


class ResolvedPrompt(BaseModel):
    """Prompt text after variable substitution."""

    system: str = ""
    user: str = ""
    output_format: Literal["text", "json"] = "text"

    @property
    def full_text(self) -> str:
        """System and user text joined the way adaptors receive a single prompt."""
        if self.system:
            return f"{self.system}\n\n{self.user}"
        return self.user


# === BATCHES ===


class BatchItem(BaseModel):
    """One unit of work requested by the caller."""

    item_id: str
    input: dict[str, Any] = Field(default_factory=dict)


class BatchRequest(BaseModel):
    """Caller-submitted batch: run one product task for every item."""

    project_id: str
    product: str
    task: str
    items: list[BatchItem] = Field(default_factory=list)


class GenerationJob(BaseModel):
    """A single adaptor invocation for one step of one item."""

    job_id: str
    item_id: str
    # Position of the item in the request; distinguishes duplicate item ids.
    slot: int = 0
    step: str
    stage_type: str
    capability: Capability
    input: dict[str, Any] = Field(default_factory=dict)
    options: dict[str, Any] = Field(default_factory=dict)
    parse_json: bool = False
    predecessors: list[str] = Field(default_factory=list)
    status: JobStatus = "pending"
    result: dict[str, Any] | None = None
    error: str | None = None
    error_kind: str | None = None
    usage: Usage | None = None
    model: ModelConfig | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in ("done", "failed")


class BatchRun(BaseModel):
    """Planned batch: ordered jobs plus overall status."""

    batch_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    project_id: str
    product: str
    task: str
    jobs: list[GenerationJob] = Field(default_factory=list)
    status: BatchStatus = "accepted"
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def item_ids(self) -> list[str]:
        """Distinct item ids in submission order."""
        seen: dict[str, None] = {}
        for job in self.jobs:
            seen.setdefault(job.item_id, None)
        return list(seen)

    @property
    def counts(self) -> dict[str, int]:
        """Job counts by terminal outcome."""
        return {
            "succeeded": sum(1 for j in self.jobs if j.status == "done"),
            "failed": sum(1 for j in self.jobs if j.status == "failed"),
            "pending": sum(1 for j in self.jobs if not j.is_terminal),
        }

    def get_job(self, job_id: str) -> GenerationJob | None:
        for job in self.jobs:
            if job.job_id == job_id:
                return job
        return None

    def jobs_for_item(self, item_id: str) -> list[GenerationJob]:
        return [j for j in self.jobs if j.item_id == item_id]

    def jobs_for_slot(self, slot: int) -> list[GenerationJob]:
        return [j for j in self.jobs if j.slot == slot]

    @property
    def slots(self) -> list[int]:
        """Distinct item slots in submission order."""
        return sorted({j.slot for j in self.jobs})


class ItemOutcome(BaseModel):
    """Final state of one item after all its steps have settled."""

    item_id: str
    status: Literal["succeeded", "failed"]
    result: dict[str, Any] | None = None
    error: str | None = None
    error_kind: str | None = None
    failed_step: str | None = None
    steps: dict[str, dict[str, Any]] = Field(default_factory=dict)
    completed_at: datetime = Field(default_factory=_utcnow)


class FinalSummary(BaseModel):
    """Returned by the engine and carried by the 'complete' event."""

    batch_id: str
    project_id: str
    product: str
    task: str
    total_items: int
    succeeded: int = 0
    failed: int = 0
    outcomes: list[ItemOutcome] = Field(default_factory=list)
    usage: dict[str, Any] = Field(default_factory=dict)
    fatal_error: str | None = None
    cancelled: bool = False
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.fatal_error is None and self.failed == 0

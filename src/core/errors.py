# src/core/errors.py — v2
"""Error taxonomy for resolution, planning and execution.

Every job-level failure carries a ``kind`` (stable string surfaced in
itemResult events and persisted outcomes) and a ``fatal`` flag telling the
engine whether the whole batch must stop.
"""

from __future__ import annotations


class GenerationError(Exception):
    """Base for all orchestration errors."""

    kind: str = "generation_failed"
    fatal: bool = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class TemplateNotFound(GenerationError):
    """No project override and no stage default for a (stage, capability)."""

    kind = "template_not_found"

    def __init__(self, stage_type: str, capability: str, project_id: str | None = None) -> None:
        self.stage_type = stage_type
        self.capability = capability
        self.project_id = project_id
        super().__init__(
            f"No prompt template for stage '{stage_type}' capability '{capability}'"
            + (f" (project '{project_id}')" if project_id else "")
        )


class AdaptorUnavailable(GenerationError):
    """Adaptor id not registered, capability unsupported, or none configured."""

    kind = "adaptor_unavailable"

    def __init__(self, message: str, adaptor_id: str | None = None) -> None:
        self.adaptor_id = adaptor_id
        super().__init__(message)


class AdaptorTimeout(GenerationError):
    """A single adaptor call exceeded the configured timeout."""

    kind = "adaptor_timeout"


class ProviderUnreachable(GenerationError):
    """Provider cannot be reached at all; every further job would fail."""

    kind = "provider_unreachable"
    fatal = True


class GenerationFailed(GenerationError):
    """Provider returned an error or an unusable result for one job."""

    kind = "generation_failed"


class DependencyFailed(GenerationError):
    """Job never ran because a predecessor failed."""

    kind = "dependency_failed"


class JobCancelled(GenerationError):
    """Job never ran because the subscriber went away."""

    kind = "cancelled"


# --- Planning ---


class PlannerValidationError(GenerationError):
    """Batch refused synchronously before any job runs."""

    kind = "planner_validation"


class EmptyBatch(PlannerValidationError):
    """Batch request with zero items."""

    kind = "empty_batch"


class UnknownPipeline(PlannerValidationError):
    """Product or task has no declared job graph."""

    kind = "unknown_pipeline"


class JobGraphError(PlannerValidationError):
    """Task graph references a missing step or contains a cycle."""

    kind = "job_graph"


class InvalidBatchRequest(PlannerValidationError):
    """Batch request payload does not match the request schema."""

    kind = "invalid_request"


# --- Prompt management ---


class PromptNotFound(LookupError):
    """Prompt or version id does not exist."""


class PromptValidationError(ValueError):
    """Prompt payload is missing required fields."""


class VersionConflict(ValueError):
    """Version operation not allowed in the current state."""

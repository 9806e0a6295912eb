# src/config/stages.py — v1
"""Declarative stage registry and per-stage model defaults.

Stage types name the wizard steps that own prompt templates. The model
defaults are the lowest layer of model resolution, below project config and
explicit overrides. Entries use the same 'adaptor:model' form as the
STAGE_MODEL_DEFAULTS env override.
"""

from __future__ import annotations

CAPABILITIES: tuple[str, ...] = ("text", "image", "video")

STAGE_TYPES: list[str] = [
    "stage_2_themes",
    "stage_2_personas",
    "stage_3_players",
    "stage_3_narratives",
    "stage_4_images",
    "stage_4_storyboard",
    "stage_5_animation",
    "stage_5_screenplay",
    "stage_6_video",
]

STAGE_MODEL_DEFAULTS: dict[str, dict[str, str]] = {
    "stage_2_themes": {
        "text": "gemini:gemini-2.0-flash",
        "image": "gemini:gemini-2.5-flash-image",
    },
    "stage_2_personas": {
        "text": "gemini:gemini-2.0-flash",
        "image": "gemini:gemini-2.5-flash-image",
    },
    "stage_3_players": {"text": "gemini:gemini-2.0-flash"},
    "stage_3_narratives": {"text": "gemini:gemini-2.0-flash"},
    "stage_4_images": {"image": "gemini:gemini-2.5-flash-image"},
    "stage_4_storyboard": {"image": "gemini:gemini-2.5-flash-image"},
    "stage_5_animation": {
        "text": "gemini:gemini-2.0-flash",
        "video": "gemini:veo-3.1-generate-preview",
    },
    "stage_5_screenplay": {"text": "gemini:gemini-2.0-flash"},
    "stage_6_video": {"video": "gemini:veo-3.1-generate-preview"},
}


def parse_model_ref(value: str) -> tuple[str, str] | None:
    """Parse 'adaptor:model' string. Returns None if empty or malformed."""
    if not value or ":" not in value:
        return None
    adaptor_id, model_id = value.split(":", 1)
    adaptor_id, model_id = adaptor_id.strip(), model_id.strip()
    if not adaptor_id or not model_id:
        return None
    return (adaptor_id, model_id)

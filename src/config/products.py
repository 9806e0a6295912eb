# src/config/products.py — v1
"""Declarative job graphs per product line.

Each product exposes named tasks; each task is a small graph of steps run
once per requested item. A step names the stage whose prompt it uses, the
capability it invokes, the steps it depends on, and static adaptor options.
The planner turns these into GenerationJobs; the engine never branches on
product names.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class StepSpec:
    """One node of a task graph."""

    name: str
    stage_type: str
    capability: str
    depends_on: tuple[str, ...] = ()
    options: dict[str, Any] = field(default_factory=dict)
    parse_json: bool = False


@dataclass(frozen=True)
class TaskSpec:
    """Named task: the steps executed for every item of a batch."""

    name: str
    steps: tuple[StepSpec, ...]

    @property
    def step_names(self) -> list[str]:
        return [s.name for s in self.steps]

    def get_step(self, name: str) -> StepSpec | None:
        for step in self.steps:
            if step.name == name:
                return step
        return None


def _themes(stage: str) -> TaskSpec:
    return TaskSpec(
        name="themes",
        steps=(
            StepSpec(
                name="ideate",
                stage_type=stage,
                capability="text",
                options={"temperature": 0.8, "max_tokens": 4000},
                parse_json=True,
            ),
        ),
    )


def _theme_images(stage: str) -> TaskSpec:
    return TaskSpec(
        name="theme_images",
        steps=(
            StepSpec(
                name="render",
                stage_type=stage,
                capability="image",
                options={"size": "1024x1024"},
            ),
        ),
    )


def _animation(stage: str) -> TaskSpec:
    return TaskSpec(
        name="animation",
        steps=(
            StepSpec(
                name="screenplay",
                stage_type=stage,
                capability="text",
                options={"response_format": "json"},
                parse_json=True,
            ),
            StepSpec(
                name="render",
                stage_type=stage,
                capability="video",
                depends_on=("screenplay",),
                options={"duration_seconds": 4, "aspect_ratio": "16:9"},
            ),
        ),
    )


PRODUCT_PIPELINES: dict[str, dict[str, TaskSpec]] = {
    "gamelab": {
        "themes": _themes("stage_2_themes"),
        "theme_images": _theme_images("stage_2_themes"),
        "player_images": TaskSpec(
            name="player_images",
            steps=(
                StepSpec(
                    name="compose",
                    stage_type="stage_4_images",
                    capability="image",
                    options={"size": "1024x1024", "quality": "hd"},
                ),
            ),
        ),
        "animation": _animation("stage_5_animation"),
    },
    "flarelab": {
        "themes": _themes("stage_2_themes"),
        "theme_images": _theme_images("stage_2_themes"),
        "player_recommendations": TaskSpec(
            name="player_recommendations",
            steps=(
                StepSpec(
                    name="recommend",
                    stage_type="stage_3_players",
                    capability="text",
                    options={"temperature": 0.4},
                    parse_json=True,
                ),
            ),
        ),
        "player_images": TaskSpec(
            name="player_images",
            steps=(
                StepSpec(
                    name="compose",
                    stage_type="stage_4_images",
                    capability="image",
                    options={"size": "1024x1024", "quality": "hd"},
                ),
            ),
        ),
        "animation": _animation("stage_5_animation"),
    },
    "storylab": {
        "personas": TaskSpec(
            name="personas",
            steps=(
                StepSpec(
                    name="describe",
                    stage_type="stage_2_personas",
                    capability="text",
                    parse_json=True,
                ),
                StepSpec(
                    name="portrait",
                    stage_type="stage_2_personas",
                    capability="image",
                    depends_on=("describe",),
                ),
            ),
        ),
        "narratives": TaskSpec(
            name="narratives",
            steps=(
                StepSpec(
                    name="write",
                    stage_type="stage_3_narratives",
                    capability="text",
                    parse_json=True,
                ),
            ),
        ),
        "storyboard": TaskSpec(
            name="storyboard",
            steps=(
                StepSpec(
                    name="frame",
                    stage_type="stage_4_storyboard",
                    capability="image",
                ),
            ),
        ),
        "video": TaskSpec(
            name="video",
            steps=(
                StepSpec(
                    name="screenplay",
                    stage_type="stage_5_screenplay",
                    capability="text",
                    parse_json=True,
                ),
                StepSpec(
                    name="render",
                    stage_type="stage_6_video",
                    capability="video",
                    depends_on=("screenplay",),
                    options={"duration_seconds": 8},
                ),
            ),
        ),
    },
}

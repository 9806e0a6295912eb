# tests/unit/engine/test_planner.py — v2
"""Tests for engine/planner.py — graph validation and job expansion."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from genstage.config.products import PRODUCT_PIPELINES, StepSpec, TaskSpec
from genstage.core.errors import EmptyBatch, JobGraphError, UnknownPipeline
from genstage.core.models import BatchItem, BatchRequest
from genstage.engine.planner import JobPlanner, step_order


def _task(*steps: StepSpec) -> TaskSpec:
    return TaskSpec(name="custom", steps=steps)


def _step(name: str, *deps: str, capability: str = "text") -> StepSpec:
    return StepSpec(name=name, stage_type="stage_2_themes", capability=capability, depends_on=deps)


def _request(product: str = "gamelab", task: str = "animation", *item_ids: str) -> BatchRequest:
    return BatchRequest(
        project_id="p1",
        product=product,
        task=task,
        items=[BatchItem(item_id=i, input={"team": f"team-{i}"}) for i in item_ids],
    )


class TestStepOrder:
    def test_dependencies_first(self):
        assert step_order(_task(_step("render", "write"), _step("write"))) == ["write", "render"]

    def test_ties_follow_declaration(self):
        order = step_order(_task(_step("b"), _step("a"), _step("c", "a")))
        assert order == ["b", "a", "c"]

    def test_unknown_dependency(self):
        with pytest.raises(JobGraphError, match="not declared"):
            step_order(_task(_step("render", "ghost")))

    def test_cycle(self):
        with pytest.raises(JobGraphError, match="Cycle"):
            step_order(_task(_step("a", "b"), _step("b", "a")))

    def test_self_loop(self):
        with pytest.raises(JobGraphError, match="Cycle"):
            step_order(_task(_step("a", "a")))

    def test_duplicate_names(self):
        with pytest.raises(JobGraphError, match="duplicate"):
            step_order(_task(_step("a"), _step("a")))

    def test_unknown_capability(self):
        with pytest.raises(JobGraphError, match="audio"):
            step_order(_task(_step("a", capability="audio")))


class TestJobPlanner:
    def test_plan_animation(self):
        run = JobPlanner().plan(_request("gamelab", "animation", "a", "b"))
        assert [j.job_id for j in run.jobs] == [
            "0:a:screenplay", "0:a:render", "1:b:screenplay", "1:b:render",
        ]
        render = run.get_job("0:a:render")
        assert render.predecessors == ["0:a:screenplay"]
        assert render.capability == "video"
        assert render.options == {"duration_seconds": 4, "aspect_ratio": "16:9"}
        assert run.get_job("0:a:screenplay").parse_json is True
        assert run.project_id == "p1"
        assert run.status == "accepted"

    def test_edges_stay_within_item(self):
        run = JobPlanner().plan(_request("gamelab", "animation", "a", "b"))
        for job in run.jobs:
            for pred in job.predecessors:
                assert run.get_job(pred).slot == job.slot

    def test_options_and_input_are_copies(self):
        run = JobPlanner().plan(_request("gamelab", "animation", "a"))
        run.jobs[1].options["duration_seconds"] = 8
        run.jobs[0].input["team"] = "changed"
        step = PRODUCT_PIPELINES["gamelab"]["animation"].get_step("render")
        assert step.options["duration_seconds"] == 4
        assert run.jobs[1].input["team"] == "team-a"

    def test_duplicate_item_ids_get_distinct_slots(self):
        run = JobPlanner().plan(_request("gamelab", "themes", "a", "a"))
        assert [(j.slot, j.job_id) for j in run.jobs] == [(0, "0:a:ideate"), (1, "1:a:ideate")]
        assert run.item_ids == ["a"]
        assert run.slots == [0, 1]

    def test_empty_batch(self):
        with pytest.raises(EmptyBatch):
            JobPlanner().plan(_request("gamelab", "themes"))

    @pytest.mark.parametrize("product,task", [("gamelab", "personas"), ("nolab", "themes")])
    def test_unknown_pipeline(self, product, task):
        with pytest.raises(UnknownPipeline):
            JobPlanner().plan(_request(product, task, "a"))

    def test_invalid_custom_graph(self):
        planner = JobPlanner({"lab": {"loop": _task(_step("a", "b"), _step("b", "a"))}})
        with pytest.raises(JobGraphError):
            planner.plan(_request("lab", "loop", "a"))

    def test_order_naming_undeclared_step_is_a_graph_error(self):
        planner = JobPlanner({"lab": {"solo": _task(_step("a"))}})
        with patch("genstage.engine.planner.step_order", return_value=["a", "ghost"]):
            with pytest.raises(JobGraphError, match="ghost"):
                planner.plan(_request("lab", "solo", "x"))

    def test_get_task(self):
        assert JobPlanner().get_task("storylab", "video").step_names == ["screenplay", "render"]

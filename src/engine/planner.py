# src/engine/planner.py — v2
"""Job planner: expand a BatchRequest into a BatchRun.

One job per step per item, with predecessor edges only between steps of
the same item. The task graph is validated with networkx before any job
is created; every rejection is a PlannerValidationError raised
synchronously.
"""

from __future__ import annotations

import logging

import networkx as nx

from genstage.config.products import PRODUCT_PIPELINES, TaskSpec
from genstage.config.stages import CAPABILITIES
from genstage.core.errors import EmptyBatch, JobGraphError, UnknownPipeline
from genstage.core.models import BatchRequest, BatchRun, GenerationJob

logger = logging.getLogger(__name__)


def step_order(task: TaskSpec) -> list[str]:
    """Validate a task graph and return its steps in dependency order.

    Ties are broken by declaration order.

    Raises:
        JobGraphError: Unknown dependency, unknown capability, duplicate
            step name, or a cycle.
    """
    declared = {name: idx for idx, name in enumerate(task.step_names)}
    if len(declared) != len(task.steps):
        raise JobGraphError(f"Task '{task.name}' declares duplicate step names")

    graph = nx.DiGraph()
    for step in task.steps:
        if step.capability not in CAPABILITIES:
            raise JobGraphError(
                f"Step '{step.name}' has unknown capability '{step.capability}'"
            )
        graph.add_node(step.name)
        for dep in step.depends_on:
            if dep not in declared:
                raise JobGraphError(
                    f"Step '{step.name}' depends on '{dep}' which is not declared"
                )
            graph.add_edge(dep, step.name)

    if not nx.is_directed_acyclic_graph(graph):
        cycle = [edge[0] for edge in nx.find_cycle(graph)]
        raise JobGraphError(f"Cycle detected in task '{task.name}': {cycle}")

    return list(nx.lexicographical_topological_sort(graph, key=declared.__getitem__))


class JobPlanner:
    """Turn batch requests into planned runs using the product job graphs."""

    def __init__(self, pipelines: dict[str, dict[str, TaskSpec]] | None = None) -> None:
        self._pipelines = pipelines if pipelines is not None else PRODUCT_PIPELINES

    def get_task(self, product: str, task: str) -> TaskSpec:
        spec = self._pipelines.get(product, {}).get(task)
        if spec is None:
            raise UnknownPipeline(f"No job graph for product '{product}' task '{task}'")
        return spec

    def plan(self, request: BatchRequest) -> BatchRun:
        """Build the BatchRun for a request.

        Raises:
            EmptyBatch: Request has no items.
            UnknownPipeline: Product or task not declared.
            JobGraphError: Task graph is invalid.
        """
        if not request.items:
            raise EmptyBatch("Batch request contains no items")

        task = self.get_task(request.product, request.task)
        order = step_order(task)

        run = BatchRun(project_id=request.project_id, product=request.product, task=request.task)
        for slot, item in enumerate(request.items):
            ids = {name: f"{slot}:{item.item_id}:{name}" for name in order}
            for name in order:
                step = task.get_step(name)
                if step is None:
                    raise JobGraphError(f"Step '{name}' is not declared in task '{task.name}'")
                run.jobs.append(
                    GenerationJob(
                        job_id=ids[name],
                        item_id=item.item_id,
                        slot=slot,
                        step=name,
                        stage_type=step.stage_type,
                        capability=step.capability,
                        input=dict(item.input),
                        options=dict(step.options),
                        parse_json=step.parse_json,
                        predecessors=[ids[dep] for dep in step.depends_on],
                    )
                )

        logger.info(
            "Planned batch %s: %s/%s, %d items, %d jobs (%s)",
            run.batch_id, request.product, request.task,
            len(request.items), len(run.jobs), " -> ".join(order),
        )
        return run

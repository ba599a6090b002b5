# src/canvasflow/engine/planner.py
"""Execution planning: which nodes a trigger runs, in which order.

Planning steps for a target set on a canvas:
1. Expand the targets to their transitive upstream closure
2. Drop upstream terminal nodes that were not explicitly selected
3. Build the dependency graph over what remains and sort it

A cycle does not stop planning; it is carried on the plan so the batch can
be created and its tasks failed with a cycle diagnostic.
"""

from collections.abc import Sequence
from dataclasses import dataclass

from canvasflow.contracts import CanvasSnapshot, UnknownNodeError
from canvasflow.core.graph import (
    CycleDetected,
    DependencyGraph,
    SortResult,
    TopologicalOrder,
    build_dependency_graph,
    topological_sort,
    upstream_closure,
)


@dataclass(frozen=True)
class ExecutionPlan:
    """Nodes to create tasks for.

    node_ids: Plan order; topological when the set is acyclic
    targets: Explicitly selected nodes (every node when none were selected)
    """

    node_ids: tuple[str, ...]
    targets: frozenset[str]
    graph: DependencyGraph
    sort: SortResult

    @property
    def is_empty(self) -> bool:
        return not self.node_ids

    @property
    def cycle(self) -> CycleDetected | None:
        return self.sort if isinstance(self.sort, CycleDetected) else None


def plan_execution(
    canvas: CanvasSnapshot, node_ids: Sequence[str] | None = None
) -> ExecutionPlan:
    """Plan the node set for running ``node_ids`` (all nodes when None).

    Raises:
        UnknownNodeError: If a target is not on the canvas
    """
    all_ids = canvas.node_ids
    if node_ids is None:
        targets = list(all_ids)
    else:
        targets = list(dict.fromkeys(node_ids))
        unknown = [n for n in targets if n not in canvas.nodes]
        if unknown:
            raise UnknownNodeError(canvas.canvas_id, unknown)

    full_graph = build_dependency_graph(all_ids, canvas.edges)
    necessary = upstream_closure(full_graph, targets)

    selected = set(targets)
    kept = [
        n
        for n in all_ids
        if n in necessary
        and (n in selected or not canvas.is_terminal_type(canvas.nodes[n].type))
    ]

    graph = build_dependency_graph(kept, canvas.edges)
    sort = topological_sort(graph)
    if isinstance(sort, TopologicalOrder):
        ordered = sort.order
    else:
        ordered = sort.partial_order + tuple(n for n in kept if n in sort.remaining)

    return ExecutionPlan(
        node_ids=ordered,
        targets=frozenset(selected),
        graph=graph,
        sort=sort,
    )

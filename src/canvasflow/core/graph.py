# src/canvasflow/core/graph.py
"""Dependency graph operations for execution planning.

Provides:
- build_dependency_graph: forward/reverse adjacency restricted to a node set
- topological_sort: Kahn's algorithm with a distinct cycle outcome
- upstream_closure: every node a target set transitively depends on

NetworkX is used to name the nodes that actually sit on a cycle (strongly
connected components); ordering itself is plain Kahn peeling so the
restriction to the requested node set stays explicit.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

import networkx as nx
from networkx import DiGraph

from canvasflow.contracts import Edge


@dataclass(frozen=True)
class DependencyGraph:
    """Adjacency maps restricted to one node set.

    deps[n]: nodes in the set that must complete before n (reverse adjacency)
    dependents[n]: nodes in the set that n feeds (forward adjacency)

    Every node of ``node_ids`` has an entry in both maps, possibly empty.
    """

    node_ids: tuple[str, ...]
    deps: Mapping[str, tuple[str, ...]]
    dependents: Mapping[str, tuple[str, ...]]

    @property
    def node_count(self) -> int:
        return len(self.node_ids)

    @property
    def edge_count(self) -> int:
        return sum(len(d) for d in self.deps.values())

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.deps

    def to_networkx(self) -> DiGraph[str]:
        """Build a NetworkX DiGraph with an edge for every dependency."""
        graph: DiGraph[str] = nx.DiGraph()
        graph.add_nodes_from(self.node_ids)
        for node_id, upstream in self.deps.items():
            graph.add_edges_from((dep, node_id) for dep in upstream)
        return graph

    def cycle_members(self, among: Iterable[str] | None = None) -> set[str]:
        """Nodes that lie on a dependency cycle.

        A node is on a cycle if its strongly connected component has more
        than one member, or it depends on itself.

        Args:
            among: Optional subset to restrict the answer to

        Returns:
            Set of node IDs on at least one cycle
        """
        graph = self.to_networkx()
        members: set[str] = set()
        for component in nx.strongly_connected_components(graph):
            if len(component) > 1:
                members.update(component)
            else:
                (node_id,) = component
                if graph.has_edge(node_id, node_id):
                    members.add(node_id)
        if among is not None:
            members &= set(among)
        return members


@dataclass(frozen=True)
class TopologicalOrder:
    """A valid execution order: every node appears after its dependencies."""

    order: tuple[str, ...]

    @property
    def has_cycle(self) -> bool:
        return False


@dataclass(frozen=True)
class CycleDetected:
    """The node set contains a cycle.

    remaining: Nodes Kahn's algorithm could not peel (cycle members plus
        everything downstream of a cycle)
    members: Nodes that actually lie on a cycle
    partial_order: Nodes peeled before the algorithm got stuck
    """

    remaining: frozenset[str]
    members: frozenset[str]
    partial_order: tuple[str, ...] = ()

    @property
    def has_cycle(self) -> bool:
        return True


SortResult = TopologicalOrder | CycleDetected


def build_dependency_graph(
    node_ids: Iterable[str], edges: Iterable[Edge]
) -> DependencyGraph:
    """Build dependency maps for ``node_ids`` from the canvas edge list.

    Edges with an endpoint outside the node set are ignored: they are inputs
    already satisfied by an earlier run, not something this execution must
    produce. Several edges between the same pair of nodes (different handles)
    count as one dependency.

    Args:
        node_ids: The node set S, in caller order
        edges: Full edge list of the canvas

    Returns:
        DependencyGraph with an entry for every node of S
    """
    ordered = tuple(dict.fromkeys(node_ids))
    selected = set(ordered)
    deps: dict[str, list[str]] = {n: [] for n in ordered}
    dependents: dict[str, list[str]] = {n: [] for n in ordered}
    seen: set[tuple[str, str]] = set()

    for edge in edges:
        if edge.source not in selected or edge.target not in selected:
            continue
        pair = (edge.source, edge.target)
        if pair in seen:
            continue
        seen.add(pair)
        dependents[edge.source].append(edge.target)
        deps[edge.target].append(edge.source)

    return DependencyGraph(
        node_ids=ordered,
        deps={n: tuple(d) for n, d in deps.items()},
        dependents={n: tuple(d) for n, d in dependents.items()},
    )


def topological_sort(graph: DependencyGraph) -> SortResult:
    """Order the graph's nodes so each appears after all of its dependencies.

    Kahn's algorithm: repeatedly peel nodes whose in-set dependency count
    has dropped to zero. Nodes left over afterwards are on, or downstream
    of, a cycle.

    Args:
        graph: Graph built by build_dependency_graph

    Returns:
        TopologicalOrder, or CycleDetected when the set contains a cycle
    """
    indegree = {n: len(graph.deps[n]) for n in graph.node_ids}
    queue = deque(n for n in graph.node_ids if indegree[n] == 0)
    order: list[str] = []

    while queue:
        current = queue.popleft()
        order.append(current)
        for downstream in graph.dependents[current]:
            indegree[downstream] -= 1
            if indegree[downstream] == 0:
                queue.append(downstream)

    if len(order) == graph.node_count:
        return TopologicalOrder(order=tuple(order))

    remaining = frozenset(graph.node_ids) - frozenset(order)
    return CycleDetected(
        remaining=remaining,
        members=frozenset(graph.cycle_members(remaining)),
        partial_order=tuple(order),
    )


def upstream_closure(graph: DependencyGraph, targets: Iterable[str]) -> set[str]:
    """Targets plus every node they transitively depend on.

    Walks reverse adjacency breadth-first. Terminates on cyclic graphs.

    Raises:
        KeyError: If a target is not in the graph
    """
    necessary: set[str] = set()
    queue = deque(targets)
    while queue:
        current = queue.popleft()
        if current in necessary:
            continue
        if current not in graph:
            raise KeyError(f"Node not found: {current}")
        necessary.add(current)
        queue.extend(graph.deps[current])
    return necessary

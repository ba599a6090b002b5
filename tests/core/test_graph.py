# tests/core/test_graph.py
"""Tests for dependency graph building, sorting and closure."""

from collections.abc import Iterable

import networkx as nx
import pytest
from hypothesis import given
from hypothesis import strategies as st

from canvasflow.contracts import Edge
from canvasflow.core.graph import (
    CycleDetected,
    DependencyGraph,
    TopologicalOrder,
    build_dependency_graph,
    topological_sort,
    upstream_closure,
)


def _edges(*pairs: tuple[str, str]) -> list[Edge]:
    return [
        Edge(
            edge_id=f"e{i}",
            canvas_id="c1",
            source=source,
            source_handle_id=f"{source}-out",
            target=target,
            target_handle_id=f"{target}-in{i}",
        )
        for i, (source, target) in enumerate(pairs)
    ]


def _graph(nodes: Iterable[str], *pairs: tuple[str, str]) -> DependencyGraph:
    return build_dependency_graph(list(nodes), _edges(*pairs))


class TestBuildDependencyGraph:
    def test_adjacency_both_directions(self) -> None:
        graph = _graph("abc", ("a", "b"), ("b", "c"))

        assert graph.deps == {"a": (), "b": ("a",), "c": ("b",)}
        assert graph.dependents == {"a": ("b",), "b": ("c",), "c": ()}
        assert graph.node_count == 3
        assert graph.edge_count == 2

    def test_edges_leaving_node_set_ignored(self) -> None:
        """An upstream outside the set is an input already produced earlier."""
        graph = _graph("bc", ("a", "b"), ("b", "c"), ("c", "z"))

        assert graph.deps == {"b": (), "c": ("b",)}
        assert "a" not in graph
        assert "z" not in graph

    def test_parallel_edges_counted_once(self) -> None:
        graph = _graph("ab", ("a", "b"), ("a", "b"))

        assert graph.deps["b"] == ("a",)
        assert graph.edge_count == 1

    def test_duplicate_node_ids_collapsed(self) -> None:
        graph = build_dependency_graph(["a", "b", "a"], [])

        assert graph.node_ids == ("a", "b")

    def test_isolated_nodes_have_empty_entries(self) -> None:
        graph = _graph("xy")

        assert graph.deps == {"x": (), "y": ()}
        assert graph.dependents == {"x": (), "y": ()}

    def test_to_networkx(self) -> None:
        graph = _graph("abc", ("a", "b"), ("a", "c"))
        digraph = graph.to_networkx()

        assert set(digraph.nodes) == {"a", "b", "c"}
        assert set(digraph.edges) == {("a", "b"), ("a", "c")}


class TestCycleMembers:
    def test_two_node_cycle(self) -> None:
        graph = _graph("ab", ("a", "b"), ("b", "a"))

        assert graph.cycle_members() == {"a", "b"}

    def test_self_loop(self) -> None:
        graph = _graph("ab", ("a", "a"), ("a", "b"))

        assert graph.cycle_members() == {"a"}

    def test_downstream_of_cycle_not_a_member(self) -> None:
        graph = _graph("abc", ("a", "b"), ("b", "a"), ("b", "c"))

        assert graph.cycle_members() == {"a", "b"}

    def test_restricted_to_subset(self) -> None:
        graph = _graph("abcd", ("a", "b"), ("b", "a"), ("c", "d"), ("d", "c"))

        assert graph.cycle_members(["a", "c"]) == {"a", "c"}

    def test_acyclic_has_no_members(self) -> None:
        assert _graph("abc", ("a", "b"), ("b", "c")).cycle_members() == set()


class TestTopologicalSort:
    def test_chain_order(self) -> None:
        """T1 -> I1 -> E1 sorts to [T1, I1, E1]."""
        graph = _graph(["E1", "I1", "T1"], ("T1", "I1"), ("I1", "E1"))

        result = topological_sort(graph)

        assert isinstance(result, TopologicalOrder)
        assert result.order == ("T1", "I1", "E1")
        assert result.has_cycle is False

    def test_ties_keep_input_order(self) -> None:
        graph = _graph("cab")

        result = topological_sort(graph)

        assert isinstance(result, TopologicalOrder)
        assert result.order == ("c", "a", "b")

    def test_diamond(self) -> None:
        graph = _graph("abcd", ("a", "b"), ("a", "c"), ("b", "d"), ("c", "d"))

        result = topological_sort(graph)

        assert isinstance(result, TopologicalOrder)
        assert result.order[0] == "a"
        assert result.order[-1] == "d"

    def test_empty_graph(self) -> None:
        result = topological_sort(_graph(""))

        assert result == TopologicalOrder(order=())

    def test_cycle_detected(self) -> None:
        """A -> B -> A yields a distinct cycle outcome."""
        graph = _graph("AB", ("A", "B"), ("B", "A"))

        result = topological_sort(graph)

        assert isinstance(result, CycleDetected)
        assert result.has_cycle is True
        assert result.members == frozenset({"A", "B"})
        assert result.remaining == frozenset({"A", "B"})
        assert result.partial_order == ()

    def test_cycle_with_acyclic_prefix_and_tail(self) -> None:
        graph = _graph("sabt", ("s", "a"), ("a", "b"), ("b", "a"), ("b", "t"))

        result = topological_sort(graph)

        assert isinstance(result, CycleDetected)
        assert result.partial_order == ("s",)
        assert result.remaining == frozenset({"a", "b", "t"})
        assert result.members == frozenset({"a", "b"})

    def test_self_loop_is_a_cycle(self) -> None:
        result = topological_sort(_graph("a", ("a", "a")))

        assert isinstance(result, CycleDetected)
        assert result.members == frozenset({"a"})


class TestUpstreamClosure:
    def test_includes_transitive_dependencies(self) -> None:
        graph = _graph("abcd", ("a", "b"), ("b", "c"), ("d", "c"))

        assert upstream_closure(graph, ["c"]) == {"a", "b", "c", "d"}

    def test_excludes_downstream(self) -> None:
        graph = _graph("abc", ("a", "b"), ("b", "c"))

        assert upstream_closure(graph, ["b"]) == {"a", "b"}

    def test_terminates_on_cycle(self) -> None:
        graph = _graph("ab", ("a", "b"), ("b", "a"))

        assert upstream_closure(graph, ["a"]) == {"a", "b"}

    def test_unknown_node_raises(self) -> None:
        with pytest.raises(KeyError, match="zzz"):
            upstream_closure(_graph("a"), ["zzz"])


# =============================================================================
# Property tests
# =============================================================================


@st.composite
def node_sets_with_edges(
    draw: st.DrawFn, *, acyclic: bool
) -> tuple[list[str], list[tuple[str, str]]]:
    count = draw(st.integers(min_value=0, max_value=12))
    nodes = [f"n{i}" for i in range(count)]
    if count == 0:
        return nodes, []
    index_pairs = draw(
        st.lists(
            st.tuples(
                st.integers(min_value=0, max_value=count - 1),
                st.integers(min_value=0, max_value=count - 1),
            ),
            max_size=30,
        )
    )
    if acyclic:
        index_pairs = [(i, j) for i, j in index_pairs if i < j]
    order = draw(st.permutations(nodes))
    return list(order), [(nodes[i], nodes[j]) for i, j in index_pairs]


class TestSortProperties:
    @given(node_sets_with_edges(acyclic=True))
    def test_acyclic_order_is_valid(
        self, case: tuple[list[str], list[tuple[str, str]]]
    ) -> None:
        """Every node appears exactly once, after all of its dependencies."""
        nodes, pairs = case
        graph = build_dependency_graph(nodes, _edges(*pairs))

        result = topological_sort(graph)

        assert isinstance(result, TopologicalOrder)
        assert sorted(result.order) == sorted(nodes)
        position = {n: i for i, n in enumerate(result.order)}
        for source, target in pairs:
            assert position[source] < position[target]

    @given(node_sets_with_edges(acyclic=False))
    def test_cycle_outcome_is_sound(
        self, case: tuple[list[str], list[tuple[str, str]]]
    ) -> None:
        """A cycle is reported exactly when one exists, naming real members."""
        nodes, pairs = case
        graph = build_dependency_graph(nodes, _edges(*pairs))
        reference = nx.DiGraph()
        reference.add_nodes_from(nodes)
        reference.add_edges_from(pairs)

        result = topological_sort(graph)

        assert isinstance(result, CycleDetected) == (
            not nx.is_directed_acyclic_graph(reference)
        )
        if isinstance(result, CycleDetected):
            assert result.members
            assert result.members <= result.remaining
            assert set(result.partial_order) | result.remaining == set(nodes)
            assert not set(result.partial_order) & result.remaining
            # Every stuck node waits on another stuck node
            for node_id in result.remaining:
                assert any(d in result.remaining for d in graph.deps[node_id])

    @given(node_sets_with_edges(acyclic=False), st.data())
    def test_closure_is_upstream_closed(
        self,
        case: tuple[list[str], list[tuple[str, str]]],
        data: st.DataObject,
    ) -> None:
        nodes, pairs = case
        if not nodes:
            return
        graph = build_dependency_graph(nodes, _edges(*pairs))
        targets = data.draw(st.lists(st.sampled_from(nodes), min_size=1))

        closure = upstream_closure(graph, targets)

        assert set(targets) <= closure
        for node_id in closure:
            assert set(graph.deps[node_id]) <= closure

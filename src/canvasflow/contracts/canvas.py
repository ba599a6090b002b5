"""Canvas entities: what the user drew.

The scheduler reads these only to resolve node type and existence.
``Node.config`` and ``Node.result`` are opaque blobs owned by processors.
"""

from dataclasses import dataclass, field
from typing import Any

from canvasflow.contracts.enums import DataType, HandleType


@dataclass(frozen=True)
class NodeTemplate:
    """Declares how nodes of one type behave.

    is_terminal: The node is a valid execution target (export, preview).
        Upstream terminal nodes are only run when explicitly selected.
    is_transient: The result lives on the task only, never on the node.
    """

    type: str
    display_name: str
    is_terminal: bool = False
    is_transient: bool = False


@dataclass(frozen=True)
class Node:
    """A vertex in the user's graph."""

    node_id: str
    canvas_id: str
    type: str
    name: str | None = None
    config: dict[str, Any] | None = None
    result: dict[str, Any] | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.node_id


@dataclass(frozen=True)
class Handle:
    """Typed input/output port on a node."""

    handle_id: str
    node_id: str
    type: HandleType
    data_types: tuple[DataType, ...] = ()
    label: str | None = None
    order: int = 0


@dataclass(frozen=True)
class Edge:
    """A connection from a source node's output handle to a target's input handle."""

    edge_id: str
    canvas_id: str
    source: str
    source_handle_id: str
    target: str
    target_handle_id: str


@dataclass
class CanvasSnapshot:
    """Everything a processor may read about the canvas during one execution.

    Processors treat the snapshot as read-only. The dispatcher replaces a
    node's entry after a successful run so downstream nodes in the same batch
    see the fresh result, and ``task_results`` carries results recorded on
    completed tasks of the current batch (transient nodes keep theirs only
    there).
    """

    canvas_id: str
    nodes: dict[str, Node]
    edges: list[Edge]
    handles: dict[str, Handle]
    templates: dict[str, NodeTemplate] = field(default_factory=dict)
    task_results: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def node_ids(self) -> list[str]:
        return list(self.nodes)

    def get_node(self, node_id: str) -> Node | None:
        return self.nodes.get(node_id)

    def template_for(self, node_type: str) -> NodeTemplate | None:
        return self.templates.get(node_type)

    def is_terminal_type(self, node_type: str) -> bool:
        template = self.templates.get(node_type)
        return template is not None and template.is_terminal

    def is_transient_type(self, node_type: str) -> bool:
        template = self.templates.get(node_type)
        return template is not None and template.is_transient

    def handles_for(
        self, node_id: str, handle_type: HandleType | None = None
    ) -> list[Handle]:
        """Handles of a node ordered by ``order``, optionally filtered by type."""
        handles = [
            h
            for h in self.handles.values()
            if h.node_id == node_id and (handle_type is None or h.type == handle_type)
        ]
        return sorted(handles, key=lambda h: h.order)

    def incoming_edges(self, node_id: str) -> list[Edge]:
        return [e for e in self.edges if e.target == node_id]

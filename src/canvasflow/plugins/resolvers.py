# src/canvasflow/plugins/resolvers.py
"""Graph resolvers: read the values flowing into a node.

A node result has the shape::

    {
        "selected_output_index": 0,
        "outputs": [
            {"items": [{"type": "Text", "data": "...", "output_handle_id": "h1"}]},
        ],
    }

The value flowing through an edge is the item of the source node's selected
output whose ``output_handle_id`` is the edge's source handle. A result
recorded on a completed task of the current batch wins over the result
stored on the node, since transient node types only keep theirs there.
"""

import logging
from collections.abc import Sequence
from typing import Any

from canvasflow.contracts import (
    CanvasflowError,
    CanvasSnapshot,
    DataType,
    Edge,
    Handle,
    HandleType,
)

logger = logging.getLogger(__name__)


class InputResolutionError(CanvasflowError):
    """Raised when a required input is not connected or has no value."""


def output_item(
    data_type: DataType | str, data: Any, output_handle_id: str
) -> dict[str, Any]:
    """One item of a node output."""
    type_value = data_type.value if isinstance(data_type, DataType) else data_type
    return {"type": type_value, "data": data, "output_handle_id": output_handle_id}


def build_output_result(
    items: Sequence[dict[str, Any]], *, selected_output_index: int = 0
) -> dict[str, Any]:
    """Wrap output items into a single-output node result."""
    return {
        "selected_output_index": selected_output_index,
        "outputs": [{"items": list(items)}],
    }


def _describe(data_type: DataType | None, label: str | None) -> str:
    kind = data_type.value if data_type is not None else "any"
    if label:
        return f'{kind} input with label "{label}"'
    return f"{kind} input"


class GraphResolvers:
    """Resolve node inputs from a canvas snapshot.

    Stateless; one instance is shared through NodeServices.
    """

    def resolve_source_value(
        self, canvas: CanvasSnapshot, edge: Edge
    ) -> dict[str, Any] | None:
        """The output item flowing through ``edge``, or None if absent.

        Raises:
            InputResolutionError: If the edge's source handle or node is gone
        """
        source_handle = canvas.handles.get(edge.source_handle_id)
        if source_handle is None:
            raise InputResolutionError("Source handle missing")

        source_node = canvas.get_node(source_handle.node_id)
        if source_node is None:
            raise InputResolutionError("Source node missing")

        result = canvas.task_results.get(source_node.node_id) or source_node.result
        if not result or not result.get("outputs"):
            return None

        outputs = result["outputs"]
        index = result.get("selected_output_index") or 0
        if index >= len(outputs):
            return None
        for item in outputs[index].get("items", []):
            if item.get("output_handle_id") == edge.source_handle_id:
                return item
        return None

    def _incoming(
        self,
        canvas: CanvasSnapshot,
        target_node_id: str,
        data_type: DataType | None,
        label: str | None,
    ) -> list[Edge]:
        incoming: list[tuple[int, Edge]] = []
        for edge in canvas.incoming_edges(target_node_id):
            handle = canvas.handles.get(edge.target_handle_id)
            if data_type is not None and (
                handle is None or data_type not in handle.data_types
            ):
                continue
            if label is not None and (handle is None or handle.label != label):
                continue
            incoming.append((handle.order if handle is not None else 0, edge))
        # Stable sort keeps edge order for handles sharing an order value
        incoming.sort(key=lambda pair: pair[0])
        return [edge for _, edge in incoming]

    def get_input_value(
        self,
        canvas: CanvasSnapshot,
        target_node_id: str,
        *,
        data_type: DataType | None = None,
        label: str | None = None,
        required: bool = True,
    ) -> dict[str, Any] | None:
        """The single input item of a type (and optional handle label).

        With several matching edges the one on the lowest-ordered handle wins.

        Raises:
            InputResolutionError: If required and not connected or empty
        """
        incoming = self._incoming(canvas, target_node_id, data_type, label)
        if not incoming:
            if required:
                raise InputResolutionError(
                    f"Required {_describe(data_type, label)} not connected"
                )
            return None

        if len(incoming) > 1:
            logger.warning(
                "Multiple %s edges connected to node %s, using the first one",
                _describe(data_type, label),
                target_node_id,
            )

        value = self.resolve_source_value(canvas, incoming[0])
        if value is None and required:
            raise InputResolutionError(
                f"No value received from {_describe(data_type, label)}"
            )
        return value

    def get_input_values_by_type(
        self,
        canvas: CanvasSnapshot,
        target_node_id: str,
        *,
        data_type: DataType | None = None,
        label: str | None = None,
    ) -> list[dict[str, Any] | None]:
        """Every matching input item in handle order; None for empty sources."""
        incoming = self._incoming(canvas, target_node_id, data_type, label)
        return [self.resolve_source_value(canvas, edge) for edge in incoming]

    def get_all_output_handles(
        self, canvas: CanvasSnapshot, node_id: str
    ) -> list[Handle]:
        return canvas.handles_for(node_id, HandleType.OUTPUT)

    def get_all_input_values_with_handle(
        self, canvas: CanvasSnapshot, target_node_id: str
    ) -> list[tuple[Handle | None, dict[str, Any] | None]]:
        """(target handle, value) for every incoming edge in handle order."""
        incoming = self._incoming(canvas, target_node_id, None, None)
        return [
            (
                canvas.handles.get(edge.target_handle_id),
                self.resolve_source_value(canvas, edge),
            )
            for edge in incoming
        ]

# src/canvasflow/core/store/canvas.py
"""CanvasRepository: read and write canvas entities.

The editing layer owns nodes, handles and edges; these write methods exist
for it and for tests. During execution the scheduler only loads snapshots
and writes node results.
"""

import json
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import delete, or_, select

from canvasflow.contracts import (
    CanvasNotFoundError,
    CanvasSnapshot,
    Edge,
    Handle,
    Node,
    NodeTemplate,
)
from canvasflow.core.canonical import canonical_json
from canvasflow.core.logging import get_logger
from canvasflow.core.store.database import StoreDB
from canvasflow.core.store.repositories import (
    EdgeRepository,
    HandleRepository,
    NodeRepository,
    TemplateRepository,
)
from canvasflow.core.store.schema import (
    canvases_table,
    edges_table,
    handles_table,
    node_templates_table,
    nodes_table,
)

logger = get_logger(__name__)


def _now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def _dump(value: dict[str, Any] | None) -> str | None:
    return canonical_json(value) if value is not None else None


class CanvasRepository:
    """Canvas, node, handle, edge and template persistence."""

    def __init__(self, db: StoreDB) -> None:
        self._db = db
        self._nodes = NodeRepository()
        self._handles = HandleRepository()
        self._edges = EdgeRepository()
        self._templates = TemplateRepository()

    # === Canvases ===

    def create_canvas(
        self, name: str | None = None, *, canvas_id: str | None = None
    ) -> str:
        """Create an empty canvas and return its ID."""
        canvas_id = canvas_id or uuid.uuid4().hex
        with self._db.connection() as conn:
            conn.execute(
                canvases_table.insert().values(
                    canvas_id=canvas_id, name=name, created_at=_now()
                )
            )
        return canvas_id

    def canvas_exists(self, canvas_id: str) -> bool:
        with self._db.connection() as conn:
            row = conn.execute(
                select(canvases_table.c.canvas_id).where(
                    canvases_table.c.canvas_id == canvas_id
                )
            ).fetchone()
        return row is not None

    # === Graph Entities ===

    def add_node(self, node: Node) -> Node:
        with self._db.connection() as conn:
            conn.execute(
                nodes_table.insert().values(
                    node_id=node.node_id,
                    canvas_id=node.canvas_id,
                    type=node.type,
                    name=node.name,
                    config_json=_dump(node.config),
                    result_json=_dump(node.result),
                    updated_at=_now(),
                )
            )
        return node

    def add_handle(self, handle: Handle) -> Handle:
        with self._db.connection() as conn:
            conn.execute(
                handles_table.insert().values(
                    handle_id=handle.handle_id,
                    node_id=handle.node_id,
                    type=handle.type.value,
                    data_types_json=json.dumps([t.value for t in handle.data_types]),
                    label=handle.label,
                    sort_order=handle.order,
                )
            )
        return handle

    def add_edge(self, edge: Edge) -> Edge:
        with self._db.connection() as conn:
            conn.execute(
                edges_table.insert().values(
                    edge_id=edge.edge_id,
                    canvas_id=edge.canvas_id,
                    source=edge.source,
                    source_handle_id=edge.source_handle_id,
                    target=edge.target,
                    target_handle_id=edge.target_handle_id,
                )
            )
        return edge

    def get_node(self, node_id: str) -> Node | None:
        with self._db.connection() as conn:
            row = conn.execute(
                select(nodes_table).where(nodes_table.c.node_id == node_id)
            ).fetchone()
        if row is None:
            return None
        return self._nodes.load(row)

    def update_node_result(self, node_id: str, result: dict[str, Any] | None) -> bool:
        """Persist a node's latest result.

        Returns:
            False if the node no longer exists (nothing written)
        """
        with self._db.connection() as conn:
            outcome = conn.execute(
                nodes_table.update()
                .where(nodes_table.c.node_id == node_id)
                .values(result_json=_dump(result), updated_at=_now())
            )
        if outcome.rowcount != 1:
            logger.warning("Node result not saved, node missing", node_id=node_id)
            return False
        return True

    def delete_node(self, node_id: str) -> bool:
        """Delete a node with its handles and connected edges.

        Tasks referencing the node are kept.

        Returns:
            True if the node existed
        """
        with self._db.connection() as conn:
            conn.execute(
                delete(edges_table).where(
                    or_(
                        edges_table.c.source == node_id,
                        edges_table.c.target == node_id,
                    )
                )
            )
            conn.execute(
                delete(handles_table).where(handles_table.c.node_id == node_id)
            )
            outcome = conn.execute(
                delete(nodes_table).where(nodes_table.c.node_id == node_id)
            )
        return outcome.rowcount == 1

    # === Templates ===

    def save_template(self, template: NodeTemplate) -> NodeTemplate:
        with self._db.connection() as conn:
            conn.execute(
                node_templates_table.insert().values(
                    type=template.type,
                    display_name=template.display_name,
                    is_terminal=template.is_terminal,
                    is_transient=template.is_transient,
                )
            )
        return template

    def get_templates(self) -> dict[str, NodeTemplate]:
        """All templates keyed by node type."""
        with self._db.connection() as conn:
            rows = conn.execute(select(node_templates_table)).fetchall()
        templates = [self._templates.load(r) for r in rows]
        return {t.type: t for t in templates}

    def sync_templates(self, templates: Iterable[NodeTemplate]) -> list[str]:
        """Insert templates for node types that have none.

        Existing rows are never overwritten, so edits made through the
        editing layer survive a restart.

        Returns:
            Node types that were inserted
        """
        existing = set(self.get_templates())
        inserted: list[str] = []
        for template in templates:
            if template.type in existing:
                continue
            self.save_template(template)
            existing.add(template.type)
            inserted.append(template.type)
        if inserted:
            logger.info("Node templates synced", inserted=inserted)
        return inserted

    # === Snapshots ===

    def load_snapshot(self, canvas_id: str) -> CanvasSnapshot:
        """Load everything processors may read about a canvas.

        Raises:
            CanvasNotFoundError: If the canvas does not exist
        """
        if not self.canvas_exists(canvas_id):
            raise CanvasNotFoundError(f"Canvas not found: {canvas_id}")

        with self._db.connection() as conn:
            node_rows = conn.execute(
                select(nodes_table).where(nodes_table.c.canvas_id == canvas_id)
            ).fetchall()
            edge_rows = conn.execute(
                select(edges_table)
                .where(edges_table.c.canvas_id == canvas_id)
                .order_by(edges_table.c.edge_id)
            ).fetchall()
            handle_rows = conn.execute(
                select(handles_table)
                .join(nodes_table, handles_table.c.node_id == nodes_table.c.node_id)
                .where(nodes_table.c.canvas_id == canvas_id)
            ).fetchall()

        nodes = [self._nodes.load(r) for r in node_rows]
        handles = [self._handles.load(r) for r in handle_rows]
        return CanvasSnapshot(
            canvas_id=canvas_id,
            nodes={n.node_id: n for n in nodes},
            edges=[self._edges.load(r) for r in edge_rows],
            handles={h.handle_id: h for h in handles},
            templates=self.get_templates(),
        )

"""Repository layer for store rows.

Handles the seam between SQLAlchemy rows (strings, JSON text) and domain
objects (strict enum types, dicts). This is NOT a trust boundary - the
store is our data, so a malformed row crashes instead of being patched up.
"""

import json
from datetime import UTC, datetime
from typing import Any

from canvasflow.contracts import (
    DataType,
    Edge,
    Handle,
    HandleType,
    Node,
    NodeTemplate,
    Task,
    TaskBatch,
    TaskError,
    TaskStatus,
)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to timestamps read back naive (SQLite drops tzinfo)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def _load_json(text: str | None) -> Any:
    if text is None:
        return None
    return json.loads(text)


class BatchRepository:
    """Repository for TaskBatch records."""

    def load(self, row: Any) -> TaskBatch:
        created_at = as_utc(row.created_at)
        assert created_at is not None
        return TaskBatch(
            batch_id=row.batch_id,
            canvas_id=row.canvas_id,
            created_at=created_at,
            finished_at=as_utc(row.finished_at),
            claimed_by=row.claimed_by,
            heartbeat_at=as_utc(row.heartbeat_at),
        )


class TaskRepository:
    """Repository for Task records."""

    def load(self, row: Any) -> Task:
        """Load Task from database row.

        Converts the status string to TaskStatus and the error payload to
        TaskError. Crashes on invalid data.
        """
        error_data = _load_json(row.error_json)
        created_at = as_utc(row.created_at)
        assert created_at is not None
        return Task(
            task_id=row.task_id,
            batch_id=row.batch_id,
            node_id=row.node_id,
            name=row.name,
            status=TaskStatus(row.status),  # Convert HERE
            created_at=created_at,
            is_target=bool(row.is_target),
            started_at=as_utc(row.started_at),
            finished_at=as_utc(row.finished_at),
            duration_ms=row.duration_ms,
            error=TaskError.from_dict(error_data) if error_data is not None else None,
            result=_load_json(row.result_json),
        )


class NodeRepository:
    """Repository for Node records."""

    def load(self, row: Any) -> Node:
        return Node(
            node_id=row.node_id,
            canvas_id=row.canvas_id,
            type=row.type,
            name=row.name,
            config=_load_json(row.config_json),
            result=_load_json(row.result_json),
        )


class HandleRepository:
    """Repository for Handle records."""

    def load(self, row: Any) -> Handle:
        """Load Handle from database row.

        Converts the handle direction and data type strings to enums.
        """
        return Handle(
            handle_id=row.handle_id,
            node_id=row.node_id,
            type=HandleType(row.type),  # Convert HERE
            data_types=tuple(DataType(t) for t in json.loads(row.data_types_json)),
            label=row.label,
            order=row.sort_order,
        )


class EdgeRepository:
    """Repository for Edge records."""

    def load(self, row: Any) -> Edge:
        return Edge(
            edge_id=row.edge_id,
            canvas_id=row.canvas_id,
            source=row.source,
            source_handle_id=row.source_handle_id,
            target=row.target,
            target_handle_id=row.target_handle_id,
        )


class TemplateRepository:
    """Repository for NodeTemplate records."""

    def load(self, row: Any) -> NodeTemplate:
        return NodeTemplate(
            type=row.type,
            display_name=row.display_name,
            is_terminal=bool(row.is_terminal),
            is_transient=bool(row.is_transient),
        )

"""Execution records: batches and tasks.

These are the rows of the task state store as seen by the rest of the
system. Status fields are strict enum types; the repository layer converts
from database strings at load time.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from canvasflow.contracts.enums import TaskStatus
from canvasflow.contracts.errors import TaskError


@dataclass(frozen=True)
class TaskBatch:
    """One triggered execution over a target node set.

    ``finished_at`` is None while the batch is open. An open batch found at
    process start is a dangling batch and eligible for recovery.
    """

    batch_id: str
    canvas_id: str
    created_at: datetime
    finished_at: datetime | None = None
    claimed_by: str | None = None
    heartbeat_at: datetime | None = None

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None


@dataclass(frozen=True)
class Task:
    """One node's execution record within a batch."""

    task_id: str
    batch_id: str
    node_id: str
    name: str
    status: TaskStatus
    created_at: datetime
    is_target: bool = False
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_ms: float | None = None
    error: TaskError | None = None
    result: dict[str, Any] | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

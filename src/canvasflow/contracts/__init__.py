"""Shared contracts for cross-boundary data types.

All dataclasses and enums that cross subsystem boundaries are defined here.

Import pattern:
    from canvasflow.contracts import TaskStatus, ProcessorResult, Task
"""

from canvasflow.contracts.enums import (
    TERMINAL_STATUSES,
    DataType,
    FailureReason,
    HandleType,
    TaskStatus,
)
from canvasflow.contracts.errors import (
    BatchClaimError,
    BatchNotFoundError,
    BatchStateError,
    CanvasflowError,
    CanvasNotFoundError,
    RegistryError,
    TaskError,
    UnknownNodeError,
)
from canvasflow.contracts.audit import Task, TaskBatch
from canvasflow.contracts.canvas import (
    CanvasSnapshot,
    Edge,
    Handle,
    Node,
    NodeTemplate,
)
from canvasflow.contracts.results import ProcessorResult

__all__ = [
    # audit
    "Task",
    "TaskBatch",
    # canvas
    "CanvasSnapshot",
    "Edge",
    "Handle",
    "Node",
    "NodeTemplate",
    # enums
    "DataType",
    "FailureReason",
    "HandleType",
    "TERMINAL_STATUSES",
    "TaskStatus",
    # errors
    "BatchClaimError",
    "BatchNotFoundError",
    "BatchStateError",
    "CanvasNotFoundError",
    "CanvasflowError",
    "RegistryError",
    "TaskError",
    "UnknownNodeError",
    # results
    "ProcessorResult",
]

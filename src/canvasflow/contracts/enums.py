"""All status codes, kinds and failure reasons used across subsystem boundaries.

Enums that are stored in the database use (str, Enum) so the value can be
written directly to a column and read back with ``TaskStatus(row.status)``.
"""

from enum import Enum


class TaskStatus(str, Enum):
    """Status of one task (one node within one batch).

    Uses (str, Enum) because this IS stored in the database (tasks.status).

    Transitions:
        QUEUED -> EXECUTING -> COMPLETED | FAILED

    EXECUTING may be re-entered from EXECUTING when a batch is recovered
    after a crash. Nothing leaves COMPLETED or FAILED.
    """

    QUEUED = "queued"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Whether no further transition is possible."""
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED})


class HandleType(str, Enum):
    """Direction of a handle (port) on a node.

    Uses (str, Enum) for database serialization to handles.type.
    """

    INPUT = "input"
    OUTPUT = "output"


class DataType(str, Enum):
    """Data type carried by a handle or an output item."""

    TEXT = "Text"
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    IMAGE = "Image"
    VIDEO = "Video"
    AUDIO = "Audio"
    FILE = "File"
    MASK = "Mask"
    ANY = "Any"


class FailureReason(str, Enum):
    """Why a task ended FAILED.

    Stored inside the task error payload (tasks.error_json) so the UI can
    distinguish a processor failure from a scheduling failure.
    """

    PROCESSOR_FAILED = "processor_failed"
    PROCESSOR_EXCEPTION = "processor_exception"
    MISSING_PROCESSOR = "missing_processor"
    NODE_REMOVED = "node_removed"
    UPSTREAM_FAILED = "upstream_failed"
    CYCLE_DETECTED = "cycle_detected"
    CYCLE_DETECTED_DURING_RECOVERY = "cycle_detected_during_recovery"

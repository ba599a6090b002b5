"""Error payloads and exception types.

Two kinds of error live here:

- ``TaskError``: the payload recorded on a FAILED task. Node-level failures
  are always resolved into one of these, never raised to the caller.
- ``CanvasflowError`` and subclasses: raised for caller mistakes (unknown
  target node, missing batch) and for broken invariants in the store.
"""

from dataclasses import dataclass, field
from typing import Any

from canvasflow.contracts.enums import FailureReason

UPSTREAM_FAILED_MESSAGE = "Upstream dependency failed or skipped"
CYCLE_DETECTED_MESSAGE = "Cycle detected"
CYCLE_DURING_RECOVERY_MESSAGE = "Cycle detected during recovery"
NODE_REMOVED_MESSAGE = "Node removed before processing"
UNSERIALIZABLE_RESULT_MESSAGE = "Processor result is not serializable"


@dataclass(frozen=True)
class TaskError:
    """Error payload stored on a FAILED task.

    ``message`` is human readable and shown per node in the UI.
    ``reason`` namespaces the failure; ``detail`` carries optional extra
    diagnostics (exception type, cycle members).
    """

    message: str
    reason: FailureReason
    detail: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for storage."""
        payload: dict[str, Any] = {
            "message": self.message,
            "reason": self.reason.value,
        }
        if self.detail:
            payload["detail"] = dict(self.detail)
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskError":
        """Load from a stored payload. Crashes on a malformed payload."""
        return cls(
            message=data["message"],
            reason=FailureReason(data["reason"]),
            detail=dict(data.get("detail") or {}),
        )

    @classmethod
    def missing_processor(cls, node_type: str) -> "TaskError":
        return cls(
            message=f"No processor registered for node type '{node_type}'",
            reason=FailureReason.MISSING_PROCESSOR,
            detail={"node_type": node_type},
        )

    @classmethod
    def node_removed(cls) -> "TaskError":
        return cls(message=NODE_REMOVED_MESSAGE, reason=FailureReason.NODE_REMOVED)

    @classmethod
    def unserializable_result(cls, cause: str) -> "TaskError":
        return cls(
            message=UNSERIALIZABLE_RESULT_MESSAGE,
            reason=FailureReason.PROCESSOR_FAILED,
            detail={"cause": cause},
        )

    @classmethod
    def upstream_failed(cls) -> "TaskError":
        return cls(
            message=UPSTREAM_FAILED_MESSAGE, reason=FailureReason.UPSTREAM_FAILED
        )

    @classmethod
    def cycle_detected(
        cls, members: list[str], *, during_recovery: bool = False
    ) -> "TaskError":
        if during_recovery:
            return cls(
                message=CYCLE_DURING_RECOVERY_MESSAGE,
                reason=FailureReason.CYCLE_DETECTED_DURING_RECOVERY,
                detail={"cycle_members": sorted(members)},
            )
        return cls(
            message=CYCLE_DETECTED_MESSAGE,
            reason=FailureReason.CYCLE_DETECTED,
            detail={"cycle_members": sorted(members)},
        )


class CanvasflowError(Exception):
    """Base class for errors raised out of canvasflow."""


class CanvasNotFoundError(CanvasflowError):
    """Raised when a canvas does not exist."""


class UnknownNodeError(CanvasflowError):
    """Raised when a trigger names target nodes that are not on the canvas."""

    def __init__(self, canvas_id: str, node_ids: list[str]) -> None:
        self.canvas_id = canvas_id
        self.node_ids = node_ids
        super().__init__(
            f"Nodes not found on canvas {canvas_id}: {', '.join(sorted(node_ids))}"
        )


class BatchNotFoundError(CanvasflowError):
    """Raised when a batch does not exist."""


class BatchClaimError(CanvasflowError):
    """Raised when a batch is driven by another live owner."""

    def __init__(self, batch_id: str, owner: str) -> None:
        self.batch_id = batch_id
        self.owner = owner
        super().__init__(f"Batch {batch_id} could not be claimed by {owner}")


class BatchStateError(CanvasflowError):
    """Raised when finalizing a batch that still has non-terminal tasks."""


class RegistryError(CanvasflowError):
    """Raised for invalid or conflicting processor registrations."""

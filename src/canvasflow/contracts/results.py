"""Operation outcomes and results.

These types answer: "What did a node processor produce?"

The scheduler only looks at ``success``, ``error`` and whether
``new_result`` is present; the result's shape belongs to processors.
"""

from dataclasses import dataclass, field
from typing import Any

from canvasflow.contracts.enums import FailureReason


@dataclass(frozen=True)
class ProcessorResult:
    """Result of one processor invocation.

    Use the factory methods to create instances.
    ``duration_ms`` is set by the dispatcher, not by processors.
    """

    success: bool
    error: str | None = None
    new_result: dict[str, Any] | None = None
    reason: FailureReason | None = None
    detail: dict[str, Any] = field(default_factory=dict, repr=False)
    duration_ms: float | None = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.success and self.error is not None:
            raise ValueError("successful ProcessorResult must not carry an error")
        if not self.success and not self.error:
            raise ValueError("failed ProcessorResult must carry an error message")

    @classmethod
    def ok(cls, new_result: dict[str, Any] | None = None) -> "ProcessorResult":
        """Create a successful result, optionally with a new node result."""
        return cls(success=True, new_result=new_result)

    @classmethod
    def fail(
        cls,
        error: str,
        *,
        reason: FailureReason = FailureReason.PROCESSOR_FAILED,
        detail: dict[str, Any] | None = None,
    ) -> "ProcessorResult":
        """Create a failed result with a human-readable message."""
        return cls(success=False, error=error, reason=reason, detail=detail or {})

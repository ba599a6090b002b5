# src/canvasflow/engine/dispatch.py
"""NodeDispatcher: resolve and invoke one node's processor.

Every outcome is normalized into a ProcessorResult. Nothing a processor
does, returns or raises escapes as an exception, except cancellation.
"""

import asyncio
import dataclasses
import time
from collections.abc import Mapping
from typing import Any

from canvasflow.contracts import (
    CanvasSnapshot,
    FailureReason,
    ProcessorResult,
    Task,
    TaskError,
)
from canvasflow.core.logging import get_logger
from canvasflow.plugins.context import ExecutionContext
from canvasflow.plugins.registry import ProcessorRegistry
from canvasflow.plugins.services import NodeServices

logger = get_logger(__name__)


def failure_from_error(error: TaskError) -> ProcessorResult:
    """ProcessorResult carrying a scheduler-side TaskError."""
    return ProcessorResult.fail(error.message, reason=error.reason, detail=error.detail)


def error_from_result(result: ProcessorResult) -> TaskError:
    """TaskError to record for a failed ProcessorResult."""
    assert result.error is not None
    return TaskError(
        message=result.error,
        reason=result.reason or FailureReason.PROCESSOR_FAILED,
        detail=dict(result.detail),
    )


class NodeDispatcher:
    """Invokes the registered processor for a task's node.

    Example:
        dispatcher = NodeDispatcher(registry, NodeServices())
        result = await dispatcher.dispatch(task, snapshot, aux={"api_key": key})
    """

    def __init__(
        self, registry: ProcessorRegistry, services: NodeServices | None = None
    ) -> None:
        self._registry = registry
        self._services = services or NodeServices()

    @property
    def registry(self) -> ProcessorRegistry:
        return self._registry

    async def dispatch(
        self,
        task: Task,
        canvas: CanvasSnapshot,
        aux: Mapping[str, Any] | None = None,
    ) -> ProcessorResult:
        """Run the processor for ``task.node_id`` exactly once.

        Args:
            task: Task being executed
            canvas: Canvas snapshot (read-only for the processor)
            aux: Per-execution auxiliary data forwarded to the processor

        Returns:
            ProcessorResult with ``duration_ms`` set

        Raises:
            asyncio.CancelledError: If the dispatch is cancelled
        """
        start = time.perf_counter()
        log = logger.bind(
            batch_id=task.batch_id, task_id=task.task_id, node_id=task.node_id
        )

        node = canvas.get_node(task.node_id)
        if node is None:
            log.warning("Node removed before processing")
            return self._timed(failure_from_error(TaskError.node_removed()), start)

        processor = self._registry.get_processor(node.type)
        if processor is None:
            log.error("No processor registered", node_type=node.type)
            return self._timed(
                failure_from_error(TaskError.missing_processor(node.type)), start
            )

        ctx = ExecutionContext(
            node=node,
            canvas=canvas,
            services=self._services,
            batch_id=task.batch_id,
            task_id=task.task_id,
            aux=dict(aux or {}),
            is_target=task.is_target,
        )

        try:
            result = await processor.process(ctx)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.exception("Processor raised", node_type=node.type)
            result = ProcessorResult.fail(
                f"{type(e).__name__}: {e}",
                reason=FailureReason.PROCESSOR_EXCEPTION,
                detail={"exception_type": type(e).__name__},
            )

        if not isinstance(result, ProcessorResult):
            log.error("Processor returned a non-result", returned=type(result).__name__)
            result = ProcessorResult.fail(
                f"Processor for '{node.type}' returned {type(result).__name__}, "
                "expected ProcessorResult",
                reason=FailureReason.PROCESSOR_EXCEPTION,
            )

        return self._timed(result, start)

    @staticmethod
    def _timed(result: ProcessorResult, start: float) -> ProcessorResult:
        return dataclasses.replace(
            result, duration_ms=(time.perf_counter() - start) * 1000
        )

# src/canvasflow/engine/scheduler.py
"""ExecutionScheduler: drive a node set to a fully terminal state.

Wavefront loop over a fixed node set S:

1. ready = nodes not completed/failed/in flight whose dependencies in S
   have all COMPLETED
2. nothing ready and nothing in flight -> stuck: every remaining node
   fails (cycle members with a cycle diagnostic, the rest as upstream
   failures) and the loop ends
3. otherwise mark ready nodes EXECUTING and dispatch them, up to the
   concurrency bound, then wait for the first completion and record it

Each pass either dispatches, records a completion, or ends the loop, so the
non-terminal count strictly decreases and the loop terminates. A failed
node's dependents never become ready; they are swept up by step 2.
"""

import asyncio
import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from canvasflow.contracts import (
    CanvasSnapshot,
    ProcessorResult,
    Task,
    TaskError,
    TaskStatus,
)
from canvasflow.core.canonical import canonical_json
from canvasflow.core.graph import DependencyGraph
from canvasflow.core.logging import get_logger
from canvasflow.core.store import CanvasRepository, TaskStore
from canvasflow.engine.dispatch import (
    NodeDispatcher,
    error_from_result,
    failure_from_error,
)

logger = get_logger(__name__)


def _storable(error: TaskError) -> TaskError:
    """The error itself, or the same message without detail if the detail
    cannot be written as canonical JSON."""
    try:
        canonical_json(error.to_dict())
    except (ValueError, TypeError) as e:
        logger.warning(
            "Error detail not serializable, dropped",
            reason=error.reason.value,
            error=str(e),
        )
        return TaskError(message=str(error.message), reason=error.reason)
    return error


@dataclass
class SchedulerRun:
    """One scheduler pass over a batch.

    tasks maps node_id -> Task for every node of the graph. Tasks already
    COMPLETED or FAILED are immutable facts; QUEUED and EXECUTING tasks are
    (re-)dispatched.
    """

    batch_id: str
    graph: DependencyGraph
    tasks: dict[str, Task]
    canvas: CanvasSnapshot
    aux: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        missing = [n for n in self.graph.node_ids if n not in self.tasks]
        if missing:
            raise ValueError(f"No task for graph node(s): {', '.join(missing)}")


@dataclass(frozen=True)
class SchedulerOutcome:
    """Final partition of the node set.

    dispatched: Nodes in dispatch order during this pass
    stuck: Nodes failed by stuck detection (never dispatched)
    """

    completed: frozenset[str]
    failed: frozenset[str]
    dispatched: tuple[str, ...]
    stuck: frozenset[str]


class ExecutionScheduler:
    """Bounded-concurrency wavefront scheduler.

    The scheduler is the only writer of task status. All store calls happen
    on the event loop thread between awaits.
    """

    def __init__(
        self,
        store: TaskStore,
        canvas_repo: CanvasRepository,
        dispatcher: NodeDispatcher,
        *,
        max_concurrency: int = 4,
    ) -> None:
        if max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be positive, got {max_concurrency}")
        self._store = store
        self._canvas_repo = canvas_repo
        self._dispatcher = dispatcher
        self._max_concurrency = max_concurrency

    @property
    def max_concurrency(self) -> int:
        return self._max_concurrency

    async def run(self, run: SchedulerRun) -> SchedulerOutcome:
        """Drive every node of ``run.graph`` to COMPLETED or FAILED.

        Node-level failures never raise. Cancellation cancels in-flight
        processors and propagates, leaving their tasks EXECUTING for
        recovery.

        Returns:
            SchedulerOutcome with the final partition
        """
        graph = run.graph
        log = logger.bind(batch_id=run.batch_id)

        completed: set[str] = set()
        failed: set[str] = set()
        for node_id in graph.node_ids:
            status = run.tasks[node_id].status
            if status == TaskStatus.COMPLETED:
                completed.add(node_id)
            elif status == TaskStatus.FAILED:
                failed.add(node_id)

        in_flight: dict[asyncio.Task[ProcessorResult], str] = {}
        dispatched: list[str] = []
        stuck: set[str] = set()
        total = graph.node_count

        log.info(
            "Scheduler started",
            nodes=total,
            already_completed=len(completed),
            already_failed=len(failed),
        )

        try:
            while len(completed) + len(failed) < total:
                busy = set(in_flight.values())
                ready = [
                    n
                    for n in graph.node_ids
                    if n not in completed
                    and n not in failed
                    and n not in busy
                    and all(d in completed for d in graph.deps[n])
                ]

                if not ready and not in_flight:
                    stuck = self._fail_stuck(run, completed, failed)
                    break

                free_slots = self._max_concurrency - len(in_flight)
                for node_id in ready[: max(free_slots, 0)]:
                    task = run.tasks[node_id]
                    if not self._store.mark_executing(task.task_id):
                        # Already terminal in the store; adopt the stored status
                        self._adopt_stored_status(run, task, completed, failed)
                        continue
                    dispatched.append(node_id)
                    log.debug("Node dispatched", node_id=node_id)
                    in_flight[
                        asyncio.create_task(
                            self._dispatcher.dispatch(task, run.canvas, run.aux),
                            name=f"canvasflow-node-{node_id}",
                        )
                    ] = node_id

                if not in_flight:
                    continue

                done, _ = await asyncio.wait(
                    in_flight.keys(), return_when=asyncio.FIRST_COMPLETED
                )
                for finished in done:
                    node_id = in_flight.pop(finished)
                    if self._record(run, node_id, finished.result()):
                        completed.add(node_id)
                    else:
                        failed.add(node_id)
        except BaseException:
            for pending in in_flight:
                pending.cancel()
            if in_flight:
                await asyncio.gather(*in_flight.keys(), return_exceptions=True)
            raise

        log.info(
            "Scheduler finished",
            completed=len(completed),
            failed=len(failed),
            stuck=len(stuck),
        )
        return SchedulerOutcome(
            completed=frozenset(completed),
            failed=frozenset(failed),
            dispatched=tuple(dispatched),
            stuck=frozenset(stuck),
        )

    def _record(self, run: SchedulerRun, node_id: str, result: ProcessorResult) -> bool:
        """Persist one dispatch outcome. Returns True if the node completed.

        Results and error payloads are checked for canonical JSON before the
        guarded write; a payload the store cannot hold fails the node instead
        of escaping the loop.
        """
        task = run.tasks[node_id]
        log = logger.bind(batch_id=run.batch_id, node_id=node_id, task_id=task.task_id)

        if result.success and result.new_result is not None:
            try:
                canonical_json(result.new_result)
            except (ValueError, TypeError) as e:
                log.warning("Processor result not serializable", error=str(e))
                result = dataclasses.replace(
                    failure_from_error(TaskError.unserializable_result(str(e))),
                    duration_ms=result.duration_ms,
                )

        if not result.success:
            error = _storable(error_from_result(result))
            self._store.mark_failed(task.task_id, error, duration_ms=result.duration_ms)
            log.warning(
                "Node failed",
                reason=error.reason.value,
                error=error.message,
                duration_ms=result.duration_ms,
            )
            return False

        self._store.mark_completed(
            task.task_id, duration_ms=result.duration_ms, result=result.new_result
        )
        if result.new_result is not None:
            self._apply_result(run, node_id, result.new_result)
        log.info("Node completed", duration_ms=result.duration_ms)
        return True

    def _apply_result(
        self, run: SchedulerRun, node_id: str, new_result: dict[str, Any]
    ) -> None:
        """Make a fresh result visible to downstream nodes of this batch."""
        canvas = run.canvas
        canvas.task_results[node_id] = new_result

        node = canvas.get_node(node_id)
        if node is None:
            logger.warning(
                "Node vanished from snapshot, result kept on task only",
                batch_id=run.batch_id,
                node_id=node_id,
            )
            return
        if canvas.is_transient_type(node.type):
            return

        canvas.nodes[node_id] = dataclasses.replace(node, result=new_result)
        self._canvas_repo.update_node_result(node_id, new_result)

    def _fail_stuck(
        self, run: SchedulerRun, completed: set[str], failed: set[str]
    ) -> set[str]:
        """Fail every remaining node. Returns the nodes failed here."""
        remaining = [
            n for n in run.graph.node_ids if n not in completed and n not in failed
        ]
        members = run.graph.cycle_members(remaining)
        cycle_error = TaskError.cycle_detected(sorted(members)) if members else None
        upstream_error = TaskError.upstream_failed()

        for node_id in remaining:
            if cycle_error is not None and node_id in members:
                error = cycle_error
            else:
                error = upstream_error
            self._store.mark_failed(run.tasks[node_id].task_id, error)
            failed.add(node_id)

        logger.warning(
            "Scheduler stuck, remaining nodes failed",
            batch_id=run.batch_id,
            remaining=len(remaining),
            cycle_members=sorted(members),
        )
        return set(remaining)

    def _adopt_stored_status(
        self, run: SchedulerRun, task: Task, completed: set[str], failed: set[str]
    ) -> None:
        stored = self._store.get_task(task.task_id)
        if stored is not None and stored.status == TaskStatus.COMPLETED:
            if stored.result is not None:
                run.canvas.task_results[task.node_id] = stored.result
            completed.add(task.node_id)
        else:
            failed.add(task.node_id)

# src/canvasflow/engine/orchestrator.py
"""BatchOrchestrator: full batch lifecycle management.

Coordinates:
- Planning a trigger into a node set
- Creating the batch and its tasks
- Claiming the batch and keeping the claim alive
- Driving the scheduler (or failing a cyclic set)
- Finalizing the batch

New batches and recovered batches go through the same drive_batch()
pipeline; recovery only enters it from a partially completed state.
"""

import asyncio
import os
import socket
import uuid
from collections.abc import Mapping, Sequence
from contextlib import suppress
from dataclasses import dataclass
from typing import Any

from canvasflow.contracts import (
    BatchClaimError,
    CanvasSnapshot,
    Task,
    TaskBatch,
    TaskError,
    TaskStatus,
)
from canvasflow.core.config import RecoverySettings, SchedulerSettings
from canvasflow.core.graph import (
    CycleDetected,
    build_dependency_graph,
    topological_sort,
)
from canvasflow.core.logging import get_logger
from canvasflow.core.store import CanvasRepository, NewTask, StoreDB, TaskStore
from canvasflow.engine.dispatch import NodeDispatcher
from canvasflow.engine.planner import ExecutionPlan, plan_execution
from canvasflow.engine.scheduler import ExecutionScheduler, SchedulerRun
from canvasflow.plugins.registry import ProcessorRegistry
from canvasflow.plugins.services import NodeServices

logger = get_logger(__name__)


def default_owner() -> str:
    """Claim owner identity for this process."""
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


def task_name(canvas: CanvasSnapshot, node_id: str) -> str:
    node = canvas.nodes[node_id]
    return f"Process node {node.display_name}"


@dataclass(frozen=True)
class BatchPlan:
    """A created batch with its tasks in plan order."""

    batch: TaskBatch
    tasks: tuple[Task, ...]
    plan: ExecutionPlan

    @property
    def batch_id(self) -> str:
        return self.batch.batch_id

    @property
    def node_ids(self) -> tuple[str, ...]:
        return self.plan.node_ids


@dataclass(frozen=True)
class BatchResult:
    """Final state of a batch."""

    batch: TaskBatch
    tasks: tuple[Task, ...]

    @property
    def batch_id(self) -> str:
        return self.batch.batch_id

    @property
    def completed(self) -> tuple[str, ...]:
        return tuple(t.node_id for t in self.tasks if t.status == TaskStatus.COMPLETED)

    @property
    def failed(self) -> tuple[str, ...]:
        return tuple(t.node_id for t in self.tasks if t.status == TaskStatus.FAILED)

    @property
    def succeeded(self) -> bool:
        return self.batch.is_finished and not self.failed

    def task_for(self, node_id: str) -> Task:
        for task in self.tasks:
            if task.node_id == node_id:
                return task
        raise KeyError(f"No task for node {node_id} in batch {self.batch_id}")

    def status_of(self, node_id: str) -> TaskStatus:
        return self.task_for(node_id).status


class BatchOrchestrator:
    """Creates and drives batches.

    Example:
        registry = ProcessorRegistry()
        registry.register_builtin_processors()
        orchestrator = BatchOrchestrator(db, registry)

        result = await orchestrator.execute(canvas_id, ["export-node"])
        for task in result.tasks:
            print(task.name, task.status)
    """

    def __init__(
        self,
        db: StoreDB,
        registry: ProcessorRegistry,
        *,
        services: NodeServices | None = None,
        scheduler_settings: SchedulerSettings | None = None,
        recovery_settings: RecoverySettings | None = None,
        owner: str | None = None,
    ) -> None:
        self._store = TaskStore(db)
        self._canvas_repo = CanvasRepository(db)
        self._dispatcher = NodeDispatcher(registry, services)
        scheduler_settings = scheduler_settings or SchedulerSettings()
        self._recovery_settings = recovery_settings or RecoverySettings()
        self._scheduler = ExecutionScheduler(
            self._store,
            self._canvas_repo,
            self._dispatcher,
            max_concurrency=scheduler_settings.max_concurrency,
        )
        self.owner = owner or default_owner()
        self._driving: set[str] = set()

    @property
    def store(self) -> TaskStore:
        return self._store

    @property
    def canvas_repo(self) -> CanvasRepository:
        return self._canvas_repo

    @property
    def recovery_settings(self) -> RecoverySettings:
        return self._recovery_settings

    # === Trigger ===

    def create_batch(
        self, canvas_id: str, node_ids: Sequence[str] | None = None
    ) -> BatchPlan:
        """Plan a trigger and persist the batch with QUEUED tasks.

        The batch starts claimed by this orchestrator. An empty plan yields
        a batch that is finished immediately.

        Args:
            canvas_id: Canvas to execute
            node_ids: Target nodes; None runs every node of the canvas

        Returns:
            BatchPlan with the created batch and tasks

        Raises:
            CanvasNotFoundError: If the canvas does not exist
            UnknownNodeError: If a target is not on the canvas
        """
        canvas = self._canvas_repo.load_snapshot(canvas_id)
        plan = plan_execution(canvas, node_ids)

        batch = self._store.create_batch(
            canvas_id,
            [
                NewTask(
                    node_id=n,
                    name=task_name(canvas, n),
                    is_target=n in plan.targets,
                )
                for n in plan.node_ids
            ],
            owner=self.owner,
        )
        logger.info(
            "Batch created",
            batch_id=batch.batch_id,
            canvas_id=canvas_id,
            tasks=len(plan.node_ids),
            targets=len(plan.targets),
            cycle=plan.cycle is not None,
        )

        if plan.is_empty:
            self._store.finish_batch(batch.batch_id)
            logger.info("Empty batch finalized", batch_id=batch.batch_id)
            batch = self._store.require_batch(batch.batch_id)

        return BatchPlan(
            batch=batch,
            tasks=tuple(self._store.get_tasks(batch.batch_id)),
            plan=plan,
        )

    async def execute(
        self,
        canvas_id: str,
        node_ids: Sequence[str] | None = None,
        *,
        aux: Mapping[str, Any] | None = None,
    ) -> BatchResult:
        """Create a batch and drive it to completion.

        Returns once every task is terminal and the batch is finished.
        Node failures are reported on the result, never raised.

        Raises:
            BatchClaimError: If another owner took the claim mid-run
        """
        created = self.create_batch(canvas_id, node_ids)
        return await self.drive_batch(created.batch_id, aux=aux)

    async def run_batch(
        self, batch_id: str, *, aux: Mapping[str, Any] | None = None
    ) -> BatchResult:
        """Claim an existing batch and drive it.

        Raises:
            BatchNotFoundError: If the batch does not exist
            BatchClaimError: If another live owner holds the batch
        """
        self._store.require_batch(batch_id)
        self.claim(batch_id)
        return await self.drive_batch(batch_id, aux=aux)

    def claim(self, batch_id: str) -> None:
        """Take the single-writer claim on a batch.

        Raises:
            BatchClaimError: If the batch is finished, held by a live owner,
                or already being driven by this orchestrator
        """
        if batch_id in self._driving:
            raise BatchClaimError(batch_id, self.owner)
        claimed = self._store.claim_batch(
            batch_id,
            self.owner,
            stale_after_seconds=self._recovery_settings.stale_after_seconds,
        )
        if not claimed:
            raise BatchClaimError(batch_id, self.owner)

    # === Shared Pipeline ===

    async def drive_batch(
        self,
        batch_id: str,
        *,
        aux: Mapping[str, Any] | None = None,
        recovering: bool = False,
    ) -> BatchResult:
        """Drive a claimed batch to a finished state.

        1. Load tasks and the canvas; overlay completed task results
        2. Tasks whose node was deleted leave the node set; open ones fail
        3. Sort the surviving set; on a cycle fail every open task
        4. Otherwise run the scheduler seeded from persisted statuses
        5. Finalize the batch

        Args:
            batch_id: Batch to drive (caller holds the claim)
            aux: Per-execution auxiliary data for processors
            recovering: Entered from batch recovery (changes the cycle message)

        Returns:
            BatchResult with the final batch and tasks

        Raises:
            BatchNotFoundError: If the batch does not exist
            BatchClaimError: If this orchestrator is already driving the
                batch, or the claim was lost to another owner mid-run
        """
        batch = self._store.require_batch(batch_id)
        log = logger.bind(batch_id=batch_id, canvas_id=batch.canvas_id)
        if batch.is_finished:
            log.info("Batch already finished")
            return self._result(batch_id)
        if batch_id in self._driving:
            raise BatchClaimError(batch_id, self.owner)

        self._driving.add(batch_id)
        heartbeat = asyncio.create_task(
            self._heartbeat(batch_id), name=f"canvasflow-heartbeat-{batch_id}"
        )
        finished = False
        try:
            tasks = self._store.get_tasks(batch_id)
            canvas = self._canvas_repo.load_snapshot(batch.canvas_id)
            for task in tasks:
                if task.status == TaskStatus.COMPLETED and task.result is not None:
                    canvas.task_results[task.node_id] = task.result

            surviving = [t for t in tasks if t.node_id in canvas.nodes]
            removed = [
                t for t in tasks if t.node_id not in canvas.nodes and not t.is_terminal
            ]
            for task in removed:
                self._store.mark_failed(task.task_id, TaskError.node_removed())
            if removed:
                log.warning(
                    "Tasks for deleted nodes failed",
                    node_ids=[t.node_id for t in removed],
                )

            graph = build_dependency_graph([t.node_id for t in surviving], canvas.edges)
            sort = topological_sort(graph)

            if isinstance(sort, CycleDetected):
                self._fail_cycle(batch_id, surviving, sort, recovering=recovering)
            else:
                await self._schedule_while_claimed(
                    SchedulerRun(
                        batch_id=batch_id,
                        graph=graph,
                        tasks={t.node_id: t for t in surviving},
                        canvas=canvas,
                        aux=dict(aux or {}),
                    ),
                    heartbeat,
                )

            finished = self._store.finish_batch(batch_id)
            log.info("Batch finished", recovering=recovering)
        finally:
            self._driving.discard(batch_id)
            heartbeat.cancel()
            with suppress(asyncio.CancelledError):
                await heartbeat
            if not finished:
                self._store.release_batch(batch_id, self.owner)

        return self._result(batch_id)

    async def _schedule_while_claimed(
        self, run: SchedulerRun, heartbeat: asyncio.Task[None]
    ) -> None:
        """Run the scheduler until it ends or the heartbeat stops.

        The heartbeat only returns when the claim was lost. The scheduler is
        then cancelled, leaving its open tasks to the new owner.

        Raises:
            BatchClaimError: If the claim was lost before the scheduler ended
        """
        scheduling = asyncio.create_task(
            self._scheduler.run(run), name=f"canvasflow-scheduler-{run.batch_id}"
        )
        try:
            await asyncio.wait(
                {scheduling, heartbeat}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if not scheduling.done():
                scheduling.cancel()
                with suppress(asyncio.CancelledError):
                    await scheduling

        if scheduling.cancelled():
            logger.warning(
                "Scheduler stopped, batch left to new owner",
                batch_id=run.batch_id,
                owner=self.owner,
            )
            raise BatchClaimError(run.batch_id, self.owner)
        scheduling.result()

    def _fail_cycle(
        self,
        batch_id: str,
        tasks: list[Task],
        cycle: CycleDetected,
        *,
        recovering: bool,
    ) -> None:
        error = TaskError.cycle_detected(
            sorted(cycle.members), during_recovery=recovering
        )
        count = self._store.fail_open_tasks(
            batch_id, error, node_ids=[t.node_id for t in tasks]
        )
        logger.warning(
            "Cycle detected, open tasks failed",
            batch_id=batch_id,
            cycle_members=sorted(cycle.members),
            failed=count,
            recovering=recovering,
        )

    async def _heartbeat(self, batch_id: str) -> None:
        interval = self._recovery_settings.heartbeat_interval_seconds
        while True:
            await asyncio.sleep(interval)
            if not self._store.renew_heartbeat(batch_id, self.owner):
                logger.warning(
                    "Batch claim lost, stopping",
                    batch_id=batch_id,
                    owner=self.owner,
                )
                return

    def _result(self, batch_id: str) -> BatchResult:
        return BatchResult(
            batch=self._store.require_batch(batch_id),
            tasks=tuple(self._store.get_tasks(batch_id)),
        )

# src/canvasflow/core/store/tasks.py
"""TaskStore: persisted task and batch state.

This is the only writer of the task_batches and tasks tables. Every status
change is a guarded conditional UPDATE, so a task that reached a terminal
state is never rewritten and a finished batch is never finished twice.
Callers learn whether a guarded write applied from the boolean return.
"""

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import and_, func, or_, select

from canvasflow.contracts import (
    BatchNotFoundError,
    BatchStateError,
    Task,
    TaskBatch,
    TaskError,
    TaskStatus,
)
from canvasflow.core.canonical import canonical_json
from canvasflow.core.logging import get_logger
from canvasflow.core.store.database import StoreDB
from canvasflow.core.store.repositories import BatchRepository, TaskRepository
from canvasflow.core.store.schema import task_batches_table, tasks_table

logger = get_logger(__name__)

_NON_TERMINAL = (TaskStatus.QUEUED.value, TaskStatus.EXECUTING.value)


def _now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


def _generate_id() -> str:
    """Generate a unique ID."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class NewTask:
    """A task to create as part of a new batch."""

    node_id: str
    name: str
    is_target: bool = False


class TaskStore:
    """High-level API for batch and task state.

    Methods are synchronous and the engine calls them from the event loop
    thread between awaits, so writes for one batch never interleave. A slow
    database stalls every in-flight processor of the process for the length
    of the call; processors that do blocking work of their own must move it
    off the loop themselves.

    Example:
        db = StoreDB.in_memory()
        store = TaskStore(db)

        batch = store.create_batch(canvas_id, [NewTask("n1", "Process node n1")])
        task = store.get_tasks(batch.batch_id)[0]
        store.mark_executing(task.task_id)
        store.mark_completed(task.task_id, duration_ms=12.5)
        store.finish_batch(batch.batch_id)
    """

    def __init__(self, db: StoreDB) -> None:
        self._db = db
        self._batches = BatchRepository()
        self._tasks = TaskRepository()

    # === Batch Lifecycle ===

    def create_batch(
        self,
        canvas_id: str,
        tasks: Sequence[NewTask] = (),
        *,
        batch_id: str | None = None,
        owner: str | None = None,
    ) -> TaskBatch:
        """Create a batch and its QUEUED tasks in one transaction.

        Args:
            canvas_id: Canvas the batch executes
            tasks: Tasks to create, in plan order
            batch_id: Optional batch ID (generated if not provided)
            owner: If given, the batch starts claimed by this owner

        Returns:
            The created TaskBatch
        """
        batch_id = batch_id or _generate_id()
        now = _now()

        with self._db.connection() as conn:
            conn.execute(
                task_batches_table.insert().values(
                    batch_id=batch_id,
                    canvas_id=canvas_id,
                    created_at=now,
                    claimed_by=owner,
                    heartbeat_at=now if owner is not None else None,
                )
            )
            if tasks:
                conn.execute(
                    tasks_table.insert(),
                    [
                        {
                            "task_id": _generate_id(),
                            "batch_id": batch_id,
                            "node_id": spec.node_id,
                            "ordinal": ordinal,
                            "name": spec.name,
                            "status": TaskStatus.QUEUED.value,
                            "is_target": spec.is_target,
                            "created_at": now,
                        }
                        for ordinal, spec in enumerate(tasks)
                    ],
                )

        return TaskBatch(
            batch_id=batch_id,
            canvas_id=canvas_id,
            created_at=now,
            claimed_by=owner,
            heartbeat_at=now if owner is not None else None,
        )

    def get_batch(self, batch_id: str) -> TaskBatch | None:
        """Get a batch by ID, or None if it does not exist."""
        with self._db.connection() as conn:
            row = conn.execute(
                select(task_batches_table).where(
                    task_batches_table.c.batch_id == batch_id
                )
            ).fetchone()

        if row is None:
            return None
        return self._batches.load(row)

    def require_batch(self, batch_id: str) -> TaskBatch:
        """Get a batch by ID.

        Raises:
            BatchNotFoundError: If the batch does not exist
        """
        batch = self.get_batch(batch_id)
        if batch is None:
            raise BatchNotFoundError(f"Batch not found: {batch_id}")
        return batch

    def list_batches(self, canvas_id: str) -> list[TaskBatch]:
        """All batches of a canvas, oldest first."""
        with self._db.connection() as conn:
            rows = conn.execute(
                select(task_batches_table)
                .where(task_batches_table.c.canvas_id == canvas_id)
                .order_by(task_batches_table.c.created_at)
            ).fetchall()
        return [self._batches.load(r) for r in rows]

    def find_dangling_batches(self) -> list[TaskBatch]:
        """Batches with no completion timestamp, oldest first.

        After a restart these are interrupted runs. While processes are
        running, some may still be live; check the claim before resuming.
        """
        with self._db.connection() as conn:
            rows = conn.execute(
                select(task_batches_table)
                .where(task_batches_table.c.finished_at.is_(None))
                .order_by(task_batches_table.c.created_at)
            ).fetchall()
        return [self._batches.load(r) for r in rows]

    def finish_batch(self, batch_id: str) -> bool:
        """Set the batch completion timestamp.

        The timestamp is written once; finishing an already finished batch
        is a no-op.

        Returns:
            True if this call finished the batch, False if it was already
            finished

        Raises:
            BatchNotFoundError: If the batch does not exist
            BatchStateError: If any task of the batch is not terminal
        """
        with self._db.connection() as conn:
            exists = conn.execute(
                select(task_batches_table.c.batch_id).where(
                    task_batches_table.c.batch_id == batch_id
                )
            ).fetchone()
            if exists is None:
                raise BatchNotFoundError(f"Batch not found: {batch_id}")

            open_count = conn.execute(
                select(func.count())
                .select_from(tasks_table)
                .where(
                    and_(
                        tasks_table.c.batch_id == batch_id,
                        tasks_table.c.status.in_(_NON_TERMINAL),
                    )
                )
            ).scalar_one()
            if open_count:
                raise BatchStateError(
                    f"Batch {batch_id} has {open_count} non-terminal task(s)"
                )

            result = conn.execute(
                task_batches_table.update()
                .where(
                    and_(
                        task_batches_table.c.batch_id == batch_id,
                        task_batches_table.c.finished_at.is_(None),
                    )
                )
                .values(finished_at=_now())
            )

        return result.rowcount == 1

    # === Batch Ownership ===

    def claim_batch(
        self, batch_id: str, owner: str, *, stale_after_seconds: float
    ) -> bool:
        """Take single-writer ownership of an unfinished batch.

        Succeeds when the batch is unfinished and either unclaimed, already
        claimed by ``owner``, or its last heartbeat is older than
        ``stale_after_seconds``.

        Returns:
            True if ``owner`` now holds the claim
        """
        now = _now()
        cutoff = now - timedelta(seconds=stale_after_seconds)

        with self._db.connection() as conn:
            result = conn.execute(
                task_batches_table.update()
                .where(
                    and_(
                        task_batches_table.c.batch_id == batch_id,
                        task_batches_table.c.finished_at.is_(None),
                        or_(
                            task_batches_table.c.claimed_by.is_(None),
                            task_batches_table.c.claimed_by == owner,
                            task_batches_table.c.heartbeat_at.is_(None),
                            task_batches_table.c.heartbeat_at < cutoff,
                        ),
                    )
                )
                .values(claimed_by=owner, heartbeat_at=now)
            )

        return result.rowcount == 1

    def renew_heartbeat(self, batch_id: str, owner: str) -> bool:
        """Refresh the claim timestamp. False if ``owner`` lost the claim."""
        with self._db.connection() as conn:
            result = conn.execute(
                task_batches_table.update()
                .where(
                    and_(
                        task_batches_table.c.batch_id == batch_id,
                        task_batches_table.c.claimed_by == owner,
                        task_batches_table.c.finished_at.is_(None),
                    )
                )
                .values(heartbeat_at=_now())
            )
        return result.rowcount == 1

    def release_batch(self, batch_id: str, owner: str) -> bool:
        """Drop ``owner``'s claim so another process may resume the batch."""
        with self._db.connection() as conn:
            result = conn.execute(
                task_batches_table.update()
                .where(
                    and_(
                        task_batches_table.c.batch_id == batch_id,
                        task_batches_table.c.claimed_by == owner,
                    )
                )
                .values(claimed_by=None, heartbeat_at=None)
            )
        return result.rowcount == 1

    # === Tasks ===

    def get_tasks(self, batch_id: str) -> list[Task]:
        """Tasks of a batch in creation order."""
        with self._db.connection() as conn:
            rows = conn.execute(
                select(tasks_table)
                .where(tasks_table.c.batch_id == batch_id)
                .order_by(tasks_table.c.ordinal)
            ).fetchall()
        return [self._tasks.load(r) for r in rows]

    def get_task(self, task_id: str) -> Task | None:
        """Get a task by ID, or None if it does not exist."""
        with self._db.connection() as conn:
            row = conn.execute(
                select(tasks_table).where(tasks_table.c.task_id == task_id)
            ).fetchone()

        if row is None:
            return None
        return self._tasks.load(row)

    def mark_executing(self, task_id: str) -> bool:
        """QUEUED/EXECUTING -> EXECUTING, stamping the start time.

        EXECUTING -> EXECUTING is the re-dispatch of a task interrupted by
        a crash.

        Returns:
            False if the task is already terminal (nothing written)
        """
        with self._db.connection() as conn:
            result = conn.execute(
                tasks_table.update()
                .where(
                    and_(
                        tasks_table.c.task_id == task_id,
                        tasks_table.c.status.in_(_NON_TERMINAL),
                    )
                )
                .values(status=TaskStatus.EXECUTING.value, started_at=_now())
            )
        return self._applied(result.rowcount, task_id, TaskStatus.EXECUTING)

    def mark_completed(
        self,
        task_id: str,
        *,
        duration_ms: float | None = None,
        result: dict[str, Any] | None = None,
    ) -> bool:
        """Non-terminal -> COMPLETED.

        Args:
            task_id: Task to complete
            duration_ms: Processing duration
            result: Result to keep on the task (transient node types)

        Returns:
            False if the task was already terminal (nothing written)
        """
        with self._db.connection() as conn:
            outcome = conn.execute(
                tasks_table.update()
                .where(
                    and_(
                        tasks_table.c.task_id == task_id,
                        tasks_table.c.status.in_(_NON_TERMINAL),
                    )
                )
                .values(
                    status=TaskStatus.COMPLETED.value,
                    finished_at=_now(),
                    duration_ms=duration_ms,
                    result_json=canonical_json(result) if result is not None else None,
                )
            )
        return self._applied(outcome.rowcount, task_id, TaskStatus.COMPLETED)

    def mark_failed(
        self,
        task_id: str,
        error: TaskError,
        *,
        duration_ms: float | None = None,
    ) -> bool:
        """Non-terminal -> FAILED with an error payload.

        Returns:
            False if the task was already terminal (nothing written)
        """
        with self._db.connection() as conn:
            outcome = conn.execute(
                tasks_table.update()
                .where(
                    and_(
                        tasks_table.c.task_id == task_id,
                        tasks_table.c.status.in_(_NON_TERMINAL),
                    )
                )
                .values(
                    status=TaskStatus.FAILED.value,
                    finished_at=_now(),
                    duration_ms=duration_ms,
                    error_json=canonical_json(error.to_dict()),
                )
            )
        return self._applied(outcome.rowcount, task_id, TaskStatus.FAILED)

    def fail_open_tasks(
        self, batch_id: str, error: TaskError, node_ids: Iterable[str] | None = None
    ) -> int:
        """Fail every non-terminal task of a batch, optionally limited to nodes.

        Returns:
            Number of tasks failed
        """
        conditions = [
            tasks_table.c.batch_id == batch_id,
            tasks_table.c.status.in_(_NON_TERMINAL),
        ]
        if node_ids is not None:
            conditions.append(tasks_table.c.node_id.in_(list(node_ids)))

        with self._db.connection() as conn:
            outcome = conn.execute(
                tasks_table.update()
                .where(and_(*conditions))
                .values(
                    status=TaskStatus.FAILED.value,
                    finished_at=_now(),
                    error_json=canonical_json(error.to_dict()),
                )
            )
        return int(outcome.rowcount)

    def _applied(self, rowcount: int, task_id: str, target: TaskStatus) -> bool:
        if rowcount == 1:
            return True
        logger.warning(
            "Task transition skipped",
            task_id=task_id,
            target_status=target.value,
            reason="task missing or already terminal",
        )
        return False

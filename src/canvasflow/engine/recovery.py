# src/canvasflow/engine/recovery.py
"""Batch recovery: resume batches left open by a crash.

Recovery protocol, per dangling batch (no completion timestamp):
1. Claim the batch; skip it if another live process holds it
2. Hand it to BatchOrchestrator.drive_batch(recovering=True), which keeps
   COMPLETED/FAILED tasks as facts and re-dispatches QUEUED and EXECUTING
   ones
3. Record the outcome; an exception in one batch never stops the others

Running recovery twice converges: finished batches are not dangling, and
terminal tasks are never re-executed.
"""

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from canvasflow.contracts import BatchClaimError
from canvasflow.core.logging import get_logger
from canvasflow.engine.orchestrator import BatchOrchestrator, BatchResult

logger = get_logger(__name__)


@dataclass
class RecoveryReport:
    """Outcome of one recovery sweep.

    resumed: Batches driven to a finished state, by batch ID
    skipped: Batches claimed by another live owner
    errors: Batches whose recovery raised, with the error message
    """

    resumed: dict[str, BatchResult] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.resumed) + len(self.skipped) + len(self.errors)


class BatchRecovery:
    """Finds and resumes dangling batches.

    Usage:
        recovery = BatchRecovery(orchestrator, aux={"api_key": key})
        report = await recovery.resume_dangling_batches()
    """

    def __init__(
        self,
        orchestrator: BatchOrchestrator,
        *,
        aux: Mapping[str, Any] | None = None,
    ) -> None:
        self._orchestrator = orchestrator
        self._aux = dict(aux or {})

    async def resume_dangling_batches(self) -> RecoveryReport:
        """Resume every batch with no completion timestamp.

        Batches are recovered concurrently; each has its own scheduler loop.

        Returns:
            RecoveryReport for the sweep
        """
        dangling = self._orchestrator.store.find_dangling_batches()
        report = RecoveryReport()
        if not dangling:
            logger.info("No dangling batches")
            return report

        logger.info("Recovering dangling batches", count=len(dangling))
        outcomes = await asyncio.gather(
            *(self._recover_one(batch.batch_id) for batch in dangling)
        )

        for batch, outcome in zip(dangling, outcomes, strict=True):
            if isinstance(outcome, BatchResult):
                report.resumed[batch.batch_id] = outcome
            elif isinstance(outcome, BatchClaimError):
                report.skipped.append(batch.batch_id)
            else:
                report.errors[batch.batch_id] = str(outcome)

        logger.info(
            "Recovery sweep finished",
            resumed=len(report.resumed),
            skipped=len(report.skipped),
            errors=len(report.errors),
        )
        return report

    async def resume_batch(self, batch_id: str) -> BatchResult:
        """Claim and resume one batch.

        Raises:
            BatchNotFoundError: If the batch does not exist
            BatchClaimError: If another live owner holds the batch
        """
        batch = self._orchestrator.store.require_batch(batch_id)
        if batch.is_finished:
            logger.info("Batch already finished, nothing to recover", batch_id=batch_id)
            return await self._orchestrator.drive_batch(batch_id)

        self._orchestrator.claim(batch_id)
        logger.info("Resuming batch", batch_id=batch_id, canvas_id=batch.canvas_id)
        return await self._orchestrator.drive_batch(
            batch_id, aux=self._aux, recovering=True
        )

    async def _recover_one(self, batch_id: str) -> BatchResult | Exception:
        try:
            return await self.resume_batch(batch_id)
        except BatchClaimError as e:
            logger.info("Batch held by another owner, skipped", batch_id=batch_id)
            return e
        except Exception as e:
            logger.exception("Batch recovery failed", batch_id=batch_id)
            return e

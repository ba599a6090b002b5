# src/canvasflow/engine/__init__.py
"""Execution engine: planning, dispatch, scheduling and recovery."""

from canvasflow.engine.dispatch import NodeDispatcher
from canvasflow.engine.orchestrator import BatchOrchestrator, BatchPlan, BatchResult
from canvasflow.engine.planner import ExecutionPlan, plan_execution
from canvasflow.engine.recovery import BatchRecovery, RecoveryReport
from canvasflow.engine.scheduler import (
    ExecutionScheduler,
    SchedulerOutcome,
    SchedulerRun,
)

__all__ = [
    "BatchOrchestrator",
    "BatchPlan",
    "BatchRecovery",
    "BatchResult",
    "ExecutionPlan",
    "ExecutionScheduler",
    "NodeDispatcher",
    "RecoveryReport",
    "SchedulerOutcome",
    "SchedulerRun",
    "plan_execution",
]

# src/canvasflow/core/store/__init__.py
"""Task state store: batches, tasks and the canvas they execute."""

from canvasflow.core.store.canvas import CanvasRepository
from canvasflow.core.store.database import StoreDB
from canvasflow.core.store.schema import metadata
from canvasflow.core.store.tasks import NewTask, TaskStore

__all__ = [
    "CanvasRepository",
    "NewTask",
    "StoreDB",
    "TaskStore",
    "metadata",
]

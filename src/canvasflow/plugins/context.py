# src/canvasflow/plugins/context.py
"""Processor execution context.

The ExecutionContext carries everything a processor may read during one
invocation. It is frozen; the canvas snapshot inside it is shared with the
scheduler and must be treated as read-only.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from canvasflow.contracts import CanvasSnapshot, Node
from canvasflow.plugins.services import NodeServices


@dataclass(frozen=True)
class ExecutionContext:
    """Context passed to NodeProcessor.process().

    Provides access to:
    - The node being processed and the canvas snapshot
    - The service bundle (resolvers, storage, media, AI)
    - Per-execution auxiliary data forwarded by the trigger (e.g. API key)

    Example:
        async def process(self, ctx: ExecutionContext) -> ProcessorResult:
            text = ctx.services.resolvers.get_input_value(
                ctx.canvas, ctx.node.node_id, data_type=DataType.TEXT
            )
            api_key = ctx.get_aux("api_key")
            ...
    """

    node: Node
    canvas: CanvasSnapshot
    services: NodeServices
    batch_id: str
    task_id: str
    aux: Mapping[str, Any] = field(default_factory=dict)
    is_target: bool = False

    @property
    def config(self) -> dict[str, Any]:
        """The node's config blob, empty when unset."""
        return self.node.config or {}

    def get_aux(self, key: str, default: Any = None) -> Any:
        """Read auxiliary trigger data."""
        return self.aux.get(key, default)

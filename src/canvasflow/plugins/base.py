# src/canvasflow/plugins/base.py
"""Base class for node processor implementations.

Processors can subclass BaseProcessor for convenience, or implement the
NodeProcessor protocol directly.
"""

from abc import ABC, abstractmethod

from canvasflow.contracts import Handle, NodeTemplate, ProcessorResult
from canvasflow.plugins.context import ExecutionContext


class BaseProcessor(ABC):
    """Base class for node processors.

    Subclass and implement process() to create a processor.

    Example:
        class UpperCase(BaseProcessor):
            node_type = "UpperCase"
            display_name = "Upper case"

            async def process(self, ctx: ExecutionContext) -> ProcessorResult:
                ...
                return ProcessorResult.ok(new_result)
    """

    node_type: str
    display_name: str = ""
    processor_version: str = "0.0.0"
    is_terminal: bool = False
    is_transient: bool = False

    @abstractmethod
    async def process(self, ctx: ExecutionContext) -> ProcessorResult:
        """Process one node.

        Args:
            ctx: Execution context

        Returns:
            ProcessorResult with success flag, error or new result
        """
        ...

    @classmethod
    def template(cls) -> NodeTemplate:
        """Default template for this node type."""
        return NodeTemplate(
            type=cls.node_type,
            display_name=cls.display_name or cls.node_type,
            is_terminal=cls.is_terminal,
            is_transient=cls.is_transient,
        )

    @staticmethod
    def first_output_handle(ctx: ExecutionContext) -> Handle | None:
        """The node's lowest-ordered output handle."""
        handles = ctx.services.resolvers.get_all_output_handles(
            ctx.canvas, ctx.node.node_id
        )
        return handles[0] if handles else None

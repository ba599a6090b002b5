# src/canvasflow/plugins/protocols.py
"""Protocol every node processor satisfies.

Used for type checking and for the registration-time check in
ProcessorRegistry; processors can subclass BaseProcessor or implement the
protocol directly.
"""

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from canvasflow.contracts import ProcessorResult
    from canvasflow.plugins.context import ExecutionContext


@runtime_checkable
class NodeProcessor(Protocol):
    """Protocol for per-node-type processors.

    One processor handles every node of its ``node_type``. It reads the
    node's config and upstream results from the context and returns a
    ProcessorResult; it never touches task state.

    Processors must tolerate being invoked again for the same node: a batch
    recovered after a crash re-dispatches tasks that were EXECUTING, and the
    earlier attempt's side effects may or may not have happened.

    Example:
        class UpperCase:
            node_type = "UpperCase"
            display_name = "Upper case"
            processor_version = "1.0.0"
            is_terminal = False
            is_transient = False

            async def process(self, ctx: ExecutionContext) -> ProcessorResult:
                text = ctx.services.resolvers.get_input_value(
                    ctx.canvas, ctx.node.node_id, data_type=DataType.TEXT
                )
                ...
    """

    node_type: str
    display_name: str
    processor_version: str
    is_terminal: bool
    is_transient: bool

    async def process(self, ctx: "ExecutionContext") -> "ProcessorResult":
        """Process one node.

        Args:
            ctx: Read-only execution context

        Returns:
            ProcessorResult with success flag, error message or new result
        """
        ...

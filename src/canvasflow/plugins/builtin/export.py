"""Export node: terminal node that publishes its input as a result."""

from canvasflow.contracts import ProcessorResult
from canvasflow.plugins.base import BaseProcessor
from canvasflow.plugins.context import ExecutionContext
from canvasflow.plugins.resolvers import (
    InputResolutionError,
    build_output_result,
    output_item,
)


class ExportProcessor(BaseProcessor):
    """Copy the connected input item into the node's own result.

    The result keeps the input's data type. With no output handle the item
    is recorded against the input edge's source handle.
    """

    node_type = "Export"
    display_name = "Export"
    processor_version = "1.0.0"
    is_terminal = True

    async def process(self, ctx: ExecutionContext) -> ProcessorResult:
        try:
            value = ctx.services.resolvers.get_input_value(
                ctx.canvas, ctx.node.node_id
            )
        except InputResolutionError as e:
            return ProcessorResult.fail(str(e))
        assert value is not None

        handle = self.first_output_handle(ctx)
        if handle is not None:
            handle_id = handle.handle_id
        else:
            handle_id = value["output_handle_id"]
        return ProcessorResult.ok(
            build_output_result(
                [output_item(value["type"], value["data"], handle_id)]
            )
        )

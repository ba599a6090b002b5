"""TextMerger node: joins every connected text input."""

from canvasflow.contracts import DataType, ProcessorResult
from canvasflow.plugins.base import BaseProcessor
from canvasflow.plugins.config_base import ProcessorConfig
from canvasflow.plugins.context import ExecutionContext
from canvasflow.plugins.resolvers import (
    InputResolutionError,
    build_output_result,
    output_item,
)


class TextMergerConfig(ProcessorConfig):
    join: str = "\n"


class TextMergerProcessor(BaseProcessor):
    """Join text inputs in handle order with ``config.join``.

    Inputs that produced no value are skipped.

    Config options:
        join: Separator (default newline)
    """

    node_type = "TextMerger"
    display_name = "Text Merger"
    processor_version = "1.0.0"

    async def process(self, ctx: ExecutionContext) -> ProcessorResult:
        cfg = TextMergerConfig.from_dict(ctx.config)

        try:
            values = ctx.services.resolvers.get_input_values_by_type(
                ctx.canvas, ctx.node.node_id, data_type=DataType.TEXT
            )
        except InputResolutionError as e:
            return ProcessorResult.fail(str(e))

        merged = cfg.join.join(str(v["data"]) for v in values if v is not None)

        handle = self.first_output_handle(ctx)
        if handle is None:
            return ProcessorResult.fail("Output handle is missing.")

        return ProcessorResult.ok(
            build_output_result(
                [output_item(DataType.TEXT, merged, handle.handle_id)]
            )
        )

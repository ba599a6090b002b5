"""Text node: emits the text typed into its config."""

from canvasflow.contracts import DataType, ProcessorResult
from canvasflow.plugins.base import BaseProcessor
from canvasflow.plugins.config_base import ProcessorConfig
from canvasflow.plugins.context import ExecutionContext
from canvasflow.plugins.resolvers import build_output_result, output_item


class TextConfig(ProcessorConfig):
    content: str = ""


class TextProcessor(BaseProcessor):
    """Emit ``config.content`` on the node's text output.

    Config options:
        content: Text to emit (default empty)
    """

    node_type = "Text"
    display_name = "Text"
    processor_version = "1.0.0"

    async def process(self, ctx: ExecutionContext) -> ProcessorResult:
        cfg = TextConfig.from_dict(ctx.config)

        handle = self.first_output_handle(ctx)
        if handle is None:
            return ProcessorResult.fail("Output handle is missing.")

        return ProcessorResult.ok(
            build_output_result(
                [output_item(DataType.TEXT, cfg.content, handle.handle_id)]
            )
        )

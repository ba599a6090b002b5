"""Built-in node processors."""

from canvasflow.plugins.builtin.export import ExportProcessor
from canvasflow.plugins.builtin.text import TextProcessor
from canvasflow.plugins.builtin.text_merger import TextMergerProcessor

__all__ = ["ExportProcessor", "TextMergerProcessor", "TextProcessor"]

"""Hook implementation for built-in node processors."""

from typing import Any

from canvasflow.plugins.hookspecs import hookimpl


class CanvasflowBuiltinProcessors:
    """Hook implementer for built-in processors."""

    @hookimpl
    def canvasflow_get_processors(self) -> list[type[Any]]:
        """Return built-in processor classes."""
        from canvasflow.plugins.builtin.export import ExportProcessor
        from canvasflow.plugins.builtin.text import TextProcessor
        from canvasflow.plugins.builtin.text_merger import TextMergerProcessor

        return [TextProcessor, TextMergerProcessor, ExportProcessor]


# Singleton instance for registration
builtin_processors = CanvasflowBuiltinProcessors()

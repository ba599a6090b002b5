# src/canvasflow/plugins/hookspecs.py
"""pluggy hook specifications for canvasflow node processors.

Plugins implement these hooks to register processors with the registry.

Usage (implementing a plugin):
    from canvasflow.plugins.hookspecs import hookimpl

    class MyNodes:
        @hookimpl  # NOT @hookspec - that's for defining specs
        def canvasflow_get_processors(self):
            return [UpscaleProcessor]

Third-party packages expose such an object under the ``canvasflow``
entry-point group; ProcessorRegistry.load_entrypoints() picks them up.
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from canvasflow.plugins.protocols import NodeProcessor

# Project name for pluggy, also the entry-point group
PROJECT_NAME = "canvasflow"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)

hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class CanvasflowProcessorSpec:
    """Hook specifications for node processor plugins."""

    @hookspec
    def canvasflow_get_processors(self) -> list[type["NodeProcessor"]]:  # type: ignore[empty-body]
        """Return node processor classes.

        Returns:
            List of processor classes (not instances), one per node type
        """

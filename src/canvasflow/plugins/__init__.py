# src/canvasflow/plugins/__init__.py
"""Node processor plugin system via pluggy.

- Protocols: NodeProcessor contract
- Base classes: BaseProcessor, ProcessorConfig
- Context: ExecutionContext and the NodeServices bundle
- Resolvers: reading upstream values from the canvas snapshot
- Registry: node type -> processor lookup
- Hookspecs: pluggy hook definitions
"""

from canvasflow.plugins.base import BaseProcessor
from canvasflow.plugins.config_base import ProcessorConfig, ProcessorConfigError
from canvasflow.plugins.context import ExecutionContext
from canvasflow.plugins.hookspecs import hookimpl, hookspec
from canvasflow.plugins.protocols import NodeProcessor
from canvasflow.plugins.registry import ProcessorRegistry, ProcessorSpec
from canvasflow.plugins.resolvers import (
    GraphResolvers,
    InputResolutionError,
    build_output_result,
    output_item,
)
from canvasflow.plugins.services import NodeServices, StorageService

__all__ = [
    # base
    "BaseProcessor",
    "ProcessorConfig",
    "ProcessorConfigError",
    # context
    "ExecutionContext",
    "NodeServices",
    "StorageService",
    # hookspecs
    "hookimpl",
    "hookspec",
    # protocols
    "NodeProcessor",
    # registry
    "ProcessorRegistry",
    "ProcessorSpec",
    # resolvers
    "GraphResolvers",
    "InputResolutionError",
    "build_output_result",
    "output_item",
]

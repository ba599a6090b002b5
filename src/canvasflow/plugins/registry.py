# src/canvasflow/plugins/registry.py
"""Processor registry: node type -> processor lookup.

Uses pluggy for hook-based registration. One registry value is built at
process start and passed to the dispatcher; there is no module-level
singleton.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any

import pluggy

from canvasflow.contracts import NodeTemplate, RegistryError
from canvasflow.plugins.hookspecs import PROJECT_NAME, CanvasflowProcessorSpec
from canvasflow.plugins.protocols import NodeProcessor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessorSpec:
    """Registration record for a processor class."""

    node_type: str
    version: str
    display_name: str
    is_terminal: bool
    is_transient: bool

    @classmethod
    def from_processor(cls, processor_cls: type) -> "ProcessorSpec":
        """Create spec from a processor class.

        Required attributes (will raise if missing):
        - node_type: str
        - process: async method

        Optional attributes default as in BaseProcessor.

        Raises:
            RegistryError: If the class is not a usable processor
        """
        try:
            node_type = processor_cls.node_type  # type: ignore[attr-defined]
        except AttributeError:
            raise RegistryError(
                f"Processor {processor_cls.__name__} must define 'node_type' attribute. "
                f"Add: node_type = 'YourNodeType' to the class."
            ) from None
        if not isinstance(node_type, str) or not node_type:
            raise RegistryError(
                f"Processor {processor_cls.__name__} has invalid node_type {node_type!r}"
            )

        process = getattr(processor_cls, "process", None)
        if process is None or not inspect.iscoroutinefunction(process):
            raise RegistryError(
                f"Processor {processor_cls.__name__} must define 'async def process(self, ctx)'"
            )

        return cls(
            node_type=node_type,
            version=getattr(processor_cls, "processor_version", "0.0.0"),
            display_name=getattr(processor_cls, "display_name", "") or node_type,
            is_terminal=bool(getattr(processor_cls, "is_terminal", False)),
            is_transient=bool(getattr(processor_cls, "is_transient", False)),
        )

    def to_template(self) -> NodeTemplate:
        return NodeTemplate(
            type=self.node_type,
            display_name=self.display_name,
            is_terminal=self.is_terminal,
            is_transient=self.is_transient,
        )


class ProcessorRegistry:
    """Manages processor discovery, registration and lookup.

    Usage:
        registry = ProcessorRegistry()
        registry.register_builtin_processors()
        registry.load_entrypoints()

        processor = registry.get_processor("Text")
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(CanvasflowProcessorSpec)

        # Classes registered directly, outside any hook implementer
        self._direct: dict[str, type[NodeProcessor]] = {}

        # Caches rebuilt on every registration
        self._classes: dict[str, type[NodeProcessor]] = {}
        self._specs: dict[str, ProcessorSpec] = {}
        self._instances: dict[str, NodeProcessor] = {}

    def register_builtin_processors(self) -> None:
        """Register the built-in processors (Text, TextMerger, Export)."""
        from canvasflow.plugins.builtin.hookimpl import builtin_processors

        self.register(builtin_processors)

    def load_entrypoints(self) -> int:
        """Register hook implementers published under the entry-point group.

        Returns:
            Number of entry points loaded
        """
        count = self._pm.load_setuptools_entrypoints(PROJECT_NAME)
        if count:
            logger.info("Loaded %d processor plugin(s) from entry points", count)
            self._refresh_caches()
        return count

    def register(self, plugin: Any) -> None:
        """Register a hook implementer.

        Args:
            plugin: Object implementing canvasflow_get_processors

        Raises:
            RegistryError: If a node type would be registered twice
        """
        self._pm.register(plugin)
        try:
            self._refresh_caches()
        except RegistryError:
            self._pm.unregister(plugin)
            raise

    def register_processor(self, processor_cls: type[NodeProcessor]) -> None:
        """Register a single processor class directly.

        Raises:
            RegistryError: If the class is invalid or its node type is taken
        """
        spec = ProcessorSpec.from_processor(processor_cls)
        if spec.node_type in self._classes:
            raise RegistryError(
                f"Duplicate processor for node type '{spec.node_type}'. "
                f"Already registered by {self._classes[spec.node_type].__name__}"
            )
        self._direct[spec.node_type] = processor_cls
        self._refresh_caches()

    def _refresh_caches(self) -> None:
        """Rebuild lookup tables from hooks and direct registrations.

        Raises:
            RegistryError: If two processors claim the same node type
        """
        new_classes: dict[str, type[NodeProcessor]] = {}
        new_specs: dict[str, ProcessorSpec] = {}

        candidates: list[type[NodeProcessor]] = []
        for processors in self._pm.hook.canvasflow_get_processors():
            candidates.extend(processors)
        candidates.extend(self._direct.values())

        for cls in candidates:
            spec = ProcessorSpec.from_processor(cls)
            if spec.node_type in new_classes:
                raise RegistryError(
                    f"Duplicate processor for node type '{spec.node_type}'. "
                    f"Already registered by {new_classes[spec.node_type].__name__}"
                )
            new_classes[spec.node_type] = cls
            new_specs[spec.node_type] = spec

        # All validated, update caches; keep instances whose class is unchanged
        self._instances = {
            node_type: instance
            for node_type, instance in self._instances.items()
            if new_classes.get(node_type) is type(instance)
        }
        self._classes = new_classes
        self._specs = new_specs

    # === Lookup ===

    def has_processor(self, node_type: str) -> bool:
        return node_type in self._classes

    def get_processor_class(self, node_type: str) -> type[NodeProcessor] | None:
        return self._classes.get(node_type)

    def get_processor(self, node_type: str) -> NodeProcessor | None:
        """Processor instance for a node type, or None if unregistered.

        Instances are created on first use and reused; processors hold no
        per-node state.
        """
        instance = self._instances.get(node_type)
        if instance is None:
            cls = self._classes.get(node_type)
            if cls is None:
                return None
            instance = cls()
            self._instances[node_type] = instance
        return instance

    def node_types(self) -> list[str]:
        """Registered node types, sorted."""
        return sorted(self._classes)

    def specs(self) -> list[ProcessorSpec]:
        """Registration records, sorted by node type."""
        return [self._specs[t] for t in self.node_types()]

    def templates(self) -> list[NodeTemplate]:
        """Default templates for every registered node type."""
        return [spec.to_template() for spec in self.specs()]

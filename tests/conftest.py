# tests/conftest.py
"""Shared test fixtures and helpers.

Provides an in-memory store, a canvas builder that lays out nodes, handles
and edges with predictable IDs, and a configurable ``Scripted`` processor whose
behaviour is driven by node config and per-execution aux data.

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/core/test_graph.py
"""

import asyncio
import os
from collections.abc import Iterator
from typing import Any

import pytest
from hypothesis import Phase, Verbosity, settings

from canvasflow.contracts import (
    DataType,
    Edge,
    Handle,
    HandleType,
    Node,
    ProcessorResult,
)
from canvasflow.core.store import CanvasRepository, StoreDB
from canvasflow.plugins.base import BaseProcessor
from canvasflow.plugins.context import ExecutionContext
from canvasflow.plugins.registry import ProcessorRegistry
from canvasflow.plugins.resolvers import build_output_result, output_item

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Timing varies on CI runners
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Test processors
# =============================================================================


class ConcurrencyTracker:
    """Counts processors running at the same time."""

    def __init__(self) -> None:
        self.current = 0
        self.peak = 0

    def enter(self) -> None:
        self.current += 1
        self.peak = max(self.peak, self.current)

    def exit(self) -> None:
        self.current -= 1


class ScriptedProcessor(BaseProcessor):
    """Configurable processor for scheduler tests.

    Node config:
        delay: Seconds to sleep before finishing
        fail: Return a failed result with this message
        raise: Raise RuntimeError with this message
        text: Text to emit (default: node ID)

    Aux data (shared across the batch):
        events: list receiving ("start"|"end", node_id) tuples
        tracker: ConcurrencyTracker
        gates: dict node_id -> asyncio.Event awaited before finishing
        inputs: dict receiving node_id -> list of upstream texts
    """

    node_type = "Scripted"
    display_name = "Scripted"
    processor_version = "1.0.0"

    async def process(self, ctx: ExecutionContext) -> ProcessorResult:
        node_id = ctx.node.node_id
        cfg = ctx.config
        events = ctx.get_aux("events")
        tracker = ctx.get_aux("tracker")
        gate = (ctx.get_aux("gates") or {}).get(node_id)

        upstream = [
            v["data"]
            for v in ctx.services.resolvers.get_input_values_by_type(
                ctx.canvas, node_id, data_type=DataType.TEXT
            )
            if v is not None
        ]
        seen_inputs = ctx.get_aux("inputs")
        if seen_inputs is not None:
            seen_inputs[node_id] = upstream

        if events is not None:
            events.append(("start", node_id))
        if tracker is not None:
            tracker.enter()
        try:
            if cfg.get("delay"):
                await asyncio.sleep(cfg["delay"])
            if gate is not None:
                await gate.wait()
        finally:
            if tracker is not None:
                tracker.exit()
            if events is not None:
                events.append(("end", node_id))

        if "raise" in cfg:
            raise RuntimeError(cfg["raise"])
        if "fail" in cfg:
            return ProcessorResult.fail(cfg["fail"])

        text = "+".join([*upstream, cfg.get("text", node_id)])
        handle = self.first_output_handle(ctx)
        handle_id = handle.handle_id if handle is not None else f"{node_id}-out"
        return ProcessorResult.ok(
            build_output_result([output_item(DataType.TEXT, text, handle_id)])
        )


class TerminalScriptedProcessor(ScriptedProcessor):
    """Scripted processor registered as a terminal (export-like) node type."""

    node_type = "TerminalScripted"
    display_name = "Terminal Scripted"
    is_terminal = True


class TransientScriptedProcessor(ScriptedProcessor):
    """Scripted processor whose results live on the task only."""

    node_type = "TransientScripted"
    display_name = "Transient Scripted"
    is_transient = True


SCRIPTED_PROCESSORS: tuple[type[BaseProcessor], ...] = (
    ScriptedProcessor,
    TerminalScriptedProcessor,
    TransientScriptedProcessor,
)


# =============================================================================
# Canvas builder
# =============================================================================


class CanvasBuilder:
    """Lays out a canvas with predictable IDs.

    Every node gets one Text output handle ``<node_id>-out``. Each
    ``connect`` call adds a fresh input handle ``<target>-in<n>`` on the
    target, ordered by connection order. Edge IDs sort in creation order.
    """

    def __init__(self, repo: CanvasRepository, canvas_id: str) -> None:
        self.repo = repo
        self.canvas_id = canvas_id
        self._inputs: dict[str, int] = {}
        self._edges = 0

    def node(
        self,
        node_id: str,
        node_type: str = "Scripted",
        *,
        name: str | None = None,
        config: dict[str, Any] | None = None,
        result: dict[str, Any] | None = None,
        output: bool = True,
    ) -> Node:
        node = self.repo.add_node(
            Node(
                node_id=node_id,
                canvas_id=self.canvas_id,
                type=node_type,
                name=name,
                config=config,
                result=result,
            )
        )
        if output:
            self.repo.add_handle(
                Handle(
                    handle_id=f"{node_id}-out",
                    node_id=node_id,
                    type=HandleType.OUTPUT,
                    data_types=(DataType.TEXT,),
                )
            )
        return node

    def connect(self, source: str, target: str, *, label: str | None = None) -> Edge:
        index = self._inputs.get(target, 0)
        self._inputs[target] = index + 1
        handle = self.repo.add_handle(
            Handle(
                handle_id=f"{target}-in{index}",
                node_id=target,
                type=HandleType.INPUT,
                data_types=(DataType.TEXT,),
                label=label,
                order=index,
            )
        )
        self._edges += 1
        return self.repo.add_edge(
            Edge(
                edge_id=f"e{self._edges:04d}",
                canvas_id=self.canvas_id,
                source=source,
                source_handle_id=f"{source}-out",
                target=target,
                target_handle_id=handle.handle_id,
            )
        )

    def chain(self, *node_ids: str) -> None:
        """Connect consecutive nodes: chain(a, b, c) adds a->b and b->c."""
        for source, target in zip(node_ids, node_ids[1:], strict=False):
            self.connect(source, target)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def db() -> Iterator[StoreDB]:
    """In-memory task state store."""
    store_db = StoreDB.in_memory()
    yield store_db
    store_db.close()


@pytest.fixture
def registry() -> ProcessorRegistry:
    """Registry with built-in and scripted processors."""
    reg = ProcessorRegistry()
    reg.register_builtin_processors()
    for processor_cls in SCRIPTED_PROCESSORS:
        reg.register_processor(processor_cls)
    return reg


@pytest.fixture
def canvas_repo(db: StoreDB, registry: ProcessorRegistry) -> CanvasRepository:
    """Canvas repository with templates synced from the registry."""
    repo = CanvasRepository(db)
    repo.sync_templates(registry.templates())
    return repo


@pytest.fixture
def builder(canvas_repo: CanvasRepository) -> CanvasBuilder:
    """Builder over a fresh canvas ``c1``."""
    canvas_id = canvas_repo.create_canvas("test canvas", canvas_id="c1")
    return CanvasBuilder(canvas_repo, canvas_id)


@pytest.fixture
def tracker() -> ConcurrencyTracker:
    return ConcurrencyTracker()

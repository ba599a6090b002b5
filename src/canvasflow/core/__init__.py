# src/canvasflow/core/__init__.py
"""Core infrastructure: Graph, Store, Canonical, Configuration, Logging."""

from canvasflow.core.canonical import (
    CANONICAL_VERSION,
    canonical_json,
    stable_hash,
)
from canvasflow.core.config import (
    CanvasflowSettings,
    DatabaseSettings,
    LoggingSettings,
    RecoverySettings,
    SchedulerSettings,
    load_settings,
    resolve_config,
)
from canvasflow.core.graph import (
    CycleDetected,
    DependencyGraph,
    TopologicalOrder,
    build_dependency_graph,
    topological_sort,
    upstream_closure,
)
from canvasflow.core.logging import (
    configure_logging,
    get_logger,
)

__all__ = [
    "CANONICAL_VERSION",
    "CanvasflowSettings",
    "CycleDetected",
    "DatabaseSettings",
    "DependencyGraph",
    "LoggingSettings",
    "RecoverySettings",
    "SchedulerSettings",
    "TopologicalOrder",
    "build_dependency_graph",
    "canonical_json",
    "configure_logging",
    "get_logger",
    "load_settings",
    "resolve_config",
    "stable_hash",
    "topological_sort",
    "upstream_closure",
]

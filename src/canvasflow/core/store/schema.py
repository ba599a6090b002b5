# src/canvasflow/core/store/schema.py
"""SQLAlchemy table definitions for the task state store.

Uses SQLAlchemy Core (not ORM) for explicit control over queries
and compatibility with multiple database backends.

The canvas tables (canvases, node_templates, nodes, handles, edges) are
owned by the editing layer; the scheduler reads them and writes only
``nodes.result_json``. The execution tables (task_batches, tasks) are
owned by the scheduler.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

# Shared metadata for all tables
metadata = MetaData()

# === Canvases ===

canvases_table = Table(
    "canvases",
    metadata,
    Column("canvas_id", String(64), primary_key=True),
    Column("name", String(256)),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

# === Node Templates (one per node type) ===

node_templates_table = Table(
    "node_templates",
    metadata,
    Column("type", String(128), primary_key=True),
    Column("display_name", String(256), nullable=False),
    Column("is_terminal", Boolean, nullable=False, default=False),
    Column("is_transient", Boolean, nullable=False, default=False),
)

# === Nodes ===

nodes_table = Table(
    "nodes",
    metadata,
    Column("node_id", String(64), primary_key=True),
    Column(
        "canvas_id", String(64), ForeignKey("canvases.canvas_id"), nullable=False
    ),
    Column("type", String(128), nullable=False),
    Column("name", String(256)),
    Column("config_json", Text),
    Column("result_json", Text),
    Column("updated_at", DateTime(timezone=True), nullable=False),
    Index("ix_nodes_canvas_id", "canvas_id"),
)

# === Handles ===

handles_table = Table(
    "handles",
    metadata,
    Column("handle_id", String(64), primary_key=True),
    Column(
        "node_id",
        String(64),
        ForeignKey("nodes.node_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("type", String(16), nullable=False),
    Column("data_types_json", Text, nullable=False),
    Column("label", String(256)),
    Column("sort_order", Integer, nullable=False, default=0),
    Index("ix_handles_node_id", "node_id"),
)

# === Edges ===

edges_table = Table(
    "edges",
    metadata,
    Column("edge_id", String(64), primary_key=True),
    Column(
        "canvas_id", String(64), ForeignKey("canvases.canvas_id"), nullable=False
    ),
    Column(
        "source",
        String(64),
        ForeignKey("nodes.node_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("source_handle_id", String(64), nullable=False),
    Column(
        "target",
        String(64),
        ForeignKey("nodes.node_id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("target_handle_id", String(64), nullable=False),
    Index("ix_edges_canvas_id", "canvas_id"),
)

# === Task Batches ===

task_batches_table = Table(
    "task_batches",
    metadata,
    Column("batch_id", String(64), primary_key=True),
    Column(
        "canvas_id", String(64), ForeignKey("canvases.canvas_id"), nullable=False
    ),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("finished_at", DateTime(timezone=True)),
    Column("claimed_by", String(128)),
    Column("heartbeat_at", DateTime(timezone=True)),
    Index("ix_task_batches_finished_at", "finished_at"),
)

# === Tasks ===
# node_id is not a foreign key: tasks outlive deleted nodes.

tasks_table = Table(
    "tasks",
    metadata,
    Column("task_id", String(64), primary_key=True),
    Column(
        "batch_id",
        String(64),
        ForeignKey("task_batches.batch_id"),
        nullable=False,
    ),
    Column("node_id", String(64), nullable=False),
    Column("ordinal", Integer, nullable=False),
    Column("name", String(512), nullable=False),
    Column("status", String(32), nullable=False),
    Column("is_target", Boolean, nullable=False, default=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("started_at", DateTime(timezone=True)),
    Column("finished_at", DateTime(timezone=True)),
    Column("duration_ms", Float),
    Column("error_json", Text),
    Column("result_json", Text),
    UniqueConstraint("batch_id", "node_id"),
    UniqueConstraint("batch_id", "ordinal"),
)

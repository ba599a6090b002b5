# src/canvasflow/plugins/services.py
"""Service bundle handed to every processor invocation.

The scheduler builds one NodeServices at startup and passes it through
ExecutionContext. It never looks inside; processors pick the services they
need. Storage, media and AI backends are external collaborators.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from canvasflow.plugins.resolvers import GraphResolvers


@runtime_checkable
class StorageService(Protocol):
    """Blob storage used by media processors."""

    async def get(self, key: str) -> bytes:
        """Read a stored object."""
        ...

    async def put(self, key: str, data: bytes, *, mime_type: str) -> str:
        """Store an object and return its key."""
        ...


@dataclass(frozen=True)
class NodeServices:
    """Everything a processor may call besides the canvas snapshot.

    Attributes:
        resolvers: Input resolution over the canvas snapshot
        storage: Blob storage, None when not configured
        media: Media rendering backend (opaque)
        ai: AI model client (opaque)
        env: Process-level settings processors may read
    """

    resolvers: GraphResolvers = field(default_factory=GraphResolvers)
    storage: StorageService | None = None
    media: Any = None
    ai: Any = None
    env: Mapping[str, str] = field(default_factory=dict)

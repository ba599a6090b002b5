"""Tests for ExecutionContext, NodeServices and ProcessorConfig."""

from typing import Any

import pytest

from canvasflow.contracts import CanvasSnapshot, Node
from canvasflow.plugins.context import ExecutionContext
from canvasflow.plugins.services import NodeServices


def _context(
    config: dict[str, Any] | None = None, aux: dict[str, Any] | None = None
) -> ExecutionContext:
    node = Node("n1", "c1", "Text", config=config)
    canvas = CanvasSnapshot("c1", {"n1": node}, [], {})
    return ExecutionContext(
        node=node,
        canvas=canvas,
        services=NodeServices(),
        batch_id="b1",
        task_id="t1",
        aux=aux or {},
    )


class TestExecutionContext:
    def test_config_defaults_to_empty(self) -> None:
        ctx = _context()

        assert ctx.config == {}

    def test_config_from_node(self) -> None:
        ctx = _context(config={"content": "x"})

        assert ctx.config == {"content": "x"}

    def test_aux_lookup(self) -> None:
        ctx = _context(aux={"api_key": "sk-test"})

        assert ctx.get_aux("api_key") == "sk-test"
        assert ctx.get_aux("missing", "fallback") == "fallback"

    def test_frozen(self) -> None:
        from dataclasses import FrozenInstanceError

        ctx = _context()

        with pytest.raises(FrozenInstanceError):
            ctx.batch_id = "other"  # type: ignore[misc]


class TestNodeServices:
    def test_defaults(self) -> None:
        from canvasflow.plugins.resolvers import GraphResolvers

        services = NodeServices()

        assert isinstance(services.resolvers, GraphResolvers)
        assert services.storage is None
        assert services.env == {}

    def test_storage_protocol(self) -> None:
        from canvasflow.plugins.services import StorageService

        class MemoryStorage:
            def __init__(self) -> None:
                self.blobs: dict[str, bytes] = {}

            async def get(self, key: str) -> bytes:
                return self.blobs[key]

            async def put(self, key: str, data: bytes, *, mime_type: str) -> str:
                self.blobs[key] = data
                return key

        assert isinstance(MemoryStorage(), StorageService)


class TestProcessorConfig:
    def test_unknown_keys_ignored(self) -> None:
        from canvasflow.plugins.builtin.text import TextConfig

        cfg = TextConfig.from_dict({"content": "hi", "position": {"x": 1}})

        assert cfg.content == "hi"

    def test_none_is_empty(self) -> None:
        from canvasflow.plugins.builtin.text_merger import TextMergerConfig

        assert TextMergerConfig.from_dict(None).join == "\n"

    def test_invalid_raises_config_error(self) -> None:
        from canvasflow.plugins.builtin.text_merger import TextMergerConfig
        from canvasflow.plugins.config_base import ProcessorConfigError

        with pytest.raises(ProcessorConfigError, match="TextMergerConfig"):
            TextMergerConfig.from_dict({"join": 42})

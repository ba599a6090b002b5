# src/canvasflow/plugins/config_base.py
"""Base class for typed node configurations.

Node config is an opaque blob to the scheduler; processors validate their
own slice of it with a ProcessorConfig subclass.

Example usage:
    class TextMergerConfig(ProcessorConfig):
        join: str = "\\n"

    cfg = TextMergerConfig.from_dict(ctx.config)
"""

from typing import Any, Self

from pydantic import BaseModel, ValidationError

from canvasflow.contracts import CanvasflowError


class ProcessorConfigError(CanvasflowError):
    """Raised when a node's configuration is invalid."""


class ProcessorConfig(BaseModel):
    """Base class for typed node configurations.

    Unknown fields are ignored: the editing layer stores UI-only keys in
    the same blob.
    """

    model_config = {"extra": "ignore", "frozen": True}

    @classmethod
    def from_dict(cls, config: dict[str, Any] | None) -> Self:
        """Create config from a node config blob.

        Args:
            config: Node config, None treated as empty

        Returns:
            Validated configuration instance

        Raises:
            ProcessorConfigError: If configuration is invalid
        """
        try:
            return cls(**(config or {}))
        except ValidationError as e:
            raise ProcessorConfigError(
                f"Invalid configuration for {cls.__name__}: {e}"
            ) from e

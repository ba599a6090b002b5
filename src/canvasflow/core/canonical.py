# src/canvasflow/core/canonical.py
"""
Canonical JSON serialization for stored payloads.

Two-phase approach:
1. Normalize: Convert tuples, enums and datetimes to JSON-safe primitives
2. Serialize: Produce deterministic JSON per RFC 8785/JCS (rfc8785 package)

Task error payloads and node results are stored through this module so the
same content always produces the same column text.

NaN and Infinity are REJECTED, not silently converted.
"""

import hashlib
import math
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import rfc8785

CANONICAL_VERSION = "sha256-rfc8785-v1"


def _normalize_value(obj: Any) -> Any:
    """Convert a single value to a JSON-safe primitive.

    Args:
        obj: Any Python value

    Returns:
        JSON-serializable primitive

    Raises:
        ValueError: If value contains NaN or Infinity
    """
    if isinstance(obj, float):
        if math.isnan(obj) or math.isinf(obj):
            raise ValueError(
                f"Cannot canonicalize non-finite float: {obj}. "
                "Use None for missing values, not NaN."
            )
        return obj

    # Enum before str: (str, Enum) members are also str instances
    if isinstance(obj, Enum):
        return _normalize_value(obj.value)

    if obj is None or isinstance(obj, (str, int, bool)):
        return obj

    if isinstance(obj, datetime):
        # Naive datetimes assumed UTC
        if obj.tzinfo is None:
            obj = obj.replace(tzinfo=UTC)
        return obj.astimezone(UTC).isoformat()

    return obj


def _normalize_for_canonical(data: Any) -> Any:
    """Recursively normalize a data structure for canonical JSON.

    Args:
        data: Any data structure (dict, list, tuple, primitives)

    Returns:
        Normalized data structure with JSON-safe primitives

    Raises:
        ValueError: If data contains NaN or Infinity
        TypeError: If a mapping key is not a string
    """
    if isinstance(data, dict):
        normalized: dict[str, Any] = {}
        for key, value in data.items():
            if isinstance(key, Enum):
                key = key.value
            if not isinstance(key, str):
                raise TypeError(f"JSON object keys must be strings, got {key!r}")
            normalized[key] = _normalize_for_canonical(value)
        return normalized
    if isinstance(data, (list, tuple)):
        return [_normalize_for_canonical(v) for v in data]
    return _normalize_value(data)


def canonical_json(obj: Any) -> str:
    """Produce canonical JSON (RFC 8785) for storage and hashing.

    Args:
        obj: Data to serialize

    Returns:
        Canonical JSON string

    Raises:
        ValueError: If data contains NaN or Infinity
        TypeError: If data contains a value JSON cannot represent
    """
    normalized = _normalize_for_canonical(obj)
    result: bytes = rfc8785.dumps(normalized)
    return result.decode("utf-8")


def stable_hash(obj: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of ``obj``."""
    return hashlib.sha256(canonical_json(obj).encode("utf-8")).hexdigest()

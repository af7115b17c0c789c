"""Compact JSON serialization for cached read views.

Object fields holding ``None``, ``""``, ``[]`` or ``{}`` are dropped before
encoding to keep payloads small. Decoding therefore returns those fields as
absent rather than null. Emptiness is judged on the field as loaded, so an
object whose own fields are all pruned stays in place as ``{}``.
"""

import dataclasses
import json
from typing import Any

from pydantic import BaseModel

from src.cache.errors import CacheDecodeError

_SEPARATORS = (",", ":")


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str | list | tuple | dict):
        return len(value) == 0
    return False


def _to_plain(value: Any) -> Any:
    """Convert models and dataclasses into plain JSON-compatible structures."""
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    return value


def prune(value: Any) -> Any:
    """Recursively drop empty object fields.

    Fields are tested before their contents are pruned, so a nested object
    that only held empty fields is kept as ``{}``. List elements keep their
    positions.

    Args:
        value: Value to prune.

    Returns:
        Pruned copy of the value.
    """
    value = _to_plain(value)
    if isinstance(value, dict):
        pruned: dict[str, Any] = {}
        for key, item in value.items():
            if _is_empty(_to_plain(item)):
                continue
            pruned[str(key)] = prune(item)
        return pruned
    if isinstance(value, list | tuple):
        return [prune(item) for item in value]
    return value


def encode(value: Any) -> bytes:
    """Serialize a value for caching.

    Args:
        value: Value to serialize.

    Returns:
        UTF-8 encoded JSON.
    """
    return json.dumps(prune(value), separators=_SEPARATORS, default=str).encode("utf-8")


def decode(data: str | bytes) -> Any:
    """Deserialize a cached value.

    Args:
        data: Serialized data from cache.

    Returns:
        Deserialized value.

    Raises:
        CacheDecodeError: If the payload is not valid UTF-8 JSON.
    """
    try:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        return json.loads(data)
    except (UnicodeDecodeError, ValueError) as e:
        raise CacheDecodeError(str(e)) from e

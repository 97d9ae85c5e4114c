from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from .errors import DecodeError

_OMIT = object()


@dataclass(frozen=True)
class EncodedValue:
    json: str
    circular: bool = False


def encode_value(value: Any) -> EncodedValue:
    """
    Serialize a value for storage.

    Reference cycles are elided: an object member that points back at one of
    its ancestors is dropped, an array element doing the same becomes null.
    pydantic models are stored as their JSON dump. Anything else that is not
    JSON-representable raises TypeError/ValueError.
    """
    found: list[bool] = []
    acyclic = _strip_cycles(value, set(), found)
    return EncodedValue(
        json=json.dumps(acyclic, separators=(",", ":"), ensure_ascii=False, allow_nan=False),
        circular=bool(found),
    )


def _strip_cycles(value: Any, ancestors: set[int], found: list[bool]) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if not isinstance(value, (dict, list, tuple)):
        return value
    marker = id(value)
    if marker in ancestors:
        found.append(True)
        return _OMIT
    ancestors.add(marker)
    try:
        if isinstance(value, dict):
            out: dict[Any, Any] = {}
            for k, v in value.items():
                item = _strip_cycles(v, ancestors, found)
                if item is not _OMIT:
                    out[k] = item
            return out
        items = []
        for v in value:
            item = _strip_cycles(v, ancestors, found)
            items.append(None if item is _OMIT else item)
        return items
    finally:
        ancestors.discard(marker)


def decode_document(raw: str | bytes | None) -> Any:
    """
    Decode a stored document. Returns None for a missing key.

    Raises DecodeError for data that is not JSON (written by something else).
    """
    if raw is None:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(raw)
    except ValueError as e:
        raise DecodeError("stored value is not JSON", {"error": repr(e)}) from e


class CircularReferenceLog:
    """
    Session-scoped record of store keys that were last written with a
    reference cycle, so the warning is raised once per key.
    """

    def __init__(self) -> None:
        self._keys: set[str] = set()

    def record(self, store_key: str, circular: bool) -> bool:
        """Track a write; returns True when a warning should be emitted."""
        if not circular:
            self._keys.discard(store_key)
            return False
        if store_key in self._keys:
            return False
        self._keys.add(store_key)
        return True

    def forget(self, store_key: str) -> None:
        self._keys.discard(store_key)

    def clear(self) -> None:
        self._keys.clear()

    def __contains__(self, store_key: object) -> bool:
        return store_key in self._keys

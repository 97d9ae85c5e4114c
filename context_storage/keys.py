from __future__ import annotations

import re
from typing import Iterable

SEPARATOR = ":"
GLOBAL_SCOPE = "global"

# Characters with a meaning in Redis MATCH patterns.
_GLOB_SPECIAL = re.compile(r"([\\*?\[\]^])")


def namespace(prefix: str | None, scope: str) -> str:
    """Return the key prefix shared by every root key of ``scope`` (separator included)."""
    if prefix:
        return f"{prefix}{SEPARATOR}{scope}{SEPARATOR}"
    return f"{scope}{SEPARATOR}"


def to_store_key(prefix: str | None, scope: str, root_key: str) -> str:
    """
    Map a root key of a scope to the flat Redis key holding it.

        to_store_key(None, "global", "foo") == "global:foo"
        to_store_key("app", "n1:f1", "foo") == "app:n1:f1:foo"
    """
    return namespace(prefix, scope) + root_key


def from_store_key(prefix: str | None, scope: str, store_key: str) -> str:
    """Inverse of :func:`to_store_key` for a known prefix and scope."""
    ns = namespace(prefix, scope)
    if not store_key.startswith(ns):
        raise ValueError(f"{store_key!r} is not a key of scope {scope!r}")
    return store_key[len(ns):]


def escape_pattern(text: str) -> str:
    """Escape ``text`` so that a Redis MATCH pattern matches it literally."""
    return _GLOB_SPECIAL.sub(r"\\\1", text)


def scope_pattern(prefix: str | None, scope: str) -> str:
    """MATCH pattern for every key of one scope."""
    return escape_pattern(namespace(prefix, scope)) + "*"


def prefix_pattern(prefix: str | None) -> str:
    """MATCH pattern for every key this storage may own."""
    if prefix:
        return escape_pattern(prefix + SEPARATOR) + "*"
    return "*"


def strip_prefix(prefix: str | None, store_key: str) -> str:
    """Drop the configured prefix, leaving ``scope:root``."""
    if prefix:
        head = prefix + SEPARATOR
        if store_key.startswith(head):
            return store_key[len(head):]
    return store_key


def is_retained(scoped_key: str, active_scopes: Iterable[str]) -> bool:
    """
    Decide whether ``clean`` keeps a key (given without the prefix).

    Global keys are always kept. Other keys are kept when their scope starts
    with an active id followed by the separator, so the node scope
    ``nodeId:flowId`` survives while ``nodeId`` is active and ``node1`` never
    protects ``node10``.
    """
    if scoped_key.startswith(GLOBAL_SCOPE + SEPARATOR):
        return True
    return any(active and scoped_key.startswith(active + SEPARATOR) for active in active_scopes)

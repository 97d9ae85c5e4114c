from __future__ import annotations

import re
from typing import Any, Sequence

from .errors import InvalidPathError

Segment = str | int

_IDENT_START = re.compile(r"[a-z0-9$_]", re.IGNORECASE)
_DIGITS = re.compile(r"^\d+$")
_QUOTES = "'\""


def _invalid(text: str, message: str, position: int | None = None) -> InvalidPathError:
    return InvalidPathError(f"Invalid property expression: {message}", text, position)


def _segment(raw: str, *, root: bool) -> Segment:
    # The root key is always a field name, even when it looks numeric.
    if not root and _DIGITS.match(raw):
        return int(raw)
    return raw


def normalize(text: object) -> list[Segment]:
    """
    Split a property expression into its segments.

        normalize("foo.bar[2]['a.b']") == ["foo", "bar", 2, "a.b"]

    Field names are returned as ``str`` and array indices as ``int``. The first
    segment is the root key and is always a ``str``.
    """
    if not isinstance(text, str):
        raise InvalidPathError(
            f"Invalid property expression: expected str, got {type(text).__name__}", text
        )
    length = len(text)
    if length == 0:
        raise _invalid(text, "zero-length", 0)

    parts: list[Segment] = []
    start = 0
    in_string = False
    in_box = False
    quote = ""

    for i, c in enumerate(text):
        if in_string:
            if c != quote:
                continue
            if i == start:
                raise _invalid(text, f"zero-length string at position {start}", start)
            parts.append(text[start:i])
            following = text[i + 1 : i + 2]
            if in_box and following != "]":
                raise _invalid(text, f"unexpected array expression at position {start}", start)
            if not in_box and following and following not in ".[":
                raise _invalid(text, f"unexpected {following} at position {i + 1}", i + 1)
            start = i + 1
            in_string = False
        elif c in _QUOTES:
            if i != start:
                raise _invalid(text, f"unexpected {c} at position {i}", i)
            in_string = True
            quote = c
            start = i + 1
        elif c == ".":
            if i == 0:
                raise _invalid(text, "unexpected . at position 0", 0)
            if start != i:
                parts.append(_segment(text[start:i], root=not parts))
            if i == length - 1:
                raise _invalid(text, "unterminated expression", i)
            if not _IDENT_START.match(text[i + 1]):
                raise _invalid(text, f"unexpected {text[i + 1]} at position {i + 1}", i + 1)
            start = i + 1
        elif c == "[":
            if i == 0:
                raise _invalid(text, "unexpected [ at position 0", 0)
            if in_box:
                raise _invalid(text, f"unexpected [ at position {i}", i)
            if start != i:
                parts.append(_segment(text[start:i], root=not parts))
            if i == length - 1:
                raise _invalid(text, "unterminated expression", i)
            if text[i + 1] not in _QUOTES and not text[i + 1].isdigit():
                raise _invalid(text, f"unexpected {text[i + 1]} at position {i + 1}", i + 1)
            start = i + 1
            in_box = True
        elif c == "]":
            if not in_box:
                raise _invalid(text, f"unexpected ] at position {i}", i)
            if start != i:
                raw = text[start:i]
                if not _DIGITS.match(raw):
                    raise _invalid(text, f"unexpected array expression at position {start}", start)
                parts.append(int(raw))
            following = text[i + 1 : i + 2]
            if following and following not in ".[":
                raise _invalid(text, f"unexpected {following} at position {i + 1}", i + 1)
            start = i + 1
            in_box = False
        elif c.isspace():
            raise _invalid(text, f"unexpected whitespace at position {i}", i)

    if in_box or in_string:
        raise _invalid(text, "unterminated expression", length)
    if start < length:
        parts.append(_segment(text[start:], root=not parts))
    return parts


def address(container: Any, segment: Segment) -> Segment | None:
    """
    Return the list index or dict key that ``segment`` addresses inside
    ``container``, or None when nothing is there.

    Indices into an object are looked up by their decimal string; field names
    never address array elements.
    """
    if isinstance(container, list):
        if isinstance(segment, int) and 0 <= segment < len(container):
            return segment
        return None
    if isinstance(container, dict):
        key = str(segment)
        return key if key in container else None
    return None


def lookup(document: Any, tail: Sequence[Segment]) -> Any:
    """Evaluate the path tail (everything after the root key) against a decoded document."""
    node = document
    for segment in tail:
        slot = address(node, segment)
        if slot is None:
            return None
        node = node[slot]
    return node

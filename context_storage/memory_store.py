from __future__ import annotations

import asyncio
import re
from typing import Any, Callable, Mapping, Sequence

from .errors import NotConnectedError, ProcedureMissingError, TransportError
from .interfaces import StoreTransport
from .planner import Command, MultiDelete, MultiSet, NestedCall
from .scripts import PROCEDURE_IMPLEMENTATIONS, Procedure, script_sha


def compile_match_pattern(pattern: str) -> re.Pattern[str]:
    """Translate a Redis MATCH glob (``*``, ``?``, ``[...]``, ``\\x``) into a regex."""
    out: list[str] = []
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if c == "*":
            out.append(".*")
        elif c == "?":
            out.append(".")
        elif c == "[" and "]" in pattern[i + 1 :]:
            end = pattern.index("]", i + 1)
            body = pattern[i + 1 : end]
            negate = body.startswith("^")
            if negate:
                body = body[1:]
            body = "".join("\\" + ch if ch in "\\[]^" else ch for ch in body)
            out.append(f"[{'^' if negate else ''}{body}]")
            i = end
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out), re.DOTALL)


class MemoryTransport(StoreTransport):
    """
    In-process StoreTransport holding string values in a dict.

    Scripts are resolved by SHA1 to their Python equivalents, so only the two
    context procedures can be registered. A transaction runs under one lock;
    as with Redis, a failing command does not undo the others.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}
        self._scripts: dict[str, Callable[..., Any]] = {}
        self._lock = asyncio.Lock()
        self._connected = False

    @property
    def data(self) -> dict[str, str]:
        """Snapshot of the raw stored strings."""
        return dict(self._data)

    def flush_scripts(self) -> None:
        """Forget every registered script, like SCRIPT FLUSH."""
        self._scripts.clear()

    def _require_connected(self) -> None:
        if not self._connected:
            raise NotConnectedError("Memory transport is not connected")

    async def connect(self) -> None:
        self._connected = True

    async def close(self) -> None:
        self._connected = False

    async def script_load(self, source: str) -> str:
        self._require_connected()
        handle = script_sha(source)
        impl = PROCEDURE_IMPLEMENTATIONS.get(handle)
        if impl is None:
            raise TransportError("Unsupported script for the in-memory store", {"handle": handle})
        self._scripts[handle] = impl
        return handle

    async def script_exists(self, *handles: str) -> list[bool]:
        self._require_connected()
        return [handle in self._scripts for handle in handles]

    async def mget(self, keys: Sequence[str]) -> list[str | None]:
        self._require_connected()
        return [self._data.get(key) for key in keys]

    def _evalsha(self, handle: str, key: str, args: Sequence[str]) -> Any:
        impl = self._scripts.get(handle)
        if impl is None:
            raise ProcedureMissingError(f"NOSCRIPT No matching script: {handle}", handle)
        try:
            return impl(self._data, key, args)
        except ValueError as e:
            raise TransportError(f"Error running script {handle}: {e}") from e

    def _apply(self, command: Command, handles: Mapping[Procedure, str]) -> Any:
        if isinstance(command, MultiSet):
            self._data.update(dict(command.pairs))
            return True
        if isinstance(command, MultiDelete):
            return sum(1 for key in set(command.keys) if self._data.pop(key, None) is not None)
        if isinstance(command, NestedCall):
            return self._evalsha(handles[command.procedure], command.key, command.args)
        raise TypeError(f"Unknown command {command!r}")

    async def execute(self, commands: Sequence[Command], handles: Mapping[Procedure, str]) -> list[Any]:
        self._require_connected()
        replies: list[Any] = []
        async with self._lock:
            for command in commands:
                try:
                    replies.append(self._apply(command, handles))
                except (ProcedureMissingError, TransportError) as e:
                    replies.append(e)
        return replies

    async def scan(self, cursor: int, match: str, count: int) -> tuple[int, list[str]]:
        self._require_connected()
        matcher = compile_match_pattern(match)
        ordered = sorted(self._data)
        page = ordered[cursor : cursor + count]
        next_cursor = cursor + count if cursor + count < len(ordered) else 0
        return next_cursor, [key for key in page if matcher.fullmatch(key)]

    async def delete(self, keys: Sequence[str]) -> int:
        self._require_connected()
        async with self._lock:
            return sum(1 for key in set(keys) if self._data.pop(key, None) is not None)

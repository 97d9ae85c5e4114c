from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping, Protocol, Sequence

from .planner import Command
from .scripts import Procedure

Callback = Callable[..., Any]


class StoreTransport(Protocol):
    """
    The few Redis capabilities the context storage needs. Connection
    handling, auth, TLS and retries live behind this interface.
    """

    async def connect(self) -> None:
        ...

    async def close(self) -> None:
        ...

    async def script_load(self, source: str) -> str:
        """Register a script and return its handle (SHA1)."""
        ...

    async def script_exists(self, *handles: str) -> list[bool]:
        ...

    async def mget(self, keys: Sequence[str]) -> list[str | None]:
        ...

    async def execute(self, commands: Sequence[Command], handles: Mapping[Procedure, str]) -> list[Any]:
        """
        Run the commands in one MULTI/EXEC. One reply per command; a command
        that failed inside the transaction yields its exception instance
        (ProcedureMissingError for an unknown script handle).
        """
        ...

    async def scan(self, cursor: int, match: str, count: int) -> tuple[int, list[str]]:
        ...

    async def delete(self, keys: Sequence[str]) -> int:
        ...


class ContextStorage(Protocol):
    """Operations a host runtime calls on a context store."""

    async def open(self) -> None: ...
    async def close(self) -> None: ...

    async def get(self, scope: str, key: str | Sequence[str], callback: Callback | None = None) -> Any: ...
    async def set(self, scope: str, key: str | Sequence[str], value: Any = ..., callback: Callback | None = None) -> None: ...
    async def keys(self, scope: str, callback: Callback | None = None) -> list[str]: ...

    async def delete(self, scope: str) -> None: ...
    async def clean(self, active_scopes: Iterable[str]) -> None: ...

from __future__ import annotations

import logging
from typing import Any, Awaitable, Iterable, Mapping, Sequence

from dotenv import load_dotenv

from .codec import CircularReferenceLog
from .config import StorageConfig
from .errors import NotConnectedError, ProcedureMissingError
from .interfaces import Callback, ContextStorage, StoreTransport
from .keys import from_store_key, is_retained, prefix_pattern, scope_pattern, strip_prefix
from .planner import UNSET, Command, NestedCall, plan_get, plan_replay, plan_set
from .scanner import scan_keys
from .scripts import Procedure
from .settings import get_settings
from .transport import RedisTransport

logger = logging.getLogger(__name__)


def _check_callback(callback: Any) -> None:
    if callback is not None and not callable(callback):
        raise TypeError("Callback must be a function")


async def _complete(work: Awaitable[Any], callback: Callback | None, *, spread: bool = False) -> Any:
    """
    Await ``work``. Without a callback, errors propagate. With one, the
    callback receives ``(err)`` on failure or ``(None, result)`` on success
    (``(None, *result)`` when ``spread``).
    """
    if callback is None:
        return await work
    try:
        result = await work
    except Exception as e:
        callback(e)
        return None
    if spread:
        callback(None, *result)
    elif result is None:
        callback(None)
    else:
        callback(None, result)
    return result


class RedisContextStorage(ContextStorage):
    """
    Context storage keeping each root key of a scope as one JSON string in
    Redis, under ``[prefix:]scope:key``.

    Nested properties are changed by two Lua procedures loaded at open(), so
    the read-modify-write happens on the server. All changes of one set()
    call go out as a single MULTI/EXEC.
    """

    def __init__(
        self,
        config: StorageConfig | Mapping[str, Any] | None = None,
        transport: StoreTransport | None = None,
    ) -> None:
        self.config = StorageConfig.from_host_config(config)
        self.prefix = self.config.prefix
        self._transport = transport if transport is not None else RedisTransport(self.config)
        self._handles: dict[Procedure, str] = {}
        self._open = False
        self._circular = CircularReferenceLog()

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def handles(self) -> dict[Procedure, str]:
        return dict(self._handles)

    def _session(self) -> StoreTransport:
        if not self._open:
            raise NotConnectedError("Context storage is not open")
        return self._transport

    async def open(self) -> None:
        await self._transport.connect()
        try:
            for procedure in Procedure:
                self._handles[procedure] = await self._transport.script_load(procedure.source)
        except Exception:
            self._handles.clear()
            await self._transport.close()
            raise
        self._open = True
        logger.debug("Context storage opened (prefix=%s)", self.prefix)

    async def close(self) -> None:
        if not self._open:
            return
        self._open = False
        self._handles.clear()
        await self._transport.close()
        logger.debug("Context storage closed")

    # -- procedures --

    async def _register(self, procedure: Procedure) -> str:
        handle = await self._transport.script_load(procedure.source)
        self._handles[procedure] = handle
        return handle

    async def _ensure_procedures(self, procedures: set[Procedure]) -> None:
        ordered = sorted(procedures, key=lambda p: p.value)
        present = await self._transport.script_exists(*(self._handles[p] for p in ordered))
        for procedure, found in zip(ordered, present):
            if not found:
                logger.warning("Procedure %s is missing from the Redis script cache; loading it again", procedure.value)
                await self._register(procedure)

    async def _replay(self, commands: Sequence[Command], replies: Sequence[Any]) -> None:
        replay = plan_replay(commands, replies)
        if not replay:
            return
        procedures = sorted({c.procedure for c in replay}, key=lambda p: p.value)
        logger.warning(
            "Procedures %s were evicted during a transaction; replaying %d command(s)",
            ", ".join(p.value for p in procedures),
            len(replay),
        )
        for procedure in procedures:
            await self._register(procedure)
        replies = await self._session().execute(replay, self._handles)
        for command, reply in zip(replay, replies):
            if isinstance(reply, ProcedureMissingError):
                raise ProcedureMissingError(
                    f"Procedure {command.procedure.value} is still missing after re-registering it",
                    self._handles[command.procedure],
                ) from reply
            if isinstance(reply, Exception):
                raise reply

    async def _execute(self, commands: Sequence[Command]) -> None:
        transport = self._session()
        nested = {c.procedure for c in commands if isinstance(c, NestedCall)}
        if nested:
            await self._ensure_procedures(nested)
        replies = await transport.execute(commands, self._handles)
        for reply in replies:
            if isinstance(reply, Exception) and not isinstance(reply, ProcedureMissingError):
                raise reply
        if any(isinstance(reply, ProcedureMissingError) for reply in replies):
            await self._replay(commands, replies)

    # -- operations --

    async def _get(self, scope: str, key: Any) -> list[Any]:
        transport = self._session()
        plan = plan_get(self.prefix, scope, key)
        if not plan.store_keys:
            return []
        replies = await transport.mget(plan.store_keys)
        return plan.resolve(replies)

    async def get(self, scope: str, key: str | Sequence[str], callback: Callback | None = None) -> Any:
        """
        Read one path (returns its value) or a list of paths (returns a list).

        Missing paths read as None. With a callback, it is called as
        ``callback(err, *values)``.
        """
        _check_callback(callback)
        values = await _complete(self._get(scope, key), callback, spread=True)
        if values is None:
            return None
        return values if isinstance(key, (list, tuple)) else values[0]

    async def _set(self, scope: str, key: Any, value: Any) -> None:
        self._session()
        plan = plan_set(self.prefix, scope, key, value)
        if plan.commands:
            await self._execute(plan.commands)
        plan.commit(self._circular)

    async def set(
        self,
        scope: str,
        key: str | Sequence[str],
        value: Any = UNSET,
        callback: Callback | None = None,
    ) -> None:
        """
        Write one or more paths in a single transaction. ``UNSET`` (the
        default) deletes the path.

        With a list of paths, a list of values is matched up by position
        (missing ones delete) and any other value is written to every path.
        """
        _check_callback(callback)
        await _complete(self._set(scope, key, value), callback)

    async def _keys(self, scope: str) -> list[str]:
        transport = self._session()
        found = await scan_keys(transport, scope_pattern(self.prefix, scope), self.config.scan_count)
        return [from_store_key(self.prefix, scope, key) for key in found]

    async def keys(self, scope: str, callback: Callback | None = None) -> list[str]:
        _check_callback(callback)
        return await _complete(self._keys(scope), callback)

    async def delete(self, scope: str) -> None:
        """Remove every key of a scope."""
        transport = self._session()
        found = await scan_keys(transport, scope_pattern(self.prefix, scope), self.config.scan_count)
        if not found:
            return
        for key in found:
            self._circular.forget(key)
        await transport.delete(found)

    async def clean(self, active_scopes: Iterable[str]) -> None:
        """
        Remove the context of every scope that is no longer active.
        Global context is always kept.
        """
        transport = self._session()
        active = [scope for scope in active_scopes if scope]
        self._circular.clear()
        found = await scan_keys(transport, prefix_pattern(self.prefix), self.config.scan_count)
        remove = [key for key in found if not is_retained(strip_prefix(self.prefix, key), active)]
        if remove:
            logger.debug("Removing %d context keys of inactive scopes", len(remove))
            await transport.delete(remove)


def create_storage(
    config: StorageConfig | Mapping[str, Any] | None = None,
    *,
    transport: StoreTransport | None = None,
) -> RedisContextStorage:
    """
    Build a storage from the host configuration, or from the environment
    (``CONTEXT_REDIS_*``, optionally in ``local.env``) when none is given.
    """
    if config is None:
        load_dotenv("local.env")
        config = get_settings().to_config()
    return RedisContextStorage(config, transport=transport)

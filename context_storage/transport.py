from __future__ import annotations

import contextlib
import logging
from typing import Any, Iterator, Mapping, Sequence

import redis.asyncio as aioredis
from redis.exceptions import NoScriptError, RedisError

from .config import StorageConfig
from .errors import NotConnectedError, ProcedureMissingError, TransportError
from .interfaces import StoreTransport
from .planner import Command, MultiDelete, MultiSet, NestedCall
from .scripts import Procedure

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def _redis_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except NoScriptError as e:
        raise ProcedureMissingError(f"Redis {operation} failed: {e}") from e
    except RedisError as e:
        logger.error("Redis %s failed: %r", operation, e)
        raise TransportError(f"Redis {operation} failed: {e}", {"operation": operation}) from e


def _as_error(reply: Any) -> Any:
    if isinstance(reply, NoScriptError):
        return ProcedureMissingError(f"Script not loaded: {reply}")
    if isinstance(reply, RedisError):
        return TransportError(f"Command failed inside transaction: {reply}", {"error": repr(reply)})
    return reply


class RedisTransport(StoreTransport):
    """
    StoreTransport backed by redis-py's asyncio client.

    Replies are decoded to str. Every redis-py error is re-raised as
    TransportError, an unknown script handle as ProcedureMissingError.
    """

    def __init__(self, config: StorageConfig) -> None:
        self._config = config
        self._client: aioredis.Redis | None = None

    @property
    def client(self) -> aioredis.Redis:
        if self._client is None:
            raise NotConnectedError("Redis transport is not connected")
        return self._client

    async def connect(self) -> None:
        client = aioredis.Redis(**self._config.connection_kwargs())
        try:
            with _redis_errors("connect"):
                await client.ping()
        except TransportError:
            await client.aclose()
            raise
        self._client = client
        logger.debug("Connected to Redis at %s:%s db=%s", self._config.host, self._config.port, self._config.db)

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        with _redis_errors("close"):
            await client.aclose()

    async def script_load(self, source: str) -> str:
        with _redis_errors("SCRIPT LOAD"):
            return await self.client.script_load(source)

    async def script_exists(self, *handles: str) -> list[bool]:
        with _redis_errors("SCRIPT EXISTS"):
            return [bool(found) for found in await self.client.script_exists(*handles)]

    async def mget(self, keys: Sequence[str]) -> list[str | None]:
        with _redis_errors("MGET"):
            return await self.client.mget(list(keys))

    async def execute(self, commands: Sequence[Command], handles: Mapping[Procedure, str]) -> list[Any]:
        pipe = self.client.pipeline(transaction=True)
        for command in commands:
            if isinstance(command, MultiSet):
                pipe.mset(dict(command.pairs))
            elif isinstance(command, MultiDelete):
                pipe.delete(*command.keys)
            elif isinstance(command, NestedCall):
                pipe.evalsha(handles[command.procedure], 1, command.key, *command.args)
            else:
                raise TypeError(f"Unknown command {command!r}")
        with _redis_errors("MULTI/EXEC"):
            try:
                replies = await pipe.execute(raise_on_error=False)
            finally:
                await pipe.reset()
        return [_as_error(reply) for reply in replies]

    async def scan(self, cursor: int, match: str, count: int) -> tuple[int, list[str]]:
        with _redis_errors("SCAN"):
            next_cursor, keys = await self.client.scan(cursor=cursor, match=match, count=count)
        return int(next_cursor), list(keys)

    async def delete(self, keys: Sequence[str]) -> int:
        if not keys:
            return 0
        with _redis_errors("DEL"):
            return await self.client.delete(*keys)

from __future__ import annotations

import asyncio
import os
import uuid

import pytest

from context_storage.errors import TransportError
from context_storage.redis_storage import RedisContextStorage
from context_storage.scripts import MAX_ARRAY_PADDING
from context_storage.settings import get_settings
from context_storage.transport import RedisTransport

pytestmark = pytest.mark.skipif(
    not os.getenv("CONTEXT_REDIS_HOST"),
    reason="set CONTEXT_REDIS_HOST to run against a real Redis server",
)


def _storage() -> tuple[RedisContextStorage, RedisTransport]:
    config = get_settings().to_config().model_copy(update={"prefix": f"it-{uuid.uuid4().hex}"})
    transport = RedisTransport(config)
    return RedisContextStorage(config, transport=transport), transport


async def _drop_all(storage: RedisContextStorage) -> None:
    await storage.clean([])
    await storage.delete("global")
    await storage.close()


def test_nested_set_get_and_delete():
    async def _run():
        storage, transport = _storage()
        await storage.open()
        try:
            await storage.set("nodeX", "foo.bar", "baz")
            await storage.set("nodeX", "foo.list[1]", "b")
            assert await storage.get("nodeX", "foo") == {"bar": "baz", "list": [None, "b"]}
            assert await storage.get("nodeX", ["foo.bar", "foo.list[1]", "missing"]) == ["baz", "b", None]

            await storage.set("nodeX", "foo.bar")
            assert await storage.get("nodeX", "foo") == {"list": [None, "b"]}
            await storage.set("nodeX", "foo")
            assert await storage.get("nodeX", "foo") is None
        finally:
            await _drop_all(storage)

    asyncio.run(_run())


def test_keys_delete_and_clean():
    async def _run():
        storage, transport = _storage()
        await storage.open()
        try:
            await storage.set("nodeX", ["a", "b"], [1, 2])
            await storage.set("nodeY:flowA", "c", 3)
            await storage.set("global", "g", 4)
            assert sorted(await storage.keys("nodeX")) == ["a", "b"]

            await storage.delete("nodeX")
            assert await storage.keys("nodeX") == []

            await storage.clean(["flowB"])
            assert await storage.keys("nodeY:flowA") == []
            assert await storage.keys("global") == ["g"]
        finally:
            await _drop_all(storage)

    asyncio.run(_run())


def test_circular_value_is_stored_without_the_cycle():
    async def _run():
        storage, transport = _storage()
        await storage.open()
        try:
            foo: dict = {"bar": "baz"}
            foo["foo"] = foo
            await storage.set("nodeX", "foo", foo)
            assert await storage.get("nodeX", "foo") == {"bar": "baz"}
        finally:
            await _drop_all(storage)

    asyncio.run(_run())


def test_recovers_after_script_flush():
    async def _run():
        storage, transport = _storage()
        await storage.open()
        try:
            await transport.client.script_flush()
            await storage.set("nodeX", "foo.bar", 1)
            assert await storage.get("nodeX", "foo") == {"bar": 1}
        finally:
            await _drop_all(storage)

    asyncio.run(_run())


def test_nested_write_turns_empty_arrays_into_objects():
    async def _run():
        storage, transport = _storage()
        await storage.open()
        try:
            await storage.set("nodeX", "foo", {"a": [], "b": 1})
            assert await storage.get("nodeX", "foo") == {"a": [], "b": 1}
            await storage.set("nodeX", "foo.b", 2)
            assert await storage.get("nodeX", "foo") == {"a": {}, "b": 2}
        finally:
            await _drop_all(storage)

    asyncio.run(_run())


def test_padding_past_the_end_is_bounded():
    async def _run():
        storage, transport = _storage()
        await storage.open()
        try:
            await storage.set("nodeX", f"foo[{MAX_ARRAY_PADDING}]", 1)
            assert len(await storage.get("nodeX", "foo")) == MAX_ARRAY_PADDING + 1
            with pytest.raises(TransportError):
                await storage.set("nodeX", "bar[20000000]", 1)
            assert await storage.get("nodeX", "bar") is None
        finally:
            await _drop_all(storage)

    asyncio.run(_run())

from __future__ import annotations

import hashlib
import json
from enum import Enum
from typing import Any, MutableMapping, Sequence

from .paths import Segment, address

# Writing past the end of an array pads it with null, at most this many at a time.
MAX_ARRAY_PADDING = 1000

# Both scripts take one key and one argument per path segment below the root.
# Each segment argument is JSON so field names and indices stay distinct:
# '"0"' is the field "0", '0' is the first array element.

# Sets a nested property atomically.
# Usage: EVALSHA(SHA, 1, key, seg, [seg...], JSON)
# e.g. obj.a[1] = {"foo": "bar"} -> EVALSHA(SHA, 1, 'obj', '"a"', '1', '{"foo":"bar"}')
SET_NESTED_SCRIPT = """
local MAX_PADDING = 1000

local function container_for(value, segment)
    if type(value) ~= 'table' then
        return {}
    end
    if type(segment) == 'string' and value[1] ~= nil then
        return {}
    end
    return value
end

local function slot(t, segment)
    if type(segment) ~= 'number' then
        return segment
    end
    if next(t) ~= nil and t[1] == nil then
        return tostring(segment)
    end
    if segment - #t > MAX_PADDING then
        error("array index " .. segment .. " is more than " .. MAX_PADDING .. " past the end of the array")
    end
    for i = #t + 1, segment do
        t[i] = cjson.null
    end
    return segment + 1
end

if #ARGV == 1 then
    return redis.call('SET', KEYS[1], ARGV[1])
end

local raw = redis.call('GET', KEYS[1])
local data
if raw then
    local ok, decoded = pcall(cjson.decode, raw)
    if ok then
        data = decoded
    end
end
local value = cjson.decode(ARGV[#ARGV])

local segments = {}
for i = 1, #ARGV - 1 do
    segments[i] = cjson.decode(ARGV[i])
end

data = container_for(data, segments[1])
local node = data
for i = 1, #segments - 1 do
    local key = slot(node, segments[i])
    local child = container_for(node[key], segments[i + 1])
    node[key] = child
    node = child
end
node[slot(node, segments[#segments])] = value

return redis.call('SET', KEYS[1], cjson.encode(data))
"""

# Deletes a nested property atomically. Returns 1 if the document changed.
# Usage: EVALSHA(SHA, 1, key, seg, [seg...])
# e.g. delete obj.a[1] -> EVALSHA(SHA, 1, 'obj', '"a"', '1')
DELETE_NESTED_SCRIPT = """
local function address(t, segment)
    if type(t) ~= 'table' then
        return nil
    end
    local is_array = t[1] ~= nil
    if type(segment) == 'number' then
        if is_array then
            if segment < #t then
                return segment + 1
            end
            return nil
        end
        local key = tostring(segment)
        if t[key] ~= nil then
            return key
        end
        return nil
    end
    if is_array then
        return nil
    end
    if t[segment] ~= nil then
        return segment
    end
    return nil
end

if #ARGV == 0 then
    return redis.call('DEL', KEYS[1])
end

local raw = redis.call('GET', KEYS[1])
if not raw then
    return 0
end
local ok, data = pcall(cjson.decode, raw)
if not ok then
    return 0
end

local node = data
for i = 1, #ARGV - 1 do
    local key = address(node, cjson.decode(ARGV[i]))
    if key == nil then
        return 0
    end
    node = node[key]
end

local key = address(node, cjson.decode(ARGV[#ARGV]))
if key == nil then
    return 0
end
if type(key) == 'number' then
    table.remove(node, key)
else
    node[key] = nil
end

redis.call('SET', KEYS[1], cjson.encode(data))
return 1
"""


class Procedure(str, Enum):
    SET_NESTED = "set_nested"
    DELETE_NESTED = "delete_nested"

    @property
    def source(self) -> str:
        return SCRIPT_SOURCES[self]


SCRIPT_SOURCES: dict[Procedure, str] = {
    Procedure.SET_NESTED: SET_NESTED_SCRIPT,
    Procedure.DELETE_NESTED: DELETE_NESTED_SCRIPT,
}


def script_sha(source: str) -> str:
    """The handle Redis assigns to a script: the SHA1 hex digest of its source."""
    return hashlib.sha1(source.encode("utf-8")).hexdigest()


def encode_segments(tail: Sequence[Segment]) -> list[str]:
    return [json.dumps(segment) for segment in tail]


# In-process equivalents, used by MemoryTransport. They follow the Lua above
# step by step so both transports agree on every coercion.


def _as_cjson(value: Any) -> Any:
    # cjson cannot tell an empty array from an empty object and encodes both as {}.
    if isinstance(value, list):
        return [_as_cjson(v) for v in value] if value else {}
    if isinstance(value, dict):
        return {k: _as_cjson(v) for k, v in value.items()}
    return value


def _dumps(document: Any) -> str:
    return json.dumps(_as_cjson(document), separators=(",", ":"), ensure_ascii=False)


def _load(data: MutableMapping[str, str], key: str) -> Any:
    raw = data.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return None


def _container_for(value: Any, segment: Segment) -> Any:
    if isinstance(segment, int):
        if isinstance(value, list) or (isinstance(value, dict) and value):
            return value
        return []
    return value if isinstance(value, dict) else {}


def _slot(container: Any, segment: Segment) -> Segment:
    if isinstance(container, dict):
        return str(segment)
    if segment - len(container) > MAX_ARRAY_PADDING:
        raise ValueError(
            f"array index {segment} is more than {MAX_ARRAY_PADDING} past the end of the array"
        )
    while len(container) <= segment:
        container.append(None)
    return segment


def apply_set_nested(data: MutableMapping[str, str], key: str, args: Sequence[str]) -> str:
    if len(args) == 1:
        data[key] = args[0]
        return "OK"

    value = json.loads(args[-1])
    segments = [json.loads(arg) for arg in args[:-1]]

    document = _container_for(_load(data, key), segments[0])
    node = document
    for current, following in zip(segments, segments[1:]):
        slot = _slot(node, current)
        existing = node.get(slot) if isinstance(node, dict) else node[slot]
        child = _container_for(existing, following)
        node[slot] = child
        node = child
    node[_slot(node, segments[-1])] = value

    data[key] = _dumps(document)
    return "OK"


def apply_delete_nested(data: MutableMapping[str, str], key: str, args: Sequence[str]) -> int:
    if not args:
        return 1 if data.pop(key, None) is not None else 0
    if key not in data:
        return 0
    document = _load(data, key)
    if document is None:
        return 0

    segments = [json.loads(arg) for arg in args]
    node = document
    for segment in segments[:-1]:
        slot = address(node, segment)
        if slot is None:
            return 0
        node = node[slot]

    slot = address(node, segments[-1])
    if slot is None:
        return 0
    del node[slot]

    data[key] = _dumps(document)
    return 1


PROCEDURE_IMPLEMENTATIONS = {
    script_sha(SET_NESTED_SCRIPT): apply_set_nested,
    script_sha(DELETE_NESTED_SCRIPT): apply_delete_nested,
}

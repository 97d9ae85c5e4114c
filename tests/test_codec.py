from __future__ import annotations

import json

import pytest
from pydantic import BaseModel

from context_storage.codec import CircularReferenceLog, decode_document, encode_value
from context_storage.errors import DecodeError


class _Point(BaseModel):
    x: int
    y: int = 0


def test_encode_plain_values():
    enc = encode_value({"a": 1, "b": [True, None, "s"]})
    assert json.loads(enc.json) == {"a": 1, "b": [True, None, "s"]}
    assert enc.circular is False
    assert encode_value("1").json == '"1"'
    assert encode_value(None).json == "null"


def test_encode_drops_circular_member():
    foo: dict = {"bar": "baz"}
    foo["foo"] = foo
    enc = encode_value(foo)
    assert enc.circular is True
    assert json.loads(enc.json) == {"bar": "baz"}


def test_encode_circular_array_element_becomes_null():
    items: list = [1]
    items.append(items)
    enc = encode_value(items)
    assert enc.circular is True
    assert json.loads(enc.json) == [1, None]


def test_shared_references_are_not_cycles():
    shared = {"x": 1}
    enc = encode_value({"a": shared, "b": shared})
    assert enc.circular is False
    assert json.loads(enc.json) == {"a": {"x": 1}, "b": {"x": 1}}


def test_encode_pydantic_models():
    enc = encode_value({"p": _Point(x=1)})
    assert json.loads(enc.json) == {"p": {"x": 1, "y": 0}}


def test_encode_rejects_unserializable_values():
    with pytest.raises(TypeError):
        encode_value({"a": object()})
    with pytest.raises(ValueError):
        encode_value(float("nan"))


def test_decode_document():
    assert decode_document(None) is None
    assert decode_document('{"a":1}') == {"a": 1}
    assert decode_document(b"[1,2]") == [1, 2]
    assert decode_document("null") is None
    with pytest.raises(DecodeError):
        decode_document("not json")


def test_circular_log_warns_once_per_key():
    log = CircularReferenceLog()
    assert log.record("k", True) is True
    assert log.record("k", True) is False
    assert "k" in log

    # a clean write resets the key
    assert log.record("k", False) is False
    assert "k" not in log
    assert log.record("k", True) is True

    log.forget("k")
    assert log.record("k", True) is True

    log.record("other", True)
    log.clear()
    assert "k" not in log and "other" not in log

from __future__ import annotations

import pytest

from context_storage.keys import (
    escape_pattern,
    from_store_key,
    is_retained,
    prefix_pattern,
    scope_pattern,
    strip_prefix,
    to_store_key,
)


def test_store_key_layout():
    assert to_store_key(None, "global", "foo") == "global:foo"
    assert to_store_key("", "global", "foo") == "global:foo"
    assert to_store_key("app", "nodeX:flow1", "foo") == "app:nodeX:flow1:foo"


def test_from_store_key_inverts_to_store_key():
    for prefix in (None, "app"):
        key = to_store_key(prefix, "abc:def", "foo")
        assert from_store_key(prefix, "abc:def", key) == "foo"


def test_from_store_key_rejects_other_scopes():
    with pytest.raises(ValueError):
        from_store_key(None, "nodeX", "nodeXY:foo")


def test_scope_patterns_match_literally():
    assert scope_pattern(None, "nodeX") == "nodeX:*"
    assert scope_pattern("p", "a*b") == r"p:a\*b:*"
    assert escape_pattern("a?[b]^\\") == r"a\?\[b\]\^\\"


def test_prefix_pattern():
    assert prefix_pattern(None) == "*"
    assert prefix_pattern("p") == "p:*"
    assert prefix_pattern("p*") == r"p\*:*"


def test_strip_prefix():
    assert strip_prefix("p", "p:global:foo") == "global:foo"
    assert strip_prefix(None, "global:foo") == "global:foo"


def test_is_retained():
    assert is_retained("global:foo", [])
    assert is_retained("nodeX:flow1:foo", ["flow1", "nodeX"])
    assert is_retained("flow1:foo", ["flow1"])
    assert not is_retained("nodeY:flow2:foo", ["flow1", "nodeX"])
    # an id is matched up to the separator only
    assert not is_retained("node10:foo", ["node1"])
    assert not is_retained("globalx:foo", [])

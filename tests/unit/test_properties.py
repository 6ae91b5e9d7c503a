"""Unit tests for property map marshaling."""

import ctypes

import pytest
from sortedcontainers import SortedDict

from lsm_props.bridge.properties import emit_properties, read_properties, to_property_map
from lsm_props.ffi.abi import PROPERTY_FN, copy_buffer


@pytest.fixture
def recorder():
    """Engine-style add_property function pointer that records every call."""
    calls = []

    @PROPERTY_FN
    def add_property(sink, key, key_len, value, value_len):
        calls.append((sink, copy_buffer(key, key_len), copy_buffer(value, value_len)))

    return add_property, calls


def test_emit_pushes_pairs_in_byte_order(recorder):
    """Pairs cross the boundary one call each, ordered by key bytes."""
    add_property, calls = recorder
    count = emit_properties({b"b": b"2", b"a": b"1", b"\x00": b"0"}, 4242, add_property)

    assert count == 3
    assert calls == [(4242, b"\x00", b"0"), (4242, b"a", b"1"), (4242, b"b", b"2")]


def test_emit_keeps_embedded_nul_and_empty_values(recorder):
    """Lengths travel with the pointers, so NUL bytes and empty values survive."""
    add_property, calls = recorder
    emit_properties({b"k\x00ey": b"", b"v": b"a\x00b"}, None, add_property)

    assert [(k, v) for _, k, v in calls] == [(b"k\x00ey", b""), (b"v", b"a\x00b")]


def test_emit_with_null_add_property_is_noop():
    """A NULL function pointer means there is nowhere to emit to."""
    assert emit_properties({b"a": b"1"}, None, PROPERTY_FN()) == 0


def test_emit_empty_map(recorder):
    add_property, calls = recorder
    assert emit_properties({}, None, add_property) == 0
    assert emit_properties(None, None, add_property) == 0
    assert calls == []


def test_to_property_map_encodes_str_as_utf8():
    result = to_property_map({"num-keys": "1", b"raw": bytearray(b"\xff"), "ключ": memoryview(b"x")})

    assert isinstance(result, SortedDict)
    assert result == {b"num-keys": b"1", b"raw": b"\xff", "ключ".encode(): b"x"}
    assert list(result) == sorted(result)


def test_to_property_map_rejects_other_types():
    with pytest.raises(TypeError):
        to_property_map({b"count": 1})


def test_to_property_map_rejects_keys_colliding_after_encoding():
    with pytest.raises(ValueError):
        to_property_map({"a": b"1", b"a": b"2"})


def test_read_properties_collects_into_sorted_map():
    """The reader callback fills a byte-ordered map via the opaque state pointer."""
    seen_handles = []

    def for_each(handle, state, reader):
        seen_handles.append(handle)
        for key, value in [(b"b", b"2"), (b"a\x00z", b"\x00\x01"), (b"", b"")]:
            reader(state, key, len(key), value, len(value))

    result = read_properties(for_each, 7)

    assert seen_handles == [7]
    assert list(result.items()) == [(b"", b""), (b"a\x00z", b"\x00\x01"), (b"b", b"2")]


def test_read_properties_copies_before_engine_memory_changes():
    """Values are copied inside the callback, not aliased."""
    key_buf = ctypes.create_string_buffer(b"key", 3)
    value_buf = ctypes.create_string_buffer(b"value", 5)

    def for_each(handle, state, reader):
        reader(state, ctypes.addressof(key_buf), 3, ctypes.addressof(value_buf), 5)

    result = read_properties(for_each, 1)
    ctypes.memset(key_buf, 0, 3)
    ctypes.memset(value_buf, 0, 5)

    assert result == {b"key": b"value"}


def test_read_properties_duplicate_key_keeps_last():
    def for_each(handle, state, reader):
        reader(state, b"k", 1, b"1", 1)
        reader(state, b"k", 1, b"2", 1)

    assert read_properties(for_each, 1) == {b"k": b"2"}

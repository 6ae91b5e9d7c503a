"""Unit tests for table properties accessors and collections."""

import gc
from unittest.mock import MagicMock

import pytest

from lsm_props.bridge.table_properties import TableProperties, TablePropertiesCollection
from lsm_props.core.errors import ContractViolationError
from lsm_props.ffi.embedded import EmbeddedEngineApi, encode_properties
from sortedcontainers import SortedDict


def make_meta(name, user=None, readable=None):
    """Minimal metadata as the embedded engine stores it."""
    return {
        "data_path": name,
        "user_collected_properties": encode_properties(SortedDict(user or {})),
        "readable_properties": encode_properties(SortedDict(readable or {})),
    }


@pytest.fixture
def api():
    return EmbeddedEngineApi()


def test_collection_drains_tables_in_reported_order(api):
    metas = [make_meta(f"sst-0-{i}.data", {b"n": str(i).encode()}) for i in range(5)]

    collection = TablePropertiesCollection.from_raw(api, api.open_collection(metas))

    assert len(collection) == 5
    assert [t.name for t in collection] == [f"sst-0-{i}.data" for i in range(5)]
    assert [t.user_collected_properties()[b"n"] for t in collection] == [b"0", b"1", b"2", b"3", b"4"]
    assert api.live_handles()["collections"] == 0
    collection.close()
    assert api.live_handles()["tables"] == 0


def test_empty_collection(api):
    collection = TablePropertiesCollection.from_raw(api, api.open_collection([]))

    assert len(collection) == 0
    assert list(collection) == []
    assert api.live_handles()["collections"] == 0


def test_next_past_exhaustion_keeps_returning_null(api):
    handle = api.open_collection([make_meta("only")])

    first = api.table_properties_collection_next(handle)
    assert first
    assert api.table_properties_collection_next(handle) is None
    assert api.table_properties_collection_next(handle) is None

    api.table_properties_collection_destroy(handle)
    api.table_properties_destroy(first)


def test_property_round_trip_is_byte_exact(api):
    user = {b"num-keys": b"1", b"bin\x00ary": bytes(range(256)), b"": b"empty-key"}
    readable = {b"summary": b"one put"}
    collection = TablePropertiesCollection.from_raw(
        api, api.open_collection([make_meta("t", user, readable)])
    )

    with collection:
        table = collection[0]
        assert dict(table.user_collected_properties()) == user
        assert dict(table.readable_properties()) == readable
        assert list(table.user_collected_properties()) == sorted(user)


def test_maps_outlive_the_view(api):
    collection = TablePropertiesCollection.from_raw(
        api, api.open_collection([make_meta("t", {b"k": b"v"})])
    )
    props = collection[0].user_collected_properties()

    collection.close()

    assert props == {b"k": b"v"}


def test_close_releases_handle_exactly_once():
    api = MagicMock()
    table = TableProperties.from_raw(api, 0x1000)

    table.close()
    table.close()
    with table:
        pass

    api.table_properties_destroy.assert_called_once_with(0x1000)
    assert table.closed


def test_garbage_collection_releases_handle():
    api = MagicMock()
    table = TableProperties.from_raw(api, 0x2000)

    del table
    gc.collect()

    api.table_properties_destroy.assert_called_once_with(0x2000)


def test_use_after_close_raises(api):
    collection = TablePropertiesCollection.from_raw(api, api.open_collection([make_meta("t")]))
    table = collection[0]
    table.close()

    with pytest.raises(RuntimeError):
        table.user_collected_properties()
    with pytest.raises(RuntimeError):
        _ = table.name


def test_collection_handle_released_when_next_fails():
    api = MagicMock()
    api.table_properties_collection_next.side_effect = [0x10, ContractViolationError("bad")]

    with pytest.raises(ContractViolationError):
        TablePropertiesCollection.from_raw(api, 0x99)

    api.table_properties_collection_destroy.assert_called_once_with(0x99)


def test_engine_rejects_unknown_table_handle(api):
    with pytest.raises(ContractViolationError):
        api.table_properties_destroy(12345)

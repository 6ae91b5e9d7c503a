"""Unit tests for the factory trampoline."""

import ctypes
import gc
import os
import threading
import weakref
from concurrent.futures import ThreadPoolExecutor

import pytest

from lsm_props.bridge.factory import create_table_properties_collector_factory
from lsm_props.bridge.handles import OWNED
from lsm_props.core.errors import ContractViolationError
from lsm_props.ffi.abi import CREATE_COLLECTOR_FN, DESTROY_FN, K_ENTRY_PUT, NAME_FN
from lsm_props.ffi.embedded import EmbeddedEngineApi
from lsm_props.interfaces.collector import (
    TablePropertiesCollector,
    TablePropertiesCollectorFactoryContext,
)


class LevelCollector(TablePropertiesCollector):
    def __init__(self, level):
        self.level = level
        self.count = 0

    def name(self):
        return "level-collector"

    def add_user_key(self, key, value, entry_type, seq, file_size):
        self.count += 1

    def finish_properties(self):
        return {b"level": str(self.level).encode(), b"count": str(self.count).encode()}


class LevelCollectorFactory:
    """Structural factory (no explicit base class)."""

    def __init__(self):
        self.contexts = []
        self._lock = threading.Lock()

    def name(self):
        return "level-collector-factory"

    def create(self, ctx):
        with self._lock:
            self.contexts.append(ctx)
        return LevelCollector(ctx.level_at_creation)


class FailingFactory(LevelCollectorFactory):
    def create(self, ctx):
        raise RuntimeError("factory bug")


@pytest.fixture
def api():
    return EmbeddedEngineApi()


@pytest.fixture
def aborts(monkeypatch):
    calls = []
    monkeypatch.setattr(os, "abort", lambda: calls.append(True))
    return calls


def test_create_passes_level_context(api):
    factory = LevelCollectorFactory()
    handle = create_table_properties_collector_factory(factory, api)

    collector = api.new_collector(handle, 3)
    api.collector_add_user_key(collector, b"k", b"v", K_ENTRY_PUT, 1, 0)
    user, readable = api.collector_finish(collector)
    api.destroy_collector(collector)

    assert factory.contexts == [TablePropertiesCollectorFactoryContext(level_at_creation=3)]
    assert user == {b"count": b"1", b"level": b"3"}
    assert len(readable) == 0
    api.destroy_factory(handle)


def test_each_build_gets_a_fresh_collector(api):
    handle = create_table_properties_collector_factory(LevelCollectorFactory(), api)

    first = api.new_collector(handle, 0)
    second = api.new_collector(handle, 1)
    api.collector_add_user_key(first, b"a", b"1", K_ENTRY_PUT, 1, 0)
    api.collector_add_user_key(first, b"b", b"2", K_ENTRY_PUT, 2, 0)

    assert first != second
    assert api.collector_finish(first)[0][b"count"] == b"2"
    assert api.collector_finish(second)[0][b"count"] == b"0"
    api.destroy_collector(first)
    api.destroy_collector(second)
    api.destroy_factory(handle)


def test_name_is_encoded_once_and_stable(api):
    handle = create_table_properties_collector_factory(LevelCollectorFactory(), api)
    vtable = api._factories[handle]

    addresses = {vtable.name(vtable.state) for _ in range(5)}

    assert len(addresses) == 1
    assert ctypes.string_at(addresses.pop()) == b"level-collector-factory"
    assert api.factory_name(handle) == "level-collector-factory"
    api.destroy_factory(handle)


def test_concurrent_create(api):
    """One factory serves many table builds running in parallel."""
    factory = LevelCollectorFactory()
    handle = create_table_properties_collector_factory(factory, api)

    def build(level):
        collector = api.new_collector(handle, level)
        for i in range(20):
            api.collector_add_user_key(collector, f"k{i:02d}".encode(), b"v", K_ENTRY_PUT, i, 0)
        user, _ = api.collector_finish(collector)
        api.destroy_collector(collector)
        return user

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(build, [i % 6 for i in range(64)]))

    assert len(factory.contexts) == 64
    assert all(user[b"count"] == b"20" for user in results)
    assert [user[b"level"] for user in results] == [str(i % 6).encode() for i in range(64)]
    assert api.live_handles()["collectors"] == 0
    api.destroy_factory(handle)


def test_destroy_releases_factory_once(api):
    baseline = len(OWNED)
    factory = LevelCollectorFactory()
    ref = weakref.ref(factory)
    handle = create_table_properties_collector_factory(factory, api)
    del factory

    assert len(OWNED) == baseline + 1
    api.destroy_factory(handle)
    gc.collect()

    assert len(OWNED) == baseline
    assert ref() is None
    assert api.live_handles()["factories"] == 0


def test_collectors_outlive_factory_destroy(api):
    """A collector created before teardown keeps working until destroyed."""
    handle = create_table_properties_collector_factory(LevelCollectorFactory(), api)
    collector = api.new_collector(handle, 2)
    api.destroy_factory(handle)

    api.collector_add_user_key(collector, b"k", b"v", K_ENTRY_PUT, 1, 0)
    assert api.collector_finish(collector)[0][b"count"] == b"1"
    api.destroy_collector(collector)


def test_factory_exception_aborts(api, aborts):
    handle = create_table_properties_collector_factory(FailingFactory(), api)
    vtable = api._factories[handle]
    context = ctypes.c_int(0)

    result = vtable.create(vtable.state, ctypes.addressof(context))

    assert aborts == [True]
    assert result is None
    api.destroy_factory(handle)


def test_engine_allocation_failure_reclaims_factory():
    class NullApi(EmbeddedEngineApi):
        def table_properties_collector_factory_create(self, state, destroy, create, name):
            return None

    baseline = len(OWNED)
    with pytest.raises(MemoryError):
        create_table_properties_collector_factory(LevelCollectorFactory(), NullApi())
    assert len(OWNED) == baseline


def test_engine_rejects_unknown_collector_from_factory(api):
    destroyed = []
    destroy = DESTROY_FN(lambda state: destroyed.append(state))
    create = CREATE_COLLECTOR_FN(lambda state, context: 0xDEAD)
    name = NAME_FN(lambda state: None)
    handle = api.table_properties_collector_factory_create(7, destroy, create, name)

    with pytest.raises(ContractViolationError):
        api.new_collector(handle, 0)

    assert api.live_handles()["collectors"] == 0
    api.destroy_factory(handle)
    assert destroyed == [7]

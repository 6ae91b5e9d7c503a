"""In-process implementation of the engine side of the extension API.

Backs SimpleLSMStore. Factories and collectors registered here are driven
through their ctypes function pointers exactly as a native engine would
drive them, so the bridge is exercised end to end without a shared
library.
"""

from __future__ import annotations

import ctypes
import itertools
import logging
import threading
from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from sortedcontainers import SortedDict

from ..bridge.boundary import ffi_boundary
from ..core.errors import ContractViolationError
from ..core.types import Handle, Key, PropertyMap, SSTableMeta, Value
from .abi import (
    PROPERTY_FN,
    CollectorVTable,
    FactoryContextStruct,
    FactoryVTable,
    copy_buffer,
    deref_state,
    read_c_string,
    state_pointer,
)

logger = logging.getLogger(__name__)


@PROPERTY_FN
@ffi_boundary
def _add_property(state, key, key_len, value, value_len):
    sink = deref_state(state)
    sink[copy_buffer(key, key_len)] = copy_buffer(value, value_len)


def decode_properties(pairs: Iterable[Sequence[str]]) -> PropertyMap:
    """Decode [hex_key, hex_value] pairs stored in SSTable metadata."""
    return SortedDict((bytes.fromhex(k), bytes.fromhex(v)) for k, v in pairs)


def encode_properties(properties: PropertyMap) -> list[tuple[str, str]]:
    """Encode a property map for SSTable metadata."""
    return [(k.hex(), v.hex()) for k, v in properties.items()]


@dataclass
class _TableRecord:
    name: bytes
    user_collected: PropertyMap = field(default_factory=SortedDict)
    readable: PropertyMap = field(default_factory=SortedDict)


class EmbeddedEngineApi:
    """Engine entry points implemented in Python.

    Factory and collector handles are the addresses of ctypes vtable
    records; collection and table handles are tokens. Every registry is
    guarded by one lock so tables can be built from several threads.

    Invariants:
        - A handle is valid from creation until its destroy call
        - Destroy callbacks are issued exactly once per handle
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._factories: dict[Handle, FactoryVTable] = {}
        self._collectors: dict[Handle, CollectorVTable] = {}
        self._collections: dict[Handle, deque[SSTableMeta]] = {}
        self._tables: dict[Handle, _TableRecord] = {}
        self._tokens = itertools.count(1)

    # -- entry points called by the bridge ---------------------------------

    def table_properties_collector_factory_create(self, state, destroy, create, name) -> Handle:
        vtable = FactoryVTable(state, destroy, create, name)
        handle = ctypes.addressof(vtable)
        with self._lock:
            self._factories[handle] = vtable
        return handle

    def table_properties_collector_create(
        self, state, destroy, name, add_user_key, block_add, finish_properties, get_readable_properties
    ) -> Handle:
        vtable = CollectorVTable(
            state, destroy, name, add_user_key, block_add, finish_properties, get_readable_properties
        )
        handle = ctypes.addressof(vtable)
        with self._lock:
            self._collectors[handle] = vtable
        return handle

    def table_properties_collector_factory_context_level_at_creation(self, context: Handle) -> int:
        return FactoryContextStruct.from_address(context).level_at_creation

    def table_properties_collection_next(self, collection: Handle) -> Handle | None:
        with self._lock:
            pending = self._lookup(self._collections, collection, "collection")
            if not pending:
                return None
            meta = pending.popleft()
            record = _TableRecord(
                name=meta["data_path"].encode("utf-8"),
                user_collected=decode_properties(meta.get("user_collected_properties", [])),
                readable=decode_properties(meta.get("readable_properties", [])),
            )
            handle = next(self._tokens)
            self._tables[handle] = record
            return handle

    def table_properties_collection_destroy(self, collection: Handle) -> None:
        with self._lock:
            self._lookup(self._collections, collection, "collection")
            del self._collections[collection]

    def table_properties_table_name(self, properties: Handle) -> bytes:
        return self._table(properties).name

    def table_properties_user_collected(self, properties: Handle, state: int, reader) -> None:
        for key, value in self._table(properties).user_collected.items():
            reader(state, key, len(key), value, len(value))

    def table_properties_readable(self, properties: Handle, state: int, reader) -> None:
        for key, value in self._table(properties).readable.items():
            reader(state, key, len(key), value, len(value))

    def table_properties_destroy(self, properties: Handle) -> None:
        with self._lock:
            self._lookup(self._tables, properties, "table properties")
            del self._tables[properties]

    # -- engine internals ---------------------------------------------------

    def _lookup(self, registry: dict, handle: Handle, kind: str):
        try:
            return registry[handle]
        except KeyError:
            raise ContractViolationError(f"Unknown {kind} handle: {handle}") from None

    def _table(self, handle: Handle) -> _TableRecord:
        with self._lock:
            return self._lookup(self._tables, handle, "table properties")

    def _collector(self, handle: Handle) -> CollectorVTable:
        with self._lock:
            return self._lookup(self._collectors, handle, "collector")

    def factory_name(self, factory: Handle) -> str:
        with self._lock:
            vtable = self._lookup(self._factories, factory, "factory")
        return read_c_string(vtable.name(vtable.state)).decode("utf-8")

    def destroy_factory(self, factory: Handle) -> None:
        """Release a factory; its destroy callback runs exactly once."""
        with self._lock:
            vtable = self._lookup(self._factories, factory, "factory")
            del self._factories[factory]
        vtable.destroy(vtable.state)

    def new_collector(self, factory: Handle, level: int) -> Handle:
        """Ask a factory for a collector for a table built at ``level``."""
        with self._lock:
            vtable = self._lookup(self._factories, factory, "factory")
        context = FactoryContextStruct(level_at_creation=level)
        collector = vtable.create(vtable.state, ctypes.addressof(context))
        with self._lock:
            known = collector in self._collectors
        if not known:
            raise ContractViolationError(f"Factory returned an unknown collector handle: {collector}")
        return collector

    def collector_name(self, collector: Handle) -> str:
        vtable = self._collector(collector)
        return read_c_string(vtable.name(vtable.state)).decode("utf-8")

    def collector_add_user_key(
        self, collector: Handle, key: Key, value: Value, entry_type: int, seq: int, file_size: int
    ) -> None:
        vtable = self._collector(collector)
        vtable.add_user_key(vtable.state, key, len(key), value, len(value), entry_type, seq, file_size)

    def collector_block_add(self, collector: Handle, uncompressed: int, fast: int, slow: int) -> None:
        vtable = self._collector(collector)
        vtable.block_add(vtable.state, uncompressed, fast, slow)

    def collector_finish(self, collector: Handle) -> tuple[PropertyMap, PropertyMap]:
        """Run finish_properties then get_readable_properties on one collector."""
        vtable = self._collector(collector)
        user_collected: PropertyMap = SortedDict()
        readable: PropertyMap = SortedDict()
        user_box = ctypes.py_object(user_collected)
        readable_box = ctypes.py_object(readable)
        vtable.finish_properties(vtable.state, state_pointer(user_box), _add_property)
        vtable.get_readable_properties(vtable.state, state_pointer(readable_box), _add_property)
        return user_collected, readable

    def destroy_collector(self, collector: Handle) -> None:
        with self._lock:
            vtable = self._lookup(self._collectors, collector, "collector")
            del self._collectors[collector]
        vtable.destroy(vtable.state)

    def open_collection(self, metas: Iterable[SSTableMeta]) -> Handle:
        """Create a collection handle enumerating the given tables in order."""
        with self._lock:
            handle = next(self._tokens)
            self._collections[handle] = deque(metas)
        return handle

    def live_handles(self) -> dict[str, int]:
        """Count live handles per kind."""
        with self._lock:
            return {
                "factories": len(self._factories),
                "collectors": len(self._collectors),
                "collections": len(self._collections),
                "tables": len(self._tables),
            }


class TableBuildCollectors:
    """Collectors attached to one table build.

    Args:
        api: Engine API the factories are registered with
        factories: Factory handles from the store configuration
        level: Level the table is being built at

    Invariants:
        - Every collector sees the same records in the same order
        - ``finish`` runs once; collectors are destroyed right after it
    """

    def __init__(self, api: EmbeddedEngineApi, factories: Sequence[Handle], level: int):
        self._api = api
        self.level = level
        self._handles: list[Handle] = []
        self._finished = False
        try:
            for factory in factories:
                self._handles.append(api.new_collector(factory, level))
        except Exception:
            self.release()
            raise

    def add_user_key(self, key: Key, value: Value, entry_type: int, seq: int, file_size: int) -> None:
        for handle in self._handles:
            self._api.collector_add_user_key(handle, key, value, entry_type, seq, file_size)

    def block_add(self, uncompressed: int, fast: int, slow: int) -> None:
        for handle in self._handles:
            self._api.collector_block_add(handle, uncompressed, fast, slow)

    def finish(self) -> tuple[PropertyMap, PropertyMap]:
        """Collect every collector's properties and destroy the collectors.

        Maps of later collectors win on key collisions.
        """
        if self._finished:
            raise ContractViolationError("Table build collectors already finished")
        self._finished = True

        user_collected: PropertyMap = SortedDict()
        readable: PropertyMap = SortedDict()
        try:
            for handle in self._handles:
                name = self._api.collector_name(handle)
                user, human = self._api.collector_finish(handle)
                logger.debug(f"Collector {name} emitted {len(user)} properties at level {self.level}")
                user_collected.update(user)
                readable.update(human)
        finally:
            self.release()
        return user_collected, readable

    def release(self) -> None:
        """Destroy every collector not yet destroyed."""
        while self._handles:
            self._api.destroy_collector(self._handles.pop())


_default_api: EmbeddedEngineApi | None = None
_default_lock = threading.Lock()


def embedded_engine_api() -> EmbeddedEngineApi:
    """Return the process-wide embedded engine API."""
    global _default_api
    with _default_lock:
        if _default_api is None:
            _default_api = EmbeddedEngineApi()
        return _default_api

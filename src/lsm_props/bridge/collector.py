"""Collector trampoline.

Adapts one running TablePropertiesCollector to the engine's six-slot
collector callback table. Each slot resolves the collector from its handle
and delegates; no statistics logic lives here.
"""

from __future__ import annotations

import ctypes
import logging
from typing import TYPE_CHECKING

from sortedcontainers import SortedDict

from ..ffi.abi import (
    ADD_USER_KEY_FN,
    BLOCK_ADD_FN,
    DESTROY_FN,
    FINISH_PROPERTIES_FN,
    NAME_FN,
    copy_buffer,
)
from .boundary import ffi_boundary
from .entry_type import EntryType
from .handles import OWNED
from .properties import emit_properties

if TYPE_CHECKING:
    from ..core.types import Handle
    from ..interfaces.collector import TablePropertiesCollector
    from ..interfaces.engine import EngineApi

logger = logging.getLogger(__name__)


def encode_name(name: str | bytes) -> ctypes.Array:
    """Encode a name into a NUL-terminated buffer owned by the caller."""
    raw = name.encode("utf-8") if isinstance(name, str) else bytes(name)
    if b"\x00" in raw:
        raise ValueError(f"Name must not contain NUL bytes: {raw!r}")
    return ctypes.create_string_buffer(raw)


class CollectorCell:
    """A collector moved into the handle table, with its stable name buffer."""

    __slots__ = ("collector", "name_buffer", "__weakref__")

    def __init__(self, collector: TablePropertiesCollector):
        self.collector = collector
        self.name_buffer = encode_name(collector.name())


def _collector(raw_self: Handle) -> TablePropertiesCollector:
    return OWNED.borrow(raw_self).collector


@DESTROY_FN
@ffi_boundary
def _destroy(raw_self):
    OWNED.from_raw(raw_self)


@NAME_FN
@ffi_boundary
def _name(raw_self):
    return ctypes.addressof(OWNED.borrow(raw_self).name_buffer)


@ADD_USER_KEY_FN
@ffi_boundary
def _add_user_key(raw_self, key, key_len, value, value_len, entry_type, seq, file_size):
    _collector(raw_self).add_user_key(
        copy_buffer(key, key_len),
        copy_buffer(value, value_len),
        EntryType.from_raw(entry_type),
        seq,
        file_size,
    )


@BLOCK_ADD_FN
@ffi_boundary
def _block_add(raw_self, block_uncomp_bytes, block_compressed_bytes_fast, block_compressed_bytes_slow):
    # Optional on collectors that only match the Protocol structurally
    block_add = getattr(_collector(raw_self), "block_add", None)
    if block_add is not None:
        block_add(block_uncomp_bytes, block_compressed_bytes_fast, block_compressed_bytes_slow)


@FINISH_PROPERTIES_FN
@ffi_boundary
def _finish_properties(raw_self, properties, add_property):
    if add_property:
        emit_properties(_collector(raw_self).finish_properties(), properties, add_property)


@FINISH_PROPERTIES_FN
@ffi_boundary
def _get_readable_properties(raw_self, properties, add_property):
    if add_property:
        readable = getattr(_collector(raw_self), "get_readable_properties", None)
        emit_properties(readable() if readable is not None else SortedDict(), properties, add_property)


def create_table_properties_collector(api: EngineApi, collector: TablePropertiesCollector) -> Handle:
    """Hand ``collector`` to the engine and return the engine's collector handle.

    Ownership of ``collector`` passes to the engine, which releases it by
    calling the destroy slot exactly once.
    """
    raw_self = OWNED.into_raw(CollectorCell(collector))
    handle = api.table_properties_collector_create(
        raw_self,
        _destroy,
        _name,
        _add_user_key,
        _block_add,
        _finish_properties,
        _get_readable_properties,
    )
    if not handle:
        OWNED.from_raw(raw_self)
        raise MemoryError("Engine failed to allocate a table properties collector")
    return handle

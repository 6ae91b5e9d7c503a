"""Property map marshaling across the foreign boundary.

Outbound, a collector's map is pushed pair by pair through the engine's
"add property" function pointer. Inbound, the engine walks a property set
and calls back once per pair; each pair is copied into a fresh
``SortedDict`` before the callback returns.
"""

from __future__ import annotations

import ctypes
import logging
from collections.abc import Callable, Mapping

from sortedcontainers import SortedDict

from ..core.types import Handle, PropertyMap
from ..ffi.abi import PROPERTY_FN, copy_buffer, deref_state, state_pointer
from .boundary import ffi_boundary

logger = logging.getLogger(__name__)


def _as_bytes(item: object) -> bytes:
    """Coerce a property key or value to bytes."""
    if isinstance(item, str):
        return item.encode("utf-8")
    if isinstance(item, (bytes, bytearray, memoryview)):
        return bytes(item)
    raise TypeError(f"Property keys and values must be bytes or str, got {type(item).__name__}")


def to_property_map(properties: Mapping | None) -> PropertyMap:
    """Return an independently owned, byte-ordered copy of ``properties``.

    Raises:
        TypeError: If a key or value is not bytes-like or str
        ValueError: If two keys encode to the same bytes
    """
    result = SortedDict()
    if not properties:
        return result
    for key, value in properties.items():
        raw_key = _as_bytes(key)
        if raw_key in result:
            raise ValueError(f"Duplicate property key after encoding: {raw_key!r}")
        result[raw_key] = _as_bytes(value)
    return result


def emit_properties(properties: Mapping | None, sink: Handle | None, add_property) -> int:
    """Push every pair of ``properties`` into the engine's sink.

    Args:
        properties: Mapping returned by a collector
        sink: Opaque engine pointer passed back on every call
        add_property: Engine function pointer (PROPERTY_FN); NULL emits nothing

    Returns:
        Number of pairs emitted
    """
    if not add_property:
        return 0

    count = 0
    for key, value in to_property_map(properties).items():
        # Buffers are only valid for the duration of this call; the engine copies.
        add_property(sink, key, len(key), value, len(value))
        count += 1
    return count


@PROPERTY_FN
@ffi_boundary
def _property_reader(state, key, key_len, value, value_len):
    accumulator = deref_state(state)
    accumulator[copy_buffer(key, key_len)] = copy_buffer(value, value_len)


def read_properties(for_each: Callable[[Handle, int, object], None], handle: Handle) -> PropertyMap:
    """Collect an engine-owned property set into a new map.

    Args:
        for_each: Engine entry point ``(handle, state, reader) -> None``
        handle: Engine handle of the object owning the property set

    Returns:
        Byte-ordered map that stays valid after ``handle`` is released
    """
    accumulator = SortedDict()
    box = ctypes.py_object(accumulator)
    for_each(handle, state_pointer(box), _property_reader)
    return accumulator

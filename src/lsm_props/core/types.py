"""Common type definitions for lsm_props.

Defines fundamental types used across the bridge and the embedded engine.
"""

from __future__ import annotations

from typing import TypedDict

from sortedcontainers import SortedDict

# Core primitive types
Key = bytes
Value = bytes
Timestamp = int
Record = tuple[Key, Value | None, Timestamp]

# Opaque foreign handle (a raw address or token, never 0)
Handle = int

# Byte-ordered mapping of property name to property value
PropertyMap = SortedDict


class SSTableMeta(TypedDict):
    """Typed metadata describing an SSTable on disk.

    Property maps are stored as lists of [hex_key, hex_value] pairs in
    key order so the catalog stays plain JSON.
    """
    data_path: str
    meta_path: str
    level: int
    min_key: str | None
    max_key: str | None
    min_ts: Timestamp | None
    max_ts: Timestamp | None
    count: int
    data_size: int
    index: list[tuple[str, int]]
    user_collected_properties: list[tuple[str, str]]
    readable_properties: list[tuple[str, str]]

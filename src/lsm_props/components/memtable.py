"""In-memory sorted memtable implementation.

Uses sortedcontainers.SortedDict for ordered writes and range scans.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sortedcontainers import SortedDict

if TYPE_CHECKING:
    from collections.abc import Iterator

    from ..core.types import Key, Record, Timestamp, Value

# Approximate per-entry bookkeeping cost (timestamp plus container overhead)
ENTRY_OVERHEAD = 40


class SimpleMemtable:
    """In-memory sorted structure holding recent writes.

    Invariants:
        - Keys are always iterated in byte order
        - Only the latest write per key is retained; a None value is a tombstone
    """

    def __init__(self):
        self._data: SortedDict = SortedDict()
        self._size_bytes: int = 0

    def _write(self, key: Key, value: Value | None, ts: Timestamp) -> None:
        previous = self._data.get(key)
        if previous is not None:
            self._size_bytes -= len(key) + len(previous[0] or b"") + ENTRY_OVERHEAD
        self._data[key] = (value, ts)
        self._size_bytes += len(key) + len(value or b"") + ENTRY_OVERHEAD

    def put(self, key: Key, value: Value, ts: Timestamp) -> None:
        """Insert or update key with value and timestamp."""
        self._write(key, value, ts)

    def delete(self, key: Key, ts: Timestamp) -> None:
        """Mark key as tombstone with timestamp."""
        self._write(key, None, ts)

    def get(self, key: Key) -> tuple[Value | None, Timestamp] | None:
        """Return (value_or_none, timestamp) if key found; else None."""
        return self._data.get(key)

    def iter_range(self, start: Key | None, end: Key | None) -> Iterator[Record]:
        """Iterate records with start <= key < end (None means unbounded)."""
        for key in self._data.irange(start, end, inclusive=(True, False)):
            value, ts = self._data[key]
            yield (key, value, ts)

    def items(self) -> Iterator[Record]:
        """Iterate all records in key order."""
        return self.iter_range(None, None)

    def size_bytes(self) -> int:
        """Return approximate memory usage in bytes."""
        return self._size_bytes

    def __len__(self) -> int:
        return len(self._data)

    def clear(self) -> None:
        """Clear all entries (used after flush)."""
        self._data.clear()
        self._size_bytes = 0

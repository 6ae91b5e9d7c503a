"""SSTable implementation with block index and table properties.

Records are grouped into data blocks. While a table is built, every record
and every flushed block is reported to the table properties collectors
attached to the build; their output is stored in the table metadata.
"""

from __future__ import annotations

import bisect
import json
import logging
import os
import struct
import zlib
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

from sortedcontainers import SortedDict

from ..core.errors import SSTableError
from ..core.types import Key, Record, SSTableMeta, Timestamp, Value
from ..ffi.abi import K_ENTRY_DELETE, K_ENTRY_PUT
from ..ffi.embedded import encode_properties

if TYPE_CHECKING:
    from ..ffi.embedded import TableBuildCollectors

logger = logging.getLogger(__name__)

# Record format: [op(1B)][key_len(8B)][key][value_len(8B)][value][ts(8B)]
HEADER = struct.Struct("<BQ")
LENGTH = struct.Struct("<Q")
OP_PUT = 0
OP_DELETE = 1

# zlib levels standing in for the engine's fast and slow compression tiers
FAST_COMPRESSION_LEVEL = 1
SLOW_COMPRESSION_LEVEL = 9


def _encode_record(key: Key, value: Value | None, ts: Timestamp) -> bytes:
    op = OP_DELETE if value is None else OP_PUT
    value_bytes = value if value is not None else b""
    return b"".join(
        (
            HEADER.pack(op, len(key)),
            key,
            LENGTH.pack(len(value_bytes)),
            value_bytes,
            LENGTH.pack(ts),
        )
    )


def _read_record(fd) -> Record | None:
    """Read one record at the current offset; None at EOF or on a torn tail."""
    header = fd.read(HEADER.size)
    if len(header) < HEADER.size:
        return None
    op, key_len = HEADER.unpack(header)
    key = fd.read(key_len)
    value_len_bytes = fd.read(LENGTH.size)
    if len(key) < key_len or len(value_len_bytes) < LENGTH.size:
        return None
    (value_len,) = LENGTH.unpack(value_len_bytes)
    value = fd.read(value_len)
    ts_bytes = fd.read(LENGTH.size)
    if len(value) < value_len or len(ts_bytes) < LENGTH.size:
        return None
    (ts,) = LENGTH.unpack(ts_bytes)
    return (key, None if op == OP_DELETE else value, ts)


class SimpleSSTableWriter:
    """Write sorted records to an immutable SSTable file.

    Args:
        data_path: Path for .data file
        meta_path: Path for .meta file
        level: Level the table is built for
        block_size: Target size of one data block in bytes
        collectors: Table properties collectors attached to this build

    Invariants:
        - Records must be added in strictly increasing key order
        - Collectors see every record before the block holding it is flushed
        - Collectors are finished and destroyed exactly once, by finalize or abort
    """

    def __init__(
        self,
        data_path: str | Path,
        meta_path: str | Path,
        level: int = 0,
        block_size: int = 4096,
        collectors: TableBuildCollectors | None = None,
    ):
        self.data_path = Path(data_path)
        self.meta_path = Path(meta_path)
        self.level = level
        self.block_size = block_size
        self._collectors = collectors

        self.data_path.parent.mkdir(parents=True, exist_ok=True)
        self._fd = open(self.data_path, "wb")

        self._block = bytearray()
        self._block_first_key: Key | None = None
        self._index: list[tuple[Key, int]] = []

        self._min_key: Key | None = None
        self._max_key: Key | None = None
        self._min_ts: Timestamp | None = None
        self._max_ts: Timestamp | None = None
        self._count = 0

    def add(self, key: Key, value: Value | None, ts: Timestamp) -> None:
        """Append record to the writer (must be added in sorted order)."""
        if self._fd is None:
            raise SSTableError("Writer already finalized")
        if self._max_key is not None and key <= self._max_key:
            raise SSTableError(f"Keys must be added in sorted order: {self._max_key!r} >= {key!r}")

        if self._collectors is not None:
            entry_type = K_ENTRY_DELETE if value is None else K_ENTRY_PUT
            self._collectors.add_user_key(key, value or b"", entry_type, ts, self._fd.tell())

        if not self._block:
            self._block_first_key = key
        self._block += _encode_record(key, value, ts)

        if self._min_key is None:
            self._min_key = key
        self._max_key = key
        self._min_ts = ts if self._min_ts is None else min(self._min_ts, ts)
        self._max_ts = ts if self._max_ts is None else max(self._max_ts, ts)
        self._count += 1

        if len(self._block) >= self.block_size:
            self._flush_block()

    def _flush_block(self) -> None:
        if not self._block:
            return
        block = bytes(self._block)
        self._index.append((self._block_first_key, self._fd.tell()))
        self._fd.write(block)
        self._block.clear()

        if self._collectors is not None:
            self._collectors.block_add(
                len(block),
                len(zlib.compress(block, FAST_COMPRESSION_LEVEL)),
                len(zlib.compress(block, SLOW_COMPRESSION_LEVEL)),
            )

    def size_bytes(self) -> int:
        """Bytes written so far, including the pending block."""
        if self._fd is None:
            return 0
        return self._fd.tell() + len(self._block)

    def finalize(self) -> SSTableMeta:
        """Flush the last block, finish the collectors and write the metadata file."""
        if self._fd is None:
            raise SSTableError("Writer already finalized")

        self._flush_block()
        self._fd.flush()
        os.fsync(self._fd.fileno())
        self._fd.close()
        self._fd = None
        data_size = self.data_path.stat().st_size

        if self._collectors is not None:
            user_collected, readable = self._collectors.finish()
            self._collectors = None
        else:
            user_collected, readable = SortedDict(), SortedDict()

        meta: SSTableMeta = {
            "data_path": str(self.data_path),
            "meta_path": str(self.meta_path),
            "level": self.level,
            "min_key": self._min_key.hex() if self._min_key is not None else None,
            "max_key": self._max_key.hex() if self._max_key is not None else None,
            "min_ts": self._min_ts,
            "max_ts": self._max_ts,
            "count": self._count,
            "data_size": data_size,
            "index": [(k.hex(), offset) for k, offset in self._index],
            "user_collected_properties": encode_properties(user_collected),
            "readable_properties": encode_properties(readable),
        }

        temp_path = self.meta_path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump(meta, f)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, self.meta_path)

        logger.info(
            f"Finalized SSTable {self.data_path.name}: {self._count} records, "
            f"{len(self._index)} blocks, {data_size} bytes, "
            f"{len(user_collected)} collected properties"
        )
        return meta

    def abort(self) -> None:
        """Discard a partially built table and release its collectors."""
        if self._collectors is not None:
            self._collectors.release()
            self._collectors = None
        if self._fd is not None:
            self._fd.close()
            self._fd = None
        self.data_path.unlink(missing_ok=True)
        self.meta_path.unlink(missing_ok=True)


class SimpleSSTableReader:
    """Read from an immutable SSTable file.

    Args:
        data_path: Path to .data file
        meta_path: Path to .meta file
    """

    def __init__(self, data_path: str | Path, meta_path: str | Path):
        self.data_path = Path(data_path)
        self.meta_path = Path(meta_path)

        try:
            with open(self.meta_path) as f:
                self.meta: SSTableMeta = json.load(f)
        except (OSError, ValueError) as e:
            raise SSTableError(f"Failed to load SSTable metadata {self.meta_path}: {e}") from e

        self._index_keys = [bytes.fromhex(k) for k, _ in self.meta["index"]]
        self._index_offsets = [offset for _, offset in self.meta["index"]]
        self._min_key = bytes.fromhex(self.meta["min_key"]) if self.meta["min_key"] else None
        self._max_key = bytes.fromhex(self.meta["max_key"]) if self.meta["max_key"] else None
        self._fd = None

    def _ensure_open(self) -> None:
        if self._fd is None:
            self._fd = open(self.data_path, "rb")

    def _block_offset(self, key: Key) -> int:
        """Offset of the block that may hold ``key``."""
        pos = bisect.bisect_right(self._index_keys, key) - 1
        return self._index_offsets[pos] if pos >= 0 else 0

    def may_contain(self, key: Key) -> bool:
        """Check the table's key range."""
        if self._min_key is None or self._max_key is None:
            return False
        return self._min_key <= key <= self._max_key

    def get(self, key: Key) -> tuple[Value | None, Timestamp] | None:
        """Return (value_or_none, ts) or None if key is not present."""
        if not self.may_contain(key):
            return None
        for record_key, value, ts in self.iter_range(key, None):
            if record_key == key:
                return (value, ts)
            break
        return None

    def iter_range(self, start: Key | None, end: Key | None) -> Iterator[Record]:
        """Iterate key-ordered records with start <= key < end."""
        self._ensure_open()
        self._fd.seek(self._block_offset(start) if start is not None else 0)

        while True:
            record = _read_record(self._fd)
            if record is None:
                break
            key = record[0]
            if start is not None and key < start:
                continue
            if end is not None and key >= end:
                break
            yield record

    def close(self) -> None:
        """Release file descriptors."""
        if self._fd:
            self._fd.close()
            self._fd = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

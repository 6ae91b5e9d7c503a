"""Embedded LSM store - main public API.

Orchestrates the memtable, SSTables, compaction and the table properties
collectors registered in the configuration.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from pathlib import Path

from ..bridge.table_properties import TablePropertiesCollection
from ..components.catalog import SimpleSSTableCatalog
from ..components.compaction import SimpleCompactor
from ..components.memtable import SimpleMemtable
from ..components.sstable import SimpleSSTableReader, SimpleSSTableWriter
from ..ffi.embedded import TableBuildCollectors, embedded_engine_api
from .config import LSMConfig
from .types import Key, SSTableMeta, Timestamp, Value

logger = logging.getLogger(__name__)


class SimpleLSMStore:
    """LSM storage engine whose table builds feed table properties collectors.

    Args:
        config: LSM configuration, including registered collector factories

    Public API:
        - put(key, value) / delete(key): Write or tombstone a key
        - get(key) / range(start, end): Read latest values
        - flush_memtable(): Build a level-0 table from the memtable
        - compact_level(level): Merge a level into the next one
        - get_properties_of_all_tables(): Properties of every table
        - get_properties_of_tables_in_range(start, end): Properties of overlapping tables

    Invariants:
        - Reads check the memtable first, then SSTables newest first
        - Timestamps (used as sequence numbers) are strictly increasing
        - Every table build gets one fresh collector per registered factory
    """

    def __init__(self, config: LSMConfig):
        self.config = config
        self.data_dir = Path(config.data_dir)
        self.sst_dir = self.data_dir / "sst"
        self.meta_dir = self.data_dir / "meta"
        for d in (self.sst_dir, self.meta_dir):
            d.mkdir(parents=True, exist_ok=True)

        self._api = embedded_engine_api()
        self._lock = threading.RLock()
        self._memtable = SimpleMemtable()
        self._catalog = SimpleSSTableCatalog(self.meta_dir / "catalog.json", max_levels=config.max_levels)
        self._compactor = SimpleCompactor(config, self._open_writer)
        self._closed = False

        # Resume sequence numbers and file numbers after what is already on disk
        self._timestamp_counter = max(int(time.time() * 1000), (self._catalog.max_timestamp() or 0) + 1)
        self._file_counter = self._max_file_number()

        logger.info(f"Initialized LSM Store at {self.data_dir}")

    def _max_file_number(self) -> int:
        numbers = [int(path.stem.rsplit("-", 1)[-1]) for path in self.sst_dir.glob("sst-*-*.data")]
        return max(numbers, default=0)

    def _next_timestamp(self) -> Timestamp:
        with self._lock:
            self._timestamp_counter += 1
            return self._timestamp_counter

    def _open_writer(self, level: int) -> SimpleSSTableWriter:
        """Start a table build at ``level`` with fresh collectors."""
        with self._lock:
            self._file_counter += 1
            number = self._file_counter
        collectors = TableBuildCollectors(self._api, self.config.table_properties_collector_factories, level)
        return SimpleSSTableWriter(
            self.sst_dir / f"sst-{level}-{number}.data",
            self.sst_dir / f"sst-{level}-{number}.meta",
            level=level,
            block_size=self.config.block_size_bytes,
            collectors=collectors,
        )

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Store is closed")

    def put(self, key: Key, value: Value) -> None:
        """Insert or update key with value."""
        self._check_open()
        with self._lock:
            self._memtable.put(key, value, self._next_timestamp())
            if self._memtable.size_bytes() > self.config.memtable_max_bytes:
                self._flush_memtable_locked()

    def delete(self, key: Key) -> None:
        """Mark key for deletion (tombstone)."""
        self._check_open()
        with self._lock:
            self._memtable.delete(key, self._next_timestamp())
            if self._memtable.size_bytes() > self.config.memtable_max_bytes:
                self._flush_memtable_locked()

    def get(self, key: Key) -> Value | None:
        """Retrieve latest value for key."""
        result = self._memtable.get(key)
        if result is not None:
            return result[0]

        for level in range(self.config.max_levels):
            for meta in reversed(self._catalog.list_level(level)):
                with SimpleSSTableReader(meta["data_path"], meta["meta_path"]) as reader:
                    result = reader.get(key)
                if result is not None:
                    return result[0]
        return None

    def range(self, start: Key | None, end: Key | None) -> Iterator[tuple[Key, Value]]:
        """Range scan over live keys in [start, end)."""
        latest: dict[Key, tuple[Value | None, Timestamp]] = {}

        def merge(records):
            for key, value, ts in records:
                if key not in latest or ts > latest[key][1]:
                    latest[key] = (value, ts)

        merge(self._memtable.iter_range(start, end))
        for meta in self._catalog.find_overlapping(start, end):
            with SimpleSSTableReader(meta["data_path"], meta["meta_path"]) as reader:
                merge(reader.iter_range(start, end))

        for key in sorted(latest):
            value = latest[key][0]
            if value is not None:
                yield (key, value)

    def flush_memtable(self) -> SSTableMeta | None:
        """Force flush of memtable to a level-0 SSTable."""
        self._check_open()
        with self._lock:
            return self._flush_memtable_locked()

    def _flush_memtable_locked(self) -> SSTableMeta | None:
        if not len(self._memtable):
            return None

        logger.info(f"Flushing memtable ({len(self._memtable)} records, {self._memtable.size_bytes()} bytes)")
        writer = self._open_writer(0)
        try:
            for key, value, ts in self._memtable.items():
                writer.add(key, value, ts)
            meta = writer.finalize()
        except BaseException:
            writer.abort()
            raise

        self._catalog.add_sstable(0, meta)
        self._memtable.clear()
        return meta

    def compact_level(self, level: int) -> list[SSTableMeta]:
        """Merge all SSTables of ``level`` into ``level + 1``."""
        self._check_open()
        if level >= self.config.max_levels - 1:
            logger.warning(f"Cannot compact level {level}, at max level")
            return []

        with self._lock:
            input_tables = list(self._catalog.list_level(level))
            if not input_tables:
                logger.info(f"No SSTables at level {level}, skipping compaction")
                return []

            # Tables already in the target level take part so keys stay unique per level
            input_tables += self._catalog.list_level(level + 1)
            logger.info(f"Compacting level {level} -> {level + 1}")
            outputs = self._compactor.compact(input_tables, level + 1)
            self._catalog.replace_sstables(input_tables, level + 1, outputs)

        for meta in input_tables:
            try:
                Path(meta["data_path"]).unlink()
                Path(meta["meta_path"]).unlink()
            except OSError as e:  # noqa: PERF203
                logger.warning(f"Failed to delete old SSTable: {e}")
        return outputs

    def get_properties_of_all_tables(self) -> TablePropertiesCollection:
        """Return the properties of every live table, level by level."""
        return self._collect(self._catalog.get_all_sstables())

    def get_properties_of_tables_in_range(self, start: Key | None, end: Key | None) -> TablePropertiesCollection:
        """Return the properties of every table that may hold keys in [start, end)."""
        return self._collect(self._catalog.find_overlapping(start, end))

    def _collect(self, metas: list[SSTableMeta]) -> TablePropertiesCollection:
        handle = self._api.open_collection(metas)
        return TablePropertiesCollection.from_raw(self._api, handle)

    def close(self) -> None:
        """Flush pending writes and close the store.

        Collector factories stay registered; they belong to the config.
        """
        if self._closed:
            return
        logger.info("Closing LSM Store")
        with self._lock:
            self._flush_memtable_locked()
            self._closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

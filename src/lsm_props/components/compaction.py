"""Compaction implementation.

Merges SSTables into the next level, keeping the newest version of every
key and dropping expired tombstones. Output tables are built like any
other table, with fresh collectors created for the target level.
"""

from __future__ import annotations

import heapq
import logging
import time
from collections.abc import Callable, Iterator, Sequence
from typing import TYPE_CHECKING

from ..core.errors import CompactionError
from .sstable import SimpleSSTableReader, SimpleSSTableWriter

if TYPE_CHECKING:
    from ..core.config import LSMConfig
    from ..core.types import Record, SSTableMeta, Timestamp

logger = logging.getLogger(__name__)

WriterFactory = Callable[[int], SimpleSSTableWriter]


class SimpleCompactor:
    """Merge compaction for the embedded engine.

    Args:
        config: Engine configuration
        open_writer: Callable returning a new writer for a level
    """

    def __init__(self, config: LSMConfig, open_writer: WriterFactory):
        self.config = config
        self._open_writer = open_writer

    def compact(self, input_tables: Sequence[SSTableMeta], target_level: int) -> list[SSTableMeta]:
        """Merge ``input_tables`` and return metadata of the produced tables."""
        if not input_tables:
            return []

        logger.info(f"Compacting {len(input_tables)} SSTables to level {target_level}")
        readers = [SimpleSSTableReader(m["data_path"], m["meta_path"]) for m in input_tables]
        try:
            outputs = self._write_output(self._merge(readers), target_level)
        except CompactionError:
            raise
        except Exception as e:
            raise CompactionError(f"Compaction to level {target_level} failed: {e}") from e
        finally:
            for reader in readers:
                reader.close()

        logger.info(f"Compaction produced {len(outputs)} SSTables")
        return outputs

    def _merge(self, readers: Sequence[SimpleSSTableReader]) -> Iterator[Record]:
        """Merge sorted inputs; the highest timestamp wins for each key."""
        merged = heapq.merge(
            *(reader.iter_range(None, None) for reader in readers),
            key=lambda record: (record[0], -record[2]),
        )
        last_key = None
        for key, value, ts in merged:
            if key == last_key:
                continue
            last_key = key
            if value is not None or self._should_keep_tombstone(ts):
                yield (key, value, ts)

    def _should_keep_tombstone(self, ts: Timestamp) -> bool:
        age_seconds = (int(time.time() * 1000) - ts) / 1000
        return age_seconds < self.config.tombstone_retention_seconds

    def _write_output(self, records: Iterator[Record], level: int) -> list[SSTableMeta]:
        outputs: list[SSTableMeta] = []
        writer = None
        try:
            for key, value, ts in records:
                if writer is not None and writer.size_bytes() >= self.config.sstable_max_bytes:
                    outputs.append(writer.finalize())
                    writer = None
                if writer is None:
                    writer = self._open_writer(level)
                writer.add(key, value, ts)
            if writer is not None:
                outputs.append(writer.finalize())
                writer = None
        finally:
            if writer is not None:
                writer.abort()
        return outputs

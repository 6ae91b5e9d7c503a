"""SSTable catalog implementation.

Registry of SSTables per level, persisted as a JSON manifest.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Sequence
from pathlib import Path

from ..core.errors import RecoveryError
from ..core.types import Key, SSTableMeta

logger = logging.getLogger(__name__)


def overlaps(meta: SSTableMeta, start: Key | None, end: Key | None) -> bool:
    """Whether a table may hold keys in [start, end)."""
    if meta["min_key"] is None or meta["max_key"] is None:
        return False
    if start is not None and bytes.fromhex(meta["max_key"]) < start:
        return False
    if end is not None and bytes.fromhex(meta["min_key"]) >= end:
        return False
    return True


class SimpleSSTableCatalog:
    """Registry of SSTables per level with atomic updates.

    Args:
        catalog_path: Path to catalog JSON file
        max_levels: Maximum number of levels

    Invariants:
        - Updates are atomic via write-temp-then-rename
        - Tables within a level are kept in creation order
    """

    def __init__(self, catalog_path: str | Path, max_levels: int = 6):
        self.catalog_path = Path(catalog_path)
        self.max_levels = max_levels
        self._lock = threading.Lock()
        self._levels: dict[int, list[SSTableMeta]] = {i: [] for i in range(max_levels)}
        self._load()

    def _load(self) -> None:
        if not self.catalog_path.exists():
            logger.info(f"No existing catalog at {self.catalog_path}, starting fresh")
            return

        try:
            with open(self.catalog_path) as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise RecoveryError(f"Failed to load catalog {self.catalog_path}: {e}") from e

        for level_str, metas in data.items():
            level = int(level_str)
            if not 0 <= level < self.max_levels:
                raise RecoveryError(f"Catalog references level {level} beyond max_levels")
            self._levels[level] = metas
        logger.info(f"Loaded catalog with {sum(len(m) for m in self._levels.values())} SSTables")

    def _save(self) -> None:
        temp_path = self.catalog_path.with_suffix(".tmp")
        with open(temp_path, "w") as f:
            json.dump(self._levels, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, self.catalog_path)
        logger.debug(f"Saved catalog to {self.catalog_path}")

    def list_level(self, level: int) -> Sequence[SSTableMeta]:
        """Return a copy of the SSTables at the given level."""
        with self._lock:
            return list(self._levels.get(level, []))

    def add_sstable(self, level: int, meta: SSTableMeta) -> None:
        """Atomically register a new SSTable in level."""
        with self._lock:
            if not 0 <= level < self.max_levels:
                raise ValueError(f"Invalid level: {level}")
            self._levels[level].append(meta)
            self._save()
        logger.info(f"Added SSTable to level {level}: {meta['data_path']}")

    def replace_sstables(self, removed: Sequence[SSTableMeta], level: int, added: Sequence[SSTableMeta]) -> None:
        """Atomically swap compaction inputs for its outputs."""
        paths = {meta["data_path"] for meta in removed}
        with self._lock:
            for lvl in range(self.max_levels):
                self._levels[lvl] = [m for m in self._levels[lvl] if m["data_path"] not in paths]
            self._levels[level].extend(added)
            self._save()
        logger.info(f"Replaced {len(removed)} SSTables with {len(added)} at level {level}")

    def get_all_sstables(self) -> list[SSTableMeta]:
        """Return all SSTables, level by level, oldest first within a level."""
        with self._lock:
            return [meta for level in range(self.max_levels) for meta in self._levels[level]]

    def find_overlapping(self, start: Key | None, end: Key | None) -> list[SSTableMeta]:
        """Return every SSTable that may hold keys in [start, end)."""
        return [meta for meta in self.get_all_sstables() if overlaps(meta, start, end)]

    def max_timestamp(self) -> int | None:
        """Largest record timestamp across all SSTables."""
        stamps = [meta["max_ts"] for meta in self.get_all_sstables() if meta["max_ts"] is not None]
        return max(stamps) if stamps else None

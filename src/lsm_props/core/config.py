"""Configuration for the embedded LSM engine.

Defines the tunable parameters of the store and owns the table properties
collector factories registered with it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ..bridge.factory import create_table_properties_collector_factory
from ..ffi.embedded import embedded_engine_api

if TYPE_CHECKING:
    from ..interfaces.collector import TablePropertiesCollectorFactory
    from .types import Handle

logger = logging.getLogger(__name__)


@dataclass
class LSMConfig:
    """Configuration parameters for the embedded LSM storage engine.

    Attributes:
        data_dir: Root directory for all persistent data
        memtable_max_bytes: Maximum size of memtable before flush
        block_size_bytes: Target size of one SSTable data block
        sstable_max_bytes: Maximum size of a single compaction output SSTable
        tombstone_retention_seconds: How long compaction retains tombstones
        max_levels: Maximum number of LSM tree levels
        table_properties_collector_factories: Factory handles registered
            with the embedded engine API; released by ``close()``
    """

    data_dir: str
    memtable_max_bytes: int = 64 * 1024 * 1024  # 64 MB
    block_size_bytes: int = 4 * 1024  # 4 KB
    sstable_max_bytes: int = 64 * 1024 * 1024  # 64 MB
    tombstone_retention_seconds: int = 86400  # 1 day
    max_levels: int = 6
    table_properties_collector_factories: list[Handle] = field(default_factory=list)

    def add_table_properties_collector_factory(self, factory: TablePropertiesCollectorFactory) -> Handle:
        """Register a factory; every table built with this config gets one of its collectors.

        Ownership of ``factory`` passes to the engine until ``close()``.
        """
        handle = create_table_properties_collector_factory(factory, embedded_engine_api())
        self.table_properties_collector_factories.append(handle)
        return handle

    def close(self) -> None:
        """Release every registered factory exactly once."""
        api = embedded_engine_api()
        while self.table_properties_collector_factories:
            handle = self.table_properties_collector_factories.pop()
            logger.debug(f"Releasing table properties collector factory {api.factory_name(handle)}")
            api.destroy_factory(handle)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

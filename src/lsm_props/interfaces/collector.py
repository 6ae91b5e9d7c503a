"""Protocol definitions for user-supplied table properties collectors."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Protocol

from sortedcontainers import SortedDict

from ..bridge.entry_type import EntryType


@dataclass(frozen=True)
class TablePropertiesCollectorFactoryContext:
    """Information about the table a new collector is created for.

    Attributes:
        level_at_creation: Level of the SST file (table) whose properties
            are being collected
    """

    level_at_creation: int


class TablePropertiesCollector(Protocol):
    """Per-table statistics collector.

    One instance is created for each table build. The engine calls it
    strictly sequentially: zero or more ``add_user_key``/``block_add``
    calls, then ``finish_properties`` once, then optionally
    ``get_readable_properties`` once.

    Subclass this Protocol explicitly to inherit the defaults of
    ``block_add`` and ``get_readable_properties``.
    """

    def name(self) -> str | bytes:
        """Return the collector name (read once, when the collector is created)."""
        ...

    def add_user_key(
        self,
        key: bytes,
        value: bytes,
        entry_type: EntryType,
        seq: int,
        file_size: int,
    ) -> None:
        """Observe one record written into the table, in write order."""
        ...

    def block_add(
        self,
        block_uncomp_bytes: int,
        block_compressed_bytes_fast: int,
        block_compressed_bytes_slow: int,
    ) -> None:
        """Observe one data block flushed into the table. Ignored by default."""
        return None

    def finish_properties(self) -> Mapping[bytes, bytes]:
        """Return the properties stored with the table."""
        ...

    def get_readable_properties(self) -> Mapping[bytes, bytes]:
        """Return a human-oriented variant of the properties. Empty by default."""
        return SortedDict()


class TablePropertiesCollectorFactory(Protocol):
    """Long-lived template creating one collector per table build.

    ``create`` may be invoked concurrently for tables built in parallel.
    """

    def create(self, ctx: TablePropertiesCollectorFactoryContext) -> TablePropertiesCollector:
        """Return a new collector for the table described by ``ctx``."""
        ...

    def name(self) -> str | bytes:
        """Return the factory name (read once, at registration)."""
        ...

"""Read-side views over properties of already built tables."""

from __future__ import annotations

import logging
import weakref
from collections.abc import Iterator
from typing import TYPE_CHECKING

from .properties import read_properties

if TYPE_CHECKING:
    from ..core.types import Handle, PropertyMap
    from ..interfaces.engine import EngineApi

logger = logging.getLogger(__name__)


class TableProperties:
    """Properties of one table, backed by an engine-owned handle.

    The handle is released exactly once: by ``close()``, by leaving a
    ``with`` block, or when the object is garbage collected, whichever
    comes first. Maps returned by the accessors are independent copies
    and stay valid after the view is closed.
    """

    def __init__(self, api: EngineApi, handle: Handle):
        self._api = api
        self._handle = handle
        self._release = weakref.finalize(self, api.table_properties_destroy, handle)

    @classmethod
    def from_raw(cls, api: EngineApi, handle: Handle) -> TableProperties:
        """Take ownership of a table properties handle."""
        return cls(api, handle)

    def _live_handle(self) -> Handle:
        if not self._release.alive:
            raise RuntimeError("TableProperties is closed")
        return self._handle

    @property
    def name(self) -> str:
        """Name of the table."""
        raw = self._api.table_properties_table_name(self._live_handle())
        return raw.decode("utf-8", errors="surrogateescape")

    def user_collected_properties(self) -> PropertyMap:
        """Properties emitted by ``finish_properties`` when the table was built."""
        return read_properties(self._api.table_properties_user_collected, self._live_handle())

    def readable_properties(self) -> PropertyMap:
        """Properties emitted by ``get_readable_properties`` when the table was built."""
        return read_properties(self._api.table_properties_readable, self._live_handle())

    @property
    def closed(self) -> bool:
        return not self._release.alive

    def close(self) -> None:
        """Release the engine handle (no-op when already released)."""
        self._release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        state = "closed" if self.closed else f"handle={self._handle:#x}"
        return f"TableProperties({state})"


class TablePropertiesCollection:
    """Ordered, owned sequence of TableProperties.

    Args:
        tables: Views in the order the engine reported them
    """

    def __init__(self, tables: list[TableProperties]):
        self.tables = tables

    @classmethod
    def from_raw(cls, api: EngineApi, collection: Handle) -> TablePropertiesCollection:
        """Drain a collection handle and take ownership of every item.

        The collection handle itself is consumed and released.
        """
        tables = []
        try:
            while True:
                properties = api.table_properties_collection_next(collection)
                if not properties:
                    break
                tables.append(TableProperties.from_raw(api, properties))
        finally:
            api.table_properties_collection_destroy(collection)
        logger.debug(f"Drained table properties collection of {len(tables)} tables")
        return cls(tables)

    def __iter__(self) -> Iterator[TableProperties]:
        return iter(self.tables)

    def __len__(self) -> int:
        return len(self.tables)

    def __getitem__(self, index: int) -> TableProperties:
        return self.tables[index]

    def close(self) -> None:
        """Release every table handle."""
        for table in self.tables:
            table.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

"""Protocol definition for the engine side of the foreign extension API."""

from __future__ import annotations

from typing import Protocol

from ..core.types import Handle


class EngineApi(Protocol):
    """Entry points the storage engine exports for table properties.

    Function-pointer arguments are ``ctypes`` objects built from the
    prototypes in :mod:`lsm_props.ffi.abi`; handles are raw addresses.
    """

    def table_properties_collector_factory_create(
        self, state: Handle, destroy, create, name
    ) -> Handle:
        """Wrap a factory callback table; the engine owns ``state`` from now on."""
        ...

    def table_properties_collector_create(
        self,
        state: Handle,
        destroy,
        name,
        add_user_key,
        block_add,
        finish_properties,
        get_readable_properties,
    ) -> Handle:
        """Wrap a collector callback table; the engine owns ``state`` from now on."""
        ...

    def table_properties_collector_factory_context_level_at_creation(self, context: Handle) -> int:
        """Read the level of the table being built from a context handle."""
        ...

    def table_properties_collection_next(self, collection: Handle) -> Handle | None:
        """Return the next table properties handle, or None when exhausted."""
        ...

    def table_properties_collection_destroy(self, collection: Handle) -> None:
        """Release a collection handle."""
        ...

    def table_properties_table_name(self, properties: Handle) -> bytes:
        """Return the name of the table."""
        ...

    def table_properties_user_collected(self, properties: Handle, state: int, reader) -> None:
        """Call ``reader(state, key, key_len, value, value_len)`` per collected property."""
        ...

    def table_properties_readable(self, properties: Handle, state: int, reader) -> None:
        """Call ``reader(state, key, key_len, value, value_len)`` per readable property."""
        ...

    def table_properties_destroy(self, properties: Handle) -> None:
        """Release a table properties handle."""
        ...

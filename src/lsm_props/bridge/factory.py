"""Factory trampoline.

Adapts a long-lived TablePropertiesCollectorFactory to the engine's
three-slot factory callback table. On every table build the ``create``
slot manufactures a collector and wraps it with the collector trampoline.
"""

from __future__ import annotations

import ctypes
import logging
from typing import TYPE_CHECKING

from ..ffi.abi import CREATE_COLLECTOR_FN, DESTROY_FN, NAME_FN
from ..interfaces.collector import TablePropertiesCollectorFactoryContext
from .boundary import ffi_boundary
from .collector import create_table_properties_collector, encode_name
from .handles import OWNED

if TYPE_CHECKING:
    from ..core.types import Handle
    from ..interfaces.collector import TablePropertiesCollectorFactory
    from ..interfaces.engine import EngineApi

logger = logging.getLogger(__name__)


class FactoryCell:
    """A factory moved into the handle table.

    Keeps the engine API the factory was registered with, so collectors it
    creates are handed to the same engine, and the name buffer returned by
    the name slot for the factory's whole lifetime.
    """

    __slots__ = ("factory", "api", "name_buffer", "__weakref__")

    def __init__(self, factory: TablePropertiesCollectorFactory, api: EngineApi):
        self.factory = factory
        self.api = api
        self.name_buffer = encode_name(factory.name())


def context_from_raw(api: EngineApi, context: Handle) -> TablePropertiesCollectorFactoryContext:
    """Decode an engine context handle into a context value."""
    level = api.table_properties_collector_factory_context_level_at_creation(context)
    return TablePropertiesCollectorFactoryContext(level_at_creation=level)


@DESTROY_FN
@ffi_boundary
def _destroy(raw_self):
    cell = OWNED.from_raw(raw_self)
    logger.debug(f"Destroyed table properties collector factory {cell.name_buffer.value!r}")


@CREATE_COLLECTOR_FN
@ffi_boundary
def _create(raw_self, context):
    cell = OWNED.borrow(raw_self)
    ctx = context_from_raw(cell.api, context)
    return create_table_properties_collector(cell.api, cell.factory.create(ctx))


@NAME_FN
@ffi_boundary
def _name(raw_self):
    return ctypes.addressof(OWNED.borrow(raw_self).name_buffer)


def create_table_properties_collector_factory(
    factory: TablePropertiesCollectorFactory, api: EngineApi
) -> Handle:
    """Register ``factory`` with an engine and return the factory handle.

    Ownership of ``factory`` passes to the engine; it is released when the
    engine calls the destroy slot, once, as the owning configuration is
    torn down.
    """
    cell = FactoryCell(factory, api)
    raw_self = OWNED.into_raw(cell)
    handle = api.table_properties_collector_factory_create(raw_self, _destroy, _create, _name)
    if not handle:
        OWNED.from_raw(raw_self)
        raise MemoryError("Engine failed to allocate a table properties collector factory")
    logger.info(f"Registered table properties collector factory {cell.name_buffer.value!r}")
    return handle

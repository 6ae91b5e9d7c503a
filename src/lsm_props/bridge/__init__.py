"""Bridge between Python collectors and the engine's callback tables."""

from .entry_type import EntryType
from .factory import create_table_properties_collector_factory
from .collector import create_table_properties_collector
from .table_properties import TableProperties, TablePropertiesCollection

__all__ = [
    "EntryType",
    "create_table_properties_collector_factory",
    "create_table_properties_collector",
    "TableProperties",
    "TablePropertiesCollection",
]

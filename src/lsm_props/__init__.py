"""lsm_props - table properties collectors for LSM storage engines.

Bridges Python table properties collectors to an engine's C callback
tables, and ships an embedded LSM store that drives them.
"""

from .bridge.entry_type import EntryType
from .bridge.factory import create_table_properties_collector_factory
from .bridge.table_properties import TableProperties, TablePropertiesCollection
from .core.config import LSMConfig
from .core.errors import (
    LSMError,
    ContractViolationError,
    NativeLibraryError,
    SSTableError,
    RecoveryError,
    CompactionError,
)
from .core.store import SimpleLSMStore
from .core.types import Key, Value, Timestamp, Record, PropertyMap, SSTableMeta
from .ffi.embedded import EmbeddedEngineApi, embedded_engine_api
from .ffi.native import NativeEngineApi
from .interfaces.collector import (
    TablePropertiesCollector,
    TablePropertiesCollectorFactory,
    TablePropertiesCollectorFactoryContext,
)

__all__ = [
    "EntryType",
    "create_table_properties_collector_factory",
    "TableProperties",
    "TablePropertiesCollection",
    "LSMConfig",
    "LSMError",
    "ContractViolationError",
    "NativeLibraryError",
    "SSTableError",
    "RecoveryError",
    "CompactionError",
    "SimpleLSMStore",
    "Key",
    "Value",
    "Timestamp",
    "Record",
    "PropertyMap",
    "SSTableMeta",
    "EmbeddedEngineApi",
    "embedded_engine_api",
    "NativeEngineApi",
    "TablePropertiesCollector",
    "TablePropertiesCollectorFactory",
    "TablePropertiesCollectorFactoryContext",
]

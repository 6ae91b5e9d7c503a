"""ctypes bindings to a native RocksDB library.

Exposes the table-properties collector entry points of the RocksDB C API
through the EngineApi interface, so the bridge can register factories
with a real engine.
"""

from __future__ import annotations

import ctypes
import ctypes.util
import logging
import os
import sys

from ..core.errors import NativeLibraryError
from ..core.types import Handle
from .abi import (
    ADD_USER_KEY_FN,
    BLOCK_ADD_FN,
    CREATE_COLLECTOR_FN,
    DESTROY_FN,
    FINISH_PROPERTIES_FN,
    NAME_FN,
    PROPERTY_FN,
)

logger = logging.getLogger(__name__)

LIB_PATH_ENV = "ROCKSDB_LIB_PATH"


def _library_name() -> str:
    if sys.platform == "darwin":
        return "librocksdb.dylib"
    if sys.platform == "win32":
        return "rocksdb.dll"
    return "librocksdb.so"


def find_library() -> str:
    """Find the RocksDB shared library.

    Search order:
    1. ROCKSDB_LIB_PATH environment variable (file or directory)
    2. ctypes.util.find_library("rocksdb")
    3. System paths (/usr/local/lib, /usr/lib)

    Raises:
        NativeLibraryError: If no candidate exists
    """
    lib_name = _library_name()
    search_paths = []

    env_path = os.environ.get(LIB_PATH_ENV)
    if env_path:
        if os.path.isfile(env_path):
            return env_path
        search_paths.append(env_path)

    found = ctypes.util.find_library("rocksdb")
    if found:
        return found

    search_paths.extend(["/usr/local/lib", "/usr/lib"])
    for path in search_paths:
        lib_path = os.path.join(path, lib_name)
        if os.path.exists(lib_path):
            return lib_path

    raise NativeLibraryError(
        f"Could not find {lib_name}. Searched in: {', '.join(search_paths)}. "
        f"Set the {LIB_PATH_ENV} environment variable."
    )


def _setup_bindings(lib) -> None:
    """Set up function signatures for the table properties entry points."""
    lib.rocksdb_table_properties_collector_factory_create.argtypes = [
        ctypes.c_void_p, DESTROY_FN, CREATE_COLLECTOR_FN, NAME_FN,
    ]
    lib.rocksdb_table_properties_collector_factory_create.restype = ctypes.c_void_p

    lib.rocksdb_table_properties_collector_create.argtypes = [
        ctypes.c_void_p,
        DESTROY_FN,
        NAME_FN,
        ADD_USER_KEY_FN,
        BLOCK_ADD_FN,
        FINISH_PROPERTIES_FN,
        FINISH_PROPERTIES_FN,
    ]
    lib.rocksdb_table_properties_collector_create.restype = ctypes.c_void_p

    lib.rocksdb_table_properties_collector_factory_context_level_at_creation.argtypes = [
        ctypes.c_void_p
    ]
    lib.rocksdb_table_properties_collector_factory_context_level_at_creation.restype = ctypes.c_int

    lib.rocksdb_table_properties_collection_next.argtypes = [ctypes.c_void_p]
    lib.rocksdb_table_properties_collection_next.restype = ctypes.c_void_p

    lib.rocksdb_table_properties_collection_destroy.argtypes = [ctypes.c_void_p]
    lib.rocksdb_table_properties_collection_destroy.restype = None

    lib.rocksdb_table_properties_table_name.argtypes = [ctypes.c_void_p]
    lib.rocksdb_table_properties_table_name.restype = ctypes.c_char_p

    for reader in ("rocksdb_table_properties_user_collected", "rocksdb_table_properties_readable"):
        getattr(lib, reader).argtypes = [ctypes.c_void_p, ctypes.c_void_p, PROPERTY_FN]
        getattr(lib, reader).restype = None

    lib.rocksdb_table_properties_destroy.argtypes = [ctypes.c_void_p]
    lib.rocksdb_table_properties_destroy.restype = None


class NativeEngineApi:
    """EngineApi backed by a RocksDB shared library.

    Args:
        lib: Already loaded library; located with :func:`find_library`
            and loaded with ``ctypes.CDLL`` when omitted
    """

    def __init__(self, lib=None):
        if lib is None:
            path = find_library()
            try:
                lib = ctypes.CDLL(path)
            except OSError as e:
                raise NativeLibraryError(f"Failed to load {path}: {e}") from e
            logger.info(f"Loaded native engine library {path}")
        _setup_bindings(lib)
        self._lib = lib

    def table_properties_collector_factory_create(self, state, destroy, create, name) -> Handle:
        return self._lib.rocksdb_table_properties_collector_factory_create(state, destroy, create, name)

    def table_properties_collector_create(
        self, state, destroy, name, add_user_key, block_add, finish_properties, get_readable_properties
    ) -> Handle:
        return self._lib.rocksdb_table_properties_collector_create(
            state, destroy, name, add_user_key, block_add, finish_properties, get_readable_properties
        )

    def table_properties_collector_factory_context_level_at_creation(self, context: Handle) -> int:
        return self._lib.rocksdb_table_properties_collector_factory_context_level_at_creation(context)

    def table_properties_collection_next(self, collection: Handle) -> Handle | None:
        return self._lib.rocksdb_table_properties_collection_next(collection)

    def table_properties_collection_destroy(self, collection: Handle) -> None:
        self._lib.rocksdb_table_properties_collection_destroy(collection)

    def table_properties_table_name(self, properties: Handle) -> bytes:
        return self._lib.rocksdb_table_properties_table_name(properties) or b""

    def table_properties_user_collected(self, properties: Handle, state: int, reader) -> None:
        self._lib.rocksdb_table_properties_user_collected(properties, state, reader)

    def table_properties_readable(self, properties: Handle, state: int, reader) -> None:
        self._lib.rocksdb_table_properties_readable(properties, state, reader)

    def table_properties_destroy(self, properties: Handle) -> None:
        self._lib.rocksdb_table_properties_destroy(properties)

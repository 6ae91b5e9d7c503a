"""C ABI of the table-properties collector extension API.

Function-pointer prototypes and handle layouts shared by the bridge and by
both engine implementations. Signatures mirror the RocksDB C API:

    rocksdb_table_properties_collector_factory_create(
        void* state,
        void (*destructor)(void*),
        rocksdb_table_properties_collector_t* (*create)(
            void*, const rocksdb_table_properties_collector_factory_context_t*),
        const char* (*name)(void*))

    rocksdb_table_properties_collector_create(
        void* state,
        void (*destructor)(void*),
        const char* (*name)(void*),
        void (*add_user_key)(void*, const char* key, size_t key_len,
                             const char* value, size_t value_len,
                             int entry_type, uint64_t seq, uint64_t file_size),
        void (*block_add)(void*, uint64_t uncomp, uint64_t fast, uint64_t slow),
        void (*finish_properties)(void*, void* props, add_property_fn),
        void (*get_readable_properties)(void*, void* props, add_property_fn))

Byte buffers are typed as ``void*`` rather than ``char*`` so ctypes never
truncates them at an embedded NUL; lengths always travel alongside.
"""

from __future__ import annotations

import ctypes

# void (*)(void* self)
DESTROY_FN = ctypes.CFUNCTYPE(None, ctypes.c_void_p)

# const char* (*)(void* self); returned as an address so the callee keeps ownership
NAME_FN = ctypes.CFUNCTYPE(ctypes.c_void_p, ctypes.c_void_p)

# rocksdb_table_properties_collector_t* (*)(void* self, const context_t* ctx)
CREATE_COLLECTOR_FN = ctypes.CFUNCTYPE(ctypes.c_void_p, ctypes.c_void_p, ctypes.c_void_p)

ADD_USER_KEY_FN = ctypes.CFUNCTYPE(
    None,
    ctypes.c_void_p,  # self
    ctypes.c_void_p,  # key
    ctypes.c_size_t,  # key_len
    ctypes.c_void_p,  # value
    ctypes.c_size_t,  # value_len
    ctypes.c_int,  # entry_type
    ctypes.c_uint64,  # seq
    ctypes.c_uint64,  # file_size
)

BLOCK_ADD_FN = ctypes.CFUNCTYPE(
    None, ctypes.c_void_p, ctypes.c_uint64, ctypes.c_uint64, ctypes.c_uint64
)

# void (*)(void* state, const char* key, size_t key_len, const char* value, size_t value_len)
# Used both for the engine's "add property" sink and for the caller's per-pair reader.
PROPERTY_FN = ctypes.CFUNCTYPE(
    None, ctypes.c_void_p, ctypes.c_void_p, ctypes.c_size_t, ctypes.c_void_p, ctypes.c_size_t
)

# void (*)(void* self, void* props, add_property_fn add)
FINISH_PROPERTIES_FN = ctypes.CFUNCTYPE(None, ctypes.c_void_p, ctypes.c_void_p, PROPERTY_FN)


class FactoryVTable(ctypes.Structure):
    """Engine-side record behind a factory handle."""

    _fields_ = [
        ("state", ctypes.c_void_p),
        ("destroy", DESTROY_FN),
        ("create", CREATE_COLLECTOR_FN),
        ("name", NAME_FN),
    ]


class CollectorVTable(ctypes.Structure):
    """Engine-side record behind a collector handle."""

    _fields_ = [
        ("state", ctypes.c_void_p),
        ("destroy", DESTROY_FN),
        ("name", NAME_FN),
        ("add_user_key", ADD_USER_KEY_FN),
        ("block_add", BLOCK_ADD_FN),
        ("finish_properties", FINISH_PROPERTIES_FN),
        ("get_readable_properties", FINISH_PROPERTIES_FN),
    ]


class FactoryContextStruct(ctypes.Structure):
    """Layout of rocksdb_table_properties_collector_factory_context_t."""

    _fields_ = [("level_at_creation", ctypes.c_int)]


def copy_buffer(address: int | None, length: int) -> bytes:
    """Copy ``length`` bytes starting at a foreign address into a new bytes object."""
    if not length:
        return b""
    return ctypes.string_at(address, length)


def read_c_string(address: int | None) -> bytes:
    """Copy a NUL-terminated foreign string."""
    if not address:
        return b""
    return ctypes.string_at(address)


def state_pointer(box: ctypes.py_object) -> int:
    """Return an untyped pointer to a boxed Python object.

    The box must stay referenced by the caller for as long as the pointer
    is in use; the pointer is only meaningful within one foreign call.
    """
    return ctypes.addressof(box)


def deref_state(address: int | None) -> object:
    """Reinterpret a pointer produced by :func:`state_pointer`."""
    return ctypes.cast(address, ctypes.POINTER(ctypes.py_object)).contents.value


# rocksdb_k_entry_* values reported as ``entry_type`` to add_user_key
K_ENTRY_PUT = 0
K_ENTRY_DELETE = 1
K_ENTRY_SINGLE_DELETE = 2
K_ENTRY_MERGE = 3
K_ENTRY_RANGE_DELETION = 4
K_ENTRY_BLOCK_INDEX = 5
K_ENTRY_DELETE_WITH_TIMESTAMP = 6
K_ENTRY_WIDE_COLUMN_ENTITY = 7
K_ENTRY_TIMED_PUT = 8
K_ENTRY_OTHER = 9

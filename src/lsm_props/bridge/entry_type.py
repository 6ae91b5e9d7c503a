"""Entry type codec.

Translates the raw integer tag reported by the engine into EntryType.
"""

from __future__ import annotations

from enum import Enum

from ..core.errors import ContractViolationError
from ..ffi import abi


class EntryType(Enum):
    """Kind of record passed to ``add_user_key``.

    Values are the engine's C enum values (``rocksdb_k_entry_*``).
    """

    PUT = abi.K_ENTRY_PUT
    DELETE = abi.K_ENTRY_DELETE
    SINGLE_DELETE = abi.K_ENTRY_SINGLE_DELETE
    MERGE = abi.K_ENTRY_MERGE
    RANGE_DELETION = abi.K_ENTRY_RANGE_DELETION
    BLOCK_INDEX = abi.K_ENTRY_BLOCK_INDEX
    DELETE_WITH_TIMESTAMP = abi.K_ENTRY_DELETE_WITH_TIMESTAMP
    WIDE_COLUMN_ENTITY = abi.K_ENTRY_WIDE_COLUMN_ENTITY
    TIMED_PUT = abi.K_ENTRY_TIMED_PUT
    OTHER = abi.K_ENTRY_OTHER

    @classmethod
    def from_raw(cls, value: int) -> EntryType:
        """Decode a raw tag.

        Raises:
            ContractViolationError: If the tag is negative or unknown. There
                is no fallback kind; a wrong kind would silently skew the
                collected statistics.
        """
        if value < 0:
            raise ContractViolationError(f"Negative entry type tag: {value}")
        try:
            return cls(value)
        except ValueError:
            raise ContractViolationError(f"Unknown entry type tag: {value}") from None

"""Exception hierarchy for lsm_props.

Defines all custom exceptions raised by the bridge and the embedded engine.
"""

from __future__ import annotations


class LSMError(Exception):
    """Base exception for all lsm_props errors."""
    pass


class ContractViolationError(LSMError):
    """Raised when the engine side breaks the foreign invocation contract.

    Examples are an entry type tag outside the known range, or a callback
    invoked with a handle that was never issued or was already destroyed.
    Inside a foreign callback this is always escalated to a process abort.
    """
    pass


class NativeLibraryError(LSMError):
    """Raised when the native engine library cannot be located or loaded."""
    pass


class SSTableError(LSMError):
    """Raised when SSTable operations fail."""
    pass


class RecoveryError(LSMError):
    """Raised when the store cannot be reopened from its persistent state."""
    pass


class CompactionError(LSMError):
    """Raised when compaction operations fail."""
    pass

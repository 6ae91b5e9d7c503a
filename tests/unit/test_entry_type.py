"""Unit tests for the entry type codec."""

import pytest

from lsm_props.bridge.entry_type import EntryType
from lsm_props.core.errors import ContractViolationError
from lsm_props.ffi import abi


@pytest.mark.parametrize(
    "raw, expected",
    [
        (abi.K_ENTRY_PUT, EntryType.PUT),
        (abi.K_ENTRY_DELETE, EntryType.DELETE),
        (abi.K_ENTRY_SINGLE_DELETE, EntryType.SINGLE_DELETE),
        (abi.K_ENTRY_MERGE, EntryType.MERGE),
        (abi.K_ENTRY_RANGE_DELETION, EntryType.RANGE_DELETION),
        (abi.K_ENTRY_BLOCK_INDEX, EntryType.BLOCK_INDEX),
        (abi.K_ENTRY_DELETE_WITH_TIMESTAMP, EntryType.DELETE_WITH_TIMESTAMP),
        (abi.K_ENTRY_WIDE_COLUMN_ENTITY, EntryType.WIDE_COLUMN_ENTITY),
        (abi.K_ENTRY_TIMED_PUT, EntryType.TIMED_PUT),
        (abi.K_ENTRY_OTHER, EntryType.OTHER),
    ],
)
def test_valid_tags_decode_exactly(raw, expected):
    """Every documented tag maps to its own kind."""
    assert EntryType.from_raw(raw) is expected


def test_codec_covers_whole_range():
    """Tags 0..9 are all known and distinct."""
    decoded = {EntryType.from_raw(raw) for raw in range(10)}
    assert decoded == set(EntryType)


@pytest.mark.parametrize("raw", [-1, -2**31, 10, 11, 255, 2**31 - 1])
def test_invalid_tags_are_contract_violations(raw):
    """Negative and out-of-range tags never fall back to a default kind."""
    with pytest.raises(ContractViolationError):
        EntryType.from_raw(raw)

"""Unit tests for the SSTable catalog."""

import pytest

from lsm_props.components.catalog import SimpleSSTableCatalog, overlaps
from lsm_props.core.errors import RecoveryError


def make_meta(name, min_key, max_key, max_ts=1):
    return {
        "data_path": name,
        "meta_path": name + ".meta",
        "min_key": min_key.hex(),
        "max_key": max_key.hex(),
        "max_ts": max_ts,
    }


def test_overlaps_half_open_range():
    meta = make_meta("t", b"c", b"f")

    assert overlaps(meta, None, None)
    assert overlaps(meta, b"f", None)
    assert not overlaps(meta, b"g", None)
    assert not overlaps(meta, None, b"c")
    assert overlaps(meta, None, b"c\x00")


def test_catalog_persists_and_reloads(tmp_path):
    path = tmp_path / "catalog.json"
    catalog = SimpleSSTableCatalog(path, max_levels=3)
    catalog.add_sstable(0, make_meta("a", b"a", b"b", max_ts=5))
    catalog.add_sstable(1, make_meta("b", b"m", b"z", max_ts=9))

    reloaded = SimpleSSTableCatalog(path, max_levels=3)

    assert [m["data_path"] for m in reloaded.get_all_sstables()] == ["a", "b"]
    assert reloaded.max_timestamp() == 9
    assert [m["data_path"] for m in reloaded.find_overlapping(b"n", None)] == ["b"]


def test_replace_sstables(tmp_path):
    catalog = SimpleSSTableCatalog(tmp_path / "catalog.json", max_levels=3)
    first = make_meta("a", b"a", b"b")
    second = make_meta("b", b"c", b"d")
    catalog.add_sstable(0, first)
    catalog.add_sstable(0, second)

    catalog.replace_sstables([first, second], 1, [make_meta("c", b"a", b"d")])

    assert catalog.list_level(0) == []
    assert [m["data_path"] for m in catalog.list_level(1)] == ["c"]


def test_invalid_level_rejected(tmp_path):
    catalog = SimpleSSTableCatalog(tmp_path / "catalog.json", max_levels=2)

    with pytest.raises(ValueError):
        catalog.add_sstable(5, make_meta("a", b"a", b"b"))


def test_corrupt_catalog_raises_recovery_error(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text("{not json")

    with pytest.raises(RecoveryError):
        SimpleSSTableCatalog(path)

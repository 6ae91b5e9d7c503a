# Minimal CLI using argparse that prints the table properties of an embedded store.
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from lsm_props.core.config import LSMConfig
from lsm_props.core.errors import LSMError
from lsm_props.core.store import SimpleLSMStore


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="lsm-props", description="Inspect table properties recorded by an embedded LSM store"
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = p.add_subparsers(dest="command", required=True)

    inspect = sub.add_parser("inspect", help="Print the properties of every table")
    inspect.add_argument("data_dir", type=Path, help="Store data directory")
    inspect.add_argument(
        "--readable", action="store_true", help="Print readable properties instead of collected ones"
    )
    inspect.add_argument("--level", type=int, help="Only tables at this level")
    inspect.add_argument("--json", action="store_true", help="Emit JSON")
    return p


def _text(raw: bytes) -> str:
    return raw.decode("utf-8", errors="backslashreplace")


def _table_level(name: str) -> int:
    """Level encoded in a table file name (sst-<level>-<number>.data)."""
    parts = Path(name).stem.split("-")
    if len(parts) != 3 or parts[0] != "sst" or not parts[1].isdigit():
        raise LSMError(f"Unrecognized table name: {name}")
    return int(parts[1])


def inspect_tables(data_dir: Path, readable: bool = False, level: int | None = None) -> list[dict]:
    """Return one entry per table: name, level and decoded properties."""
    if not (data_dir / "meta" / "catalog.json").exists():
        raise LSMError(f"No LSM store found at {data_dir}")

    store = SimpleLSMStore(LSMConfig(data_dir=str(data_dir)))
    try:
        result = []
        with store.get_properties_of_all_tables() as collection:
            for table in collection:
                table_level = _table_level(table.name)
                if level is not None and table_level != level:
                    continue
                props = table.readable_properties() if readable else table.user_collected_properties()
                result.append(
                    {
                        "name": table.name,
                        "level": table_level,
                        "properties": {_text(k): _text(v) for k, v in props.items()},
                    }
                )
        return result
    finally:
        store.close()


def main(argv: list[str] | None = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    try:
        tables = inspect_tables(args.data_dir, readable=args.readable, level=args.level)
    except LSMError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.json:
        print(json.dumps(tables, indent=2))
        return 0

    for table in tables:
        print(f"{table['name']} (level {table['level']})")
        if not table["properties"]:
            print("  <no properties>")
        for key, value in table["properties"].items():
            print(f"  {key} = {value}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

#!/usr/bin/env python3
"""Compare two persisted snapshot files and show what changed.

Prints the change records the poller would publish and the graph
operations the Hue connector would produce for them.

Usage
-----
    python scripts/diff_snapshots.py old.json new.json
    python scripts/diff_snapshots.py --json old.json new.json
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from twinsync.connectors.hue import HueConnector
from twinsync.ingestion.diff import diff_populations
from twinsync.models.asset import AssetPopulation
from twinsync.models.change import AssetChangeEvent
from twinsync.models.operations import dump_operations
from twinsync.state.store import SnapshotStore

MAX_VAL_WIDTH = 60
MISSING = "<missing>"


def _truncate(val: Any, width: int = MAX_VAL_WIDTH) -> str:
    s = json.dumps(val) if not isinstance(val, str) else val
    if len(s) <= width:
        return s
    return s[: width - 3] + "..."


def _load(path: Path) -> AssetPopulation:
    population = SnapshotStore(path.parent, path.name).load_sync()
    if population is None:
        sys.exit(f"{path}: missing or not a snapshot file")
    return population


def main() -> None:
    parser = argparse.ArgumentParser(description="Diff two persisted snapshot files.")
    parser.add_argument("old", help="Older snapshot file")
    parser.add_argument("new", help="Newer snapshot file")
    parser.add_argument("--json", action="store_true", help="Print the change event and operations as JSON")
    args = parser.parse_args()

    file_old, file_new = Path(args.old), Path(args.new)
    changes = diff_populations(_load(file_old), _load(file_new))
    event = AssetChangeEvent(changes=changes)
    ops = HueConnector().on_change(event)

    if args.json:
        print(json.dumps({"event": event.to_payload(), "operations": dump_operations(ops)}, indent=2))
        return

    print(f"Old: {file_old.name}")
    print(f"New: {file_new.name}")
    print()

    if not changes:
        print("No differences found.")
        return

    rows: list[tuple[str, str, str]] = []
    for change in changes:
        label = f"{change.type}:{change.id}"
        if not change.properties:
            rows.append((label, change.change.value, change.name))
            continue
        for prop in change.properties:
            old_val = _truncate(prop.old_value) if prop.existed_before else MISSING
            new_val = _truncate(prop.new_value) if prop.exists_now else MISSING
            rows.append((f"{label}.{prop.property}", old_val, new_val))

    path_w = max(4, *(len(r[0]) for r in rows))
    old_w = max(3, *(len(r[1]) for r in rows))
    new_w = max(3, *(len(r[2]) for r in rows))

    header = f"{'Path':<{path_w}}  {'Old':<{old_w}}  {'New':<{new_w}}"
    print(header)
    print("─" * len(header))
    for path, old_val, new_val in rows:
        print(f"{path:<{path_w}}  {old_val:<{old_w}}  {new_val:<{new_w}}")

    print(f"\n{len(changes)} change(s), {len(ops)} graph operation(s):")
    for op in dump_operations(ops):
        print(f"  {json.dumps(op)}")


if __name__ == "__main__":
    main()

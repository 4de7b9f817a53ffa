"""Change detection between two observations of the device population.

The differencer works per asset kind: lights and sensors are compared
independently and their change records concatenated, lights first.
Records come out in population order (added/updated in current order,
then removed in previous order) so the same inputs always yield the same
list.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from typing import Any

from twinsync._constants import IGNORED_STATE_KEYS
from twinsync.models.asset import Asset, AssetKind, AssetPopulation
from twinsync.models.change import AssetChange, ChangeKind, PropertyChange

_ABSENT = object()


def _normalized(value: Any) -> str:
    """String form used for equality, insensitive to dict key order."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def _by_id(assets: Iterable[Asset]) -> dict[str, Asset]:
    keyed: dict[str, Asset] = {}
    for asset in assets:
        keyed[asset.id] = asset
    return keyed


def diff_states(
    previous: Mapping[str, Any] | None,
    current: Mapping[str, Any] | None,
    *,
    ignored_keys: frozenset[str] = IGNORED_STATE_KEYS,
) -> list[PropertyChange]:
    """Return the properties whose value differs between two state dicts.

    A key present on one side only is a change; the missing side is left
    unset on the resulting :class:`PropertyChange`.
    """
    previous = previous if isinstance(previous, Mapping) else {}
    current = current if isinstance(current, Mapping) else {}

    keys = dict.fromkeys([*previous.keys(), *current.keys()])
    changes: list[PropertyChange] = []
    for key in keys:
        if key in ignored_keys:
            continue
        old = previous.get(key, _ABSENT)
        new = current.get(key, _ABSENT)
        if old is not _ABSENT and new is not _ABSENT and _normalized(old) == _normalized(new):
            continue

        values: dict[str, Any] = {"property": key}
        if old is not _ABSENT:
            values["old_value"] = old
        if new is not _ABSENT:
            values["new_value"] = new
        changes.append(PropertyChange(**values))
    return changes


def diff_assets(kind: AssetKind, previous: Iterable[Asset], current: Iterable[Asset]) -> list[AssetChange]:
    """Compare two populations of one asset kind."""
    previous_by_id = _by_id(previous)
    current_by_id = _by_id(current)

    changes: list[AssetChange] = []
    for asset_id, asset in current_by_id.items():
        before = previous_by_id.get(asset_id)
        if before is None:
            changes.append(
                AssetChange(
                    type=kind,
                    id=asset_id,
                    name=asset.name,
                    change=ChangeKind.ADDED,
                    asset_type=asset.type or None,
                    state=dict(asset.state),
                )
            )
            continue

        properties = diff_states(before.state, asset.state)
        if properties:
            changes.append(
                AssetChange(
                    type=kind,
                    id=asset_id,
                    name=asset.name,
                    change=ChangeKind.UPDATED,
                    asset_type=asset.type or None,
                    properties=properties,
                )
            )

    for asset_id, asset in previous_by_id.items():
        if asset_id not in current_by_id:
            changes.append(
                AssetChange(
                    type=kind,
                    id=asset_id,
                    name=asset.name,
                    change=ChangeKind.REMOVED,
                    asset_type=asset.type or None,
                )
            )

    return changes


def diff_populations(previous: AssetPopulation, current: AssetPopulation) -> list[AssetChange]:
    """Return every change between two observations, lights then sensors."""
    changes = diff_assets(AssetKind.LIGHT, previous.lights, current.lights)
    changes.extend(diff_assets(AssetKind.SENSOR, previous.sensors, current.sensors))
    return changes

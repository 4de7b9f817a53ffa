"""Deterministic node and edge identifiers for Hue assets.

Every id the connector emits is built here.  Ids are pure functions of
asset identity so the same device maps to the same node across runs and
upserts stay idempotent.
"""

from __future__ import annotations

import re

from twinsync.models.asset import AssetKind

LIGHT_NODE_PREFIX = "hue-light-"
SENSOR_NODE_PREFIX = "hue-sensor-"
DEVICE_NODE_PREFIX = "hue-motion-device-"

_OWNED_NODE_PREFIXES = (LIGHT_NODE_PREFIX, SENSOR_NODE_PREFIX, DEVICE_NODE_PREFIX)

# Physical sensor channels report as "<device>-02-<cluster>"; the cluster
# is 0406 (presence), 0400 (light level) or 0402 (temperature).
_CHANNEL_UNIQUE_ID = re.compile(r"^(.*)-02-(0406|0400|0402)$")
_DISALLOWED_ID_CHARS = re.compile(r"[^A-Za-z0-9\-.+%_#*?!(),=@$']")


def node_id(kind: AssetKind | str, asset_id: str | int) -> str:
    """Node id for a light or a sensor channel."""
    kind = AssetKind(kind)
    if kind == AssetKind.LIGHT:
        return f"{LIGHT_NODE_PREFIX}{asset_id}"
    return f"{SENSOR_NODE_PREFIX}{asset_id}"


def device_node_id(prefix: str) -> str:
    """Node id for the logical device grouping the channels of ``prefix``."""
    return f"{DEVICE_NODE_PREFIX}{prefix}"


def edge_id(source_id: str, name: str, target_id: str) -> str:
    return f"{source_id}-{name}-{target_id}"


def sanitize_prefix(raw: str) -> str:
    """Replace every character not allowed in a node id with ``-``."""
    return _DISALLOWED_ID_CHARS.sub("-", raw)


def device_prefix(unique_id: str | None) -> str | None:
    """Return the sanitized hardware prefix of a sensor channel, if any."""
    if not unique_id:
        return None
    match = _CHANNEL_UNIQUE_ID.match(unique_id)
    if match is None:
        return None
    return sanitize_prefix(match.group(1))


def owns_node_id(candidate: str) -> bool:
    """Whether ``candidate`` is a node id this connector could have produced."""
    return isinstance(candidate, str) and candidate.startswith(_OWNED_NODE_PREFIXES)

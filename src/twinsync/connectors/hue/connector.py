"""Translate Hue observations into graph operations.

The connector is pure: it never talks to the graph store and keeps no
state besides the fixed model catalog.  Given the same observation (and
the same optional lists of existing ids) it always returns the same
operation list.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from twinsync.connectors.hue.catalog import (
    HAS_SENSOR,
    HUE_MODELS,
    LIGHT_METADATA_KEYS,
    ModelIds,
    declared_properties,
    get_model,
    owns_model_id,
)
from twinsync.connectors.hue.identity import device_node_id, device_prefix, edge_id, node_id, owns_node_id
from twinsync.exceptions import MappingError
from twinsync.models.asset import Asset, AssetKind, AssetSnapshot
from twinsync.models.change import AssetChange, AssetChangeEvent, ChangeKind
from twinsync.models.operations import (
    DeleteModel,
    DeleteNode,
    EnsureModels,
    GraphOperation,
    PatchNode,
    PatchOp,
    UpsertEdge,
    UpsertNode,
)

_logger = logging.getLogger(__name__)

#: Sensor types that never belong to a logical sensor device.
SKIPPED_SENSOR_TYPES: frozenset[str] = frozenset({"Daylight", "ZLLSwitch"})

#: Channel slot, sensor type and model for each physical channel, in emit order.
_CHANNELS: tuple[tuple[str, str, str], ...] = (
    ("presence", "ZLLPresence", ModelIds.presence_sensor),
    ("lightlevel", "ZLLLightLevel", ModelIds.light_level_sensor),
    ("temperature", "ZLLTemperature", ModelIds.temperature_sensor),
)
_CHANNEL_BY_TYPE: dict[str, str] = {sensor_type: slot for slot, sensor_type, _ in _CHANNELS}
_MODEL_BY_TYPE: dict[str, str] = {sensor_type: model_id for _, sensor_type, model_id in _CHANNELS}

REMOVED_STATUS = "removed"

_LIGHT_PROPERTIES: frozenset[str] = frozenset(declared_properties(get_model(ModelIds.light)))
#: Properties any channel model declares; used when a record does not name its sensor type.
_CHANNEL_PROPERTIES: frozenset[str] = frozenset(
    name for _, _, model_id in _CHANNELS for name in declared_properties(get_model(model_id))
)


@dataclass
class SensorGroup:
    """Channels sharing one hardware prefix, plus the record describing the device."""

    prefix: str
    device: Asset
    presence: Asset | None = None
    lightlevel: Asset | None = None
    temperature: Asset | None = None

    def channels(self) -> list[tuple[Asset, str]]:
        present: list[tuple[Asset, str]] = []
        for slot, _, model_id in _CHANNELS:
            sensor = getattr(self, slot)
            if sensor is not None:
                present.append((sensor, model_id))
        return present


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def filter_properties(source: Mapping[str, Any], model_id: str) -> dict[str, Any]:
    """Keep only what ``model_id`` declares as a property.

    Models declaring a ``metadata`` map additionally get the descriptive
    allow-list collected into it as strings.
    """
    allowed = declared_properties(get_model(model_id))
    out: dict[str, Any] = {}
    for name in allowed:
        value = source.get(name)
        if value is not None:
            out[name] = value

    if model_id == ModelIds.light and "metadata" in allowed:
        out["metadata"] = {
            key: _stringify(source[key]) for key in LIGHT_METADATA_KEYS if source.get(key) not in (None, "")
        }
    return out


def group_sensors(sensors: Iterable[Asset]) -> dict[str, SensorGroup]:
    """Group sensor channels by sanitized hardware prefix, in first-seen order."""
    groups: dict[str, SensorGroup] = {}
    for sensor in sensors:
        prefix = device_prefix(sensor.attributes.get("uniqueid"))
        if prefix is None:
            _logger.debug("[HueConnector] Sensor %s (%s) has no channel unique id", sensor.id, sensor.type)
            continue
        group = groups.get(prefix)
        if group is None:
            group = SensorGroup(prefix=prefix, device=sensor)
            groups[prefix] = group
        slot = _CHANNEL_BY_TYPE.get(sensor.type)
        if slot is not None:
            setattr(group, slot, sensor)
    return groups


def _device_properties(group: SensorGroup) -> dict[str, Any]:
    device = group.device
    attributes = device.attributes
    config = attributes.get("config")
    return filter_properties(
        {
            "name": device.name,
            "uniqueid": group.prefix,
            "modelid": attributes.get("modelid"),
            "manufacturername": attributes.get("manufacturername"),
            "productname": attributes.get("productname"),
            "swversion": attributes.get("swversion"),
            "battery": config.get("battery") if isinstance(config, Mapping) else None,
        },
        ModelIds.motion_sensor_device,
    )


def _has_node(change: AssetChange) -> bool:
    """Whether a sensor change addresses a node the snapshot mapping creates."""
    sensor_type = change.asset_type
    if sensor_type is None or sensor_type in _CHANNEL_BY_TYPE:
        return True
    if sensor_type in SKIPPED_SENSOR_TYPES:
        _logger.warning(
            "[HueConnector] Skipping sensor type: %s, id: %s, name: %s",
            sensor_type,
            change.id,
            change.name,
        )
    else:
        _logger.warning(
            "[HueConnector] Sensor %s (%s) is not a grouped channel; skipping %s change",
            change.id,
            sensor_type,
            change.change.value,
        )
    return False


def _patchable_properties(change: AssetChange) -> frozenset[str]:
    if change.type == AssetKind.LIGHT:
        return _LIGHT_PROPERTIES
    model_id = _MODEL_BY_TYPE.get(change.asset_type or "")
    if model_id is not None:
        return frozenset(declared_properties(get_model(model_id)))
    return _CHANNEL_PROPERTIES


def _path(property_name: str) -> str:
    # JSON Pointer escaping for the single segment.
    return "/" + property_name.replace("~", "~0").replace("/", "~1")


class HueConnector:
    """Map Hue snapshots and change events onto the Hue model catalog."""

    key = "hue"

    def can_handle(self, body: Mapping[str, Any]) -> bool:
        if "lights" in body or "sensors" in body:
            return True
        changes = body.get("changes")
        if not isinstance(changes, list):
            return False
        return any(isinstance(change, Mapping) and change.get("type") in ("light", "sensor") for change in changes)

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def on_snapshot(
        self,
        snapshot: AssetSnapshot | Mapping[str, Any],
        existing_node_ids: Iterable[str] | None = None,
        existing_model_ids: Iterable[str] | None = None,
    ) -> list[GraphOperation]:
        """Return the operations that bring the graph in line with ``snapshot``.

        Without ``existing_node_ids``/``existing_model_ids`` the result is
        additive only.  When given, owned nodes and models that the snapshot
        no longer produces are deleted after all upserts.
        """
        if not isinstance(snapshot, AssetSnapshot):
            try:
                snapshot = AssetSnapshot.model_validate(snapshot)
            except ValidationError as exc:
                raise MappingError(f"Invalid snapshot: {exc}") from exc

        ops: list[GraphOperation] = [EnsureModels(models=list(HUE_MODELS))]

        sensors: list[Asset] = []
        for sensor in snapshot.sensors:
            if sensor.type in SKIPPED_SENSOR_TYPES:
                _logger.warning(
                    "[HueConnector] Skipping sensor type: %s, id: %s, name: %s",
                    sensor.type,
                    sensor.id,
                    sensor.name,
                )
                continue
            sensors.append(sensor)

        for light in snapshot.lights:
            ops.append(
                UpsertNode(
                    node_id=node_id(AssetKind.LIGHT, light.id),
                    model_id=ModelIds.light,
                    properties=filter_properties(light.flatten(), ModelIds.light),
                )
            )

        for group in group_sensors(sensors).values():
            device_id = device_node_id(group.prefix)
            ops.append(
                UpsertNode(
                    node_id=device_id,
                    model_id=ModelIds.motion_sensor_device,
                    properties=_device_properties(group),
                )
            )
            for sensor, model_id in group.channels():
                channel_id = node_id(AssetKind.SENSOR, sensor.id)
                ops.append(
                    UpsertNode(
                        node_id=channel_id,
                        model_id=model_id,
                        properties=filter_properties(sensor.flatten(), model_id),
                    )
                )
                ops.append(
                    UpsertEdge(
                        edge_id=edge_id(device_id, HAS_SENSOR, channel_id),
                        name=HAS_SENSOR,
                        source_id=device_id,
                        target_id=channel_id,
                    )
                )

        if existing_node_ids is not None:
            produced = {op.node_id for op in ops if isinstance(op, UpsertNode)}
            for candidate in dict.fromkeys(existing_node_ids):
                if candidate not in produced and owns_node_id(candidate):
                    ops.append(DeleteNode(node_id=candidate))

        if existing_model_ids is not None:
            current = {model.id for model in HUE_MODELS}
            for candidate in dict.fromkeys(existing_model_ids):
                if candidate not in current and owns_model_id(candidate):
                    ops.append(DeleteModel(model_id=candidate))

        return ops

    # ------------------------------------------------------------------
    # Delta
    # ------------------------------------------------------------------

    def on_change(self, event: AssetChangeEvent | Mapping[str, Any]) -> list[GraphOperation]:
        """Return one operation per change record that affects the graph."""
        if not isinstance(event, AssetChangeEvent):
            event = AssetChangeEvent.parse_lenient(event)

        ops: list[GraphOperation] = []
        for change in event.changes:
            op = self._map_change(change)
            if op is not None:
                ops.append(op)
        return ops

    def _map_change(self, change: AssetChange) -> GraphOperation | None:
        target = node_id(change.type, change.id)

        if change.type == AssetKind.SENSOR and not _has_node(change):
            return None

        if change.change == ChangeKind.ADDED:
            return self._map_added(change, target)

        if change.change == ChangeKind.REMOVED:
            return PatchNode(node_id=target, patch=[PatchOp(op="add", path="/status", value=REMOVED_STATUS)])

        allowed = _patchable_properties(change)
        patch: list[PatchOp] = []
        for prop in change.properties:
            if prop.property not in allowed:
                _logger.debug("[HueConnector] %s does not declare %s; not patched", target, prop.property)
                continue
            if prop.exists_now:
                patch.append(PatchOp(op="add", path=_path(prop.property), value=prop.new_value))
            else:
                patch.append(PatchOp(op="remove", path=_path(prop.property)))
        if not patch:
            _logger.debug("[HueConnector] Change for %s carries no declared properties; nothing to patch", target)
            return None
        return PatchNode(node_id=target, patch=patch)

    def _map_added(self, change: AssetChange, target: str) -> GraphOperation | None:
        source: dict[str, Any] = {"name": change.name, **(change.state or {})}
        if change.type == AssetKind.LIGHT:
            return UpsertNode(
                node_id=target,
                model_id=ModelIds.light,
                properties=filter_properties(source, ModelIds.light),
            )

        model_id = _MODEL_BY_TYPE.get(change.asset_type or "")
        if model_id is None:
            # Older records carry no sensor type; the state keys tell the channel.
            model_id = next((model for slot, _, model in _CHANNELS if slot in source), None)
        if model_id is None:
            _logger.debug("[HueConnector] Added sensor %s is not a grouped channel; waiting for resync", change.id)
            return None
        return UpsertNode(node_id=target, model_id=model_id, properties=filter_properties(source, model_id))

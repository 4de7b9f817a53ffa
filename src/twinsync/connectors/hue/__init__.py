"""Connector for Philips Hue lights and motion sensors."""

from twinsync.connectors.hue.catalog import HUE_MODELS, ModelIds, owns_model_id
from twinsync.connectors.hue.connector import HueConnector, SensorGroup, filter_properties, group_sensors
from twinsync.connectors.hue.identity import (
    device_node_id,
    device_prefix,
    edge_id,
    node_id,
    owns_node_id,
    sanitize_prefix,
)

__all__ = [
    "HUE_MODELS",
    "HueConnector",
    "ModelIds",
    "SensorGroup",
    "device_node_id",
    "device_prefix",
    "edge_id",
    "filter_properties",
    "group_sensors",
    "node_id",
    "owns_model_id",
    "owns_node_id",
    "sanitize_prefix",
]

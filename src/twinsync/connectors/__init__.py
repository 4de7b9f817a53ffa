"""Connectors translate observations of one device family into graph operations.

A connector is pure: it receives a snapshot or a change event and returns
an ordered list of :data:`~twinsync.models.operations.GraphOperation`.
Applying that list is the executor's job.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, Protocol

from twinsync.connectors.hue import HueConnector
from twinsync.models.asset import AssetSnapshot
from twinsync.models.change import AssetChangeEvent
from twinsync.models.operations import GraphOperation


class Connector(Protocol):
    key: str

    def can_handle(self, body: Mapping[str, Any]) -> bool: ...

    def on_snapshot(
        self,
        snapshot: AssetSnapshot | Mapping[str, Any],
        existing_node_ids: Iterable[str] | None = None,
        existing_model_ids: Iterable[str] | None = None,
    ) -> list[GraphOperation]: ...

    def on_change(self, event: AssetChangeEvent | Mapping[str, Any]) -> list[GraphOperation]: ...


all_connectors: tuple[Connector, ...] = (HueConnector(),)


def pick_connector(
    body: Mapping[str, Any],
    enabled: Iterable[str],
    connectors: Iterable[Connector] = all_connectors,
) -> Connector | None:
    """Return the first enabled connector able to handle ``body``."""
    enabled_keys = set(enabled)
    for connector in connectors:
        if connector.key not in enabled_keys:
            continue
        if connector.can_handle(body):
            return connector
    return None


__all__ = ["Connector", "HueConnector", "all_connectors", "pick_connector"]

"""Route incoming observation messages to a connector and apply the result."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from twinsync.connectors import Connector, all_connectors, pick_connector
from twinsync.exceptions import MappingError
from twinsync.graph.executor import OperationExecutor
from twinsync.models.operations import GraphOperation

_logger = logging.getLogger(__name__)

SNAPSHOT = "snapshot"
DELTA = "delta"


def classify(body: Mapping[str, Any]) -> str:
    """Return ``"snapshot"`` for full observations and ``"delta"`` otherwise."""
    if body.get("snapshot") is True or body.get("type") == SNAPSHOT:
        return SNAPSHOT
    if "lights" in body or "sensors" in body:
        return SNAPSHOT
    return DELTA


def _decode(body: Mapping[str, Any] | str | bytes) -> Mapping[str, Any]:
    if isinstance(body, Mapping):
        return body
    try:
        parsed = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MappingError(f"Message body is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise MappingError(f"Message body must be a JSON object, got {type(parsed).__name__}")
    return parsed


class EventProcessor:
    """Turn one message into graph operations and execute them.

    Parameters
    ----------
    executor
        Executor the produced operations are handed to.
    connectors
        Connectors to choose from, tried in order.
    sources_enabled
        Connector keys allowed to handle messages.
    """

    def __init__(
        self,
        executor: OperationExecutor,
        *,
        connectors: Iterable[Connector] = all_connectors,
        sources_enabled: Iterable[str] = ("hue",),
    ) -> None:
        self._executor = executor
        self._connectors = tuple(connectors)
        self._sources_enabled = tuple(sources_enabled)

    async def process(
        self,
        body: Mapping[str, Any] | str | bytes,
        *,
        existing_node_ids: Iterable[str] | None = None,
        existing_model_ids: Iterable[str] | None = None,
    ) -> list[GraphOperation] | None:
        """Map ``body`` and apply the operations.

        Returns the executed operations, or ``None`` when no enabled
        connector accepts the message.

        Raises
        ------
        MappingError
            If the body is not a JSON object or not a valid observation.
        GraphStoreError
            If an operation failed permanently.
        """
        message = _decode(body)
        connector = pick_connector(message, self._sources_enabled, self._connectors)
        if connector is None:
            _logger.debug("No enabled connector accepts message with keys %s", sorted(message))
            return None

        kind = classify(message)
        if kind == SNAPSHOT:
            ops = connector.on_snapshot(
                message,
                existing_node_ids=existing_node_ids,
                existing_model_ids=existing_model_ids,
            )
        else:
            ops = connector.on_change(message)

        await self._executor.execute(ops)
        _logger.info("Processed message (%s via %s): %d operation(s)", kind, connector.key, len(ops))
        return ops

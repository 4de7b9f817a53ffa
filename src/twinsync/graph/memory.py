"""In-memory graph store.

Implements :class:`~twinsync.graph.client.GraphStoreClient` with the same
conflict and not-found rules as the REST service, for dry runs and tests.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from twinsync.exceptions import GraphStoreError


@dataclass
class StoredNode:
    model_id: str
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass
class StoredEdge:
    name: str
    source_id: str
    target_id: str
    properties: dict[str, Any] = field(default_factory=dict)


def _property_name(path: str) -> str:
    if not path.startswith("/") or "/" in path[1:]:
        raise GraphStoreError(f"Unsupported patch path: {path}", status_code=400, operation="patch_node")
    return path[1:].replace("~1", "/").replace("~0", "~")


class InMemoryGraphStore:
    """Graph store kept in dicts."""

    def __init__(self) -> None:
        self.models: dict[str, dict[str, Any]] = {}
        self.nodes: dict[str, StoredNode] = {}
        self.edges: dict[str, StoredEdge] = {}

    async def list_models(self) -> list[str]:
        return list(self.models)

    async def create_models(self, models: Sequence[Mapping[str, Any]]) -> None:
        incoming = [copy.deepcopy(dict(model)) for model in models]
        for model in incoming:
            model_id = model.get("@id")
            if not isinstance(model_id, str):
                raise GraphStoreError("Model without @id", status_code=400, operation="create_models")
            if model_id in self.models:
                raise GraphStoreError(f"Model {model_id} already exists", status_code=409, operation="create_models")
        for model in incoming:
            self.models[model["@id"]] = model

    async def delete_model(self, model_id: str) -> None:
        self.models.pop(model_id, None)

    async def upsert_node(self, node_id: str, model_id: str, properties: Mapping[str, Any]) -> None:
        if model_id not in self.models:
            raise GraphStoreError(f"Model {model_id} not found", status_code=400, operation="upsert_node")
        self.nodes[node_id] = StoredNode(model_id=model_id, properties=copy.deepcopy(dict(properties)))

    async def patch_node(self, node_id: str, patch: Sequence[Mapping[str, Any]]) -> None:
        node = self.nodes.get(node_id)
        if node is None:
            raise GraphStoreError(f"Node {node_id} not found", status_code=404, operation="patch_node")
        updated = dict(node.properties)
        for entry in patch:
            name = _property_name(str(entry.get("path", "")))
            op = entry.get("op")
            if op == "add":
                updated[name] = copy.deepcopy(entry.get("value"))
            elif op == "replace":
                if name not in updated:
                    raise GraphStoreError(f"Cannot replace missing {name}", status_code=400, operation="patch_node")
                updated[name] = copy.deepcopy(entry.get("value"))
            elif op == "remove":
                if name not in updated:
                    raise GraphStoreError(f"Cannot remove missing {name}", status_code=400, operation="patch_node")
                del updated[name]
            else:
                raise GraphStoreError(f"Unsupported patch op: {op}", status_code=400, operation="patch_node")
        node.properties = updated

    async def delete_node(self, node_id: str) -> None:
        for edge_id in [eid for eid, edge in self.edges.items() if node_id in (edge.source_id, edge.target_id)]:
            del self.edges[edge_id]
        self.nodes.pop(node_id, None)

    async def upsert_edge(
        self,
        source_id: str,
        edge_id: str,
        name: str,
        target_id: str,
        properties: Mapping[str, Any] | None = None,
    ) -> None:
        for endpoint in (source_id, target_id):
            if endpoint not in self.nodes:
                raise GraphStoreError(f"Node {endpoint} not found", status_code=404, operation="upsert_edge")
        self.edges[edge_id] = StoredEdge(
            name=name,
            source_id=source_id,
            target_id=target_id,
            properties=copy.deepcopy(dict(properties or {})),
        )

    def node_ids(self) -> list[str]:
        return list(self.nodes)

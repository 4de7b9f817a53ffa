"""Graph operations emitted by connectors and applied by the executor.

The operation set is closed: :data:`GraphOperation` is a discriminated
union on ``kind`` and the executor dispatches over it exhaustively.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from twinsync.models.graph import GraphModel


class _Operation(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class PatchOp(BaseModel):
    """One JSON-Patch entry addressing a top-level node property."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    op: Literal["add", "replace", "remove"]
    path: str
    value: Any = None

    def to_json_patch(self) -> dict[str, Any]:
        if self.op == "remove":
            return {"op": self.op, "path": self.path}
        return {"op": self.op, "path": self.path, "value": self.value}


class EnsureModels(_Operation):
    kind: Literal["EnsureModels"] = "EnsureModels"
    models: list[GraphModel]


class UpsertNode(_Operation):
    kind: Literal["UpsertNode"] = "UpsertNode"
    node_id: str
    model_id: str
    properties: dict[str, Any] = Field(default_factory=dict)


class UpsertEdge(_Operation):
    kind: Literal["UpsertEdge"] = "UpsertEdge"
    edge_id: str
    name: str
    source_id: str
    target_id: str
    properties: dict[str, Any] = Field(default_factory=dict)


class PatchNode(_Operation):
    kind: Literal["PatchNode"] = "PatchNode"
    node_id: str
    patch: list[PatchOp]


class DeleteNode(_Operation):
    kind: Literal["DeleteNode"] = "DeleteNode"
    node_id: str


class DeleteModel(_Operation):
    kind: Literal["DeleteModel"] = "DeleteModel"
    model_id: str


GraphOperation = Annotated[
    EnsureModels | UpsertNode | UpsertEdge | PatchNode | DeleteNode | DeleteModel,
    Field(discriminator="kind"),
]

_OPERATIONS_ADAPTER: TypeAdapter[list[GraphOperation]] = TypeAdapter(list[GraphOperation])


def dump_operations(operations: list[GraphOperation]) -> list[dict[str, Any]]:
    return _OPERATIONS_ADAPTER.dump_python(operations, mode="json", by_alias=True)

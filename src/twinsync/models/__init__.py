"""Data models for observations and graph operations."""

from twinsync.models._base import TwinSyncBaseModel
from twinsync.models.asset import Asset, AssetKind, AssetPopulation, AssetSnapshot
from twinsync.models.change import AssetChange, AssetChangeEvent, ChangeKind, PropertyChange
from twinsync.models.graph import DTDL_CONTEXT, GraphModel, ModelContent
from twinsync.models.operations import (
    DeleteModel,
    DeleteNode,
    EnsureModels,
    GraphOperation,
    PatchNode,
    PatchOp,
    UpsertEdge,
    UpsertNode,
    dump_operations,
)

AssetObservationEvent = AssetSnapshot | AssetChangeEvent

__all__ = [
    "DTDL_CONTEXT",
    "Asset",
    "AssetChange",
    "AssetChangeEvent",
    "AssetKind",
    "AssetObservationEvent",
    "AssetPopulation",
    "AssetSnapshot",
    "ChangeKind",
    "DeleteModel",
    "DeleteNode",
    "EnsureModels",
    "GraphModel",
    "GraphOperation",
    "ModelContent",
    "PatchNode",
    "PatchOp",
    "PropertyChange",
    "TwinSyncBaseModel",
    "UpsertEdge",
    "UpsertNode",
    "dump_operations",
]

"""twinsync - Keep a digital twin graph in sync with observed Hue devices."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("twinsync")
except PackageNotFoundError:
    __version__ = "0+local"
from twinsync.config import SyncConfig
from twinsync.connectors import Connector, HueConnector, all_connectors, pick_connector
from twinsync.exceptions import (
    BaselineError,
    GraphStoreError,
    GraphStoreTransportError,
    MappingError,
    ObservationError,
    TwinSyncConfigError,
    TwinSyncError,
)
from twinsync.gateway import HueBridgeClient
from twinsync.graph import DigitalTwinsClient, GraphStoreClient, InMemoryGraphStore, OperationExecutor, RetryPolicy
from twinsync.ingestion import AssetPoller, LoopScheduler, PollerState, capture_snapshot, diff_populations
from twinsync.models import (
    Asset,
    AssetChange,
    AssetChangeEvent,
    AssetKind,
    AssetObservationEvent,
    AssetPopulation,
    AssetSnapshot,
    ChangeKind,
    GraphOperation,
    PropertyChange,
)
from twinsync.processor import EventProcessor
from twinsync.state import SnapshotStore

__all__ = [
    "__version__",
    "Asset",
    "AssetChange",
    "AssetChangeEvent",
    "AssetKind",
    "AssetObservationEvent",
    "AssetPoller",
    "AssetPopulation",
    "AssetSnapshot",
    "BaselineError",
    "ChangeKind",
    "Connector",
    "DigitalTwinsClient",
    "EventProcessor",
    "GraphOperation",
    "GraphStoreClient",
    "GraphStoreError",
    "GraphStoreTransportError",
    "HueBridgeClient",
    "HueConnector",
    "InMemoryGraphStore",
    "LoopScheduler",
    "MappingError",
    "ObservationError",
    "OperationExecutor",
    "PollerState",
    "PropertyChange",
    "RetryPolicy",
    "SnapshotStore",
    "SyncConfig",
    "TwinSyncConfigError",
    "TwinSyncError",
    "all_connectors",
    "capture_snapshot",
    "diff_populations",
    "pick_connector",
]

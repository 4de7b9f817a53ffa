"""Ingestion layer.

This package owns how observations enter the engine: polling the gateway,
detecting what changed since the last observation and publishing the
result.  Mapping to graph operations happens in :mod:`twinsync.connectors`.
"""

from twinsync.ingestion.diff import diff_assets, diff_populations, diff_states
from twinsync.ingestion.poller import AssetPoller, PollerState, capture_snapshot
from twinsync.ingestion.scheduler import LoopScheduler, ScheduledCall, Scheduler

__all__ = [
    "AssetPoller",
    "LoopScheduler",
    "PollerState",
    "ScheduledCall",
    "Scheduler",
    "capture_snapshot",
    "diff_assets",
    "diff_populations",
    "diff_states",
]

"""Persistence layer.

Holds the last observed device population on disk so a restarted poller
diffs against what it saw before instead of re-announcing every device.
"""

from twinsync.state.store import SnapshotStore

__all__ = ["SnapshotStore"]

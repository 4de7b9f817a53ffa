"""Custom exception hierarchy for twinsync."""

from __future__ import annotations


class TwinSyncError(Exception):
    """Base exception for all twinsync errors."""


class TwinSyncConfigError(TwinSyncError):
    """Invalid or missing configuration."""


class ObservationError(TwinSyncError):
    """Reading the device population from the gateway failed."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class BaselineError(TwinSyncError):
    """The poller could not establish its initial baseline."""


class MappingError(TwinSyncError):
    """An observation could not be translated into graph operations.

    Raised for payloads that are neither a snapshot nor a change event.
    Individual malformed change records are skipped, not raised.
    """


class GraphStoreError(TwinSyncError):
    """The graph store rejected or failed a request.

    ``status_code`` carries the HTTP status when one was received and is
    what the executor uses to decide whether an operation is retried.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        operation: str = "",
    ) -> None:
        self.status_code = status_code
        self.operation = operation
        super().__init__(message)


class GraphStoreTransportError(GraphStoreError):
    """Network-level failure talking to the graph store (no response)."""

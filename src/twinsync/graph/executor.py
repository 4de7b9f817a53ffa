"""Apply graph operations against a graph store, in order, with retry.

Operations run strictly one after another: edge upserts depend on the
node upserts before them.  Each operation is retried on its own when the
store reports a transient failure; a permanent failure aborts the rest of
the batch and propagates to the caller, which owns redelivery.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import assert_never

from twinsync._constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BASE_MS,
    DEFAULT_RETRY_MAX_MS,
    RETRIABLE_STATUS_CODES,
)
from twinsync.exceptions import GraphStoreError, GraphStoreTransportError
from twinsync.graph.client import GraphStoreClient
from twinsync.models.operations import (
    DeleteModel,
    DeleteNode,
    EnsureModels,
    GraphOperation,
    PatchNode,
    UpsertEdge,
    UpsertNode,
)

_logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]


@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff.

    Parameters
    ----------
    max_retries : int
        Retries after the first attempt; ``0`` disables retrying.
    base_delay_ms : int
        Wait before the first retry; doubled for every further retry.
    max_delay_ms : int
        Cap on a single wait.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay_ms: int = DEFAULT_RETRY_BASE_MS
    max_delay_ms: int = DEFAULT_RETRY_MAX_MS

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (0-based)."""
        return min(self.max_delay_ms, self.base_delay_ms * 2**attempt) / 1000.0


def is_retriable(exc: GraphStoreError) -> bool:
    if isinstance(exc, GraphStoreTransportError):
        return True
    return exc.status_code in RETRIABLE_STATUS_CODES


class OperationExecutor:
    """Run operation lists against one injected :class:`GraphStoreClient`."""

    def __init__(
        self,
        client: GraphStoreClient,
        retry_policy: RetryPolicy | None = None,
        *,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._client = client
        self._retry_policy = retry_policy if retry_policy is not None else RetryPolicy()
        self._sleep = sleep

    @property
    def client(self) -> GraphStoreClient:
        return self._client

    async def execute(self, operations: Iterable[GraphOperation], retry_policy: RetryPolicy | None = None) -> None:
        """Apply ``operations`` in order.

        Raises
        ------
        GraphStoreError
            The first operation that failed permanently; later operations
            were not attempted.
        """
        policy = retry_policy if retry_policy is not None else self._retry_policy
        for operation in operations:
            await self._execute_with_retry(operation, policy)

    async def _execute_with_retry(self, operation: GraphOperation, policy: RetryPolicy) -> None:
        attempt = 0
        while True:
            try:
                await self._dispatch(operation)
                return
            except GraphStoreError as exc:
                status = exc.status_code
                if is_retriable(exc) and attempt < policy.max_retries:
                    delay = policy.delay_for(attempt)
                    attempt += 1
                    _logger.warning(
                        "Graph op %s failed (status=%s), retry %d/%d in %.1fs",
                        operation.kind,
                        status,
                        attempt,
                        policy.max_retries,
                        delay,
                    )
                    await self._sleep(delay)
                    continue
                _logger.error(
                    "Graph op %s failed permanently after %d attempt(s) (status=%s): %s",
                    operation.kind,
                    attempt + 1,
                    status,
                    exc,
                )
                raise

    async def _dispatch(self, operation: GraphOperation) -> None:
        client = self._client
        if isinstance(operation, EnsureModels):
            await self._ensure_models(operation)
        elif isinstance(operation, UpsertNode):
            await client.upsert_node(operation.node_id, operation.model_id, operation.properties)
        elif isinstance(operation, UpsertEdge):
            await client.upsert_edge(
                operation.source_id,
                operation.edge_id,
                operation.name,
                operation.target_id,
                operation.properties,
            )
        elif isinstance(operation, PatchNode):
            if not operation.patch:
                _logger.debug("Skipping empty patch for %s", operation.node_id)
                return
            await client.patch_node(operation.node_id, [entry.to_json_patch() for entry in operation.patch])
        elif isinstance(operation, DeleteNode):
            await client.delete_node(operation.node_id)
        elif isinstance(operation, DeleteModel):
            await client.delete_model(operation.model_id)
        else:
            assert_never(operation)

    async def _ensure_models(self, operation: EnsureModels) -> None:
        """Replace catalog models already in the store, then create all of them."""
        existing = set(await self._client.list_models())

        # Delete in reverse so models extending or targeting a base go first.
        for model in reversed(operation.models):
            if model.id not in existing:
                continue
            try:
                await self._client.delete_model(model.id)
                _logger.info("Deleted existing model: %s", model.id)
            except GraphStoreError as exc:
                _logger.warning("Failed to delete model %s, attempting to create anyway: %s", model.id, exc)

        if operation.models:
            await self._client.create_models([model.to_dtdl() for model in operation.models])
            _logger.info("Created/replaced %d models", len(operation.models))

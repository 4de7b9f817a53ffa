"""Graph store access: clients and the operation executor."""

from twinsync.graph.client import DigitalTwinsClient, GraphStoreClient
from twinsync.graph.executor import OperationExecutor, RetryPolicy, is_retriable
from twinsync.graph.memory import InMemoryGraphStore

__all__ = [
    "DigitalTwinsClient",
    "GraphStoreClient",
    "InMemoryGraphStore",
    "OperationExecutor",
    "RetryPolicy",
    "is_retriable",
]

"""Runtime configuration for twinsync."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from twinsync._constants import (
    DEFAULT_DATA_DIR,
    DEFAULT_EVENT_CHANNEL,
    DEFAULT_GRAPH_API_VERSION,
    DEFAULT_MAX_RETRIES,
    DEFAULT_POLL_INTERVAL_MS,
    DEFAULT_RETRY_BASE_MS,
    DEFAULT_RETRY_MAX_MS,
)
from twinsync.exceptions import TwinSyncConfigError
from twinsync.graph.executor import RetryPolicy


def _env_int(env: Mapping[str, str], key: str) -> int | None:
    value = env.get(key)
    if value is None or not value.strip():
        return None
    try:
        return int(value.strip())
    except ValueError as exc:
        raise TwinSyncConfigError(f"{key} must be an integer, got {value!r}") from exc


def _env_list(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if value is None:
        return default
    items = tuple(item.strip() for item in value.split(",") if item.strip())
    return items or default


@dataclasses.dataclass(frozen=True)
class SyncConfig:
    """Engine configuration.

    Parameters
    ----------
    poll_interval_ms : int
        Milliseconds between two polls of the device gateway.
    event_channel : str
        Name of the output channel change events are published on.
    max_retries : int
        Retries per graph operation after the first attempt.
    retry_base_ms : int
        Base backoff; attempt ``n`` waits ``retry_base_ms * 2**n``.
    retry_max_ms : int
        Upper bound for a single backoff wait.
    data_dir : str
        Directory holding the persisted snapshot.
    graph_url : str
        Base URL of the graph store (empty disables graph writes).
    graph_api_version : str
        ``api-version`` query parameter sent to the graph store.
    sources_enabled : tuple[str, ...]
        Connector keys allowed to handle incoming messages.
    bridge_host : str
        Host or IP of the device gateway.
    bridge_username : str or None
        Application key issued by the gateway during pairing.
    """

    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    event_channel: str = DEFAULT_EVENT_CHANNEL
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_base_ms: int = DEFAULT_RETRY_BASE_MS
    retry_max_ms: int = DEFAULT_RETRY_MAX_MS
    data_dir: str = DEFAULT_DATA_DIR
    graph_url: str = ""
    graph_api_version: str = DEFAULT_GRAPH_API_VERSION
    sources_enabled: tuple[str, ...] = ("hue",)
    bridge_host: str = ""
    bridge_username: str | None = None

    def __post_init__(self) -> None:
        if self.poll_interval_ms <= 0:
            raise TwinSyncConfigError(f"poll_interval_ms must be positive, got {self.poll_interval_ms}")
        if self.max_retries < 0:
            raise TwinSyncConfigError(f"max_retries must not be negative, got {self.max_retries}")
        if self.retry_base_ms < 0 or self.retry_max_ms < 0:
            raise TwinSyncConfigError("retry backoff values must not be negative")

    @property
    def poll_interval(self) -> float:
        """Poll interval in seconds."""
        return self.poll_interval_ms / 1000.0

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay_ms=self.retry_base_ms,
            max_delay_ms=self.retry_max_ms,
        )

    @classmethod
    def from_env(cls, **overrides: Any) -> SyncConfig:
        """Create configuration from ``TWINSYNC_*`` environment variables.

        Explicit keyword arguments override environment values.

        Raises
        ------
        TwinSyncConfigError
            If a numeric variable cannot be parsed or a value is out of range.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "TWINSYNC_EVENT_CHANNEL": "event_channel",
            "TWINSYNC_DATA_DIR": "data_dir",
            "TWINSYNC_GRAPH_URL": "graph_url",
            "TWINSYNC_GRAPH_API_VERSION": "graph_api_version",
            "TWINSYNC_BRIDGE_HOST": "bridge_host",
            "TWINSYNC_BRIDGE_USERNAME": "bridge_username",
        }
        _ENV_INT_MAP = {
            "TWINSYNC_POLL_INTERVAL_MS": "poll_interval_ms",
            "TWINSYNC_MAX_RETRIES": "max_retries",
            "TWINSYNC_RETRY_BASE_MS": "retry_base_ms",
            "TWINSYNC_RETRY_MAX_MS": "retry_max_ms",
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val
        for env_key, field_name in _ENV_INT_MAP.items():
            if field_name in overrides:
                continue
            parsed = _env_int(env, env_key)
            if parsed is not None:
                config_kwargs[field_name] = parsed

        if "sources_enabled" not in overrides:
            config_kwargs["sources_enabled"] = _env_list(env.get("TWINSYNC_SOURCES_ENABLED"), ("hue",))

        config_kwargs.update(overrides)

        return cls(**config_kwargs)

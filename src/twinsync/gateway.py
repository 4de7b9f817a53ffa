"""Read-only client for a paired Hue bridge.

Implements the ``observe()`` collaborator of
:class:`~twinsync.ingestion.poller.AssetPoller`: one call fetches every
light and sensor the bridge knows about.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp
from pydantic import ValidationError

from twinsync.config import SyncConfig
from twinsync.exceptions import ObservationError
from twinsync.models.asset import Asset, AssetPopulation

_logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = aiohttp.ClientTimeout(total=10)


def _hue_error(payload: Any) -> str | None:
    """Return the description of a Hue error response, if ``payload`` is one."""
    if not isinstance(payload, list):
        return None
    for entry in payload:
        if isinstance(entry, dict) and isinstance(entry.get("error"), dict):
            return str(entry["error"].get("description") or entry["error"])
    return None


class HueBridgeClient:
    """Async client for the Hue bridge REST API (v1).

    Usage::

        async with HueBridgeClient("192.168.1.2", username) as bridge:
            population = await bridge.observe()
    """

    def __init__(
        self,
        host: str,
        username: str | None,
        *,
        session: aiohttp.ClientSession | None = None,
        scheme: str = "http",
    ) -> None:
        self._host = host
        self._username = username
        self._scheme = scheme
        self._external_session = session is not None
        self._http = session

    @classmethod
    def from_config(cls, config: SyncConfig, *, session: aiohttp.ClientSession | None = None) -> HueBridgeClient:
        return cls(config.bridge_host, config.bridge_username, session=session)

    async def __aenter__(self) -> HueBridgeClient:
        if self._http is None:
            self._http = aiohttp.ClientSession(timeout=_DEFAULT_TIMEOUT)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http is not None:
            await self._http.close()
            self._http = None

    async def observe(self) -> AssetPopulation:
        """Fetch lights and sensors.

        Raises
        ------
        ObservationError
            If the bridge is unreachable, not paired, or answers with an error.
        """
        lights = await self._fetch_assets("lights")
        sensors = await self._fetch_assets("sensors")
        _logger.debug("Observed %d light(s) and %d sensor(s)", len(lights), len(sensors))
        return AssetPopulation(lights=lights, sensors=sensors)

    async def _fetch_assets(self, resource: str) -> list[Asset]:
        payload = await self._get(resource)
        if not isinstance(payload, dict):
            raise ObservationError(
                f"Unexpected {resource} response: {type(payload).__name__}",
                endpoint=resource,
            )
        assets: list[Asset] = []
        for asset_id, record in payload.items():
            if not isinstance(record, dict):
                _logger.debug("Skipping non-object %s entry %s", resource, asset_id)
                continue
            try:
                assets.append(Asset.model_validate({**record, "id": asset_id}))
            except ValidationError as exc:
                raise ObservationError(f"Invalid {resource} entry {asset_id}: {exc}", endpoint=resource) from exc
        return assets

    async def _get(self, resource: str) -> Any:
        if not self._username:
            raise ObservationError("Bridge username is not configured; pair with the bridge first", endpoint=resource)
        if self._http is None:
            raise ObservationError("Client not initialized. Use 'async with HueBridgeClient(...) as bridge:'")

        url = f"{self._scheme}://{self._host}/api/{self._username}/{resource}"
        try:
            async with self._http.get(url) as resp:
                if resp.status != 200:
                    raise ObservationError(
                        f"HTTP {resp.status} from bridge {resource}",
                        status_code=resp.status,
                        endpoint=resource,
                    )
                payload = await resp.json(content_type=None)
        except ObservationError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise ObservationError(f"Bridge request for {resource} failed: {exc}", endpoint=resource) from exc

        error = _hue_error(payload)
        if error is not None:
            raise ObservationError(f"Bridge rejected {resource} request: {error}", endpoint=resource)
        return payload

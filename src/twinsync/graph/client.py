"""Graph store clients.

:class:`GraphStoreClient` is the structural interface the executor talks
to.  :class:`DigitalTwinsClient` implements it over the Azure Digital
Twins REST data-plane API with aiohttp.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol
from urllib.parse import quote

import aiohttp

from twinsync._constants import DEFAULT_GRAPH_API_VERSION
from twinsync.exceptions import GraphStoreError, GraphStoreTransportError, TwinSyncConfigError

if TYPE_CHECKING:
    from twinsync.config import SyncConfig

_logger = logging.getLogger(__name__)

TokenProvider = Callable[[], Awaitable[str]]


class GraphStoreClient(Protocol):
    """Structural graph store interface used by the executor."""

    async def list_models(self) -> list[str]: ...

    async def create_models(self, models: Sequence[Mapping[str, Any]]) -> None: ...

    async def delete_model(self, model_id: str) -> None: ...

    async def upsert_node(self, node_id: str, model_id: str, properties: Mapping[str, Any]) -> None: ...

    async def patch_node(self, node_id: str, patch: Sequence[Mapping[str, Any]]) -> None: ...

    async def delete_node(self, node_id: str) -> None: ...

    async def upsert_edge(
        self,
        source_id: str,
        edge_id: str,
        name: str,
        target_id: str,
        properties: Mapping[str, Any] | None = None,
    ) -> None: ...


def _segment(value: str) -> str:
    return quote(value, safe="")


class DigitalTwinsClient:
    """Azure Digital Twins data-plane client.

    Usage::

        async with DigitalTwinsClient(url, token_provider=get_token) as client:
            executor = OperationExecutor(client)
            await executor.execute(ops)

    Parameters
    ----------
    base_url : str
        Instance URL, e.g. ``https://my-instance.api.weu.digitaltwins.azure.net``.
    token_provider
        Coroutine function returning a bearer token; omitted for
        unauthenticated test endpoints.
    api_version : str
        Data-plane ``api-version`` query parameter.
    session : aiohttp.ClientSession or None
        Externally owned session; one is created on enter otherwise.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token_provider: TokenProvider | None = None,
        api_version: str = DEFAULT_GRAPH_API_VERSION,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token_provider = token_provider
        self._api_version = api_version
        self._external_session = session is not None
        self._http = session

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        *,
        token_provider: TokenProvider | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> DigitalTwinsClient:
        """Build a client for ``config.graph_url``.

        Raises
        ------
        TwinSyncConfigError
            If no graph store URL is configured.
        """
        if not config.graph_url:
            raise TwinSyncConfigError("graph_url is not configured (set TWINSYNC_GRAPH_URL)")
        return cls(
            config.graph_url,
            token_provider=token_provider,
            api_version=config.graph_api_version,
            session=session,
        )

    async def __aenter__(self) -> DigitalTwinsClient:
        if self._http is None:
            self._http = aiohttp.ClientSession()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http is not None:
            await self._http.close()
            self._http = None

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    async def list_models(self) -> list[str]:
        model_ids: list[str] = []
        async for item in self._paged("/models"):
            model_id = item.get("id")
            if isinstance(model_id, str):
                model_ids.append(model_id)
        return model_ids

    async def create_models(self, models: Sequence[Mapping[str, Any]]) -> None:
        await self._request("POST", "/models", body=list(models))

    async def delete_model(self, model_id: str) -> None:
        await self._request("DELETE", f"/models/{_segment(model_id)}", allow_not_found=True)

    # ------------------------------------------------------------------
    # Twins and relationships
    # ------------------------------------------------------------------

    async def upsert_node(self, node_id: str, model_id: str, properties: Mapping[str, Any]) -> None:
        body = {"$metadata": {"$model": model_id}, **properties}
        await self._request("PUT", f"/digitaltwins/{_segment(node_id)}", body=body)

    async def patch_node(self, node_id: str, patch: Sequence[Mapping[str, Any]]) -> None:
        await self._request(
            "PATCH",
            f"/digitaltwins/{_segment(node_id)}",
            body=list(patch),
            content_type="application/json-patch+json",
        )

    async def delete_node(self, node_id: str) -> None:
        """Delete a twin together with every relationship touching it."""
        twin_path = f"/digitaltwins/{_segment(node_id)}"
        outgoing = [rel async for rel in self._paged(f"{twin_path}/relationships", allow_not_found=True)]
        incoming = [rel async for rel in self._paged(f"{twin_path}/incomingrelationships", allow_not_found=True)]
        for rel in outgoing:
            rel_id = rel.get("$relationshipId")
            if isinstance(rel_id, str):
                await self._request(
                    "DELETE",
                    f"{twin_path}/relationships/{_segment(rel_id)}",
                    allow_not_found=True,
                )
        for rel in incoming:
            rel_id = rel.get("$relationshipId")
            source_id = rel.get("$sourceId")
            if isinstance(rel_id, str) and isinstance(source_id, str):
                await self._request(
                    "DELETE",
                    f"/digitaltwins/{_segment(source_id)}/relationships/{_segment(rel_id)}",
                    allow_not_found=True,
                )
        await self._request("DELETE", twin_path, allow_not_found=True)

    async def upsert_edge(
        self,
        source_id: str,
        edge_id: str,
        name: str,
        target_id: str,
        properties: Mapping[str, Any] | None = None,
    ) -> None:
        body = {
            "$relationshipId": edge_id,
            "$sourceId": source_id,
            "$relationshipName": name,
            "$targetId": target_id,
            **(properties or {}),
        }
        await self._request(
            "PUT",
            f"/digitaltwins/{_segment(source_id)}/relationships/{_segment(edge_id)}",
            body=body,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_session(self) -> aiohttp.ClientSession:
        if self._http is None:
            raise GraphStoreError("Client not initialized. Use 'async with DigitalTwinsClient(...) as client:'")
        return self._http

    async def _headers(self, content_type: str) -> dict[str, str]:
        headers = {"accept": "application/json", "content-type": content_type}
        if self._token_provider is not None:
            headers["authorization"] = f"Bearer {await self._token_provider()}"
        return headers

    async def _paged(self, path: str, *, allow_not_found: bool = False) -> AsyncIterator[dict[str, Any]]:
        """Yield the ``value`` items of a paged listing, following ``nextLink``."""
        url: str | None = f"{self._base_url}{path}"
        params: dict[str, str] | None = {"api-version": self._api_version}
        while url is not None:
            page = await self._request("GET", url, params=params, absolute=True, allow_not_found=allow_not_found)
            if not isinstance(page, dict):
                return
            for item in page.get("value") or []:
                if isinstance(item, dict):
                    yield item
            next_link = page.get("nextLink")
            url = next_link if isinstance(next_link, str) and next_link else None
            # nextLink already carries the query string.
            params = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        body: Any = None,
        params: Mapping[str, str] | None = None,
        content_type: str = "application/json",
        absolute: bool = False,
        allow_not_found: bool = False,
    ) -> Any:
        http = self._require_session()
        url = path if absolute else f"{self._base_url}{path}"
        if params is None and not absolute:
            params = {"api-version": self._api_version}
        operation = f"{method} {path}"
        data = json.dumps(body) if body is not None else None

        _logger.debug("%s %s", method, url)

        try:
            async with http.request(
                method,
                url,
                params=params,
                data=data,
                headers=await self._headers(content_type),
            ) as resp:
                text = await resp.text()
                if allow_not_found and resp.status == 404:
                    _logger.debug("%s: not found, nothing to do", operation)
                    return None
                if resp.status >= 400:
                    raise GraphStoreError(
                        f"HTTP {resp.status} from {operation}: {text[:200]}",
                        status_code=resp.status,
                        operation=operation,
                    )
        except GraphStoreError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise GraphStoreTransportError(
                f"Request {operation} failed: {exc}",
                operation=operation,
            ) from exc

        if not text:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise GraphStoreError(
                f"Invalid JSON from {operation}: {text[:200]}",
                status_code=None,
                operation=operation,
            ) from exc

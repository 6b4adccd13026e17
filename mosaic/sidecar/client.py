"""
Typed client for the sidecar control plane.

The sidecar is a loopback HTTP service speaking JSON. Every call is bounded
by a timeout. Data calls (``search``, ``load_content``) degrade to empty
results on failure so a misbehaving foreign provider looks like a provider
with nothing to offer; lifecycle calls return a ``SidecarAck``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import httpx
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from mosaic.models import DetailResult, SearchResult

logger = logging.getLogger(__name__)


class SidecarAck(BaseModel):
    """Acknowledgement returned by lifecycle endpoints."""

    model_config = ConfigDict(extra="ignore")

    success: bool
    message: str | None = None
    error: str | None = None

    @property
    def reason(self) -> str:
        return self.error or self.message or ("ok" if self.success else "unknown error")


class SidecarHealth(BaseModel):
    """Payload of ``GET /health``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    status: str
    active_plugin_count: int = Field(
        default=0,
        validation_alias=AliasChoices("activePluginCount", "plugins", "active_plugin_count"),
    )

    @property
    def ok(self) -> bool:
        return self.status.lower() in ("ok", "healthy", "up")


class SidecarClient:
    """Async JSON-over-HTTP client for the sidecar.

    Args:
        base_url: Control plane root, e.g. ``http://127.0.0.1:8765``.
        call_timeout: Bound for search/content/unload calls.
        load_timeout: Bound for ``load_plugin``.
        health_timeout: Bound for ``health``.
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        base_url: str,
        call_timeout: float = 15.0,
        load_timeout: float = 30.0,
        health_timeout: float = 2.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.call_timeout = call_timeout
        self.load_timeout = load_timeout
        self.health_timeout = health_timeout
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=call_timeout,
            transport=transport,
        )

    async def health(self) -> SidecarHealth:
        """Probe ``GET /health``.

        Raises:
            httpx.HTTPError: Unreachable, timed out or non-2xx.
            pydantic.ValidationError: Malformed payload.
        """
        response = await self._client.get("/health", timeout=self.health_timeout)
        response.raise_for_status()
        return SidecarHealth.model_validate(response.json())

    async def load_plugin(
        self,
        plugin_path: Path | str,
        plugin_id: str,
        repository_url: str,
    ) -> SidecarAck:
        """Ask the sidecar to load a stored package."""
        payload = {
            "pluginPath": str(plugin_path),
            "pluginId": plugin_id,
            "repositoryUrl": repository_url,
        }
        try:
            response = await self._client.post(
                "/plugin/load", json=payload, timeout=self.load_timeout
            )
        except httpx.TimeoutException:
            logger.error(f"Sidecar load of {plugin_id} timed out after {self.load_timeout}s")
            return SidecarAck(
                success=False,
                error=f"Sidecar did not respond within {self.load_timeout}s",
            )
        except httpx.HTTPError as e:
            logger.error(f"Sidecar load of {plugin_id} failed: {e}")
            return SidecarAck(success=False, error=f"Sidecar request failed: {e}")
        return self._ack(response, f"load {plugin_id}")

    async def search(self, plugin_id: str, query: str) -> list[SearchResult]:
        """Search through a foreign provider. Empty on any failure."""
        try:
            response = await self._client.post(
                "/plugin/search", json={"pluginId": plugin_id, "query": query}
            )
            response.raise_for_status()
            raw = response.json()
            return [SearchResult.model_validate(item) for item in raw or []]
        except (httpx.HTTPError, ValidationError, ValueError, TypeError) as e:
            logger.warning(f"Sidecar search via {plugin_id} failed: {e}")
            return []

    async def load_content(self, plugin_id: str, url: str) -> DetailResult | None:
        """Fetch detail through a foreign provider. None on 404 or failure."""
        try:
            response = await self._client.post(
                "/plugin/load-content", json={"pluginId": plugin_id, "url": url}
            )
            if response.status_code == 404:
                return None
            response.raise_for_status()
            raw = response.json()
            return DetailResult.model_validate(raw) if raw else None
        except (httpx.HTTPError, ValidationError, ValueError, TypeError) as e:
            logger.warning(f"Sidecar load-content via {plugin_id} failed: {e}")
            return None

    async def unload_plugin(self, plugin_id: str) -> SidecarAck:
        try:
            response = await self._client.delete(f"/plugin/{plugin_id}")
        except httpx.HTTPError as e:
            logger.warning(f"Sidecar unload of {plugin_id} failed: {e}")
            return SidecarAck(success=False, error=f"Sidecar request failed: {e}")
        return self._ack(response, f"unload {plugin_id}")

    async def list_plugins(self) -> list[str]:
        """Plugin ids the sidecar currently has loaded.

        Raises:
            httpx.HTTPError: The sidecar could not be reached.
        """
        response = await self._client.get("/plugins")
        response.raise_for_status()
        return [str(item) for item in response.json() or []]

    def _ack(self, response: httpx.Response, action: str) -> SidecarAck:
        try:
            body: Any = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and "success" in body:
            try:
                return SidecarAck.model_validate(body)
            except ValidationError as e:
                logger.debug(f"Malformed sidecar ack for {action}: {e}")
        if response.is_success:
            return SidecarAck(success=True)
        logger.warning(f"Sidecar {action} returned HTTP {response.status_code}")
        return SidecarAck(success=False, error=f"HTTP {response.status_code}: {response.text[:200]}")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "SidecarClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

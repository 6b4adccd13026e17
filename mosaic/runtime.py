"""
Mosaic runtime: explicit construction and lifecycle of every component.

Nothing in Mosaic is a module-level singleton. A ``MosaicRuntime`` builds
the registry, stores, sidecar supervisor, loader and orchestrator from one
``Settings`` object and owns their start/stop.

Example:
    async with MosaicRuntime(settings) as runtime:
        outcome = await runtime.orchestrator.search("dune")
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from mosaic.catalog import CatalogClient, RepositoryStore
from mosaic.config import Settings, settings as default_settings
from mosaic.plugins.loader import PluginLoader, PluginResult
from mosaic.plugins.registry import CapabilityRegistry
from mosaic.plugins.sandbox import ScriptPolicy, ScriptSandbox
from mosaic.plugins.storage import InstalledPluginStore, PackageStore
from mosaic.resume import ResumeStore
from mosaic.search import SearchOrchestrator
from mosaic.sidecar import SidecarClient, SidecarConfig, SidecarSupervisor

logger = logging.getLogger(__name__)


class MosaicRuntime:
    """Owns every Mosaic component.

    Args:
        settings: Configuration; the process-wide default if omitted.
        sidecar_transport: httpx transport for the sidecar client (tests).
        catalog_transport: httpx transport for the catalog client (tests).
    """

    def __init__(
        self,
        settings: Settings | None = None,
        sidecar_transport: httpx.AsyncBaseTransport | None = None,
        catalog_transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or default_settings
        s = self.settings
        data_dir = s.DATA_DIR

        self.registry = CapabilityRegistry()
        self.packages = PackageStore(s.PLUGINS_DIR)
        self.records = InstalledPluginStore(data_dir / "installed_plugins.json")
        self.repositories = RepositoryStore(data_dir / "repositories.json")
        self.resume = ResumeStore(
            data_dir / "resume.json",
            min_position=s.RESUME_MIN_POSITION,
            max_progress=s.RESUME_MAX_PROGRESS,
        )
        self.catalog = CatalogClient(timeout=s.DOWNLOAD_TIMEOUT, transport=catalog_transport)

        self.sidecar_client = SidecarClient(
            s.sidecar_url,
            call_timeout=s.SIDECAR_CALL_TIMEOUT,
            load_timeout=s.SIDECAR_LOAD_TIMEOUT,
            health_timeout=s.SIDECAR_HEALTH_TIMEOUT,
            transport=sidecar_transport,
        )
        self.supervisor = SidecarSupervisor(SidecarConfig.from_settings(s), self.sidecar_client)

        self.sandbox = ScriptSandbox(ScriptPolicy(
            allow_network=s.SCRIPT_ALLOW_NETWORK,
            max_execution_time=s.SCRIPT_EXEC_TIMEOUT,
            fetch_timeout=s.PROVIDER_SEARCH_TIMEOUT,
        ))
        self.loader = PluginLoader(
            self.registry,
            self.packages,
            self.records,
            self.catalog,
            sandbox=self.sandbox,
            supervisor=self.supervisor,
        )
        self.orchestrator = SearchOrchestrator(
            self.registry,
            search_timeout=s.PROVIDER_SEARCH_TIMEOUT,
            load_timeout=s.PROVIDER_LOAD_TIMEOUT,
            min_query_length=s.MIN_QUERY_LENGTH,
        )
        self._started = False

    async def start(self, restore: bool = True) -> list[PluginResult]:
        """Bring the runtime up.

        The sidecar is spawned eagerly when autostart is on; a missing bundle
        only disables the foreign install path. Enabled plugins are then
        restored.
        """
        if self._started:
            return []
        self._started = True
        self.settings.DATA_DIR.mkdir(parents=True, exist_ok=True)

        if self.settings.SIDECAR_AUTOSTART:
            if not await self.supervisor.start():
                logger.warning(
                    "Sidecar not started; foreign plugins are unavailable "
                    f"({self.supervisor.info.last_error})"
                )

        results = await self.loader.restore() if restore else []
        logger.info(f"Mosaic runtime started ({len(self.registry)} provider(s) active)")
        return results

    async def stop(self) -> None:
        """Tear down providers, the sidecar and HTTP clients."""
        self.registry.clear()
        await self.loader.settle_unloads()
        await self.supervisor.stop()
        await self.sidecar_client.aclose()
        await self.catalog.aclose()
        self._started = False
        logger.info("Mosaic runtime stopped")

    def status(self) -> dict[str, Any]:
        return {
            "providers": self.registry.get_statistics(),
            "sidecar": self.supervisor.get_info(),
            "installed": len(self.records.all()),
        }

    async def __aenter__(self) -> "MosaicRuntime":
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

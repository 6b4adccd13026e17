"""
Plugin installation and lifecycle for Mosaic.

The loader turns a catalog ``PluginDescriptor`` into an active
``ProviderHandle`` in the capability registry. Package bytes are fetched
(or read from the local cache), classified by content, and then take one of
two paths:

    - Scripted source: evaluated in-process by ``ScriptSandbox`` and adapted
      into a handle.
    - Foreign bytecode archive: stored on disk and loaded by the sidecar;
      the handle proxies ``search``/``load`` over the control plane.

Install Stages:
    - DOWNLOAD: Package bytes could not be obtained
    - CLASSIFY: Package could not be classified or stored
    - EXECUTE: Source evaluation or sidecar load failed
    - VALIDATE: Export or archive manifest is unusable
    - REGISTER: Registry or record bookkeeping failed

Install and uninstall never raise to the caller; failures come back as a
``PluginResult`` carrying a ``LoadError``.

Example:
    loader = PluginLoader(registry, packages, records, catalog, sandbox, supervisor)

    result = await loader.install(descriptor, repository_url)
    if not result.success:
        print(f"{result.error.stage.value}: {result.error.message}")

    await loader.uninstall(descriptor.internal_name)
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Protocol
import asyncio
import logging
import traceback

from mosaic.errors import (
    DownloadError,
    ExecutionError,
    MosaicError,
    PluginValidationError,
    SidecarUnavailable,
)
from mosaic.models import (
    DetailResult,
    InstalledPluginRecord,
    PackageKind,
    PluginDescriptor,
    SearchResult,
)
from mosaic.plugins.classify import PluginPackage, classify_package, read_archive
from mosaic.plugins.registry import CapabilityRegistry
from mosaic.plugins.sandbox import ScriptSandbox, resolve_export
from mosaic.plugins.sdk import ProviderHandle, adapt_provider
from mosaic.plugins.storage import InstalledPluginStore, PackageStore
from mosaic.sidecar.client import SidecarClient
from mosaic.sidecar.supervisor import SidecarState, SidecarSupervisor

logger = logging.getLogger(__name__)


class LoadStage(str, Enum):
    """Install step at which a failure happened."""

    DOWNLOAD = "download"
    CLASSIFY = "classify"
    EXECUTE = "execute"
    VALIDATE = "validate"
    REGISTER = "register"


@dataclass
class LoadError:
    """Typed install failure.

    Attributes:
        stage: Step that failed.
        message: Human-readable description.
        details: Structured context (URLs, hints, violations).
    """

    stage: LoadStage
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "stage": self.stage.value,
            "message": self.message,
            "details": self.details,
        }


@dataclass
class PluginResult:
    """Outcome of a loader operation."""

    plugin_name: str
    success: bool
    kind: PackageKind | None = None
    message: str | None = None
    error: LoadError | None = None

    @classmethod
    def ok(
        cls,
        plugin_name: str,
        message: str,
        kind: PackageKind | None = None,
    ) -> "PluginResult":
        return cls(plugin_name=plugin_name, success=True, kind=kind, message=message)

    @classmethod
    def failed(
        cls,
        plugin_name: str,
        stage: LoadStage,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> "PluginResult":
        return cls(
            plugin_name=plugin_name,
            success=False,
            error=LoadError(stage=stage, message=message, details=details or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "plugin_name": self.plugin_name,
            "success": self.success,
            "kind": self.kind.value if self.kind else None,
            "message": self.message,
            "error": self.error.to_dict() if self.error else None,
        }


class PackageFetcher(Protocol):
    """Anything that can download package bytes."""

    async def download(self, url: str) -> bytes:
        ...


_STAGE_BY_ERROR: list[tuple[type[MosaicError], LoadStage]] = [
    (DownloadError, LoadStage.DOWNLOAD),
    (PluginValidationError, LoadStage.VALIDATE),
    (SidecarUnavailable, LoadStage.EXECUTE),
    (ExecutionError, LoadStage.EXECUTE),
]


def sidecar_handle(
    name: str,
    client: SidecarClient,
    main_url: str = "",
    teardown: Callable[[], None] | None = None,
) -> ProviderHandle:
    """Handle whose operations proxy to a sidecar-hosted provider."""

    async def _search(query: str) -> list[SearchResult]:
        results = await client.search(name, query)
        return [
            r if r.api_name else r.model_copy(update={"api_name": name})
            for r in results
        ]

    async def _load(url: str) -> DetailResult | None:
        return await client.load_content(name, url)

    return ProviderHandle(
        name=name,
        main_url=main_url,
        kind=PackageKind.FOREIGN_BYTECODE_ARCHIVE,
        search_fn=_search,
        load_fn=_load,
        teardown=teardown,
    )


class PluginLoader:
    """Installs, removes and restores content provider plugins.

    Attributes:
        registry: Where active handles are registered.
        packages: Cache of raw package bytes.
        records: Persisted installed-plugin records.

    Example:
        loader = PluginLoader(registry, packages, records, catalog, sandbox)
        await loader.restore()
        result = await loader.install(descriptor, repository_url)
    """

    def __init__(
        self,
        registry: CapabilityRegistry,
        packages: PackageStore,
        records: InstalledPluginStore,
        fetcher: PackageFetcher,
        sandbox: ScriptSandbox | None = None,
        supervisor: SidecarSupervisor | None = None,
    ):
        self.registry = registry
        self.packages = packages
        self.records = records
        self._fetcher = fetcher
        self._sandbox = sandbox or ScriptSandbox()
        self._supervisor = supervisor
        self._locks: dict[str, asyncio.Lock] = {}
        self._unloads: dict[str, list[asyncio.Task]] = {}

    def _lock_for(self, internal_name: str) -> asyncio.Lock:
        lock = self._locks.get(internal_name)
        if lock is None:
            lock = self._locks[internal_name] = asyncio.Lock()
        return lock

    def _schedule_unload(self, internal_name: str) -> None:
        """Teardown hook of sidecar-backed handles."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"No running event loop; {internal_name} stays loaded in the sidecar")
            return
        task = loop.create_task(self._unload(internal_name))
        self._unloads.setdefault(internal_name, []).append(task)

    async def _unload(self, internal_name: str) -> None:
        supervisor = self._supervisor
        if supervisor is None or supervisor.state != SidecarState.HEALTHY:
            logger.debug(f"Sidecar not healthy; skipping unload of {internal_name}")
            return
        try:
            ack = await supervisor.client.unload_plugin(internal_name)
        except Exception as e:
            logger.warning(f"Sidecar unload of {internal_name} failed: {e}")
            return
        if ack.success:
            logger.info(f"Unloaded {internal_name} from the sidecar")
        else:
            logger.warning(f"Sidecar unload of {internal_name} failed: {ack.reason}")

    async def settle_unloads(self, internal_name: str | None = None) -> None:
        """Wait for pending sidecar unloads, for one name or all of them."""
        names = [internal_name] if internal_name is not None else list(self._unloads)
        for name in names:
            for task in self._unloads.pop(name, []):
                await task

    async def _release(self, internal_name: str) -> bool:
        """Unregister the active handle and wait until its resources are freed."""
        removed = self.registry.unregister(internal_name)
        await self.settle_unloads(internal_name)
        return removed

    async def install(
        self,
        descriptor: PluginDescriptor,
        repository_url: str | None = None,
    ) -> PluginResult:
        """Install and activate a plugin.

        Installs of the same internal name are serialized; different names
        proceed concurrently.

        Args:
            descriptor: Catalog entry to install.
            repository_url: Origin catalog; defaults to the descriptor's.

        Returns:
            PluginResult; on failure ``error`` names the failing stage.
        """
        name = descriptor.internal_name
        repo = repository_url or descriptor.repository_url or ""

        async with self._lock_for(name):
            existing = self.records.get(name, repo)
            if (
                existing is not None
                and existing.enabled
                and existing.version == descriptor.version
                and name in self.registry
            ):
                logger.debug(f"Plugin already loaded: {name} v{descriptor.version}")
                return PluginResult.ok(name, "Plugin already loaded", kind=existing.kind)

            logger.info(f"Installing plugin: {name} v{descriptor.version} from {repo or '<direct>'}")
            stage = LoadStage.DOWNLOAD
            try:
                data = None
                if existing is not None and existing.version == descriptor.version:
                    data = self.packages.read(name, repo)
                    if data is not None:
                        logger.debug(f"Using cached package for {name}")
                if data is None:
                    data = await self._fetcher.download(descriptor.url)

                stage = LoadStage.CLASSIFY
                package = classify_package(data, name)
                path = self.packages.save(name, repo, data)

                # The sidecar keys plugins by name, so a previous handle is
                # released before a foreign load and after a scripted one.
                stage = LoadStage.EXECUTE
                if package.kind == PackageKind.SCRIPTED_SOURCE:
                    handle = await self._activate_scripted(name, package)
                    await self._release(name)
                else:
                    await self._release(name)
                    handle = await self._activate_foreign(name, repo, package, path)

                stage = LoadStage.REGISTER
                self.registry.register(handle)
                self.records.activate(InstalledPluginRecord(
                    internal_name=name,
                    url=descriptor.url,
                    version=descriptor.version,
                    repository_url=repo,
                    enabled=True,
                    kind=package.kind,
                ))
            except MosaicError as e:
                stage = next(
                    (s for err, s in _STAGE_BY_ERROR if isinstance(e, err)),
                    stage,
                )
                logger.error(f"Failed to install plugin {name} ({stage.value}): {e.message}")
                return PluginResult.failed(name, stage, e.message, e.details)
            except Exception as e:
                logger.error(f"Failed to install plugin {name} ({stage.value}): {e}")
                logger.debug(traceback.format_exc())
                return PluginResult.failed(
                    name, stage, f"{type(e).__name__}: {e}"
                )

            logger.info(f"Installed plugin: {name} ({package.kind.value})")
            return PluginResult.ok(name, "Plugin installed", kind=package.kind)

    async def _activate_scripted(self, name: str, package: PluginPackage) -> ProviderHandle:
        module = await self._sandbox.evaluate(package.source(), name)
        provider = resolve_export(module, name)
        return adapt_provider(name, provider, kind=PackageKind.SCRIPTED_SOURCE)

    async def _activate_foreign(
        self,
        name: str,
        repo: str,
        package: PluginPackage,
        path: Path,
    ) -> ProviderHandle:
        read_archive(package)
        if self._supervisor is None:
            raise SidecarUnavailable("no sidecar runtime is configured")
        await self._supervisor.ensure_available()

        client = self._supervisor.client
        ack = await client.load_plugin(path, name, repo)
        if not ack.success:
            raise ExecutionError(
                f"Sidecar failed to load {name}: {ack.reason}",
                {"hint": SidecarUnavailable.HINT},
            )
        return sidecar_handle(name, client, teardown=lambda: self._schedule_unload(name))

    async def uninstall(self, internal_name: str) -> PluginResult:
        """Deactivate a plugin and mark its record disabled.

        The record and cached package are kept so ``enable`` can restore it
        without downloading. Calling this twice is harmless.
        """
        async with self._lock_for(internal_name):
            handle = self.registry.lookup(internal_name)
            removed = await self._release(internal_name)
            try:
                record = self.records.get(internal_name)
                kind = handle.kind if handle else (record.kind if record else None)
                known = self.records.set_enabled(internal_name, False)
            except Exception as e:
                logger.error(f"Failed to uninstall plugin {internal_name}: {e}")
                return PluginResult.failed(
                    internal_name, LoadStage.REGISTER, f"{type(e).__name__}: {e}"
                )

            if removed or known:
                logger.info(f"Uninstalled plugin: {internal_name}")
                return PluginResult.ok(internal_name, "Plugin uninstalled", kind=kind)
            return PluginResult.ok(internal_name, "Plugin is not installed", kind=kind)

    async def reinstall(
        self,
        descriptor: PluginDescriptor,
        repository_url: str | None = None,
    ) -> PluginResult:
        """Uninstall, drop the cached package and install again from source."""
        repo = repository_url or descriptor.repository_url or ""
        await self.uninstall(descriptor.internal_name)
        self.packages.delete(descriptor.internal_name, repo)
        return await self.install(descriptor, repo)

    def descriptor_for(
        self,
        internal_name: str,
        repository_url: str | None = None,
    ) -> PluginDescriptor | None:
        """Rebuild a descriptor from an installed record."""
        record = self.records.get(internal_name, repository_url)
        if record is None:
            return None
        return PluginDescriptor(
            name=record.internal_name,
            internal_name=record.internal_name,
            url=record.url,
            version=record.version,
            repository_url=record.repository_url,
            kind_hint=record.kind,
        )

    async def enable(self, internal_name: str, repository_url: str | None = None) -> PluginResult:
        """Re-activate an installed plugin from its record and cached package."""
        descriptor = self.descriptor_for(internal_name, repository_url)
        if descriptor is None:
            return PluginResult.failed(
                internal_name,
                LoadStage.VALIDATE,
                f"Plugin {internal_name} is not installed",
            )
        return await self.install(descriptor, descriptor.repository_url)

    async def restore(self) -> list[PluginResult]:
        """Activate every enabled record. Failures are reported, not raised."""
        enabled = [r for r in self.records.all() if r.enabled]
        if not enabled:
            return []
        logger.info(f"Restoring {len(enabled)} installed plugin(s)")
        results = await asyncio.gather(
            *(self.enable(r.internal_name, r.repository_url) for r in enabled)
        )
        for result in results:
            if not result.success and result.error is not None:
                logger.warning(
                    f"Could not restore {result.plugin_name}: {result.error.message}"
                )
        return list(results)

    async def purge(self, internal_name: str, repository_url: str | None = None) -> PluginResult:
        """Uninstall and forget a plugin: record and cached package are deleted."""
        result = await self.uninstall(internal_name)
        if not result.success:
            return result
        async with self._lock_for(internal_name):
            removed = self.records.remove(internal_name, repository_url)
            for record in removed:
                self.packages.delete(record.internal_name, record.repository_url)
        logger.info(f"Purged plugin: {internal_name} ({len(removed)} record(s))")
        return PluginResult.ok(internal_name, "Plugin removed", kind=result.kind)

    def needs_update(self, descriptor: PluginDescriptor) -> bool:
        """True when an installed copy exists with a different version."""
        record = self.records.get(descriptor.internal_name, descriptor.repository_url)
        return record is not None and record.version != descriptor.version

    def installed(self) -> list[InstalledPluginRecord]:
        return self.records.all()

    def __repr__(self) -> str:
        return (
            f"<PluginLoader providers={len(self.registry)} "
            f"sidecar={'on' if self._supervisor else 'off'}>"
        )

"""
Provider SDK for Mosaic.

This module defines the contract a content provider implements and the
``ProviderHandle`` the registry stores for every active provider.

A provider is any object exposing two callables:

    search(query: str) -> list[SearchResult | dict]
    load(url: str) -> DetailResult | dict | None

Either may be a coroutine function. Optional attributes declare
capabilities (``has_quick_search``, ``has_chromecast_support``, ...).

Example - a scripted provider:
    class ExampleProvider:
        name = "Example"
        main_url = "https://example.org"
        has_quick_search = False

        async def search(self, query):
            return [{"name": query.title(), "url": f"{self.main_url}/{query}"}]

        async def load(self, url):
            return {"name": "Example", "url": url, "type": "Movie"}

    exports["default"] = ExampleProvider()

Callers above the loader only ever see ``ProviderHandle`` and never need to
know whether it is backed by in-process code or by the sidecar.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from mosaic.models import DetailResult, PackageKind, SearchResult, TvType
from mosaic.plugins.sandbox import run_interruptible

logger = logging.getLogger(__name__)


SearchFn = Callable[[str], Awaitable[list[SearchResult]]]
LoadFn = Callable[[str], Awaitable[DetailResult | None]]


@runtime_checkable
class ContentProvider(Protocol):
    """Structural interface every provider object satisfies."""

    def search(self, query: str) -> Any:
        """Return search hits for *query*."""
        ...

    def load(self, url: str) -> Any:
        """Return the detail for *url*, or None if unknown."""
        ...


@dataclass(frozen=True)
class ProviderCapabilities:
    """Capabilities a provider declares.

    Attributes:
        quick_search: Provider offers a cheaper search variant.
        chromecast: Streams can be cast.
        download: Streams can be downloaded.
        main_page: Provider exposes a browsable home page.
        supported_types: Content types served.
        lang: Primary language code.
    """

    quick_search: bool = False
    chromecast: bool = False
    download: bool = False
    main_page: bool = False
    supported_types: frozenset[TvType] = frozenset()
    lang: str = "en"

    @classmethod
    def from_object(cls, obj: Any) -> "ProviderCapabilities":
        """Read declared capabilities off a provider object."""
        types: set[TvType] = set()
        for raw in getattr(obj, "supported_types", None) or ():
            try:
                types.add(TvType(raw))
            except ValueError:
                logger.debug(f"Ignoring unknown content type {raw!r}")
        return cls(
            quick_search=bool(getattr(obj, "has_quick_search", False))
            and callable(getattr(obj, "quick_search", None)),
            chromecast=bool(getattr(obj, "has_chromecast_support", False)),
            download=bool(getattr(obj, "has_download_support", False)),
            main_page=bool(getattr(obj, "has_main_page", False)),
            supported_types=frozenset(types),
            lang=str(getattr(obj, "lang", "en") or "en"),
        )


@dataclass(eq=False)
class ProviderHandle:
    """The registry's unit of capability.

    Created by the plugin loader on a successful install and owned by the
    registry until removed. ``close()`` runs the teardown hook; the registry
    calls it exactly once when the handle is unregistered or replaced.

    Attributes:
        name: Unique registry key (the plugin's internal name).
        main_url: Base origin URL of the provider.
        kind: Substrate backing the handle.
        capabilities: Declared capability set.
        display_name: Name the provider reports for itself.
    """

    name: str
    main_url: str
    kind: PackageKind
    search_fn: SearchFn
    load_fn: LoadFn
    capabilities: ProviderCapabilities = field(default_factory=ProviderCapabilities)
    quick_search_fn: SearchFn | None = None
    teardown: Callable[[], None] | None = None
    display_name: str | None = None
    closed: bool = field(default=False, init=False)

    async def search(self, query: str) -> list[SearchResult]:
        return await self.search_fn(query)

    async def quick_search(self, query: str) -> list[SearchResult]:
        if self.capabilities.quick_search and self.quick_search_fn is not None:
            return await self.quick_search_fn(query)
        return await self.search_fn(query)

    async def load(self, url: str) -> DetailResult | None:
        return await self.load_fn(url)

    def close(self) -> None:
        """Run the teardown hook. Subsequent calls are no-ops."""
        if self.closed:
            return
        self.closed = True
        if self.teardown is not None:
            self.teardown()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "display_name": self.display_name or self.name,
            "main_url": self.main_url,
            "kind": self.kind.value,
            "capabilities": {
                "quick_search": self.capabilities.quick_search,
                "chromecast": self.capabilities.chromecast,
                "download": self.capabilities.download,
                "main_page": self.capabilities.main_page,
                "supported_types": sorted(t.value for t in self.capabilities.supported_types),
                "lang": self.capabilities.lang,
            },
        }

    def __repr__(self) -> str:
        return f"<ProviderHandle {self.name} kind={self.kind.value}>"


async def call_provider(fn: Callable[..., Any], *args: Any) -> Any:
    """Invoke a provider callable, sync or async.

    Sync callables run in a worker thread so they never block the loop.
    Cancelling the caller (e.g. a ``wait_for`` timeout) also stops the
    worker at its next traced line.
    """
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)
    cancel = threading.Event()
    try:
        result = await asyncio.to_thread(run_interruptible, fn, *args, cancel=cancel)
    except asyncio.CancelledError:
        cancel.set()
        raise
    if inspect.isawaitable(result):
        result = await result
    return result


def coerce_search_results(raw: Any, api_name: str) -> list[SearchResult]:
    """Validate a provider's search output into ``SearchResult`` models."""
    if raw is None:
        return []
    if isinstance(raw, (str, bytes, dict)) or not hasattr(raw, "__iter__"):
        raise TypeError(f"search() must return a list, got {type(raw).__name__}")
    results: list[SearchResult] = []
    for item in raw:
        result = item if isinstance(item, SearchResult) else SearchResult.model_validate(item)
        if not result.api_name:
            result = result.model_copy(update={"api_name": api_name})
        results.append(result)
    return results


def coerce_detail(raw: Any, api_name: str) -> DetailResult | None:
    """Validate a provider's load output into a ``DetailResult``."""
    if raw is None:
        return None
    detail = raw if isinstance(raw, DetailResult) else DetailResult.model_validate(raw)
    if not detail.api_name:
        detail = detail.model_copy(update={"api_name": api_name})
    return detail


def adapt_provider(
    name: str,
    provider: Any,
    main_url: str = "",
    kind: PackageKind = PackageKind.SCRIPTED_SOURCE,
) -> ProviderHandle:
    """Wrap an in-process provider object in a ``ProviderHandle``.

    Args:
        name: Registry key for the handle.
        provider: Object implementing ``ContentProvider``.
        main_url: Fallback origin URL if the provider declares none.
        kind: Substrate tag recorded on the handle.

    Returns:
        A handle whose operations validate the provider's output.
    """
    capabilities = ProviderCapabilities.from_object(provider)
    display_name = getattr(provider, "name", None)

    async def _search(query: str) -> list[SearchResult]:
        raw = await call_provider(provider.search, query)
        return coerce_search_results(raw, display_name or name)

    async def _quick_search(query: str) -> list[SearchResult]:
        raw = await call_provider(provider.quick_search, query)
        return coerce_search_results(raw, display_name or name)

    async def _load(url: str) -> DetailResult | None:
        raw = await call_provider(provider.load, url)
        return coerce_detail(raw, display_name or name)

    def _teardown() -> None:
        shutdown = getattr(provider, "shutdown", None)
        if callable(shutdown):
            result = shutdown()
            if inspect.isawaitable(result):
                # Sync teardown path; close the coroutine instead of leaking it.
                result.close()
                logger.warning(f"Provider {name} has an async shutdown(); skipped")

    return ProviderHandle(
        name=name,
        main_url=str(getattr(provider, "main_url", "") or main_url),
        kind=kind,
        search_fn=_search,
        load_fn=_load,
        capabilities=capabilities,
        quick_search_fn=_quick_search if capabilities.quick_search else None,
        teardown=_teardown,
        display_name=str(display_name) if display_name else None,
    )

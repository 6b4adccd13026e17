"""Tests for mosaic.plugins registry and provider SDK.

Covers:
- CapabilityRegistry bookkeeping (register, replace, unregister, snapshots)
- Teardown and event semantics
- ProviderCapabilities / adapt_provider / ProviderHandle behavior
"""

from __future__ import annotations

import asyncio
import threading

import pytest

from mosaic.models import DetailResult, PackageKind, SearchResult, TvType
from mosaic.plugins.registry import CapabilityRegistry, PluginEvent
from mosaic.plugins.sdk import (
    ContentProvider,
    ProviderCapabilities,
    adapt_provider,
    call_provider,
    coerce_search_results,
)

from tests.conftest import make_handle


# ===========================================================================
# CapabilityRegistry Tests
# ===========================================================================

class TestCapabilityRegistry:
    """Tests for register / lookup / unregister."""

    def test_register_and_lookup(self):
        registry = CapabilityRegistry()
        handle = make_handle("alpha")
        registry.register(handle)

        assert registry.lookup("alpha") is handle
        assert "alpha" in registry
        assert len(registry) == 1

    def test_lookup_unknown_returns_none(self):
        assert CapabilityRegistry().lookup("ghost") is None

    def test_replace_same_name_tears_down_old_once(self):
        closed: list[str] = []
        registry = CapabilityRegistry()
        first = make_handle("alpha", teardown=lambda: closed.append("first"))
        second = make_handle("alpha", teardown=lambda: closed.append("second"))

        registry.register(first)
        registry.register(second)

        assert registry.lookup("alpha") is second
        assert closed == ["first"]
        assert len(registry) == 1
        assert registry.get_statistics()["replacements"] == 1

    def test_reregister_same_handle_is_noop(self):
        closed: list[str] = []
        registry = CapabilityRegistry()
        handle = make_handle("alpha", teardown=lambda: closed.append("x"))

        registry.register(handle)
        registry.register(handle)

        assert registry.lookup("alpha") is handle
        assert closed == []

    def test_unregister_runs_teardown(self):
        closed: list[str] = []
        registry = CapabilityRegistry()
        registry.register(make_handle("alpha", teardown=lambda: closed.append("alpha")))

        assert registry.unregister("alpha") is True
        assert registry.lookup("alpha") is None
        assert closed == ["alpha"]

    def test_unregister_unknown_is_noop(self):
        registry = CapabilityRegistry()
        assert registry.unregister("ghost") is False

    def test_unregister_twice(self):
        closed: list[str] = []
        registry = CapabilityRegistry()
        registry.register(make_handle("alpha", teardown=lambda: closed.append("alpha")))

        assert registry.unregister("alpha") is True
        assert registry.unregister("alpha") is False
        assert closed == ["alpha"]

    def test_stale_handle_does_not_evict_replacement(self):
        registry = CapabilityRegistry()
        old = make_handle("alpha")
        new = make_handle("alpha")
        registry.register(old)
        registry.register(new)

        assert registry.unregister(old) is False
        assert registry.lookup("alpha") is new

    def test_teardown_error_does_not_break_unregister(self):
        def boom():
            raise RuntimeError("teardown failed")

        registry = CapabilityRegistry()
        registry.register(make_handle("alpha", teardown=boom))

        assert registry.unregister("alpha") is True
        assert "alpha" not in registry

    def test_list_all_is_snapshot_in_registration_order(self):
        registry = CapabilityRegistry()
        for name in ("a", "b", "c"):
            registry.register(make_handle(name))

        snapshot = registry.list_all()
        registry.unregister("b")

        assert [h.name for h in snapshot] == ["a", "b", "c"]
        assert registry.names() == ["a", "c"]

    def test_clear_tears_down_everything(self):
        closed: list[str] = []
        registry = CapabilityRegistry()
        for name in ("a", "b"):
            registry.register(make_handle(name, teardown=lambda n=name: closed.append(n)))

        registry.clear()

        assert len(registry) == 0
        assert sorted(closed) == ["a", "b"]

    def test_statistics_by_kind(self):
        registry = CapabilityRegistry()
        registry.register(make_handle("a"))
        registry.register(make_handle("b", kind=PackageKind.FOREIGN_BYTECODE_ARCHIVE))

        stats = registry.get_statistics()
        assert stats["total_providers"] == 2
        assert stats["by_kind"] == {"scripted_source": 1, "foreign_bytecode_archive": 1}
        assert stats["quick_search_capable"] == 0


# ===========================================================================
# Registry Event Tests
# ===========================================================================

class TestRegistryEvents:
    """Tests for lifecycle event notifications."""

    def test_events_emitted(self):
        events: list[PluginEvent] = []
        registry = CapabilityRegistry()
        registry.add_event_listener(events.append)

        registry.register(make_handle("alpha"))
        registry.register(make_handle("alpha"))
        registry.unregister("alpha")

        assert [e.event_type for e in events] == [
            "registered", "replaced", "registered", "unregistered",
        ]

    def test_listener_error_is_contained(self):
        def bad_listener(event):
            raise ValueError("listener broke")

        registry = CapabilityRegistry()
        registry.add_event_listener(bad_listener)
        registry.register(make_handle("alpha"))

        assert "alpha" in registry

    def test_remove_listener(self):
        events: list[PluginEvent] = []
        registry = CapabilityRegistry()
        registry.add_event_listener(events.append)
        registry.remove_event_listener(events.append)

        registry.register(make_handle("alpha"))

        assert events == []


# ===========================================================================
# Provider SDK Tests
# ===========================================================================

class SyncProvider:
    name = "Sync Provider"
    main_url = "https://sync.example"
    supported_types = ["Movie", "NotAType"]
    lang = "fr"

    def __init__(self):
        self.shutdowns = 0

    def search(self, query):
        return [{"name": query.upper(), "url": f"{self.main_url}/{query}"}]

    def load(self, url):
        return {"name": "Detail", "url": url, "type": "Movie"}

    def shutdown(self):
        self.shutdowns += 1


class QuickProvider:
    has_quick_search = True

    async def search(self, query):
        return [{"name": "full", "url": "https://q/full"}]

    async def quick_search(self, query):
        return [{"name": "quick", "url": "https://q/quick"}]

    async def load(self, url):
        return None


class TestProviderCapabilities:
    """Tests for capability discovery."""

    def test_defaults(self):
        caps = ProviderCapabilities.from_object(object())
        assert caps.quick_search is False
        assert caps.lang == "en"
        assert caps.supported_types == frozenset()

    def test_reads_declared_values(self):
        caps = ProviderCapabilities.from_object(SyncProvider())
        assert caps.supported_types == frozenset({TvType.MOVIE})
        assert caps.lang == "fr"

    def test_quick_search_requires_callable(self):
        class Declares:
            has_quick_search = True

        assert ProviderCapabilities.from_object(Declares()).quick_search is False
        assert ProviderCapabilities.from_object(QuickProvider()).quick_search is True

    def test_protocol_check(self):
        assert isinstance(SyncProvider(), ContentProvider)
        assert not isinstance(object(), ContentProvider)


class TestAdaptProvider:
    """Tests for wrapping provider objects into handles."""

    @pytest.mark.asyncio
    async def test_sync_provider_is_wrapped(self):
        handle = adapt_provider("sync", SyncProvider())

        results = await handle.search("dune")
        assert results == [
            SearchResult(name="DUNE", url="https://sync.example/dune", api_name="Sync Provider"),
        ]
        detail = await handle.load("https://sync.example/dune")
        assert isinstance(detail, DetailResult)
        assert detail.type is TvType.MOVIE
        assert handle.main_url == "https://sync.example"
        assert handle.display_name == "Sync Provider"

    @pytest.mark.asyncio
    async def test_quick_search_used_when_declared(self):
        handle = adapt_provider("quick", QuickProvider())
        assert [r.name for r in await handle.quick_search("x")] == ["quick"]
        assert [r.name for r in await handle.search("x")] == ["full"]

    @pytest.mark.asyncio
    async def test_quick_search_falls_back_to_search(self):
        handle = adapt_provider("sync", SyncProvider())
        assert [r.name for r in await handle.quick_search("abc")] == ["ABC"]

    @pytest.mark.asyncio
    async def test_load_none_passes_through(self):
        handle = adapt_provider("quick", QuickProvider())
        assert await handle.load("https://q/anything") is None

    def test_close_runs_shutdown_once(self):
        provider = SyncProvider()
        handle = adapt_provider("sync", provider)

        handle.close()
        handle.close()

        assert provider.shutdowns == 1
        assert handle.closed is True

    def test_to_dict(self):
        data = adapt_provider("sync", SyncProvider()).to_dict()
        assert data["name"] == "sync"
        assert data["kind"] == "scripted_source"
        assert data["capabilities"]["supported_types"] == ["Movie"]


class TestCoercion:
    """Tests for provider output validation."""

    def test_none_is_empty(self):
        assert coerce_search_results(None, "p") == []

    def test_dict_rejected(self):
        with pytest.raises(TypeError, match="must return a list"):
            coerce_search_results({"name": "x", "url": "y"}, "p")

    def test_api_name_filled(self):
        results = coerce_search_results([{"name": "x", "url": "y"}], "p")
        assert results[0].api_name == "p"

    def test_explicit_api_name_kept(self):
        results = coerce_search_results([{"name": "x", "url": "y", "apiName": "other"}], "p")
        assert results[0].api_name == "other"

    @pytest.mark.asyncio
    async def test_call_provider_sync_and_async(self):
        async def coro(x):
            return x * 2

        assert await call_provider(coro, 2) == 4
        assert await call_provider(lambda x: x + 1, 2) == 3

    @pytest.mark.asyncio
    async def test_call_provider_stops_sync_call_on_timeout(self):
        finished = threading.Event()

        def spin(query):
            try:
                while True:
                    pass
            finally:
                finished.set()

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(call_provider(spin, "q"), timeout=0.05)

        assert await asyncio.to_thread(finished.wait, 2.0) is True

"""Shared fixtures for the Mosaic test-suite."""

from __future__ import annotations

import asyncio
import io
import json
import zipfile
from typing import Any

import httpx
import pytest
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from mosaic.config import Settings
from mosaic.errors import DownloadError
from mosaic.models import PackageKind, PluginDescriptor, SearchResult, DetailResult
from mosaic.plugins.sdk import ProviderHandle


SIDECAR_URL = "http://127.0.0.1:8765"

EXAMPLE_SOURCE = '''
class ExampleProvider:
    name = "Example"
    main_url = "https://example.org"

    async def search(self, query):
        return [
            {"name": f"{query} one", "url": "https://example.org/1"},
            {"name": f"{query} two", "url": "https://example.org/2", "type": "Movie"},
        ]

    async def load(self, url):
        if url.endswith("/missing"):
            return None
        return {"name": "Example Title", "url": url, "type": "Movie", "genres": ["Drama"]}


exports["default"] = ExampleProvider()
'''


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def build_archive(
    manifest: dict[str, Any] | None = None,
    bytecode: bytes = b"dex\n035\x00\x00\x00\x00",
) -> bytes:
    """A zip package as published for the sidecar path."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        if manifest is not None:
            zf.writestr("manifest.json", json.dumps(manifest))
        zf.writestr("classes.dex", bytecode)
    return buf.getvalue()


def make_descriptor(name: str = "ExampleProvider", version: int = 1, url: str | None = None,
                    repository_url: str = "https://repo.example/repo.json") -> PluginDescriptor:
    return PluginDescriptor(
        name=name,
        internal_name=name,
        url=url or f"https://repo.example/{name}.pkg",
        version=version,
        repository_url=repository_url,
    )


def make_handle(
    name: str,
    results: list[str] | None = None,
    error: Exception | None = None,
    delay: float = 0.0,
    detail: DetailResult | None = None,
    teardown=None,
    kind: PackageKind = PackageKind.SCRIPTED_SOURCE,
) -> ProviderHandle:
    """A ProviderHandle backed by canned results."""

    async def _search(query: str) -> list[SearchResult]:
        if delay:
            await asyncio.sleep(delay)
        if error is not None:
            raise error
        return [SearchResult(name=r, url=f"https://{name}/{r}", api_name=name) for r in results or []]

    async def _load(url: str) -> DetailResult | None:
        if delay:
            await asyncio.sleep(delay)
        if error is not None:
            raise error
        return detail

    return ProviderHandle(
        name=name,
        main_url=f"https://{name}",
        kind=kind,
        search_fn=_search,
        load_fn=_load,
        teardown=teardown,
    )


class FakeFetcher:
    """In-memory package source that records every download."""

    def __init__(self, packages: dict[str, bytes] | None = None, delay: float = 0.0):
        self.packages = dict(packages or {})
        self.calls: list[str] = []
        self.delay = delay

    async def download(self, url: str) -> bytes:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if url not in self.packages:
            raise DownloadError(url, "HTTP 404", 404)
        return self.packages[url]


def build_fake_sidecar() -> FastAPI:
    """FastAPI stand-in for the sidecar control plane."""
    app = FastAPI()
    loaded: dict[str, str] = {}
    app.state.loaded = loaded

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok", "activePluginCount": len(loaded)}

    @app.post("/plugin/load")
    async def load_plugin(payload: dict) -> dict:
        if payload["pluginId"] == "Broken":
            return {"success": False, "error": "plugin class not found"}
        loaded[payload["pluginId"]] = payload["pluginPath"]
        return {"success": True, "message": "loaded"}

    @app.post("/plugin/search")
    async def search(payload: dict):
        plugin_id = payload["pluginId"]
        if plugin_id not in loaded:
            return JSONResponse(status_code=404, content={"error": "not loaded"})
        return [
            {"name": f"{payload['query']} via {plugin_id}", "url": f"https://{plugin_id}/1", "type": "TvSeries"},
        ]

    @app.post("/plugin/load-content")
    async def load_content(payload: dict):
        if payload["url"].endswith("/missing"):
            return JSONResponse(status_code=404, content={"error": "not found"})
        return {
            "name": "Foreign Title",
            "url": payload["url"],
            "apiName": payload["pluginId"],
            "type": "TvSeries",
            "episodes": [{"data": payload["url"] + "/e1", "episode": 1, "season": 1}],
        }

    @app.delete("/plugin/{plugin_id}")
    async def unload(plugin_id: str) -> dict:
        if loaded.pop(plugin_id, None) is None:
            return {"success": False, "error": "not loaded"}
        return {"success": True}

    @app.get("/plugins")
    async def plugins() -> list:
        return list(loaded)

    return app


def refused_transport() -> httpx.MockTransport:
    """Transport whose every request fails to connect."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    return httpx.MockTransport(handler)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated to a temporary data directory."""
    return Settings(
        DATA_DIR=tmp_path / "data",
        SIDECAR_AUTOSTART=False,
        SIDECAR_BUNDLE_PATHS=[],
        SIDECAR_BUNDLE_DIR="no-such-dir",
        _env_file=None,
    )


@pytest.fixture
def fake_sidecar() -> FastAPI:
    return build_fake_sidecar()


@pytest.fixture
def sidecar_transport(fake_sidecar) -> httpx.ASGITransport:
    return httpx.ASGITransport(app=fake_sidecar)

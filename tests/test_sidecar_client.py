"""Tests for mosaic.sidecar.client against a fake control plane."""

from __future__ import annotations

import httpx
import pytest

from mosaic.sidecar.client import SidecarAck, SidecarClient, SidecarHealth

from tests.conftest import SIDECAR_URL, refused_transport


def _mock(handler) -> SidecarClient:
    return SidecarClient(SIDECAR_URL, transport=httpx.MockTransport(handler))


# ===========================================================================
# Payload Models
# ===========================================================================

class TestPayloads:
    """Tests for ack / health parsing."""

    def test_health_aliases(self):
        assert SidecarHealth.model_validate({"status": "ok", "activePluginCount": 3}).active_plugin_count == 3
        assert SidecarHealth.model_validate({"status": "ok", "plugins": 2}).active_plugin_count == 2
        assert SidecarHealth.model_validate({"status": "ok"}).active_plugin_count == 0

    def test_health_ok(self):
        assert SidecarHealth(status="Healthy").ok is True
        assert SidecarHealth(status="degraded").ok is False

    def test_ack_reason(self):
        assert SidecarAck(success=False, error="boom").reason == "boom"
        assert SidecarAck(success=True).reason == "ok"
        assert SidecarAck(success=False).reason == "unknown error"


# ===========================================================================
# Client Calls
# ===========================================================================

class TestSidecarClient:
    """Tests for each control-plane call."""

    @pytest.mark.asyncio
    async def test_health(self, sidecar_transport):
        async with SidecarClient(SIDECAR_URL, transport=sidecar_transport) as client:
            health = await client.health()
        assert health.ok is True
        assert health.active_plugin_count == 0

    @pytest.mark.asyncio
    async def test_health_raises_when_unreachable(self):
        client = SidecarClient(SIDECAR_URL, transport=refused_transport())
        with pytest.raises(httpx.ConnectError):
            await client.health()
        await client.aclose()

    @pytest.mark.asyncio
    async def test_load_search_unload_cycle(self, fake_sidecar, sidecar_transport):
        client = SidecarClient(SIDECAR_URL, transport=sidecar_transport)

        ack = await client.load_plugin("/tmp/p.pkg", "Foreign", "https://repo")
        assert ack.success is True
        assert fake_sidecar.state.loaded == {"Foreign": "/tmp/p.pkg"}
        assert await client.list_plugins() == ["Foreign"]
        assert (await client.health()).active_plugin_count == 1

        results = await client.search("Foreign", "dune")
        assert [r.name for r in results] == ["dune via Foreign"]
        assert results[0].type.value == "TvSeries"

        assert (await client.unload_plugin("Foreign")).success is True
        assert await client.list_plugins() == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_load_failure_ack(self, sidecar_transport):
        client = SidecarClient(SIDECAR_URL, transport=sidecar_transport)
        ack = await client.load_plugin("/tmp/p.pkg", "Broken", "https://repo")
        assert ack.success is False
        assert ack.reason == "plugin class not found"
        await client.aclose()

    @pytest.mark.asyncio
    async def test_load_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = _mock(handler)
        ack = await client.load_plugin("/tmp/p.pkg", "Slow", "https://repo")
        assert ack.success is False
        assert "did not respond within 30.0s" in ack.reason
        await client.aclose()

    @pytest.mark.asyncio
    async def test_non_json_error_ack(self):
        client = _mock(lambda request: httpx.Response(500, text="stack trace"))
        ack = await client.unload_plugin("x")
        assert ack.success is False
        assert ack.reason.startswith("HTTP 500")
        await client.aclose()

    @pytest.mark.asyncio
    async def test_search_failure_is_empty(self, sidecar_transport):
        client = SidecarClient(SIDECAR_URL, transport=sidecar_transport)
        assert await client.search("NotLoaded", "dune") == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_search_unreachable_is_empty(self):
        client = SidecarClient(SIDECAR_URL, transport=refused_transport())
        assert await client.search("Foreign", "dune") == []
        await client.aclose()

    @pytest.mark.asyncio
    async def test_load_content(self, sidecar_transport):
        client = SidecarClient(SIDECAR_URL, transport=sidecar_transport)
        detail = await client.load_content("Foreign", "https://f/show")
        assert detail.name == "Foreign Title"
        assert detail.api_name == "Foreign"
        assert detail.episodes[0].season == 1
        await client.aclose()

    @pytest.mark.asyncio
    async def test_load_content_404_is_none(self, sidecar_transport):
        client = SidecarClient(SIDECAR_URL, transport=sidecar_transport)
        assert await client.load_content("Foreign", "https://f/missing") is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_load_content_malformed_is_none(self):
        client = _mock(lambda request: httpx.Response(200, json={"unexpected": True}))
        assert await client.load_content("Foreign", "https://f/x") is None
        await client.aclose()

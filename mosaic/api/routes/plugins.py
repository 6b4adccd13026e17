"""Plugin install / uninstall / enable endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from mosaic.api.deps import get_runtime
from mosaic.models import PluginDescriptor
from mosaic.plugins.loader import PluginResult
from mosaic.runtime import MosaicRuntime

router = APIRouter(prefix="/api/plugins", tags=["plugins"])


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class InstallPayload(BaseModel):
    descriptor: PluginDescriptor
    repository_url: str | None = None


class ReinstallPayload(BaseModel):
    descriptor: PluginDescriptor | None = None
    repository_url: str | None = None


def _respond(result: PluginResult) -> JSONResponse:
    return JSONResponse(
        status_code=200 if result.success else 422,
        content=result.to_dict(),
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("")
async def list_plugins(runtime: MosaicRuntime = Depends(get_runtime)) -> dict:
    """Active providers and every installed record."""
    return {
        "active": [handle.to_dict() for handle in runtime.registry.list_all()],
        "installed": [r.model_dump(mode="json") for r in runtime.loader.installed()],
    }


@router.post("")
async def install_plugin(
    payload: InstallPayload,
    runtime: MosaicRuntime = Depends(get_runtime),
) -> JSONResponse:
    result = await runtime.loader.install(payload.descriptor, payload.repository_url)
    return _respond(result)


@router.delete("/{name}")
async def uninstall_plugin(
    name: str,
    purge: bool = Query(False, description="Also delete the record and cached package"),
    runtime: MosaicRuntime = Depends(get_runtime),
) -> JSONResponse:
    if purge:
        result = await runtime.loader.purge(name)
    else:
        result = await runtime.loader.uninstall(name)
    return _respond(result)


@router.post("/{name}/reinstall")
async def reinstall_plugin(
    name: str,
    payload: ReinstallPayload | None = None,
    runtime: MosaicRuntime = Depends(get_runtime),
) -> JSONResponse:
    """Re-download and reload; uses the installed record when no descriptor is sent."""
    payload = payload or ReinstallPayload()
    descriptor = payload.descriptor or runtime.loader.descriptor_for(name, payload.repository_url)
    if descriptor is None:
        raise HTTPException(status_code=404, detail=f"Plugin {name} is not installed")
    if descriptor.internal_name != name:
        raise HTTPException(status_code=400, detail="Descriptor does not match plugin name")
    result = await runtime.loader.reinstall(descriptor, payload.repository_url)
    return _respond(result)


@router.post("/{name}/enable")
async def enable_plugin(
    name: str,
    repository_url: str | None = Query(None),
    runtime: MosaicRuntime = Depends(get_runtime),
) -> JSONResponse:
    result = await runtime.loader.enable(name, repository_url)
    return _respond(result)

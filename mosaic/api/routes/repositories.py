"""Repository management endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from mosaic.api.deps import get_runtime
from mosaic.models import RepositoryData
from mosaic.runtime import MosaicRuntime

router = APIRouter(prefix="/api/repositories", tags=["repositories"])


class AddRepositoryPayload(BaseModel):
    url: str
    name: str | None = None


@router.get("")
async def list_repositories(runtime: MosaicRuntime = Depends(get_runtime)) -> dict:
    return {"repositories": [r.model_dump(mode="json", by_alias=True) for r in runtime.repositories.list()]}


@router.post("")
async def add_repository(
    payload: AddRepositoryPayload,
    runtime: MosaicRuntime = Depends(get_runtime),
) -> dict:
    """Validate the manifest by fetching it, then store the repository."""
    manifest = await runtime.catalog.fetch_repository(payload.url)
    repo = RepositoryData(
        name=payload.name or manifest.name,
        url=payload.url,
        icon_url=manifest.icon_url,
    )
    added = runtime.repositories.add(repo)
    return {"repository": repo.model_dump(mode="json", by_alias=True), "added": added}


@router.delete("")
async def remove_repository(
    url: str = Query(...),
    runtime: MosaicRuntime = Depends(get_runtime),
) -> dict:
    if not runtime.repositories.remove(url):
        raise HTTPException(status_code=404, detail=f"Repository not found: {url}")
    return {"url": url, "removed": True}


@router.get("/plugins")
async def repository_plugins(
    url: str = Query(...),
    runtime: MosaicRuntime = Depends(get_runtime),
) -> dict:
    """Plugins a repository offers, annotated with local install state."""
    descriptors = await runtime.catalog.get_repo_plugins(url)
    installed = {r.key: r for r in runtime.loader.installed()}
    plugins = []
    for descriptor in descriptors:
        record = installed.get((descriptor.internal_name, url))
        plugins.append({
            **descriptor.model_dump(mode="json", by_alias=True),
            "installed": record is not None and record.enabled,
            "needsUpdate": runtime.loader.needs_update(descriptor),
        })
    return {"url": url, "plugins": plugins}

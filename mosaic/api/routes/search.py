"""Search and detail endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from mosaic.api.deps import get_runtime
from mosaic.runtime import MosaicRuntime

router = APIRouter(prefix="/api", tags=["search"])


@router.get("/search")
async def search(
    q: str = Query(..., description="Search query"),
    providers: list[str] | None = Query(None, description="Restrict to these providers"),
    quick: bool = Query(False),
    runtime: MosaicRuntime = Depends(get_runtime),
) -> dict:
    """Fan the query out to every active provider and merge the results."""
    outcome = await runtime.orchestrator.search(q, active_providers=providers, quick=quick)
    return outcome.to_dict()


@router.get("/load")
async def load(
    url: str = Query(...),
    provider: str = Query(...),
    runtime: MosaicRuntime = Depends(get_runtime),
) -> dict:
    """Load full detail for one item from one provider."""
    detail = await runtime.orchestrator.load(url, provider)
    return detail.to_wire()

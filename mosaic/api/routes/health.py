"""Health check endpoint."""

from fastapi import APIRouter, Depends

from mosaic import __version__
from mosaic.api.deps import get_runtime
from mosaic.runtime import MosaicRuntime

router = APIRouter(tags=["health"])


@router.get("/api/health")
async def health_check(runtime: MosaicRuntime = Depends(get_runtime)) -> dict:
    return {
        "status": "ok",
        "version": __version__,
        "providers": len(runtime.registry),
        "sidecar": runtime.supervisor.state.value,
    }

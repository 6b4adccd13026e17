"""Resume position endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from mosaic.api.deps import get_runtime
from mosaic.models import ResumeEntry
from mosaic.runtime import MosaicRuntime

router = APIRouter(prefix="/api/resume", tags=["resume"])


class ResumePayload(BaseModel):
    position: float = Field(..., ge=0)
    duration: float = 0.0
    label: str | None = None


def _entry(runtime: MosaicRuntime, entry: ResumeEntry) -> dict:
    return {**entry.model_dump(mode="json"), "resumable": runtime.resume.is_resumable(entry)}


@router.get("")
async def list_resume(runtime: MosaicRuntime = Depends(get_runtime)) -> dict:
    return {"entries": [_entry(runtime, e) for e in runtime.resume.all()]}


@router.get("/{content_id:path}")
async def get_resume(content_id: str, runtime: MosaicRuntime = Depends(get_runtime)) -> dict:
    entry = runtime.resume.get(content_id)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"No resume position for {content_id}")
    return _entry(runtime, entry)


@router.put("/{content_id:path}")
async def put_resume(
    content_id: str,
    payload: ResumePayload,
    runtime: MosaicRuntime = Depends(get_runtime),
) -> dict:
    entry = runtime.resume.upsert(content_id, payload.position, payload.duration, payload.label)
    return _entry(runtime, entry)


@router.delete("/{content_id:path}")
async def delete_resume(content_id: str, runtime: MosaicRuntime = Depends(get_runtime)) -> dict:
    return {"content_id": content_id, "cleared": runtime.resume.clear(content_id)}

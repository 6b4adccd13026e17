"""Persisted records: installed plugins and resume positions."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from .catalog import PackageKind


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InstalledPluginRecord(BaseModel):
    """A plugin that has been installed at least once.

    Survives process restarts; the in-memory ``ProviderHandle`` does not.
    Keyed by ``(internal_name, repository_url)``.
    """

    internal_name: str
    url: str
    version: int
    repository_url: str
    enabled: bool = True
    kind: PackageKind | None = None
    installed_at: datetime = Field(default_factory=_utcnow)

    @property
    def key(self) -> tuple[str, str]:
        return (self.internal_name, self.repository_url)


class ResumeEntry(BaseModel):
    """Last known playback position for one content identifier."""

    content_id: str
    position: float
    duration: float
    last_updated: datetime = Field(default_factory=_utcnow)
    label: str | None = None

    @property
    def progress(self) -> float | None:
        """Fraction watched, or None when the duration is unknown."""
        if self.duration <= 0:
            return None
        return self.position / self.duration

"""Persisted playback positions keyed by content id."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from mosaic.models import ResumeEntry
from mosaic.persistence import read_json, write_json

logger = logging.getLogger(__name__)

MIN_POSITION = 10.0
MAX_PROGRESS = 0.9


def is_resumable(
    entry: ResumeEntry,
    min_position: float = MIN_POSITION,
    max_progress: float = MAX_PROGRESS,
) -> bool:
    """Whether playback should offer to resume from *entry*.

    Too early (under ``min_position`` seconds) or nearly finished (over
    ``max_progress`` of a known duration) is not worth resuming.
    """
    if entry.position < min_position:
        return False
    if entry.duration > 0 and entry.position / entry.duration > max_progress:
        return False
    return True


class ResumeStore:
    """JSON-backed map of content id to ``ResumeEntry``.

    No eviction; entries live until cleared. Each write is a locked
    read-modify-write followed by an atomic replace.
    """

    def __init__(
        self,
        path: Path,
        min_position: float = MIN_POSITION,
        max_progress: float = MAX_PROGRESS,
    ):
        self.path = Path(path)
        self.min_position = min_position
        self.max_progress = max_progress
        self._lock = threading.Lock()

    def _load(self) -> dict[str, ResumeEntry]:
        raw = read_json(self.path, {})
        entries: dict[str, ResumeEntry] = {}
        for content_id, item in (raw.items() if isinstance(raw, dict) else []):
            try:
                entries[content_id] = ResumeEntry.model_validate({**item, "content_id": content_id})
            except (ValidationError, TypeError) as e:
                logger.warning(f"Skipping malformed resume entry {content_id}: {e}")
        return entries

    def _save(self, entries: dict[str, ResumeEntry]) -> None:
        write_json(self.path, {
            content_id: entry.model_dump(mode="json", exclude={"content_id"})
            for content_id, entry in entries.items()
        })

    def upsert(
        self,
        content_id: str,
        position: float,
        duration: float,
        label: str | None = None,
    ) -> ResumeEntry:
        """Record the latest position for *content_id*."""
        with self._lock:
            entries = self._load()
            previous = entries.get(content_id)
            entry = ResumeEntry(
                content_id=content_id,
                position=max(0.0, position),
                duration=duration,
                last_updated=datetime.now(timezone.utc),
                label=label if label is not None else (previous.label if previous else None),
            )
            entries[content_id] = entry
            self._save(entries)
        logger.debug(f"Saved resume position {position:.1f}s for {content_id}")
        return entry

    def get(self, content_id: str) -> ResumeEntry | None:
        with self._lock:
            return self._load().get(content_id)

    def all(self) -> list[ResumeEntry]:
        """Every entry, most recently updated first."""
        with self._lock:
            entries = list(self._load().values())
        return sorted(entries, key=lambda e: e.last_updated, reverse=True)

    def clear(self, content_id: str) -> bool:
        with self._lock:
            entries = self._load()
            if content_id not in entries:
                return False
            del entries[content_id]
            self._save(entries)
        return True

    def clear_all(self) -> int:
        with self._lock:
            count = len(self._load())
            self._save({})
        logger.info(f"Cleared {count} resume position(s)")
        return count

    def is_resumable(self, entry: ResumeEntry | str) -> bool:
        """Check an entry (or the stored entry for a content id)."""
        if isinstance(entry, str):
            stored = self.get(entry)
            if stored is None:
                return False
            entry = stored
        return is_resumable(entry, self.min_position, self.max_progress)

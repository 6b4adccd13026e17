"""
On-disk storage for plugin packages and installed-plugin records.

Packages live under the plugins directory at
``<plugins dir>/<slug(origin)>/<slug(id)>.pkg``. Installed records are one
JSON document keyed by ``(internal_name, repository_url)``.
"""

from __future__ import annotations

import hashlib
import logging
import re
import threading
from pathlib import Path

from pydantic import ValidationError

from mosaic.models import InstalledPluginRecord
from mosaic.persistence import read_json, write_json

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9]")


def slug(value: str) -> str:
    """Filesystem-safe, collision-resistant name for *value*."""
    digest = hashlib.sha256(value.encode("utf-8")).hexdigest()[:12]
    return f"{_UNSAFE.sub('_', value)[:64]}_{digest}"


class PackageStore:
    """Raw package bytes cached per (plugin id, origin URL)."""

    SUFFIX = ".pkg"

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, plugin_id: str, origin_url: str) -> Path:
        return self.root / slug(origin_url) / f"{slug(plugin_id)}{self.SUFFIX}"

    def exists(self, plugin_id: str, origin_url: str) -> bool:
        return self.path_for(plugin_id, origin_url).is_file()

    def save(self, plugin_id: str, origin_url: str, data: bytes) -> Path:
        """Write package bytes atomically and return their path."""
        path = self.path_for(plugin_id, origin_url)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)
        logger.debug(f"Stored package {plugin_id} ({len(data)} bytes) at {path}")
        return path

    def read(self, plugin_id: str, origin_url: str) -> bytes | None:
        path = self.path_for(plugin_id, origin_url)
        if not path.is_file():
            return None
        return path.read_bytes()

    def delete(self, plugin_id: str, origin_url: str) -> bool:
        path = self.path_for(plugin_id, origin_url)
        if not path.is_file():
            return False
        path.unlink()
        logger.debug(f"Deleted package {plugin_id} at {path}")
        return True


class InstalledPluginStore:
    """JSON-backed set of ``InstalledPluginRecord``.

    Every mutation is a locked read-modify-write with an atomic replace.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> list[InstalledPluginRecord]:
        raw = read_json(self.path, [])
        records: list[InstalledPluginRecord] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                records.append(InstalledPluginRecord.model_validate(item))
            except ValidationError as e:
                logger.warning(f"Skipping malformed installed-plugin record: {e}")
        return records

    def _save(self, records: list[InstalledPluginRecord]) -> None:
        write_json(self.path, [r.model_dump(mode="json") for r in records])

    def all(self) -> list[InstalledPluginRecord]:
        with self._lock:
            return self._load()

    def get(self, internal_name: str, repository_url: str | None = None) -> InstalledPluginRecord | None:
        """Find a record by name, optionally narrowed to one repository.

        Without a repository the enabled record wins, then the most
        recently written one.
        """
        matches = [
            r for r in self.all()
            if r.internal_name == internal_name
            and (repository_url is None or r.repository_url == repository_url)
        ]
        if not matches:
            return None
        enabled = [r for r in matches if r.enabled]
        return (enabled or matches)[-1]

    def upsert(self, record: InstalledPluginRecord) -> None:
        with self._lock:
            records = [r for r in self._load() if r.key != record.key]
            records.append(record)
            self._save(records)

    def activate(self, record: InstalledPluginRecord) -> None:
        """Upsert *record* and disable same-named records from other repositories."""
        with self._lock:
            records = [
                r.model_copy(update={"enabled": False})
                if r.internal_name == record.internal_name and r.enabled
                else r
                for r in self._load()
                if r.key != record.key
            ]
            records.append(record)
            self._save(records)

    def set_enabled(self, internal_name: str, enabled: bool, repository_url: str | None = None) -> bool:
        """Flip ``enabled`` on matching records.

        Returns:
            True if any record matched.
        """
        with self._lock:
            records = self._load()
            matched = False
            for i, record in enumerate(records):
                if record.internal_name != internal_name:
                    continue
                if repository_url is not None and record.repository_url != repository_url:
                    continue
                matched = True
                if record.enabled != enabled:
                    records[i] = record.model_copy(update={"enabled": enabled})
            if matched:
                self._save(records)
            return matched

    def remove(self, internal_name: str, repository_url: str | None = None) -> list[InstalledPluginRecord]:
        """Delete matching records and return them."""
        with self._lock:
            records = self._load()
            removed = [
                r for r in records
                if r.internal_name == internal_name
                and (repository_url is None or r.repository_url == repository_url)
            ]
            if removed:
                self._save([r for r in records if r not in removed])
            return removed

"""
Package classification for Mosaic.

A downloaded plugin package is either scripted provider source (evaluated
in-process) or a foreign bytecode archive (handed to the sidecar). The
decision is a pure content sniff; file names and catalog hints are never
trusted.
"""

from __future__ import annotations

import io
import json
import logging
import re
import zipfile
from dataclasses import dataclass, field

from mosaic.errors import PluginValidationError
from mosaic.models import PackageKind

logger = logging.getLogger(__name__)

ARCHIVE_SIGNATURE = b"PK"
DEX_MAGIC = b"dex\n"
SNIFF_WINDOW = 100
BINARY_RATIO = 0.1

MANIFEST_ENTRY = "manifest.json"
BYTECODE_ENTRY = "classes.dex"

_CONTROL_CHARS = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f\ufffd]")


@dataclass(frozen=True)
class SniffResult:
    """Outcome of a content sniff.

    Attributes:
        kind: The classified package kind.
        ambiguous: The window held some control characters but not
            enough to call it binary.
        control_ratio: Fraction of control characters in the window.
    """

    kind: PackageKind
    ambiguous: bool = False
    control_ratio: float = 0.0


@dataclass(frozen=True)
class ArchiveManifest:
    """Entry-point metadata carried inside a foreign archive."""

    plugin_class_name: str
    requires_resources: bool = False
    name: str | None = None
    version: int | None = None


@dataclass
class PluginPackage:
    """Raw package bytes plus their classified kind."""

    data: bytes
    kind: PackageKind
    ambiguous: bool = False
    manifest: ArchiveManifest | None = None
    bytecode: bytes | None = field(default=None, repr=False)

    @property
    def is_archive(self) -> bool:
        return self.data.startswith(ARCHIVE_SIGNATURE)

    def source(self) -> str:
        """Decode scripted source text."""
        return self.data.decode("utf-8", errors="replace").lstrip("\ufeff")


def sniff(data: bytes) -> SniffResult:
    """Classify raw package bytes.

    Archive or DEX signatures mark a foreign package. Otherwise the first
    ``SNIFF_WINDOW`` decoded characters are scanned; more than
    ``BINARY_RATIO`` control or undecodable characters marks it foreign.
    """
    if data.startswith(ARCHIVE_SIGNATURE) or data.startswith(DEX_MAGIC):
        return SniffResult(PackageKind.FOREIGN_BYTECODE_ARCHIVE)

    window = data[: SNIFF_WINDOW * 4].decode("utf-8", errors="replace")[:SNIFF_WINDOW]
    if not window:
        return SniffResult(PackageKind.SCRIPTED_SOURCE)

    controls = len(_CONTROL_CHARS.findall(window))
    ratio = controls / len(window)
    if ratio > BINARY_RATIO:
        return SniffResult(PackageKind.FOREIGN_BYTECODE_ARCHIVE, control_ratio=ratio)
    return SniffResult(PackageKind.SCRIPTED_SOURCE, ambiguous=controls > 0, control_ratio=ratio)


def classify_package(data: bytes, name: str = "") -> PluginPackage:
    """Sniff *data* and wrap it as a ``PluginPackage``."""
    result = sniff(data)
    if result.ambiguous:
        logger.warning(
            f"Package {name or '<unnamed>'} has {result.control_ratio:.0%} control "
            f"characters; treating it as scripted source"
        )
    logger.debug(f"Classified package {name or '<unnamed>'} as {result.kind.value}")
    return PluginPackage(data=data, kind=result.kind, ambiguous=result.ambiguous)


def read_archive(package: PluginPackage) -> PluginPackage:
    """Decompose a zip archive into its manifest and bytecode blob.

    Raw DEX payloads carry no manifest and are returned unchanged.

    Raises:
        PluginValidationError: The archive is unreadable, or its manifest
            is missing or has no entry-point class.
    """
    if not package.is_archive:
        return package

    try:
        with zipfile.ZipFile(io.BytesIO(package.data)) as archive:
            names = set(archive.namelist())
            if MANIFEST_ENTRY not in names:
                raise PluginValidationError(
                    f"Archive has no {MANIFEST_ENTRY}",
                    {"entries": sorted(names)[:20]},
                )
            raw_manifest = json.loads(archive.read(MANIFEST_ENTRY).decode("utf-8"))
            bytecode = archive.read(BYTECODE_ENTRY) if BYTECODE_ENTRY in names else None
    except zipfile.BadZipFile as e:
        raise PluginValidationError(f"Corrupt archive: {e}") from e
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise PluginValidationError(f"Unreadable {MANIFEST_ENTRY}: {e}") from e

    if not isinstance(raw_manifest, dict):
        raise PluginValidationError(f"{MANIFEST_ENTRY} must be a JSON object")

    class_name = raw_manifest.get("pluginClassName")
    if not class_name or not isinstance(class_name, str):
        raise PluginValidationError(f"{MANIFEST_ENTRY} is missing pluginClassName")

    version = raw_manifest.get("version")
    package.manifest = ArchiveManifest(
        plugin_class_name=class_name,
        requires_resources=bool(raw_manifest.get("requiresResources", False)),
        name=raw_manifest.get("name"),
        version=version if isinstance(version, int) else None,
    )
    package.bytecode = bytecode
    return package

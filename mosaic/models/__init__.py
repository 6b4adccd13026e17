"""Pydantic models shared across Mosaic components."""

from .catalog import (
    PackageKind,
    PluginDescriptor,
    PluginStatus,
    Repository,
    RepositoryData,
)
from .content import (
    Actor,
    DetailResult,
    Episode,
    SearchResult,
    TvType,
)
from .records import InstalledPluginRecord, ResumeEntry

__all__ = [
    "Actor",
    "DetailResult",
    "Episode",
    "InstalledPluginRecord",
    "PackageKind",
    "PluginDescriptor",
    "PluginStatus",
    "Repository",
    "RepositoryData",
    "ResumeEntry",
    "SearchResult",
    "TvType",
]

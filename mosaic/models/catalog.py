"""Catalog models: repositories and the plugin descriptors they list."""

from __future__ import annotations

from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class PackageKind(str, Enum):
    """Execution substrate a plugin package needs.

    Attributes:
        SCRIPTED_SOURCE: Python source evaluated in-process.
        FOREIGN_BYTECODE_ARCHIVE: Compiled package executed by the sidecar.
    """

    SCRIPTED_SOURCE = "scripted_source"
    FOREIGN_BYTECODE_ARCHIVE = "foreign_bytecode_archive"


class PluginStatus(IntEnum):
    """Availability reported by a catalog for a plugin."""

    DOWN = 0
    OK = 1
    SLOW = 2
    BETA = 3


class _CatalogModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class PluginDescriptor(_CatalogModel):
    """An installable plugin as listed by a catalog.

    ``version`` is an integer; any change means the installed copy must be
    reinstalled. ``kind_hint`` stays unset until the package is fetched and
    classified.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    name: str
    internal_name: str = Field(..., min_length=1)
    url: str
    version: int = 0
    status: PluginStatus = PluginStatus.OK
    api_version: int = 1
    authors: list[str] = Field(default_factory=list)
    description: str | None = None
    repository_url: str | None = None
    tv_types: list[str] = Field(default_factory=list)
    language: str | None = None
    icon_url: str | None = None
    file_size: int | None = None
    kind_hint: PackageKind | None = None


class Repository(_CatalogModel):
    """A repository manifest: points at one or more plugin lists."""

    name: str
    description: str | None = None
    icon_url: str | None = None
    manifest_version: int = 1
    plugin_lists: list[str] = Field(default_factory=list)


class RepositoryData(_CatalogModel):
    """A repository the user has added."""

    name: str
    url: str
    icon_url: str | None = None

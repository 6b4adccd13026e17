"""
Plugin runtime for Mosaic.

Content providers are installed from catalog descriptors, classified by
content, and activated on one of two substrates:
- Scripted source: Python evaluated in-process in a restricted namespace
- Foreign bytecode archive: hosted by the sidecar runtime

Every active provider is represented by a ``ProviderHandle`` in the
``CapabilityRegistry``; callers never need to know which substrate backs it.

Example:
    from mosaic.plugins import CapabilityRegistry, PluginLoader

    registry = CapabilityRegistry()
    loader = PluginLoader(registry, packages, records, catalog)
    result = await loader.install(descriptor, repository_url)
"""

from mosaic.plugins.classify import (
    ArchiveManifest,
    PluginPackage,
    classify_package,
    read_archive,
    sniff,
)
from mosaic.plugins.loader import (
    LoadError,
    LoadStage,
    PluginLoader,
    PluginResult,
)
from mosaic.plugins.registry import CapabilityRegistry, PluginEvent
from mosaic.plugins.sandbox import ScriptPolicy, ScriptSandbox, resolve_export
from mosaic.plugins.sdk import (
    ContentProvider,
    ProviderCapabilities,
    ProviderHandle,
    adapt_provider,
)
from mosaic.plugins.storage import InstalledPluginStore, PackageStore

__all__ = [
    "ArchiveManifest",
    "CapabilityRegistry",
    "ContentProvider",
    "InstalledPluginStore",
    "LoadError",
    "LoadStage",
    "PackageStore",
    "PluginEvent",
    "PluginLoader",
    "PluginPackage",
    "PluginResult",
    "ProviderCapabilities",
    "ProviderHandle",
    "ScriptPolicy",
    "ScriptSandbox",
    "adapt_provider",
    "classify_package",
    "read_archive",
    "resolve_export",
    "sniff",
]

"""
Error taxonomy for Mosaic.

Install-time errors (download, execution, validation) are raised inside
the plugin loader and converted into typed ``PluginResult`` failures
before they reach a caller. Provider call failures are raised by the
orchestrator's single-provider ``load`` and swallowed by its fan-out
``search``.
"""

from __future__ import annotations

from typing import Any


class MosaicError(Exception):
    """Base class for all Mosaic errors.

    Attributes:
        message: Human-readable description.
        details: Extra structured context for diagnostics.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DownloadError(MosaicError):
    """A catalog or package fetch failed. The user may retry."""

    def __init__(
        self,
        url: str,
        reason: str,
        status_code: int | None = None,
    ):
        self.url = url
        self.status_code = status_code
        super().__init__(
            f"Failed to download {url}: {reason}",
            {"url": url, "status_code": status_code},
        )


class ExecutionError(MosaicError):
    """Scripted provider source failed during evaluation."""


class PluginValidationError(MosaicError):
    """A loaded provider or foreign package lacks a required capability."""


class SidecarUnavailable(MosaicError):
    """The sidecar runtime was not found or is not healthy."""

    HINT = (
        "The foreign plugin runtime may be unavailable. Build the sidecar "
        "bundle (cd jvm-bridge && ./gradlew build) or set "
        "MOSAIC_SIDECAR_BUNDLE_PATHS, then restart."
    )

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Sidecar unavailable: {reason}", {"hint": self.HINT})


class ProviderCallFailure(MosaicError):
    """A provider's search/load call timed out or raised.

    Attributes:
        provider: Name of the failing provider.
        timed_out: Whether the failure was a timeout.
    """

    def __init__(self, provider: str, reason: str, timed_out: bool = False):
        self.provider = provider
        self.timed_out = timed_out
        super().__init__(
            f"Provider '{provider}' failed: {reason}",
            {"provider": provider, "timed_out": timed_out},
        )


class ProviderNotFound(ProviderCallFailure):
    """The named provider is not present in the registry."""

    def __init__(self, provider: str):
        super().__init__(provider, "provider is not registered")


class ContentNotFound(ProviderCallFailure):
    """The provider has no detail for the requested URL."""

    def __init__(self, provider: str, url: str):
        self.url = url
        super().__init__(provider, f"no content found for {url}")

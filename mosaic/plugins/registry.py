"""
Capability registry for Mosaic.

The registry is the in-memory directory of active content providers, keyed
by unique name. It is pure bookkeeping: the plugin loader writes it and the
search orchestrator reads snapshots of it.

Registry Features:
    - At most one handle per name (replace-on-register)
    - Exactly-once teardown of removed handles
    - Snapshot listing in registration order
    - Lifecycle event notifications

Example:
    from mosaic.plugins.registry import CapabilityRegistry

    registry = CapabilityRegistry()
    registry.register(handle)

    for provider in registry.list_all():
        results = await provider.search("dune")

    registry.unregister("ExampleProvider")
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable
import logging
import threading

from mosaic.plugins.sdk import ProviderHandle

logger = logging.getLogger(__name__)


@dataclass
class PluginEvent:
    """An event from the capability registry.

    Attributes:
        event_type: One of ``registered``, ``unregistered``, ``replaced``.
        plugin_name: Name of the affected provider.
        timestamp: When the event occurred.
        details: Additional event details.
    """

    event_type: str
    plugin_name: str
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    details: dict[str, Any] = field(default_factory=dict)


# Type for event listeners
EventListener = Callable[[PluginEvent], None]


class CapabilityRegistry:
    """Directory of active providers keyed by name.

    A single registry-wide lock guards register, unregister and snapshot so
    a reader never observes a half-replaced entry. Teardown hooks and event
    listeners run outside the lock.

    Example:
        registry = CapabilityRegistry()
        registry.register(handle)
        registry.lookup("ExampleProvider")
        registry.unregister("ExampleProvider")
    """

    def __init__(self):
        self._handles: dict[str, ProviderHandle] = {}
        self._lock = threading.RLock()
        self._event_listeners: list[EventListener] = []
        self._replacements = 0

    def register(self, handle: ProviderHandle) -> None:
        """Register a provider handle.

        A handle with the same name is unregistered first (its teardown
        runs exactly once) and the new handle takes its place.

        Args:
            handle: The handle to insert.
        """
        with self._lock:
            previous = self._handles.pop(handle.name, None)
            if previous is handle:
                # Re-registering the same object keeps it alive.
                self._handles[handle.name] = handle
                return
            self._handles[handle.name] = handle
            if previous is not None:
                self._replacements += 1

        if previous is not None:
            self._close(previous)
            self._emit_event(PluginEvent(
                event_type="replaced",
                plugin_name=handle.name,
                details={"previous_kind": previous.kind.value},
            ))
            logger.info(f"Replaced provider: {handle.name}")

        self._emit_event(PluginEvent(
            event_type="registered",
            plugin_name=handle.name,
            details={"kind": handle.kind.value},
        ))
        logger.info(f"Registered provider: {handle.name} (kind: {handle.kind.value})")

    def unregister(self, handle_or_name: ProviderHandle | str) -> bool:
        """Remove a provider and run its teardown.

        Args:
            handle_or_name: The handle or its name.

        Returns:
            True if something was removed; unknown names are a no-op.
        """
        name = handle_or_name if isinstance(handle_or_name, str) else handle_or_name.name
        with self._lock:
            current = self._handles.get(name)
            if current is None:
                return False
            if not isinstance(handle_or_name, str) and current is not handle_or_name:
                # A stale handle must not evict its replacement.
                return False
            del self._handles[name]

        self._close(current)
        self._emit_event(PluginEvent(
            event_type="unregistered",
            plugin_name=name,
        ))
        logger.info(f"Unregistered provider: {name}")
        return True

    def lookup(self, name: str) -> ProviderHandle | None:
        with self._lock:
            return self._handles.get(name)

    def list_all(self) -> list[ProviderHandle]:
        """Snapshot of the active handles in registration order."""
        with self._lock:
            return list(self._handles.values())

    def names(self) -> list[str]:
        with self._lock:
            return list(self._handles)

    def clear(self) -> None:
        """Unregister every provider."""
        for name in self.names():
            self.unregister(name)

    def _close(self, handle: ProviderHandle) -> None:
        try:
            handle.close()
        except Exception as e:
            logger.error(f"Teardown failed for provider {handle.name}: {e}")

    def add_event_listener(self, listener: EventListener) -> None:
        self._event_listeners.append(listener)

    def remove_event_listener(self, listener: EventListener) -> None:
        if listener in self._event_listeners:
            self._event_listeners.remove(listener)

    def _emit_event(self, event: PluginEvent) -> None:
        for listener in list(self._event_listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Event listener error: {e}")

    def get_statistics(self) -> dict[str, Any]:
        """Get registry statistics.

        Returns:
            Dictionary with provider counts by substrate and replacements.
        """
        with self._lock:
            handles = list(self._handles.values())
            replacements = self._replacements
        by_kind: dict[str, int] = {}
        for handle in handles:
            by_kind[handle.kind.value] = by_kind.get(handle.kind.value, 0) + 1
        return {
            "total_providers": len(handles),
            "by_kind": by_kind,
            "quick_search_capable": sum(1 for h in handles if h.capabilities.quick_search),
            "replacements": replacements,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._handles

    def __repr__(self) -> str:
        return f"<CapabilityRegistry providers={len(self)}>"

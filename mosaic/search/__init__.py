"""Concurrent multi-provider search and detail loading."""

from mosaic.search.orchestrator import (
    ProviderFailure,
    SearchOrchestrator,
    SearchOutcome,
    round_robin_merge,
)

__all__ = ["ProviderFailure", "SearchOrchestrator", "SearchOutcome", "round_robin_merge"]

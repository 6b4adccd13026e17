"""
Multi-provider search and load.

``search`` fans a query out to every active provider concurrently, tolerates
individual failures, and merges the surviving result lists by round-robin
interleave in registry order. ``load`` dispatches a detail request to one
named provider.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Literal, Sequence, TypeVar

from mosaic.errors import ContentNotFound, ProviderCallFailure, ProviderNotFound
from mosaic.models import DetailResult, SearchResult
from mosaic.plugins.registry import CapabilityRegistry
from mosaic.plugins.sdk import ProviderHandle

logger = logging.getLogger(__name__)

T = TypeVar("T")

SearchStatus = Literal["idle", "success"]
EmptyReason = Literal["no_providers", "all_failed", "no_results"]


def round_robin_merge(lists: Sequence[Sequence[T]]) -> list[T]:
    """Interleave lists: the i-th item of each list, in list order, then i+1.

    ``[a1, a2], [b1], [c1, c2, c3]`` -> ``[a1, b1, c1, a2, c2, c3]``.
    """
    merged: list[T] = []
    longest = max((len(items) for items in lists), default=0)
    for i in range(longest):
        for items in lists:
            if i < len(items):
                merged.append(items[i])
    return merged


@dataclass
class ProviderFailure:
    """One provider that failed during a fan-out search."""

    provider: str
    message: str
    timed_out: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"provider": self.provider, "message": self.message, "timed_out": self.timed_out}


@dataclass
class SearchOutcome:
    """Result of a fan-out search.

    Attributes:
        status: ``idle`` when the query was too short to run, else ``success``.
        merged_results: Round-robin merge of every successful provider.
        per_provider_results: Successful providers only, in registry order.
        partial_errors: Providers that failed or timed out.
        empty_reason: Why ``merged_results`` is empty, when it is.
    """

    status: SearchStatus
    query: str
    merged_results: list[SearchResult] = field(default_factory=list)
    per_provider_results: dict[str, list[SearchResult]] = field(default_factory=dict)
    partial_errors: list[ProviderFailure] = field(default_factory=list)
    provider_count: int = 0
    empty_reason: EmptyReason | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "query": self.query,
            "merged_results": [r.to_wire() for r in self.merged_results],
            "per_provider_results": {
                name: [r.to_wire() for r in results]
                for name, results in self.per_provider_results.items()
            },
            "partial_errors": [e.to_dict() for e in self.partial_errors],
            "provider_count": self.provider_count,
            "empty_reason": self.empty_reason,
        }


class SearchOrchestrator:
    """Concurrent search/load over the providers in a registry."""

    def __init__(
        self,
        registry: CapabilityRegistry,
        search_timeout: float = 20.0,
        load_timeout: float = 20.0,
        min_query_length: int = 2,
    ):
        self.registry = registry
        self.search_timeout = search_timeout
        self.load_timeout = load_timeout
        self.min_query_length = min_query_length

    def _snapshot(self, active_providers: Iterable[str] | None) -> list[ProviderHandle]:
        handles = self.registry.list_all()
        if active_providers is None:
            return handles
        wanted = set(active_providers)
        return [h for h in handles if h.name in wanted]

    async def search(
        self,
        query: str,
        active_providers: Iterable[str] | None = None,
        quick: bool = False,
    ) -> SearchOutcome:
        """Search every active provider and merge the results.

        Never raises for provider failures; they are listed in
        ``partial_errors``.

        Args:
            query: Raw user query; trimmed before use.
            active_providers: Restrict the fan-out to these provider names.
            quick: Use each provider's quick search where it has one.
        """
        trimmed = query.strip()
        if len(trimmed) < self.min_query_length:
            return SearchOutcome(status="idle", query=trimmed)

        handles = self._snapshot(active_providers)
        if not handles:
            logger.info(f"Search '{trimmed}': no active providers")
            return SearchOutcome(status="success", query=trimmed, empty_reason="no_providers")

        outcomes = await asyncio.gather(
            *(self._search_one(handle, trimmed, quick) for handle in handles)
        )

        per_provider: dict[str, list[SearchResult]] = {}
        failures: list[ProviderFailure] = []
        for handle, outcome in zip(handles, outcomes):
            if isinstance(outcome, ProviderFailure):
                failures.append(outcome)
            else:
                per_provider[handle.name] = outcome

        merged = round_robin_merge(list(per_provider.values()))
        empty_reason: EmptyReason | None = None
        if not merged:
            empty_reason = "all_failed" if not per_provider else "no_results"

        logger.info(
            f"Search '{trimmed}': {len(merged)} result(s) from "
            f"{len(per_provider)}/{len(handles)} provider(s)"
        )
        return SearchOutcome(
            status="success",
            query=trimmed,
            merged_results=merged,
            per_provider_results=per_provider,
            partial_errors=failures,
            provider_count=len(handles),
            empty_reason=empty_reason,
        )

    async def _search_one(
        self,
        handle: ProviderHandle,
        query: str,
        quick: bool,
    ) -> list[SearchResult] | ProviderFailure:
        call = handle.quick_search(query) if quick else handle.search(query)
        try:
            return await asyncio.wait_for(call, timeout=self.search_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Provider {handle.name} timed out after {self.search_timeout}s")
            return ProviderFailure(
                provider=handle.name,
                message=f"timed out after {self.search_timeout}s",
                timed_out=True,
            )
        except Exception as e:
            logger.warning(f"Provider {handle.name} search failed: {e}")
            return ProviderFailure(provider=handle.name, message=f"{type(e).__name__}: {e}")

    async def load(self, url: str, provider_name: str) -> DetailResult:
        """Fetch detail for *url* from one provider. No retry.

        Raises:
            ProviderNotFound: *provider_name* is not registered.
            ContentNotFound: The provider has no detail for *url*.
            ProviderCallFailure: The call timed out or raised.
        """
        handle = self.registry.lookup(provider_name)
        if handle is None:
            raise ProviderNotFound(provider_name)

        try:
            detail = await asyncio.wait_for(handle.load(url), timeout=self.load_timeout)
        except asyncio.TimeoutError as e:
            raise ProviderCallFailure(
                provider_name, f"timed out after {self.load_timeout}s", timed_out=True
            ) from e
        except Exception as e:
            raise ProviderCallFailure(provider_name, f"{type(e).__name__}: {e}") from e

        if detail is None:
            raise ContentNotFound(provider_name, url)
        return detail

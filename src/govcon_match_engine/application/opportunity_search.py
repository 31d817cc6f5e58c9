"""Opportunity search through the result cache.

Usage example:
    service = OpportunitySearchService(provider=search_provider, cache=cache)
    lookup = service.search({"state": "VA"})
    service.preload_next_page()
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from ..domain.models import OpportunityPage, SearchSort
from ..exceptions import SearchFetchError
from ..observability.logging import get_logger
from ..protocols import OpportunitySearchProvider
from .result_cache import CacheLookup, CacheStatistics, ResultCache, fingerprint

logger = get_logger("govcon_match_engine.opportunity_search")


@dataclass(frozen=True)
class SearchQuery:
    """A submitted search, as remembered for history and retries."""

    filters: Mapping[str, object]
    page: int = 1
    sort: SearchSort = field(default_factory=SearchSort)

    def __post_init__(self) -> None:
        object.__setattr__(self, "filters", MappingProxyType(dict(self.filters)))


class OpportunitySearchService:
    """Searches opportunities with caching, history, preloading and retry."""

    def __init__(
        self,
        *,
        provider: OpportunitySearchProvider,
        cache: ResultCache[OpportunityPage],
        page_size: int = 10,
        history_size: int = 5,
        default_sort: SearchSort | None = None,
    ) -> None:
        self._provider = provider
        self.cache = cache
        self.page_size = page_size
        self.history_size = history_size
        self.default_sort = default_sort or SearchSort()
        self._history: list[SearchQuery] = []
        self.last_query: SearchQuery | None = None
        self.last_result: OpportunityPage | None = None
        self.last_error: str | None = None
        self.retry_count = 0

    @property
    def history(self) -> tuple[SearchQuery, ...]:
        """Distinct recent queries, newest first."""
        return tuple(self._history)

    def _remember(self, query: SearchQuery) -> None:
        key = fingerprint(query.filters, 1, query.sort, self.page_size)
        self._history = [
            previous
            for previous in self._history
            if fingerprint(previous.filters, 1, previous.sort, self.page_size) != key
        ]
        self._history.insert(0, query)
        del self._history[self.history_size :]

    def _fetch(self, query: SearchQuery) -> OpportunityPage:
        return self._provider.fetch_opportunities(
            query.filters, query.page, query.sort, self.page_size
        )

    def _record_success(self, lookup: CacheLookup[OpportunityPage]) -> None:
        self.last_result = lookup.payload
        self.last_error = None
        self.retry_count = 0

    def search(
        self,
        filters: Mapping[str, object],
        page: int = 1,
        sort: SearchSort | None = None,
        *,
        allow_stale: bool | None = None,
    ) -> CacheLookup[OpportunityPage]:
        """Return one page of results, from cache when still valid.

        Raises:
            SearchFetchError: If the provider fails; ``last_error`` is set and
                the cache keeps its previous contents.
        """
        query = SearchQuery(filters=filters, page=page, sort=sort or self.default_sort)
        self.last_query = query
        if page == 1:
            self._remember(query)
        try:
            lookup = self.cache.get_or_fetch(
                query.filters,
                query.page,
                query.sort,
                lambda: self._fetch(query),
                page_size=self.page_size,
                allow_stale=allow_stale,
            )
        except SearchFetchError as exc:
            self.last_error = exc.cause
            raise
        self._record_success(lookup)
        return lookup

    async def asearch(
        self,
        filters: Mapping[str, object],
        page: int = 1,
        sort: SearchSort | None = None,
        *,
        allow_stale: bool | None = None,
    ) -> CacheLookup[OpportunityPage]:
        """Awaitable ``search``; the provider call runs in a worker thread."""
        query = SearchQuery(filters=filters, page=page, sort=sort or self.default_sort)
        self.last_query = query
        if page == 1:
            self._remember(query)
        try:
            lookup = await self.cache.aget_or_fetch(
                query.filters,
                query.page,
                query.sort,
                lambda: asyncio.to_thread(self._fetch, query),
                page_size=self.page_size,
                allow_stale=allow_stale,
            )
        except SearchFetchError as exc:
            self.last_error = exc.cause
            raise
        self._record_success(lookup)
        return lookup

    def preload_next_page(self) -> bool:
        """Warm the cache with the page after the last successful result.

        Preloading is best effort: a failure is logged and leaves the current
        results and ``last_error`` unchanged.
        """
        if self.last_query is None or self.last_result is None or not self.last_result.has_more:
            return False
        query = self.last_query
        next_page = query.page + 1
        try:
            self.cache.get_or_fetch(
                query.filters,
                next_page,
                query.sort,
                lambda: self._fetch(
                    SearchQuery(filters=query.filters, page=next_page, sort=query.sort)
                ),
                page_size=self.page_size,
            )
        except SearchFetchError as exc:
            logger.warning("Preloading page %s failed: %s", next_page, exc.cause)
            return False
        return True

    def retry_last(self) -> CacheLookup[OpportunityPage] | None:
        """Repeat the last query; returns None when nothing has been searched."""
        if self.last_query is None:
            return None
        self.retry_count += 1
        query = self.last_query
        logger.info("Retrying last search (attempt %s)", self.retry_count)
        try:
            lookup = self.cache.get_or_fetch(
                query.filters,
                query.page,
                query.sort,
                lambda: self._fetch(query),
                page_size=self.page_size,
            )
        except SearchFetchError as exc:
            self.last_error = exc.cause
            raise
        self._record_success(lookup)
        return lookup

    def clear_error(self) -> None:
        self.last_error = None
        self.retry_count = 0

    def clear_history(self) -> None:
        self._history.clear()

    def statistics(self) -> CacheStatistics:
        return self.cache.statistics()

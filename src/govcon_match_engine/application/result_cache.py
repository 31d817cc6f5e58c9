"""TTL cache of paginated search results addressed by a query fingerprint.

Usage example:
    from datetime import timedelta

    from govcon_match_engine.application.result_cache import ResultCache
    from govcon_match_engine.domain.models import SearchSort
    from govcon_match_engine.infrastructure.clock import SystemClock

    cache = ResultCache(clock=SystemClock(), ttl=timedelta(minutes=30))
    lookup = cache.get_or_fetch({"state": "VA"}, 1, SearchSort(), fetch_page, page_size=10)
    if lookup.hit:
        ...

Writes for one fingerprint are ordered by the time their fetch was issued: a
response from a fetch that started before the current entry's fetch (or
before the last invalidation) is discarded.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Generic, TypeVar

from ..domain.models import SearchSort
from ..exceptions import SearchFetchError
from ..observability.logging import get_logger
from ..protocols import Clock

logger = get_logger("govcon_match_engine.result_cache")

T = TypeVar("T")

DEFAULT_TTL = timedelta(minutes=30)


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """One cached payload and the moments it was requested and stored."""

    key: str
    payload: T
    cached_at: datetime
    ttl: timedelta
    fetch_started_at: datetime

    @property
    def expires_at(self) -> datetime:
        return self.cached_at + self.ttl

    def is_valid(self, now: datetime) -> bool:
        return now - self.cached_at < self.ttl


@dataclass(frozen=True)
class CacheLookup(Generic[T]):
    """Result of ``get_or_fetch``.

    ``hit`` is True when no fetch was made. ``stale`` is True only when a fetch
    failed and an expired entry was served in its place.
    """

    key: str
    payload: T
    cached_at: datetime
    hit: bool
    stale: bool = False


@dataclass(frozen=True)
class CacheStatistics:
    hits: int
    misses: int
    stale_served: int
    rejected_writes: int
    entries: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


def _is_empty(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, Mapping | list | tuple | set | frozenset):
        return len(value) == 0
    return False


def _canonical(value: object) -> object:
    if isinstance(value, Mapping):
        return {
            str(key).strip(): _canonical(item)
            for key, item in value.items()
            if not _is_empty(item)
        }
    if isinstance(value, list | tuple | set | frozenset):
        items = [_canonical(item) for item in value if not _is_empty(item)]
        return sorted(items, key=lambda item: json.dumps(item, sort_keys=True, default=str))
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, str):
        return value.strip()
    return value


def fingerprint(
    filters: Mapping[str, object],
    page: int,
    sort: SearchSort,
    page_size: int,
) -> str:
    """Return a stable key for a search query.

    Filters are canonicalized first: keys are sorted, list values are sorted,
    and empty values are dropped, so semantically equal queries share a key.
    """
    canonical = {
        "filters": _canonical(filters),
        "page": page,
        "page_size": page_size,
        "sort": {"key": sort.key, "direction": sort.direction.value},
    }
    encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


class ResultCache(Generic[T]):
    """In-memory fingerprint-keyed cache with per-entry TTL."""

    def __init__(
        self,
        *,
        clock: Clock,
        ttl: timedelta = DEFAULT_TTL,
        allow_stale: bool = False,
    ) -> None:
        self._clock = clock
        self.ttl = ttl
        self.allow_stale = allow_stale
        self._entries: dict[str, CacheEntry[T]] = {}
        self._invalidated_at: dict[str, datetime] = {}
        self._cleared_at: datetime | None = None
        self._hits = 0
        self._misses = 0
        self._stale_served = 0
        self._rejected_writes = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def peek(self, key: str) -> CacheEntry[T] | None:
        """Return the stored entry for a key, valid or not."""
        return self._entries.get(key)

    def get(self, key: str) -> CacheEntry[T] | None:
        """Return the entry for a key only while it is valid."""
        entry = self._entries.get(key)
        if entry is None or not entry.is_valid(self._clock.now()):
            return None
        return entry

    def put(self, key: str, payload: T, *, fetch_started_at: datetime) -> bool:
        """Store a payload unless a newer fetch or an invalidation superseded it.

        Returns:
            True when the payload was stored.
        """
        fence = self._invalidated_at.get(key)
        if self._cleared_at is not None and (fence is None or self._cleared_at > fence):
            fence = self._cleared_at
        current = self._entries.get(key)
        if (current is not None and fetch_started_at < current.fetch_started_at) or (
            fence is not None and fetch_started_at < fence
        ):
            self._rejected_writes += 1
            logger.info("Discarded superseded result for %s", key[:12])
            return False
        self._entries[key] = CacheEntry(
            key=key,
            payload=payload,
            cached_at=self._clock.now(),
            ttl=self.ttl,
            fetch_started_at=fetch_started_at,
        )
        return True

    def _lookup(self, key: str) -> CacheLookup[T] | None:
        entry = self.get(key)
        if entry is None:
            self._misses += 1
            logger.info("Cache miss for %s", key[:12])
            return None
        self._hits += 1
        logger.info("Cache hit for %s", key[:12])
        return CacheLookup(key=key, payload=entry.payload, cached_at=entry.cached_at, hit=True)

    def _stored(self, key: str, payload: T, started_at: datetime) -> CacheLookup[T]:
        self.put(key, payload, fetch_started_at=started_at)
        entry = self._entries.get(key)
        if entry is not None and entry.fetch_started_at > started_at:
            # A newer fetch landed first; serve its payload instead.
            return CacheLookup(key=key, payload=entry.payload, cached_at=entry.cached_at, hit=False)
        return CacheLookup(key=key, payload=payload, cached_at=self._clock.now(), hit=False)

    def _failed(self, key: str, exc: Exception, allow_stale: bool | None) -> CacheLookup[T]:
        permit_stale = self.allow_stale if allow_stale is None else allow_stale
        entry = self._entries.get(key)
        if permit_stale and entry is not None:
            self._stale_served += 1
            logger.warning("Fetch failed for %s; serving stale entry: %s", key[:12], exc)
            return CacheLookup(
                key=key, payload=entry.payload, cached_at=entry.cached_at, hit=False, stale=True
            )
        logger.warning("Fetch failed for %s: %s", key[:12], exc)
        if isinstance(exc, SearchFetchError):
            raise exc
        raise SearchFetchError(key, str(exc)) from exc

    def get_or_fetch(
        self,
        filters: Mapping[str, object],
        page: int,
        sort: SearchSort,
        fetch_fn: Callable[[], T],
        *,
        page_size: int,
        allow_stale: bool | None = None,
    ) -> CacheLookup[T]:
        """Return the cached page for a query, fetching it when absent or expired.

        Raises:
            SearchFetchError: If the fetch fails and no stale fallback is permitted.
                The existing entry is left untouched.
        """
        key = fingerprint(filters, page, sort, page_size)
        cached = self._lookup(key)
        if cached is not None:
            return cached

        started_at = self._clock.now()
        try:
            payload = fetch_fn()
        except Exception as exc:
            return self._failed(key, exc, allow_stale)
        return self._stored(key, payload, started_at)

    async def aget_or_fetch(
        self,
        filters: Mapping[str, object],
        page: int,
        sort: SearchSort,
        fetch_fn: Callable[[], Awaitable[T]],
        *,
        page_size: int,
        allow_stale: bool | None = None,
    ) -> CacheLookup[T]:
        """Awaitable variant of ``get_or_fetch`` for concurrent callers."""
        key = fingerprint(filters, page, sort, page_size)
        cached = self._lookup(key)
        if cached is not None:
            return cached

        started_at = self._clock.now()
        try:
            payload = await fetch_fn()
        except Exception as exc:
            return self._failed(key, exc, allow_stale)
        return self._stored(key, payload, started_at)

    def sweep(self) -> int:
        """Drop expired entries and return how many were removed.

        Invalidation fences older than the TTL are dropped as well.
        """
        now = self._clock.now()
        expired = [key for key, entry in self._entries.items() if not entry.is_valid(now)]
        for key in expired:
            del self._entries[key]
        self._invalidated_at = {
            key: fenced_at
            for key, fenced_at in self._invalidated_at.items()
            if now - fenced_at < self.ttl
        }
        if expired:
            logger.info("Swept %s expired cache entries", len(expired))
        return len(expired)

    def invalidate(self, key: str) -> bool:
        """Drop one entry; in-flight fetches for it will not be stored."""
        self._invalidated_at[key] = self._clock.now()
        return self._entries.pop(key, None) is not None

    def invalidate_all(self) -> int:
        """Drop every entry; in-flight fetches will not be stored."""
        count = len(self._entries)
        self._entries.clear()
        self._invalidated_at.clear()
        self._cleared_at = self._clock.now()
        logger.info("Invalidated %s cache entries", count)
        return count

    def statistics(self) -> CacheStatistics:
        return CacheStatistics(
            hits=self._hits,
            misses=self._misses,
            stale_served=self._stale_served,
            rejected_writes=self._rejected_writes,
            entries=len(self._entries),
        )

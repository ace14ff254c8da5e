"""TTL cache for an upstream version list with coalesced refreshes."""

import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional

from gamedeck.catalog.models import VersionCatalogEntry

logger = logging.getLogger(__name__)

FetchFn = Callable[[], Awaitable[List[VersionCatalogEntry]]]


class CatalogCache:
    """Caches one upstream source for ``ttl_seconds``.

    Concurrent callers that find the cache stale share a single fetch: the
    first one takes the lock and refreshes, the rest re-check once they get
    the lock and return the fresh entries. The cache counts as fresh only
    while it holds entries; an empty fetch keeps the previous entries and
    does not extend their freshness.
    """

    def __init__(self, name: str, fetch: FetchFn, ttl_seconds: float,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self._fetch = fetch
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: List[VersionCatalogEntry] = []
        self._last_fetch: Optional[float] = None
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        return (
            bool(self._entries)
            and self._last_fetch is not None
            and self._clock() - self._last_fetch < self._ttl
        )

    async def get(self) -> List[VersionCatalogEntry]:
        if self._is_fresh():
            return list(self._entries)

        async with self._lock:
            if self._is_fresh():
                return list(self._entries)

            fetched = await self._fetch()
            if fetched:
                self._entries = list(fetched)
                self._last_fetch = self._clock()
                logger.info("Refreshed %s catalog: %d entries", self.name, len(fetched))
            else:
                logger.warning(
                    "%s catalog fetch returned no entries; keeping %d cached",
                    self.name, len(self._entries),
                )
            return list(self._entries)

    def invalidate(self) -> None:
        self._last_fetch = None

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple

from eventgallery.api.schemas import Catalog

logger = logging.getLogger("eventgallery.cache")


@dataclass
class CatalogCacheEntry:
    data: Catalog
    timestamp: float
    signature: float


class CatalogCache:
    """
    Memoizes the catalog scan. An entry is served while it is younger than the
    TTL and the media tree signature has not moved since it was captured.

    Concurrent callers that miss share one scan: the second caller waits on the
    lock and then finds the entry the first one stored.
    """

    def __init__(
        self,
        loader: Callable[[], Awaitable[Catalog]],
        signature_fn: Callable[[], float],
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._loader = loader
        self._signature_fn = signature_fn
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entry: Optional[CatalogCacheEntry] = None
        self._lock = asyncio.Lock()
        self.generation = 0
        self.invalidations = 0

    def _is_valid(self, entry: Optional[CatalogCacheEntry], signature: float) -> bool:
        if entry is None:
            return False
        if self._clock() - entry.timestamp >= self.ttl_seconds:
            return False
        return entry.signature == signature

    async def _signature(self) -> float:
        return await asyncio.to_thread(self._signature_fn)

    async def get(self) -> Tuple[Catalog, bool]:
        """Return (catalog, cached)."""
        signature = await self._signature()
        if self._is_valid(self._entry, signature):
            return self._entry.data, True  # type: ignore[union-attr]

        async with self._lock:
            if self._is_valid(self._entry, signature):
                return self._entry.data, True  # type: ignore[union-attr]
            generation = self.generation
            timestamp = self._clock()
            data = await self._loader()
            if generation == self.generation:
                self._entry = CatalogCacheEntry(data=data, timestamp=timestamp, signature=signature)
            else:
                logger.debug("Catalog invalidated during scan; result not cached")
            return data, False

    def invalidate(self, reason: str = ""):
        self._entry = None
        self.generation += 1
        self.invalidations += 1
        logger.debug("Catalog cache invalidated (%s)", reason or "unspecified")

    def describe(self) -> dict:
        entry = self._entry
        return {
            "cached": entry is not None,
            "age_seconds": round(self._clock() - entry.timestamp, 1) if entry else None,
            "signature": entry.signature if entry else None,
            "ttl_seconds": self.ttl_seconds,
            "generation": self.generation,
            "invalidations": self.invalidations,
        }

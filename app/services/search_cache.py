from __future__ import annotations

import logging
import time
from collections import OrderedDict
from typing import Any, Callable

from app.settings import settings

logger = logging.getLogger(__name__)


class SearchCache:
    """
    Process-local TTL cache for search responses.

    Entries expire `ttl_seconds` after they were written. When `max_entries` is
    reached the oldest entry is evicted first. Each worker process keeps its own copy.
    """

    def __init__(
        self,
        ttl_seconds: float | None = None,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = float(ttl_seconds if ttl_seconds is not None else settings.search_cache_ttl_seconds)
        self.max_entries = int(max_entries if max_entries is not None else settings.search_cache_max_entries)
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        if key in self._entries:
            del self._entries[key]
        while self.max_entries > 0 and len(self._entries) >= self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Search cache full, evicted {evicted}")
        self._entries[key] = (self._clock() + self.ttl_seconds, value)

    def clear(self) -> None:
        self._entries.clear()


def make_search_key(
    query: str,
    source: str,
    min_price: float | None,
    max_price: float | None,
    min_rating: float | None,
    category: str | None,
    page: int,
    limit: int,
) -> str:
    parts = [
        "search",
        query.strip().lower(),
        source,
        "" if min_price is None else f"{min_price:g}",
        "" if max_price is None else f"{max_price:g}",
        "" if min_rating is None else f"{min_rating:g}",
        (category or "").strip().lower(),
        str(page),
        str(limit),
    ]
    return "|".join(parts)


search_cache = SearchCache()

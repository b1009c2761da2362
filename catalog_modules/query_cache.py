"""
Request-deduplicating query cache.

Entries are keyed by tuples such as ("categories",) or
("sub-subcategories", "<subcategory id>"). A fresh entry is served without a
network call; a stale or missing one is fetched once, with concurrent callers
sharing the same in-flight request. Invalidation marks entries stale and
detaches in-flight requests so their late results are never written back.
"""

import asyncio
import logging
import time
from typing import Dict, List, Tuple


class QueryCache:
    """Asyncio query cache. Must be used from a single event loop."""

    def __init__(self):
        self._entries: Dict[Tuple, dict] = {}
        self._in_flight: Dict[Tuple, asyncio.Task] = {}
        self._generations: Dict[Tuple, int] = {}

    def get(self, key, default=None):
        entry = self._entries.get(key)
        return entry["data"] if entry else default

    def set(self, key, data):
        self._entries[key] = {"data": data, "stale": False, "updated_at": time.monotonic()}

    def is_fresh(self, key) -> bool:
        entry = self._entries.get(key)
        return entry is not None and not entry["stale"]

    def is_fetching(self, key) -> bool:
        return key in self._in_flight

    def keys(self) -> List[Tuple]:
        return list(self._entries)

    async def fetch(self, key, fetcher):
        """
        Return data for ``key``, fetching it if missing or stale.

        Args:
            key: Cache key tuple
            fetcher: Zero-argument coroutine function producing the data

        Returns:
            The cached or freshly fetched data

        Raises:
            Whatever ``fetcher`` raises; failed fetches are not cached
        """
        if self.is_fresh(key):
            logging.debug(f"Cache HIT for {key}")
            return self._entries[key]["data"]

        task = self._in_flight.get(key)
        if task is None:
            logging.debug(f"Cache MISS for {key}")
            task = asyncio.ensure_future(self._run(key, fetcher, self._generations.get(key, 0)))
            self._in_flight[key] = task
        else:
            logging.debug(f"Joining in-flight request for {key}")

        # Shielded so one cancelled caller does not cancel the shared request
        return await asyncio.shield(task)

    async def _run(self, key, fetcher, generation):
        try:
            data = await fetcher()
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

        if self._generations.get(key, 0) == generation:
            self.set(key, data)
        else:
            logging.debug(f"Result for {key} superseded by invalidation; not cached")
        return data

    def invalidate(self, key) -> bool:
        """Mark ``key`` stale. Returns True if there was anything to invalidate."""
        self._generations[key] = self._generations.get(key, 0) + 1
        found = False
        entry = self._entries.get(key)
        if entry is not None:
            entry["stale"] = True
            found = True
        if self._in_flight.pop(key, None) is not None:
            found = True
        return found

    def invalidate_prefix(self, prefix) -> List[Tuple]:
        """Invalidate every key starting with ``prefix``."""
        size = len(prefix)
        matching = {k for k in self._entries if k[:size] == prefix}
        matching.update(k for k in self._in_flight if k[:size] == prefix)
        for key in matching:
            self.invalidate(key)
        return sorted(matching)

    def remove(self, key):
        self.invalidate(key)
        self._entries.pop(key, None)

    def clear(self):
        for key in list(self._entries) + list(self._in_flight):
            self.invalidate(key)
        self._entries.clear()

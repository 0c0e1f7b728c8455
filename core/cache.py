# core/cache.py
"""In-memory TTL cache with lazy expiry and LRU eviction."""
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, Dict, Hashable, Optional

import structlog


logger = structlog.get_logger(__name__)

_MISSING = object()


class TTLCache:
    """
    Process-local cache. Entries expire `ttl_seconds` after they were set and
    are dropped when next read; the least recently used entry is evicted once
    `max_size` is reached.
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        max_size: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self.name = name
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._clock = clock
        self._store: OrderedDict = OrderedDict()
        self._expiry: Dict[Hashable, float] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        value = self._store.get(key, _MISSING)
        if value is _MISSING:
            self.misses += 1
            return default
        if self._clock() >= self._expiry[key]:
            self._remove(key)
            self.misses += 1
            return default
        self._store.move_to_end(key)
        self.hits += 1
        return value

    def set(self, key: Hashable, value: Any, ttl_seconds: Optional[float] = None) -> None:
        if key in self._store:
            self._store.move_to_end(key)
        elif len(self._store) >= self.max_size:
            evicted_key, _ = self._store.popitem(last=False)
            self._expiry.pop(evicted_key, None)
            logger.debug("Cache entry evicted", cache=self.name, key=str(evicted_key))

        self._store[key] = value
        self._expiry[key] = self._clock() + (ttl_seconds or self.ttl_seconds)

    def invalidate(self, key: Hashable) -> bool:
        if key in self._store:
            self._remove(key)
            return True
        return False

    def clear(self) -> int:
        count = len(self._store)
        self._store.clear()
        self._expiry.clear()
        return count

    def purge_expired(self) -> int:
        """Drop every expired entry now instead of waiting for a read."""
        now = self._clock()
        expired = [key for key, expires_at in self._expiry.items() if now >= expires_at]
        for key in expired:
            self._remove(key)
        return len(expired)

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._store and self._clock() < self._expiry[key]

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "size": len(self._store),
            "max_size": self.max_size,
            "ttl_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
        }

    def _remove(self, key: Hashable) -> None:
        self._store.pop(key, None)
        self._expiry.pop(key, None)

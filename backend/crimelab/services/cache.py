"""
Simple in-memory cache for storefront catalog results
"""

import time
from typing import Dict, Any, Optional, Callable
from threading import Lock


class SimpleCache:
    """Thread-safe in-memory cache with TTL"""

    def __init__(self, default_ttl: int = 300, clock: Callable[[], float] = time.monotonic):
        self.cache: Dict[str, tuple[Any, float]] = {}
        self.lock = Lock()
        self.default_ttl = default_ttl
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired"""
        with self.lock:
            entry = self.cache.get(key)
            if entry is None:
                return None
            value, expiry = entry
            if self._clock() < expiry:
                return value
            del self.cache[key]
            return None

    def set(self, key: str, value: Any, ttl: Optional[int] = None):
        """Set value in cache with TTL (seconds)"""
        ttl = ttl or self.default_ttl
        with self.lock:
            self.cache[key] = (value, self._clock() + ttl)

    def clear(self):
        """Clear all cache entries"""
        with self.lock:
            self.cache.clear()

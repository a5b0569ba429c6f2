"""Time-To-Live (TTL) cache for short-lived lookups such as provider health."""
import threading
import time
from typing import Any, Dict, Optional, Tuple


class TTLCache:
    """
    In-memory cache with configurable time-to-live (TTL) expiry.

    Thread-safe; entries are stamped with a monotonic clock and dropped on
    read once older than `ttl_seconds`.

    Example:
        >>> cache = TTLCache(ttl_seconds=60)
        >>> cache.set("provider:onchain:blockscout:status", "healthy")
        >>> cache.get("provider:onchain:blockscout:status")
        'healthy'
    """

    def __init__(self, ttl_seconds: float = 60):
        self.ttl_seconds = ttl_seconds
        self._cache: Dict[str, Tuple[Any, float]] = {}  # {key: (value, stored_at)}
        self._lock = threading.Lock()

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._cache[key] = (value, time.monotonic())

    def get(self, key: str) -> Optional[Any]:
        """
        Return the cached value, or None when missing or expired.

        Expired entries are removed as a side effect.
        """
        with self._lock:
            if key not in self._cache:
                return None

            value, stored_at = self._cache[key]
            if time.monotonic() - stored_at > self.ttl_seconds:
                del self._cache[key]
                return None

            return value

    def clear_prefix(self, prefix: str) -> int:
        """Invalidate every entry whose key starts with `prefix`. Returns count removed."""
        with self._lock:
            keys_to_delete = [k for k in self._cache if k.startswith(prefix)]
            for key in keys_to_delete:
                del self._cache[key]
            return len(keys_to_delete)


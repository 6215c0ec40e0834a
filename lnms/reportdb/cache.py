"""In-memory cache of decoded data points, with per-entry expiry and hit metrics."""

from __future__ import annotations

import threading
import time
from typing import Any, Callable


class DataPointCache:
    """Thread-safe key/value cache; entries set with a positive ttl expire after it."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float | None, Any]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Any:
        """The cached value, or None when absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                expires_at, value = entry
                if expires_at is None or self._clock() < expires_at:
                    self._hits += 1
                    return value
                del self._entries[key]
            self._misses += 1
            return None

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store ``value``; ``ttl`` in seconds, None or non-positive meaning no expiry."""
        expires_at = self._clock() + ttl if ttl and ttl > 0 else None
        with self._lock:
            self._entries[key] = (expires_at, value)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def metrics(self) -> tuple[int, int, float]:
        """Hits, misses and the hit ratio (0.0 before any lookup)."""
        with self._lock:
            hits, misses = self._hits, self._misses
        total = hits + misses
        return hits, misses, hits / total if total else 0.0
"""In-process TTL cache, constructed once and passed to whoever needs it."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from time import monotonic
from typing import Any, Callable, Dict, Optional, Tuple

# Catalog cache keys
MODELS_KEY = "models"


@dataclass
class TTLCache:
    default_ttl_s: Optional[float] = None
    time_fn: Callable[[], float] = monotonic
    entries: Dict[str, Tuple[Any, Optional[float]]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None when absent or expired."""
        with self._lock:
            item = self.entries.get(key)
            if item is None:
                return None
            value, expires_at = item
            if expires_at is not None and self.time_fn() >= expires_at:
                del self.entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl_s: Optional[float] = None) -> None:
        ttl = self.default_ttl_s if ttl_s is None else ttl_s
        expires_at = self.time_fn() + ttl if ttl else None
        with self._lock:
            self.entries[key] = (value, expires_at)

    def delete(self, key: str) -> None:
        with self._lock:
            self.entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self.entries.clear()

    def purge_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self.time_fn()
        with self._lock:
            stale = [k for k, (_, exp) in self.entries.items() if exp is not None and now >= exp]
            for k in stale:
                del self.entries[k]
        return len(stale)

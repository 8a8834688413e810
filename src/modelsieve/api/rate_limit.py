"""Simple in-memory rate limiter (per-caller per-minute)."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from time import time as now_time
from typing import Callable


@dataclass
class RateLimiter:
    limit_per_min: int
    time_fn: Callable[[], float] = now_time
    buckets: dict[str, tuple[int, int]] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def allow(self, key: str) -> bool:
        """Return True if request is allowed for this minute bucket."""
        minute = int(self.time_fn()) // 60
        with self._lock:
            count, bucket = self.buckets.get(key, (0, minute))
            if bucket != minute:
                count, bucket = 0, minute
            if count >= self.limit_per_min:
                self.buckets[key] = (count, bucket)
                return False
            self.buckets[key] = (count + 1, bucket)
            return True

    def seconds_until_reset(self) -> int:
        return 60 - int(self.time_fn()) % 60

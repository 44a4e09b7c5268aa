"""Sliding-window request throttling for the public auth endpoints."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict

from helpdesk.core.exceptions import RateLimitExceededError


@dataclass
class _Bucket:
    timestamps: Deque[float]


class InMemoryRateLimiter:
    """Per-key sliding-window limiter for a single process."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buckets: Dict[str, _Bucket] = {}

    def _prune(self, key: str, cutoff: float) -> _Bucket:
        bucket = self._buckets.setdefault(key, _Bucket(timestamps=deque()))
        while bucket.timestamps and bucket.timestamps[0] < cutoff:
            bucket.timestamps.popleft()
        return bucket

    def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        now = time.time()
        with self._lock:
            bucket = self._prune(key, now - window_seconds)
            if len(bucket.timestamps) >= limit:
                return False
            bucket.timestamps.append(now)
            return True

    def enforce(self, scope: str, client: str, *, per_minute: int, per_hour: int = 0) -> None:
        """Raise ``RateLimitExceededError`` when ``client`` is over either window for ``scope``."""
        if not self.allow(f"{scope}:min:{client}", per_minute, 60):
            raise RateLimitExceededError("Too many requests. Please wait a minute.")
        if per_hour and not self.allow(f"{scope}:hour:{client}", per_hour, 3600):
            raise RateLimitExceededError("Too many requests. Please try again later.")

    def reset(self) -> None:
        with self._lock:
            self._buckets.clear()


rate_limiter = InMemoryRateLimiter()

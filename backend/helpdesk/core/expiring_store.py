"""Key-value storage with per-entry expiry for transient auth state.

OTP records and client-portal sessions are cheap, low-value secrets that are
intentionally lost on restart. They live behind the ``ExpiringStore`` protocol
so a shared cache can replace the in-process map when the service runs on more
than one node.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterator, Optional, Protocol

from helpdesk.core import security


@dataclass
class StoreEntry:
    value: Any
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class ExpiringStore(Protocol):
    def get_entry(self, key: str) -> Optional[StoreEntry]: ...

    def get(self, key: str) -> Optional[Any]: ...

    def put(self, key: str, value: Any, ttl: timedelta) -> StoreEntry: ...

    def delete(self, key: str) -> bool: ...

    def locked(self, key: str) -> Any: ...

    def purge_expired(self, grace: timedelta = ...) -> int: ...


@dataclass
class _KeyLock:
    lock: threading.RLock
    holders: int = 0


class InMemoryExpiringStore:
    """Process-local dict with sweep-on-access expiry.

    ``locked(key)`` serializes read-modify-write sequences on a single key;
    callers holding it can use the plain accessors without racing other
    requests for the same key. A key's lock exists only while someone holds
    or waits on it.
    """

    def __init__(self) -> None:
        self._data: Dict[str, StoreEntry] = {}
        self._lock = threading.Lock()
        self._key_locks: Dict[str, _KeyLock] = {}

    @contextmanager
    def locked(self, key: str) -> Iterator[None]:
        with self._lock:
            slot = self._key_locks.get(key)
            if slot is None:
                slot = self._key_locks[key] = _KeyLock(threading.RLock())
            slot.holders += 1
        try:
            with slot.lock:
                yield
        finally:
            with self._lock:
                slot.holders -= 1
                if slot.holders == 0:
                    del self._key_locks[key]

    @property
    def lock_count(self) -> int:
        with self._lock:
            return len(self._key_locks)

    def get_entry(self, key: str) -> Optional[StoreEntry]:
        """Return the raw entry, expired or not; expiry policy is the caller's."""
        with self._lock:
            return self._data.get(key)

    def get(self, key: str) -> Optional[Any]:
        """Return the live value, dropping the entry if it has expired."""
        now = security.utcnow()
        with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._data[key]
                return None
            return entry.value

    def put(self, key: str, value: Any, ttl: timedelta) -> StoreEntry:
        entry = StoreEntry(value=value, expires_at=security.utcnow() + ttl)
        with self._lock:
            self._data[key] = entry
        return entry

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def purge_expired(self, grace: timedelta = timedelta(0)) -> int:
        """Drop entries that expired more than ``grace`` ago."""
        now = security.utcnow() - grace
        with self._lock:
            expired = [key for key, entry in self._data.items() if entry.is_expired(now)]
            for key in expired:
                del self._data[key]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

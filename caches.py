from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Generic, Hashable, Mapping, Optional, TypeVar

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    value: V
    stored_at: datetime
    expires_at: Optional[datetime]

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and now >= self.expires_at


class ExpiringCache(Generic[K, V]):
    """Size-capped mapping with optional TTL.

    Entries are kept in insertion order; writing an existing key moves it to
    the newest position. When the cap is exceeded the oldest entries go first.
    Expired entries are invisible to readers and are dropped by
    :meth:`purge_expired`.
    """

    def __init__(
        self,
        max_size: int,
        ttl_secs: Optional[float] = None,
        *,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self.ttl_secs = ttl_secs
        self._clock = clock
        self._entries: OrderedDict[K, CacheEntry[V]] = OrderedDict()
        self._lock = threading.RLock()

    def _expiry_for(self, now: datetime) -> Optional[datetime]:
        if self.ttl_secs is None:
            return None
        return now + timedelta(seconds=self.ttl_secs)

    def set(self, key: K, value: V) -> None:
        with self._lock:
            now = self._clock()
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(value, now, self._expiry_for(now))
            self._evict_overflow()

    def replace_all(self, values: Mapping[K, V]) -> None:
        with self._lock:
            self._entries.clear()
            now = self._clock()
            expires_at = self._expiry_for(now)
            for key, value in values.items():
                self._entries[key] = CacheEntry(value, now, expires_at)
            self._evict_overflow()

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(self._clock()):
                return None
            return entry.value

    def entry(self, key: K) -> Optional[CacheEntry[V]]:
        with self._lock:
            return self._entries.get(key)

    def snapshot(self) -> dict[K, V]:
        with self._lock:
            now = self._clock()
            return {
                key: entry.value
                for key, entry in self._entries.items()
                if not entry.is_expired(now)
            }

    def purge_expired(self) -> int:
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _evict_overflow(self) -> None:
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

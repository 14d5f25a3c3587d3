from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from ..config import CACHE


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    created_at: datetime
    expires_at: float  # clock() deadline


class ResultCache:
    """
    Bounded in-memory key/value cache with per-entry TTL and LRU eviction.

    - `set` past capacity evicts the least recently used entry (updating an existing key
      never evicts).
    - `get` refreshes recency; expired entries are dropped lazily on access.
    - Entries are replaced wholesale, never mutated.

    Guarded by a lock: both `get` and `set` reorder the recency list.
    """

    def __init__(
        self,
        capacity: int = CACHE.batch_capacity,
        ttl_s: float = CACHE.batch_ttl_s,
        *,
        clock: Callable[[], float] = time.monotonic,
    ):
        if int(capacity) <= 0:
            raise ValueError("capacity must be > 0")
        if float(ttl_s) <= 0:
            raise ValueError("ttl_s must be > 0")
        self.capacity = int(capacity)
        self.ttl_s = float(ttl_s)
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._lock = threading.Lock()
        self.stats: dict[str, int] = {
            "hit": 0,
            "miss": 0,
            "expired": 0,
            "set": 0,
            "evicted": 0,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            entry = self._entries.get(str(key))
            return entry is not None and entry.expires_at > self._clock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.stats["miss"] += 1
                return default
            if entry.expires_at <= self._clock():
                del self._entries[key]
                self.stats["expired"] += 1
                self.stats["miss"] += 1
                return default
            self._entries.move_to_end(key)
            self.stats["hit"] += 1
            return entry.value

    def set(self, key: str, value: Any, ttl_s: float | None = None) -> None:
        ttl = self.ttl_s if ttl_s is None else float(ttl_s)
        entry = CacheEntry(
            key=key,
            value=value,
            created_at=datetime.now(timezone.utc),
            expires_at=self._clock() + ttl,
        )
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            while len(self._entries) >= self.capacity:
                self._entries.popitem(last=False)
                self.stats["evicted"] += 1
            self._entries[key] = entry
            self.stats["set"] += 1

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def created_at(self, key: str) -> datetime | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.expires_at <= self._clock():
                return None
            return entry.created_at

    def format_cache_stats(self) -> str:
        s = self.stats
        return (
            f"size={len(self)}/{self.capacity} hit={s['hit']} miss={s['miss']} "
            f"expired={s['expired']} evicted={s['evicted']}"
        )

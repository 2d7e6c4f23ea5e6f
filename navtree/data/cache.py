"""Keyed cache with per-entry time-to-live and LRU eviction.

Expiry is evaluated lazily: an entry older than the TTL is deleted the
moment it is read. A capacity bound evicts the least-recently-used entries
so one-key-per-fetched-node growth stays bounded.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional

from .models import CacheEntry, NodeId
from .persistence import DataStore

TOP_LEVEL_KEY = "tree_top_level"
DEFAULT_TTL_SECONDS = 60.0
DEFAULT_MAX_ENTRIES = 512


def children_key(node_id: NodeId) -> str:
    """Cache key for a node's child list."""
    return f"children_{node_id}"


def _log(msg: str) -> None:
    print(f"[cache] {msg}", flush=True)


class CacheLayer:
    """In-memory TTL cache with optional write-through to JSON files.

    Args:
        ttl: Seconds an entry stays fresh, measured from write time
        max_entries: Capacity bound (0 = unbounded)
        store: Optional DataStore used as a second level across restarts
        clock: Returns the current time in seconds
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        store: Optional[DataStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl = ttl
        self.max_entries = max_entries
        self.store = store
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def get(self, key: str) -> Optional[Any]:
        """Return the fresh payload for ``key``, or None.

        An expired entry is removed (from disk too) and reported absent.
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = self._load_from_store(key)
                if entry is not None:
                    self._entries[key] = entry
            if entry is None:
                self.misses += 1
                return None
            if entry.is_expired(now, self.ttl):
                del self._entries[key]
                if self.store is not None:
                    self.store.clear_cache(key)
                self.misses += 1
                return None
            self._entries.move_to_end(key)
            self.hits += 1
            self._evict()
            return entry.payload

    def set(self, key: str, payload: Any) -> None:
        """Write ``payload`` under ``key`` stamped with the current time."""
        entry = CacheEntry(key=key, timestamp=self._clock(), payload=payload)
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            self._evict()
        if self.store is not None:
            try:
                self.store.save_cache(key, entry.to_dict())
            except (OSError, TypeError, ValueError) as exc:
                _log(f"Failed to persist {key}: {exc}")

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
        if self.store is not None:
            self.store.clear_cache(key)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        if self.store is not None:
            self.store.clear_cache()

    def sweep(self) -> int:
        """Drop every expired in-memory entry. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now, self.ttl)]
            for key in expired:
                del self._entries[key]
        if self.store is not None:
            for key in expired:
                self.store.clear_cache(key)
        return len(expired)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "hits": self.hits,
                "misses": self.misses,
                "evictions": self.evictions,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def _evict(self) -> None:
        if not self.max_entries:
            return
        while len(self._entries) > self.max_entries:
            key, _ = self._entries.popitem(last=False)
            self.evictions += 1
            if self.store is not None:
                self.store.clear_cache(key)

    def _load_from_store(self, key: str) -> Optional[CacheEntry]:
        if self.store is None:
            return None
        data = self.store.load_cache(key)
        if data is None:
            return None
        try:
            return CacheEntry.from_dict(key, data)
        except (KeyError, TypeError, ValueError):
            # Malformed entry: discard and treat as a miss
            self.store.clear_cache(key)
            return None

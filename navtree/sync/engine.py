"""Tree synchronization engine.

Combines three update paths into one consistent tree:

- periodic top-level refresh (poll)
- on-demand child fetch (lazy loading)
- push events from the live subscription

A level with no data yet is rendered optimistically from the cache before
the authoritative remote data is applied. Each write is stamped with a
logical version taken when the request is issued (or the event arrives), and
merges apply last-writer-wins by version, so a slow poll can never revert a
newer push. Operations that change nothing return the input forest, so an
unchanged poll commits nothing.
"""

from __future__ import annotations

import threading
import time
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from ..collectors.base import SourceError
from ..data.cache import TOP_LEVEL_KEY, CacheLayer, children_key
from ..data.models import Forest, NodeId, NodeStatus
from ..data.normalization import RecordError, normalize_record, normalize_records
from ..data.tree import attach_children, build_tree, flatten, merge_update, replace_roots

CACHE_VERSION = 0  # cached data never overrides anything written live


def _log(msg: str) -> None:
    """Print with flush for reliable output in daemon threads."""
    print(f"[sync] {msg}", flush=True)


@dataclass(frozen=True)
class TreeSnapshot:
    """Immutable view of the synchronized state."""

    forest: Forest = field(default_factory=Forest)
    statuses: Dict[NodeId, NodeStatus] = field(default_factory=dict)
    revision: int = 0


class TreeState:
    """Observable holder of the current TreeSnapshot.

    ``commit`` applies a transformation to the latest snapshot under a lock,
    so concurrent writers never build on a stale intermediate snapshot.
    Subscribers are called with ``(previous, current)`` in commit order.
    """

    def __init__(self, snapshot: Optional[TreeSnapshot] = None):
        self._snapshot = snapshot or TreeSnapshot()
        self._lock = threading.RLock()
        self._subscribers: List[Callable[[TreeSnapshot, TreeSnapshot], None]] = []

    def snapshot(self) -> TreeSnapshot:
        with self._lock:
            return self._snapshot

    @property
    def forest(self) -> Forest:
        return self.snapshot().forest

    @property
    def statuses(self) -> Dict[NodeId, NodeStatus]:
        return dict(self.snapshot().statuses)

    def commit(self, update: Callable[[TreeSnapshot], TreeSnapshot]) -> TreeSnapshot:
        """Replace the snapshot with ``update(latest)`` and notify subscribers."""
        with self._lock:
            previous = self._snapshot
            current = update(previous)
            if current is previous:
                return previous
            current = replace(current, revision=previous.revision + 1)
            self._snapshot = current
            for callback in list(self._subscribers):
                try:
                    callback(previous, current)
                except Exception as exc:
                    _log(f"Subscriber failed: {exc}")
            return current

    def subscribe(self, callback: Callable[[TreeSnapshot, TreeSnapshot], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe


class VersionClock:
    """Monotonic logical clock shared by all update paths."""

    def __init__(self, start: int = 0):
        self._value = start
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        with self._lock:
            return self._value

    def next(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    def observe(self, version: int) -> None:
        """Advance past a version assigned by the server."""
        with self._lock:
            if version > self._value:
                self._value = version


def _apply_statuses(snapshot: TreeSnapshot, forest: Forest, ids: Iterable[NodeId]) -> TreeSnapshot:
    """Record the current status of ``ids`` and drop ids no longer known."""
    statuses = {k: v for k, v in snapshot.statuses.items() if k in forest.nodes}
    for node_id in ids:
        node = forest.nodes.get(node_id)
        if node is not None:
            statuses[node_id] = node.status
    if forest is snapshot.forest and statuses == snapshot.statuses:
        return snapshot
    return replace(snapshot, forest=forest, statuses=statuses)


class SyncEngine:
    """Keeps a TreeState in sync with a remote tree source.

    Args:
        source: Object with ``fetch_top_level()`` and ``fetch_children(id)``
            returning lists of raw records and raising ``SourceError``
        cache: Cache used for optimistic renders (defaults to a 60s TTL cache)
        state: Observable state to write into
        clock: Logical version clock
    """

    def __init__(
        self,
        source: Any,
        cache: Optional[CacheLayer] = None,
        state: Optional[TreeState] = None,
        clock: Optional[VersionClock] = None,
    ):
        self.source = source
        self.cache = cache if cache is not None else CacheLayer()
        self.state = state if state is not None else TreeState()
        self.clock = clock if clock is not None else VersionClock()
        self._alive = True
        self._inflight: Set[NodeId] = set()
        self._inflight_lock = threading.Lock()
        self._last_error: Optional[str] = None
        self._last_refresh_ts: Optional[float] = None

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def forest(self) -> Forest:
        return self.state.forest

    # --- Top-level refresh ---

    def refresh_top_level(self) -> Tuple[bool, str]:
        """Refresh the top-level list.

        Returns:
            Tuple of (success, message)
        """
        if not self._alive:
            return False, "Engine closed."

        if self.state.forest.is_empty:
            cached = self._cached_records(TOP_LEVEL_KEY)
            if cached:
                self._apply_top_level(cached, CACHE_VERSION)

        version = self.clock.next()
        try:
            raw = self.source.fetch_top_level()
        except SourceError as exc:
            self._last_error = str(exc)
            _log(f"Top-level refresh failed; keeping last good tree: {exc}")
            return False, f"Refresh failed: {exc}"

        if not self._alive:
            return False, "Engine closed; discarding response."

        records = self._normalize(raw)
        if not records and not self.state.forest.is_empty:
            msg = "Top-level fetch returned 0 nodes; keeping stale tree"
            _log(msg)
            self._last_error = msg
            return False, msg

        self._observe(records)
        self._apply_top_level(records, version)
        self.cache.set(TOP_LEVEL_KEY, raw)
        self._last_error = None
        self._last_refresh_ts = time.time()
        return True, f"Refreshed {len(records)} nodes."

    def _apply_top_level(self, records: List[Dict[str, Any]], version: int) -> None:
        roots = [r for r in records if r.get("parent_id") is None]
        others = [r for r in records if r.get("parent_id") is not None]

        def _update(snapshot: TreeSnapshot) -> TreeSnapshot:
            forest = snapshot.forest
            if not forest.nodes:
                if not records:
                    return snapshot
                forest = build_tree(records, version)
            else:
                forest = replace_roots(forest, roots, version)
                for record in others:
                    forest = merge_update(forest, record, version)
            return _apply_statuses(snapshot, forest, (r["id"] for r in records))

        self.state.commit(_update)

    # --- Lazy child loading ---

    def fetch_children(self, node_id: NodeId) -> Tuple[bool, str]:
        """Load the children of ``node_id``.

        Concurrent calls for the same id collapse into one fetch.

        Returns:
            Tuple of (success, message)
        """
        if not self._alive:
            return False, "Engine closed."
        with self._inflight_lock:
            if node_id in self._inflight:
                return False, f"Children of {node_id!r} already loading."
            self._inflight.add(node_id)
        try:
            key = children_key(node_id)
            target = self.state.forest.nodes.get(node_id)
            if target is not None and not target.children_loaded:
                cached = self._cached_records(key)
                if cached is not None:
                    self._apply_children(node_id, cached, CACHE_VERSION)

            version = self.clock.next()
            try:
                raw = self.source.fetch_children(node_id)
            except SourceError as exc:
                self._last_error = str(exc)
                _log(f"Fetching children of {node_id!r} failed; keeping last good tree: {exc}")
                return False, f"Fetch failed: {exc}"

            if not self._alive:
                return False, "Engine closed; discarding response."

            records = self._normalize(raw)
            self._observe(records)
            self._apply_children(node_id, records, version)
            self.cache.set(key, raw)
            return True, f"Loaded {len(records)} children of {node_id!r}."
        finally:
            with self._inflight_lock:
                self._inflight.discard(node_id)

    def schedule_fetch_children(self, node_id: NodeId) -> threading.Thread:
        """Run ``fetch_children`` on a background thread."""
        worker = threading.Thread(
            target=self.fetch_children,
            args=(node_id,),
            name=f"navtree-fetch-{node_id}",
            daemon=True,
        )
        worker.start()
        return worker

    def _apply_children(self, node_id: NodeId, records: List[Dict[str, Any]], version: int) -> None:
        def _update(snapshot: TreeSnapshot) -> TreeSnapshot:
            forest = attach_children(snapshot.forest, node_id, records, version)
            return _apply_statuses(snapshot, forest, (r["id"] for r in records))

        self.state.commit(_update)

    # --- Push events ---

    def on_push_event(self, raw: Dict[str, Any]) -> bool:
        """Merge one pushed node record. Applying the same event twice is a no-op.

        Returns:
            True if the event was accepted (it may still lose to a newer version).
        """
        if not self._alive:
            return False
        try:
            record = normalize_record(raw)
        except RecordError as exc:
            _log(f"Dropping malformed push event: {exc}")
            return False

        version = self.clock.next()
        self._observe([record])

        def _update(snapshot: TreeSnapshot) -> TreeSnapshot:
            forest = merge_update(snapshot.forest, record, version)
            return _apply_statuses(snapshot, forest, [record["id"]])

        self.state.commit(_update)
        return True

    # --- Lifecycle / status ---

    def close(self) -> None:
        """Stop applying results; fetches still in flight are discarded."""
        self._alive = False

    def status_summary(self) -> Dict[str, int]:
        counts = Counter(node.status.value for node in flatten(self.state.forest))
        return {status.value: counts.get(status.value, 0) for status in NodeStatus}

    def get_status(self) -> Dict[str, Any]:
        forest = self.state.forest
        return {
            "ready": not forest.is_empty,
            "alive": self._alive,
            "nodes": len(forest.nodes),
            "roots": len(forest.roots),
            "orphans": len(forest.orphans),
            "last_refresh": self._last_refresh_ts,
            "last_error": self._last_error,
            "statuses": self.status_summary(),
        }

    # --- Helpers ---

    def _cached_records(self, key: str) -> Optional[List[Dict[str, Any]]]:
        payload = self.cache.get(key)
        if payload is None:
            return None
        if not isinstance(payload, list):
            # Malformed entry: treat as a miss
            self.cache.delete(key)
            return None
        return self._normalize(payload)

    def _normalize(self, raw: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
        raw = list(raw)
        records = normalize_records(raw)
        dropped = len(raw) - len(records)
        if dropped:
            _log(f"Dropped {dropped} malformed node record(s)")
        return records

    def _observe(self, records: Iterable[Dict[str, Any]]) -> None:
        for record in records:
            if "version" in record:
                self.clock.observe(record["version"])

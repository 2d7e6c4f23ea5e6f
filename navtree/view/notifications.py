"""Time-bounded notifications for status changes of visible nodes.

Each notification counts down on its own. A shared tick decrements every
entry and removes only the ones that reached zero.
"""

from __future__ import annotations

import itertools
import threading
import time
from typing import AbstractSet, Any, Callable, Dict, List, Mapping, Optional

from ..data.models import NodeId, NodeStatus, NotificationEntry
from .visibility import visible_ids

DEFAULT_NOTIFICATION_TTL = 30.0


def _log(msg: str) -> None:
    print(f"[notifications] {msg}", flush=True)


class NotificationEngine:
    """Diffs status snapshots and keeps the list of live notifications.

    Args:
        ttl: Seconds each notification stays visible
        max_entries: Optional cap; the oldest entries are dropped first
        clock: Returns the current time in seconds (for ``created_at``)
    """

    def __init__(
        self,
        ttl: float = DEFAULT_NOTIFICATION_TTL,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: List[NotificationEntry] = []
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._subscribers: List[Callable[[NotificationEntry], None]] = []

    def on_status_snapshot_change(
        self,
        prev: Mapping[NodeId, NodeStatus],
        new: Mapping[NodeId, NodeStatus],
        visible: AbstractSet[NodeId],
        labels: Optional[Mapping[NodeId, str]] = None,
    ) -> List[NotificationEntry]:
        """Emit one entry per visible node whose status changed.

        Ids seen for the first time (absent from ``prev``) never notify.
        """
        labels = labels or {}
        now = self._clock()
        created: List[NotificationEntry] = []
        for node_id, new_status in new.items():
            if node_id not in prev or node_id not in visible:
                continue
            old_status = prev[node_id]
            if old_status == new_status:
                continue
            created.append(
                NotificationEntry(
                    id=next(self._ids),
                    node_id=node_id,
                    node_label=labels.get(node_id, str(node_id)),
                    old_status=old_status,
                    new_status=new_status,
                    created_at=now,
                    remaining_ttl=self.ttl,
                )
            )
        if not created:
            return created

        with self._lock:
            self._entries.extend(created)
            if self.max_entries and len(self._entries) > self.max_entries:
                del self._entries[: len(self._entries) - self.max_entries]
            subscribers = list(self._subscribers)
        for entry in created:
            for callback in subscribers:
                try:
                    callback(entry)
                except Exception as exc:
                    _log(f"Subscriber failed for notification {entry.id}: {exc}")
        return created

    def tick(self, elapsed: float = 1.0) -> List[NotificationEntry]:
        """Advance every countdown by ``elapsed`` seconds.

        Returns:
            The entries that expired on this tick.
        """
        with self._lock:
            for entry in self._entries:
                entry.remaining_ttl -= elapsed
            expired = [e for e in self._entries if e.expired]
            self._entries = [e for e in self._entries if not e.expired]
        return expired

    def entries(self) -> List[NotificationEntry]:
        with self._lock:
            return list(self._entries)

    def dismiss(self, entry_id: int) -> bool:
        with self._lock:
            before = len(self._entries)
            self._entries = [e for e in self._entries if e.id != entry_id]
            return len(self._entries) != before

    def clear(self) -> None:
        """Close the notification panel. Status history is not affected."""
        with self._lock:
            self._entries.clear()

    def subscribe(self, callback: Callable[[NotificationEntry], None]) -> Callable[[], None]:
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def attach(self, state: Any, expansion: Any) -> Callable[[], None]:
        """Feed status changes of an observable tree state through this engine.

        ``state`` must offer ``subscribe(callback(previous, current))`` with
        snapshots exposing ``forest`` and ``statuses``; ``expansion`` must
        expose ``expanded``.
        """

        def _on_change(previous: Any, current: Any) -> None:
            if previous.statuses == current.statuses:
                return
            forest = current.forest
            visible = visible_ids(forest, expansion.expanded)
            labels: Dict[NodeId, str] = {
                node_id: node.label for node_id, node in forest.nodes.items() if node_id in visible
            }
            self.on_status_snapshot_change(previous.statuses, current.statuses, visible, labels)

        return state.subscribe(_on_change)

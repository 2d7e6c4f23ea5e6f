"""Data models for the navigation tree.

This module defines the core data structures shared by the tree store,
the cache layer and the view components, following these principles:

1. ARENA, NOT POINTERS
   - Nodes live in an id-indexed map; parent/child links are ids
   - A node's children are an ordered tuple of ids owned by that node

2. IMMUTABLE SNAPSHOTS
   - Node and Forest are frozen; every structural update returns a new
     Forest that shares all untouched Node objects with the previous one

3. NORMALIZED STATUS VALUES
   - Node: IDLE, INACTIVE, ACTIVE

4. EXPLICIT VERSIONS
   - Every node carries the logical version of the last write applied to it
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Hashable, Optional, Tuple


NodeId = Hashable


class NodeStatus(str, Enum):
    """Status of a tree node."""

    IDLE = "idle"
    INACTIVE = "inactive"
    ACTIVE = "active"


@dataclass(frozen=True)
class Node:
    """A single node of the navigation tree.

    ``has_children=False`` together with ``children_loaded=True`` means a
    confirmed leaf. ``children_loaded=False`` means the subtree has not been
    fetched yet and an empty ``children`` tuple must not be trusted.
    """

    id: NodeId
    parent_id: Optional[NodeId] = None
    label: str = ""
    status: NodeStatus = NodeStatus.IDLE
    children: Tuple[NodeId, ...] = ()
    has_children: bool = False
    has_children_declared: bool = False  # server sent hasChildren explicitly
    children_loaded: bool = False
    version: int = 0

    @property
    def is_root(self) -> bool:
        return self.parent_id is None

    def evolve(self, **changes: Any) -> "Node":
        """Return a copy with ``changes`` applied."""
        return replace(self, **changes)


@dataclass(frozen=True)
class Forest:
    """Immutable snapshot of the node forest.

    ``nodes`` holds every known node, including orphans whose parent has not
    arrived yet. Orphans are listed in ``orphans`` and are not reachable from
    ``roots``.
    """

    nodes: Dict[NodeId, Node] = field(default_factory=dict)
    roots: Tuple[NodeId, ...] = ()
    orphans: Tuple[NodeId, ...] = ()

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    def get(self, node_id: NodeId) -> Optional[Node]:
        return self.nodes.get(node_id)

    @property
    def is_empty(self) -> bool:
        return not self.roots


@dataclass
class CacheEntry:
    """Cached payload with its write time.

    Units:
    - timestamp: seconds since the epoch (float)
    """

    key: str
    timestamp: float
    payload: Any

    def age(self, now: float) -> float:
        return now - self.timestamp

    def is_expired(self, now: float, ttl: float) -> bool:
        return self.age(now) >= ttl

    def to_dict(self) -> Dict[str, Any]:
        """Serialize as ``{"timestamp": epoch_millis, "data": payload}``."""
        return {"timestamp": int(self.timestamp * 1000), "data": self.payload}

    @classmethod
    def from_dict(cls, key: str, data: Dict[str, Any]) -> "CacheEntry":
        """Inverse of ``to_dict``; raises ``KeyError``/``TypeError``/``ValueError`` on bad input."""
        return cls(key=key, timestamp=float(data["timestamp"]) / 1000.0, payload=data["data"])


@dataclass
class NotificationEntry:
    """User-facing status-change notification.

    Units:
    - created_at: seconds since the epoch (float)
    - remaining_ttl: seconds (float)
    """

    id: int
    node_id: NodeId
    node_label: str
    old_status: NodeStatus
    new_status: NodeStatus
    created_at: float
    remaining_ttl: float

    @property
    def message(self) -> str:
        return f"{self.node_label} changed from {self.old_status.value} to {self.new_status.value}"

    @property
    def expired(self) -> bool:
        return self.remaining_ttl <= 0

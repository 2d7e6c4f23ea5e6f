"""Expansion state with accordion semantics.

Among any sibling group at most one node is expanded at a time: expanding a
node first collapses every sibling together with its whole subtree.
"""

from __future__ import annotations

import threading
from typing import Callable, FrozenSet, Iterable, Optional, Set

from ..data.models import Forest, Node, NodeId
from ..data.tree import descendant_ids, find_by_id, siblings_of


def is_expandable(node: Node) -> bool:
    """Whether a node can be opened.

    A server-declared ``hasChildren`` is trusted; otherwise a node whose
    children are not loaded yet is optimistically expandable.
    """
    if node.has_children_declared:
        return node.has_children
    return not node.children_loaded or bool(node.children)


class ExpansionController:
    """Tracks which subtrees are open and which node is active.

    Args:
        forest_provider: Returns the current Forest snapshot
        fetch_children: Called with a node id to lazy-load its children
        on_active_change: Called with ``(previous_id, new_id)``
    """

    def __init__(
        self,
        forest_provider: Callable[[], Forest],
        fetch_children: Optional[Callable[[NodeId], None]] = None,
        on_active_change: Optional[Callable[[Optional[NodeId], NodeId], None]] = None,
    ):
        self._forest_provider = forest_provider
        self._fetch_children = fetch_children
        self._on_active_change = on_active_change
        self._expanded: Set[NodeId] = set()
        self._active_node_id: Optional[NodeId] = None
        self._lock = threading.Lock()

    @property
    def expanded(self) -> FrozenSet[NodeId]:
        with self._lock:
            return frozenset(self._expanded)

    @property
    def active_node_id(self) -> Optional[NodeId]:
        return self._active_node_id

    def active_node(self) -> Optional[Node]:
        if self._active_node_id is None:
            return None
        return find_by_id(self._forest_provider(), self._active_node_id)

    def is_expanded(self, node_id: NodeId) -> bool:
        with self._lock:
            return node_id in self._expanded

    def toggle(self, node: Node, siblings: Iterable[Node]) -> bool:
        """Open or close ``node``.

        Returns:
            True if the node is expanded afterwards.
        """
        forest = self._forest_provider()
        expanded_after = False
        if is_expandable(node):
            with self._lock:
                if node.id in self._expanded:
                    self._collapse(forest, node.id)
                else:
                    for sibling in siblings:
                        sibling_id = getattr(sibling, "id", sibling)
                        if sibling_id != node.id:
                            self._collapse(forest, sibling_id)
                    self._expanded.add(node.id)
                    expanded_after = True

        self._set_active(node.id)

        if expanded_after and not node.children_loaded and self._fetch_children is not None:
            self._fetch_children(node.id)
        return expanded_after

    def toggle_by_id(self, node_id: NodeId) -> bool:
        """Toggle a node looked up in the current forest; unknown ids are ignored."""
        forest = self._forest_provider()
        node = find_by_id(forest, node_id)
        if node is None:
            return False
        return self.toggle(node, siblings_of(forest, node_id))

    def collapse_all(self) -> None:
        with self._lock:
            self._expanded.clear()

    def prune(self, forest: Optional[Forest] = None) -> None:
        """Forget expanded ids that no longer exist in the forest."""
        if forest is None:
            forest = self._forest_provider()
        with self._lock:
            self._expanded = {i for i in self._expanded if find_by_id(forest, i) is not None}

    def _collapse(self, forest: Forest, node_id: NodeId) -> None:
        self._expanded.discard(node_id)
        self._expanded.difference_update(descendant_ids(forest, node_id))

    def _set_active(self, node_id: NodeId) -> None:
        previous = self._active_node_id
        self._active_node_id = node_id
        if previous != node_id and self._on_active_change is not None:
            self._on_active_change(previous, node_id)

"""Visibility of nodes given the expansion state."""

from __future__ import annotations

from typing import AbstractSet, Any, Dict, List, Set, Tuple

from ..data.models import Forest, Node, NodeId


def visible_ids(forest: Forest, expanded: AbstractSet[NodeId]) -> Set[NodeId]:
    """Ids of every rendered node.

    Roots are always visible; a node's children are visible only when the
    node itself is visible and expanded.
    """
    out: Set[NodeId] = set()
    stack = list(forest.roots)
    while stack:
        node_id = stack.pop()
        out.add(node_id)
        if node_id in expanded:
            stack.extend(forest.nodes[node_id].children)
    return out


def visible_rows(forest: Forest, expanded: AbstractSet[NodeId]) -> List[Tuple[int, Node]]:
    """Rendered nodes in display order as ``(depth, node)`` pairs."""
    rows: List[Tuple[int, Node]] = []
    stack = [(0, r) for r in reversed(forest.roots)]
    while stack:
        depth, node_id = stack.pop()
        node = forest.nodes[node_id]
        rows.append((depth, node))
        if node_id in expanded:
            stack.extend((depth + 1, c) for c in reversed(node.children))
    return rows


def status_tree(forest: Forest, node_id: NodeId) -> List[Dict[str, Any]]:
    """Statuses of a node's loaded descendants, nested under its children."""

    def _render(child_id: NodeId) -> Dict[str, Any]:
        child = forest.nodes[child_id]
        return {
            "id": child.id,
            "label": child.label,
            "status": child.status.value,
            "children": [_render(c) for c in child.children],
        }

    node = forest.nodes.get(node_id)
    if node is None:
        return []
    return [_render(c) for c in node.children]

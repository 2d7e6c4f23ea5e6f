"""Tree store - builds and updates the node forest.

All operations are pure: they take a Forest and return a new Forest. Nodes
are kept in an id-indexed arena and untouched Node objects are shared
between the old and the new snapshot, so an update only allocates new
records for the nodes it actually changes.

Conflict resolution is last-writer-wins by version: every write carries a
logical version and a write older than the stored node is ignored, whatever
order the writes arrive in.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from .models import Forest, Node, NodeId, NodeStatus


def _new_node(record: Dict[str, Any], version: int) -> Node:
    declared = "has_children" in record
    return Node(
        id=record["id"],
        parent_id=record.get("parent_id"),
        label=record.get("label", ""),
        status=record.get("status", NodeStatus.IDLE),
        has_children=bool(record.get("has_children", False)),
        has_children_declared=declared,
        version=record.get("version", version),
    )


def _with_children(node: Node, children: Sequence[NodeId]) -> Node:
    """Replace a node's child list, keeping ``has_children`` consistent."""
    children = tuple(children)
    if children == node.children:
        return node
    pending_declared = node.has_children_declared and node.has_children and not node.children_loaded
    return node.evolve(children=children, has_children=bool(children) or pending_declared)


def _apply_fields(node: Node, record: Dict[str, Any], version: int) -> Node:
    """Shallow-merge supplied fields onto ``node``; structure is left alone."""
    changes: Dict[str, Any] = {}
    if "label" in record and record["label"] != node.label:
        changes["label"] = record["label"]
    if "status" in record and record["status"] != node.status:
        changes["status"] = record["status"]
    if "has_children" in record and not node.children_loaded:
        declared = bool(record["has_children"]) or bool(node.children)
        if declared != node.has_children or not node.has_children_declared:
            changes["has_children"] = declared
            changes["has_children_declared"] = True
    if not changes:
        return node
    changes["version"] = max(node.version, record.get("version", version))
    return node.evolve(**changes)


class _Draft:
    """Mutable working copy of a Forest used while applying one operation."""

    def __init__(self, forest: Forest):
        self.base = forest
        self.nodes: Dict[NodeId, Node] = dict(forest.nodes)
        self.roots: List[NodeId] = list(forest.roots)
        self.orphans: List[NodeId] = list(forest.orphans)

    def freeze(self) -> Forest:
        """Return the resulting Forest, or the input one if nothing changed."""
        base = self.base
        if (
            tuple(self.roots) == base.roots
            and tuple(self.orphans) == base.orphans
            and len(self.nodes) == len(base.nodes)
            and all(base.nodes.get(k) is v for k, v in self.nodes.items())
        ):
            return base
        return Forest(nodes=self.nodes, roots=tuple(self.roots), orphans=tuple(self.orphans))

    def is_descendant(self, node_id: NodeId, ancestor_id: NodeId) -> bool:
        """True if ``node_id`` sits at or below ``ancestor_id``."""
        seen = set()
        current = node_id
        while current is not None and current not in seen:
            if current == ancestor_id:
                return True
            seen.add(current)
            node = self.nodes.get(current)
            current = node.parent_id if node else None
        return False

    def unlink(self, node_id: NodeId) -> None:
        """Detach a node from its parent (or the root list) without deleting it."""
        node = self.nodes[node_id]
        if node_id in self.orphans:
            self.orphans.remove(node_id)
        if node.parent_id is None:
            if node_id in self.roots:
                self.roots.remove(node_id)
            return
        parent = self.nodes.get(node.parent_id)
        if parent and node_id in parent.children:
            self.nodes[parent.id] = _with_children(parent, [c for c in parent.children if c != node_id])

    def link(self, node_id: NodeId) -> None:
        """Attach a node under its ``parent_id``; unknown parents make it an orphan."""
        node = self.nodes[node_id]
        if node.parent_id is None:
            if node_id not in self.roots:
                self.roots.append(node_id)
            return
        parent = self.nodes.get(node.parent_id)
        if parent is None or self.is_descendant(parent.id, node_id):
            if node_id not in self.orphans:
                self.orphans.append(node_id)
            return
        if node_id not in parent.children:
            self.nodes[parent.id] = _with_children(parent, parent.children + (node_id,))

    def adopt_orphans(self) -> None:
        """Link every orphan whose parent has arrived since it was orphaned."""
        changed = True
        while changed and self.orphans:
            changed = False
            for orphan_id in list(self.orphans):
                node = self.nodes[orphan_id]
                parent_id = node.parent_id
                if parent_id is None or (parent_id in self.nodes and not self.is_descendant(parent_id, orphan_id)):
                    self.orphans.remove(orphan_id)
                    self.link(orphan_id)
                    changed = True

    def remove_subtree(self, node_id: NodeId) -> None:
        node = self.nodes.get(node_id)
        if node is None:
            return
        self.unlink(node_id)
        stack = [node_id]
        while stack:
            current = self.nodes.pop(stack.pop(), None)
            if current is not None:
                stack.extend(current.children)

    def reconcile(self, parent_id: Optional[NodeId], records: Iterable[Dict[str, Any]], version: int) -> List[NodeId]:
        """Make ``records`` the child list of ``parent_id`` (``None`` = roots).

        Existing nodes keep their own subtrees. Previous members missing from
        ``records`` are removed with their subtrees unless they were written
        by a newer version than ``version``.
        """
        if parent_id is None:
            previous = list(self.roots)
        else:
            previous = list(self.nodes[parent_id].children)

        ordered: List[NodeId] = []
        for record in records:
            record = dict(record, parent_id=parent_id)
            node_id = record["id"]
            if node_id == parent_id or node_id in ordered:
                continue
            existing = self.nodes.get(node_id)
            if existing is None:
                self.nodes[node_id] = _new_node(record, version)
                ordered.append(node_id)
                continue
            if existing.version > record.get("version", version):
                if existing.parent_id == parent_id:
                    ordered.append(node_id)
                continue
            if parent_id is not None and self.is_descendant(parent_id, node_id):
                continue
            if existing.parent_id != parent_id or node_id in self.orphans:
                self.unlink(node_id)
                existing = self.nodes[node_id].evolve(parent_id=parent_id)
            self.nodes[node_id] = _apply_fields(existing, record, version)
            ordered.append(node_id)

        for old_id in previous:
            if old_id in ordered:
                continue
            old = self.nodes.get(old_id)
            if old is None or old.parent_id != parent_id:
                continue
            if old.version > version:
                ordered.append(old_id)
            else:
                self.remove_subtree(old_id)

        if parent_id is None:
            self.roots = ordered
        else:
            self.nodes[parent_id] = _with_children(self.nodes[parent_id], ordered)
        return ordered


def _break_cycles(draft: _Draft) -> None:
    """Turn nodes caught in parent cycles into orphans."""
    reachable = set()
    stack = list(draft.roots)
    while stack:
        node_id = stack.pop()
        if node_id in reachable:
            continue
        reachable.add(node_id)
        stack.extend(draft.nodes[node_id].children)

    orphan_set = set(draft.orphans)
    for node_id in list(draft.nodes):
        if node_id in reachable or node_id in orphan_set:
            continue
        seen: List[NodeId] = []
        current = node_id
        while current not in seen:
            if current is None or current not in draft.nodes:
                break
            if current in orphan_set or current in reachable:
                break
            seen.append(current)
            current = draft.nodes[current].parent_id
        else:
            draft.unlink(current)
            draft.orphans.append(current)
            orphan_set.add(current)


# =============================================================================
# Public operations
# =============================================================================


def build_tree(records: Iterable[Dict[str, Any]], version: int = 0) -> Forest:
    """Build a forest from a flat list of normalized records.

    Pass 1 creates one fresh node per record (no children, not loaded).
    Pass 2 links each node to its parent in input order and marks the parent
    as having children. Nodes whose parent is missing are kept as orphans.
    """
    nodes: Dict[NodeId, Node] = {}
    order: List[NodeId] = []
    for record in records:
        node = _new_node(record, version)
        if node.id not in nodes:
            order.append(node.id)
        nodes[node.id] = node

    children: Dict[NodeId, List[NodeId]] = {}
    roots: List[NodeId] = []
    orphans: List[NodeId] = []
    for node_id in order:
        parent_id = nodes[node_id].parent_id
        if parent_id is None:
            roots.append(node_id)
        elif parent_id in nodes and parent_id != node_id:
            children.setdefault(parent_id, []).append(node_id)
        else:
            orphans.append(node_id)

    for parent_id, kids in children.items():
        nodes[parent_id] = nodes[parent_id].evolve(children=tuple(kids), has_children=True)

    draft = _Draft(Forest(nodes=nodes, roots=tuple(roots), orphans=tuple(orphans)))
    _break_cycles(draft)
    return draft.freeze()


def flatten(forest: Forest) -> List[Node]:
    """Pre-order traversal of every node reachable from the roots."""
    out: List[Node] = []
    stack = list(reversed(forest.roots))
    while stack:
        node = forest.nodes[stack.pop()]
        out.append(node)
        stack.extend(reversed(node.children))
    return out


def merge_update(forest: Forest, record: Dict[str, Any], version: int = 0) -> Forest:
    """Merge a single node update into the forest.

    Supplied fields win, unspecified fields are retained, and the node's
    loaded subtree is preserved. A record older than the stored node is
    ignored. Unknown ids are inserted (as orphans if their parent is unknown).
    """
    node_id = record["id"]
    existing = forest.nodes.get(node_id)
    record_version = record.get("version", version)
    if existing is not None and existing.version > record_version:
        return forest

    draft = _Draft(forest)
    if existing is None:
        draft.nodes[node_id] = _new_node(record, version)
        draft.link(node_id)
    else:
        updated = _apply_fields(existing, record, version)
        new_parent = record.get("parent_id", existing.parent_id)
        moving = new_parent != existing.parent_id
        if moving and new_parent is not None and draft.is_descendant(new_parent, node_id):
            moving = False
        if moving:
            draft.unlink(node_id)
            draft.nodes[node_id] = updated.evolve(parent_id=new_parent)
            draft.link(node_id)
        elif updated is existing:
            return forest
        else:
            draft.nodes[node_id] = updated
    draft.adopt_orphans()
    return draft.freeze()


def attach_children(
    forest: Forest, node_id: NodeId, records: Iterable[Dict[str, Any]], version: int = 0
) -> Forest:
    """Set a node's children from a fetched list.

    The target ends up with ``children_loaded=True`` and
    ``has_children=bool(children)``. Nodes outside the target's child list
    are shared unchanged with the input forest.
    """
    if node_id not in forest.nodes:
        return forest
    draft = _Draft(forest)
    kids = tuple(draft.reconcile(node_id, records, version))
    target = draft.nodes[node_id]
    if target.children != kids or not target.children_loaded or target.has_children != bool(kids):
        draft.nodes[node_id] = target.evolve(children=kids, children_loaded=True, has_children=bool(kids))
    draft.adopt_orphans()
    return draft.freeze()


def replace_roots(forest: Forest, records: Iterable[Dict[str, Any]], version: int = 0) -> Forest:
    """Make ``records`` the authoritative top-level list, keeping loaded subtrees."""
    draft = _Draft(forest)
    draft.reconcile(None, records, version)
    draft.adopt_orphans()
    return draft.freeze()


# =============================================================================
# Queries
# =============================================================================


def is_attached(forest: Forest, node_id: NodeId) -> bool:
    """True if the node is reachable from a root (i.e. not an orphan subtree)."""
    seen = set()
    current = node_id
    while current not in seen:
        node = forest.nodes.get(current)
        if node is None or current in forest.orphans:
            return False
        if node.parent_id is None:
            return current in forest.roots
        seen.add(current)
        current = node.parent_id
    return False


def find_by_id(forest: Forest, node_id: NodeId) -> Optional[Node]:
    """Return the node with ``node_id`` if it is part of the visible forest."""
    if is_attached(forest, node_id):
        return forest.nodes[node_id]
    return None


def children_of(forest: Forest, node_id: Optional[NodeId]) -> List[Node]:
    """Child nodes of ``node_id`` (``None`` = the roots)."""
    if node_id is None:
        return [forest.nodes[r] for r in forest.roots]
    node = forest.nodes.get(node_id)
    if node is None:
        return []
    return [forest.nodes[c] for c in node.children]


def siblings_of(forest: Forest, node_id: NodeId) -> List[Node]:
    """The sibling group of a node, the node itself included."""
    node = forest.nodes.get(node_id)
    if node is None:
        return []
    return children_of(forest, node.parent_id)


def descendant_ids(forest: Forest, node_id: NodeId) -> List[NodeId]:
    """Every id below ``node_id`` (excluding the node itself)."""
    node = forest.nodes.get(node_id)
    if node is None:
        return []
    out: List[NodeId] = []
    stack = list(node.children)
    while stack:
        current = stack.pop()
        out.append(current)
        child = forest.nodes.get(current)
        if child is not None:
            stack.extend(child.children)
    return out


def path_to(forest: Forest, node_id: NodeId) -> List[NodeId]:
    """Ancestor ids of a node, root first (the node itself excluded)."""
    path: List[NodeId] = []
    node = forest.nodes.get(node_id)
    while node is not None and node.parent_id is not None and node.parent_id not in path:
        path.append(node.parent_id)
        node = forest.nodes.get(node.parent_id)
    path.reverse()
    return path


def to_nested(forest: Forest, root_ids: Optional[Sequence[NodeId]] = None) -> List[Dict[str, Any]]:
    """Render the forest as nested dicts (``children`` as lists of dicts)."""

    def _render(node_id: NodeId) -> Dict[str, Any]:
        node = forest.nodes[node_id]
        return {
            "id": node.id,
            "parentId": node.parent_id,
            "label": node.label,
            "status": node.status.value,
            "hasChildren": node.has_children,
            "childrenLoaded": node.children_loaded,
            "children": [_render(c) for c in node.children],
        }

    ids: Tuple[NodeId, ...] = tuple(root_ids) if root_ids is not None else forest.roots
    return [_render(r) for r in ids]

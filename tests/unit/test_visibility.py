"""Tests for visibility calculation."""

import random

import pytest

from navtree.data.tree import build_tree, path_to, siblings_of
from navtree.view.expansion import ExpansionController
from navtree.view.visibility import status_tree, visible_ids, visible_rows


@pytest.fixture
def forest(flat_nodes):
    return build_tree(flat_nodes)


class TestVisibleIds:
    def test_roots_always_visible(self, forest):
        assert visible_ids(forest, set()) == {1, 5}

    def test_expanded_root_shows_children(self, forest):
        assert visible_ids(forest, {1}) == {1, 2, 3, 5}

    def test_requires_every_ancestor_expanded(self, forest):
        assert visible_ids(forest, {2}) == {1, 5}
        assert visible_ids(forest, {1, 2}) == {1, 2, 3, 4, 5}

    @pytest.mark.parametrize("seed", range(5))
    def test_ancestor_expansion_property(self, forest, seed):
        rng = random.Random(seed)
        ctrl = ExpansionController(lambda: forest)
        ids = list(forest.nodes)

        for _ in range(30):
            node_id = rng.choice(ids)
            ctrl.toggle(forest.nodes[node_id], siblings_of(forest, node_id))

            expanded = ctrl.expanded
            for visible in visible_ids(forest, expanded):
                assert all(ancestor in expanded for ancestor in path_to(forest, visible))


class TestVisibleRows:
    def test_display_order_and_depth(self, forest):
        rows = visible_rows(forest, {1, 2})
        assert [(depth, node.id) for depth, node in rows] == [(0, 1), (1, 2), (2, 4), (1, 3), (0, 5)]


class TestStatusTree:
    def test_nested_descendant_statuses(self, forest):
        tree = status_tree(forest, 1)

        assert [entry["id"] for entry in tree] == [2, 3]
        assert tree[0]["children"] == [{"id": 4, "label": "Press", "status": "active", "children": []}]
        assert tree[1]["status"] == "inactive"

    def test_unknown_node(self, forest):
        assert status_tree(forest, 404) == []

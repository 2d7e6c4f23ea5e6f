"""Tests for status-change notifications."""

from types import SimpleNamespace

import pytest

from navtree.data.models import NodeStatus
from navtree.data.tree import build_tree
from navtree.sync.engine import TreeSnapshot, TreeState
from navtree.view.notifications import NotificationEngine

ACTIVE = NodeStatus.ACTIVE
IDLE = NodeStatus.IDLE
INACTIVE = NodeStatus.INACTIVE


@pytest.fixture
def engine(clock):
    return NotificationEngine(ttl=30, clock=clock)


class TestStatusDiff:
    def test_first_observation_is_suppressed(self, engine):
        assert engine.on_status_snapshot_change({}, {1: ACTIVE}, {1}) == []
        assert engine.entries() == []

    def test_hidden_nodes_do_not_notify(self, engine):
        assert engine.on_status_snapshot_change({1: IDLE}, {1: ACTIVE}, set()) == []

    def test_unchanged_status_does_not_notify(self, engine):
        assert engine.on_status_snapshot_change({1: IDLE}, {1: IDLE}, {1}) == []

    def test_change_creates_entry(self, engine, clock):
        clock.advance(5)
        created = engine.on_status_snapshot_change({2: IDLE}, {2: ACTIVE}, {2}, {2: "Child"})

        assert len(created) == 1
        entry = created[0]
        assert entry.message == "Child changed from idle to active"
        assert entry.created_at == 5
        assert entry.remaining_ttl == 30
        assert engine.entries() == created

    def test_label_falls_back_to_id(self, engine):
        created = engine.on_status_snapshot_change({7: ACTIVE}, {7: INACTIVE}, {7})
        assert created[0].message == "7 changed from active to inactive"

    def test_max_entries_drops_oldest(self, clock):
        engine = NotificationEngine(ttl=30, max_entries=2, clock=clock)
        for node_id in (1, 2, 3):
            engine.on_status_snapshot_change({node_id: IDLE}, {node_id: ACTIVE}, {node_id})

        assert [e.node_id for e in engine.entries()] == [2, 3]


class TestExpiry:
    def test_entries_expire_independently(self, engine):
        engine.on_status_snapshot_change({1: IDLE}, {1: ACTIVE}, {1})
        engine.tick(10)
        engine.on_status_snapshot_change({2: IDLE}, {2: ACTIVE}, {2})

        expired = engine.tick(20)
        assert [e.node_id for e in expired] == [1]
        assert [e.node_id for e in engine.entries()] == [2]
        assert engine.entries()[0].remaining_ttl == 10

        assert [e.node_id for e in engine.tick(10)] == [2]
        assert engine.entries() == []

    def test_dismiss(self, engine):
        entry = engine.on_status_snapshot_change({1: IDLE}, {1: ACTIVE}, {1})[0]

        assert engine.dismiss(entry.id) is True
        assert engine.dismiss(entry.id) is False

    def test_clear_only_empties_panel(self, engine):
        engine.on_status_snapshot_change({1: IDLE}, {1: ACTIVE}, {1})
        engine.clear()
        assert engine.entries() == []

        created = engine.on_status_snapshot_change({1: ACTIVE}, {1: INACTIVE}, {1})
        assert len(created) == 1


class TestSubscribers:
    def test_subscriber_receives_entries(self, engine):
        received = []
        unsubscribe = engine.subscribe(received.append)

        engine.on_status_snapshot_change({1: IDLE}, {1: ACTIVE}, {1})
        unsubscribe()
        engine.on_status_snapshot_change({1: ACTIVE}, {1: IDLE}, {1})

        assert [e.new_status for e in received] == [ACTIVE]

    def test_failing_subscriber_is_isolated(self, engine):
        def broken(entry):
            raise RuntimeError("boom")

        engine.subscribe(broken)
        created = engine.on_status_snapshot_change({1: IDLE}, {1: ACTIVE}, {1})

        assert len(created) == 1
        assert len(engine.entries()) == 1


class TestAttach:
    def test_diffs_committed_snapshots(self, engine, flat_nodes):
        forest = build_tree(flat_nodes)
        state = TreeState()
        expansion = SimpleNamespace(expanded=frozenset({1}))
        engine.attach(state, expansion)

        state.commit(lambda snap: TreeSnapshot(forest=forest, statuses={2: IDLE, 4: ACTIVE}))
        state.commit(lambda snap: TreeSnapshot(forest=forest, statuses={2: ACTIVE, 4: IDLE}))

        entries = engine.entries()
        assert [e.message for e in entries] == ["Line 1 changed from idle to active"]

    def test_detach(self, engine, flat_nodes):
        forest = build_tree(flat_nodes)
        state = TreeState()
        detach = engine.attach(state, SimpleNamespace(expanded=frozenset()))

        state.commit(lambda snap: TreeSnapshot(forest=forest, statuses={1: IDLE}))
        detach()
        state.commit(lambda snap: TreeSnapshot(forest=forest, statuses={1: ACTIVE}))

        assert engine.entries() == []

"""Pytest configuration and shared fixtures."""

import pytest
from pathlib import Path
from tempfile import TemporaryDirectory

from navtree.collectors.base import SourceError
from navtree.data.normalization import normalize_records


@pytest.fixture
def temp_data_dir():
    """Create a temporary data directory for tests."""
    with TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


class FakeClock:
    """Manually advanced clock returning seconds."""

    def __init__(self, start=0.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeSource:
    """In-memory stand-in for the tree API.

    ``top_level`` is a list of raw records; ``children`` maps a parent id to
    its raw child records. Set ``fail`` to make every call raise SourceError.
    """

    def __init__(self, top_level=None, children=None):
        self.top_level = list(top_level or [])
        self.children = dict(children or {})
        self.fail = False
        self.calls = []
        self.closed = False

    def fetch_top_level(self):
        self.calls.append(("top_level", None))
        if self.fail:
            raise SourceError("fake", "top-level unavailable")
        return list(self.top_level)

    def fetch_children(self, node_id):
        self.calls.append(("children", node_id))
        if self.fail:
            raise SourceError("fake", f"children of {node_id} unavailable")
        return list(self.children.get(node_id, []))

    def close(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def raw_root_and_child():
    """The two-node tree used throughout the examples."""
    return [
        {"id": 1, "parentId": None, "label": "Root", "status": "Idle"},
        {"id": 2, "parentId": 1, "label": "Child", "status": "Idle"},
    ]


@pytest.fixture
def raw_flat_nodes():
    """A small forest: two roots, one with a two-level subtree."""
    return [
        {"id": 1, "parentId": None, "label": "Plant A", "status": "Active"},
        {"id": 2, "parentId": 1, "label": "Line 1", "status": "Idle"},
        {"id": 3, "parentId": 1, "label": "Line 2", "status": "Inactive"},
        {"id": 4, "parentId": 2, "label": "Press", "status": "Active"},
        {"id": 5, "parentId": 0, "label": "Plant B", "status": "Idle"},
        {"id": 6, "parentId": 5, "label": "Line 3", "status": "Idle"},
    ]


@pytest.fixture
def flat_nodes(raw_flat_nodes):
    return normalize_records(raw_flat_nodes)


@pytest.fixture
def fake_source(raw_root_and_child):
    return FakeSource(top_level=raw_root_and_child)


@pytest.fixture
def source_cls():
    """The FakeSource class, for tests that subclass it."""
    return FakeSource

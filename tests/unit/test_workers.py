"""Tests for background workers."""

import threading
import time

import pytest
from unittest.mock import MagicMock

from navtree.collectors.base import SourceError
from navtree.data.cache import CacheLayer
from navtree.data.models import NodeStatus
from navtree.sync.engine import SyncEngine
from navtree.sync.workers import PollWorker, PushWorker, TickWorker, WorkerManager
from navtree.view.notifications import NotificationEngine


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def engine(fake_source, clock):
    return SyncEngine(fake_source, cache=CacheLayer(clock=clock))


class StubChannel:
    """Push channel double: fails the first ``failures`` connects."""

    url = "wss://stub"

    def __init__(self, failures=0):
        self.on_event = None
        self.failures = failures
        self.connects = 0
        self.closed = False

    def connect(self):
        self.connects += 1
        if self.connects <= self.failures:
            raise SourceError("push", "refused")

    def listen(self, stop_event):
        self.on_event({"id": 1, "status": "Active"})
        stop_event.set()

    def close(self):
        self.closed = True


class TestPollWorker:
    def test_success_resets_failures(self, engine, fake_source):
        worker = PollWorker(engine, 60, failure_threshold=3, pause_duration=0)

        fake_source.fail = True
        assert worker.poll_once() is False
        fake_source.fail = False
        assert worker.poll_once() is True
        assert worker._consecutive_failures == 0

    def test_circuit_breaker_pauses_then_retries(self, engine, fake_source):
        worker = PollWorker(engine, 60, failure_threshold=2, pause_duration=0)
        fake_source.fail = True
        worker.poll_once()
        worker.poll_once()
        assert worker._consecutive_failures == 2

        fake_source.fail = False
        assert worker.poll_once() is True
        assert worker._consecutive_failures == 0

    def test_stop_during_pause_skips_refresh(self, engine, fake_source):
        worker = PollWorker(engine, 60, failure_threshold=1, pause_duration=60)
        fake_source.fail = True
        worker.poll_once()
        calls = len(fake_source.calls)

        worker.stop()
        assert worker.poll_once() is False
        assert len(fake_source.calls) == calls

    def test_runs_immediately(self, engine):
        worker = PollWorker(engine, 60)
        worker.start()
        try:
            assert _wait_for(lambda: worker.polls >= 1)
        finally:
            worker.stop()
            worker.join(timeout=5)

        assert not worker.is_alive()
        assert engine.forest.roots == (1,)


class TestPushWorker:
    def test_backoff_sequence(self, engine):
        worker = PushWorker(StubChannel(), engine, retry_backoff=[1, 5, 15, 60])
        assert [worker.next_delay() for _ in range(5)] == [1, 5, 15, 60, 60]

    def test_wires_events_to_engine(self, engine):
        channel = StubChannel()
        PushWorker(channel, engine)
        assert channel.on_event == engine.on_push_event

    def test_keeps_existing_handler(self, engine):
        channel = StubChannel()
        handler = MagicMock()
        channel.on_event = handler

        PushWorker(channel, engine)
        assert channel.on_event is handler

    def test_reconnects_after_failure(self, engine):
        engine.refresh_top_level()
        channel = StubChannel(failures=1)
        worker = PushWorker(channel, engine, retry_backoff=[0])

        worker.run()

        assert channel.connects == 2
        assert channel.closed is True
        assert engine.forest.nodes[1].status == NodeStatus.ACTIVE


class TestTickWorker:
    def test_expires_notifications(self):
        notifications = NotificationEngine(ttl=0.05)
        notifications.on_status_snapshot_change({1: NodeStatus.IDLE}, {1: NodeStatus.ACTIVE}, {1})
        worker = TickWorker(notifications, tick_interval=0.01)
        worker.start()
        try:
            assert _wait_for(lambda: notifications.entries() == [])
        finally:
            worker.stop()
            worker.join(timeout=5)


class TestWorkerManager:
    def test_stop_all_closes_everything(self, engine):
        manager = WorkerManager(engine)
        closer = MagicMock()
        worker = manager.register("poll", PollWorker(engine, 60), closer=closer)

        manager.start_all()
        assert manager.get("poll") is worker
        manager.stop_all()

        assert engine.alive is False
        assert not worker.is_alive()
        closer.close.assert_called_once()
        assert manager.get_all_status() == {"poll": {"alive": False}}

    def test_closer_errors_are_logged(self, engine):
        manager = WorkerManager(engine)
        broken = MagicMock()
        broken.close.side_effect = RuntimeError("boom")
        other = MagicMock()
        manager.register("tick", TickWorker(NotificationEngine()), closer=broken)
        manager.register("extra", threading.Thread(target=lambda: None), closer=other)

        manager.stop_all()

        other.close.assert_called_once()

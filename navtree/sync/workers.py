"""Background workers for polling, push delivery and notification expiry.

Each worker is a daemon thread stopped through an Event, so teardown never
waits longer than one wait interval.
"""

from __future__ import annotations

import threading
from typing import Any, Dict, List, Optional, Sequence

from ..collectors.push import PushChannel
from ..view.notifications import NotificationEngine
from .engine import SyncEngine


def _log(msg: str) -> None:
    """Print with flush for reliable output in daemon threads."""
    print(msg, flush=True)


class PollWorker(threading.Thread):
    """Refreshes the top-level list immediately, then on a fixed interval."""

    daemon = True

    def __init__(
        self,
        engine: SyncEngine,
        interval_seconds: float,
        *,
        run_immediately: bool = True,
        failure_threshold: int = 3,
        pause_duration: float = 30.0,
    ):
        super().__init__(name="navtree-poll-worker")
        self.engine = engine
        self.interval = interval_seconds
        self._stop_event = threading.Event()
        self._run_immediately = run_immediately
        # Circuit breaker state
        self._consecutive_failures = 0
        self._failure_threshold = failure_threshold
        self._pause_duration = pause_duration
        self.polls = 0

    def run(self) -> None:
        _log(f"[poll] Starting (interval={self.interval}s, "
             f"failure_threshold={self._failure_threshold}, "
             f"pause_duration={self._pause_duration}s)")

        if not self._run_immediately and self._stop_event.wait(self.interval):
            return

        while not self._stop_event.is_set():
            self.poll_once()
            if self._stop_event.wait(self.interval):
                break

        _log("[poll] Stopped")

    def poll_once(self) -> bool:
        """Run one refresh cycle, honouring the circuit breaker."""
        if self._consecutive_failures >= self._failure_threshold:
            _log(
                f"[poll] Circuit breaker open: "
                f"{self._consecutive_failures} consecutive failures, "
                f"pausing {self._pause_duration}s"
            )
            if self._stop_event.wait(self._pause_duration):
                return False
            self._consecutive_failures = 0

        try:
            ok, detail = self.engine.refresh_top_level()
        except Exception as exc:
            ok, detail = False, f"Refresh failed: {exc}"
        self.polls += 1
        if ok:
            self._consecutive_failures = 0
        else:
            self._consecutive_failures += 1
            _log(
                f"[poll] {detail} "
                f"(failure {self._consecutive_failures}/{self._failure_threshold})"
            )
        return ok

    def stop(self) -> None:
        self._stop_event.set()


class PushWorker(threading.Thread):
    """Keeps the push channel connected and feeds its events to the engine.

    Reconnects with the delays in ``retry_backoff``; the last delay repeats.
    Connection problems are logged and never reach the poll path.
    """

    daemon = True

    def __init__(self, channel: PushChannel, engine: SyncEngine, retry_backoff: Sequence[float] = (1, 5, 15, 60)):
        super().__init__(name="navtree-push-worker")
        self.channel = channel
        self.engine = engine
        self.retry_backoff = list(retry_backoff) or [5]
        self._stop_event = threading.Event()
        self._attempt = 0
        if self.channel.on_event is None:
            self.channel.on_event = self.engine.on_push_event

    def run(self) -> None:
        _log(f"[push] Starting ({self.channel.url})")
        while not self._stop_event.is_set():
            try:
                self.channel.connect()
                self._attempt = 0
                self.channel.listen(self._stop_event)
            except Exception as exc:
                delay = self.next_delay()
                _log(f"[push] {exc}; reconnecting in {delay}s")
                if self._stop_event.wait(delay):
                    break
        self.channel.close()
        _log("[push] Stopped")

    def next_delay(self) -> float:
        delay = self.retry_backoff[min(self._attempt, len(self.retry_backoff) - 1)]
        self._attempt += 1
        return delay

    def stop(self) -> None:
        self._stop_event.set()


class TickWorker(threading.Thread):
    """Counts down live notifications on a shared tick."""

    daemon = True

    def __init__(self, notifications: NotificationEngine, tick_interval: float = 1.0):
        super().__init__(name="navtree-tick-worker")
        self.notifications = notifications
        self.tick_interval = tick_interval
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.tick_interval):
            self.notifications.tick(self.tick_interval)

    def stop(self) -> None:
        self._stop_event.set()


class WorkerManager:
    """Starts and stops every background worker of one sync session."""

    def __init__(self, engine: SyncEngine):
        self.engine = engine
        self._workers: Dict[str, threading.Thread] = {}
        self._closers: List[Any] = []

    def register(self, name: str, worker: threading.Thread, closer: Any = None) -> threading.Thread:
        """Register a worker; ``closer`` (with ``close()``) is released on stop."""
        self._workers[name] = worker
        if closer is not None:
            self._closers.append(closer)
        return worker

    def get(self, name: str) -> Optional[threading.Thread]:
        return self._workers.get(name)

    def start_all(self) -> None:
        """Start all registered workers."""
        for name, worker in self._workers.items():
            if not worker.is_alive():
                _log(f"[workers] Starting {name} worker")
                worker.start()

    def stop_all(self, timeout: float = 5.0) -> None:
        """Stop all workers and mark the engine closed."""
        self.engine.close()
        for worker in self._workers.values():
            if hasattr(worker, "stop"):
                worker.stop()
        for worker in self._workers.values():
            if worker.is_alive():
                worker.join(timeout=timeout)
        for closer in self._closers:
            try:
                closer.close()
            except Exception as exc:
                _log(f"[workers] Error while closing {closer!r}: {exc}")

    def get_all_status(self) -> Dict[str, Any]:
        return {name: {"alive": worker.is_alive()} for name, worker in self._workers.items()}

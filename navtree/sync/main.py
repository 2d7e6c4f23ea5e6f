#!/usr/bin/env python3
"""
Navigation tree sync client - main entry point.

Keeps a local copy of a remote node tree up to date (polling + push) and
prints the visible outline and status-change notifications to the console.
"""

from __future__ import annotations

import argparse
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from ..collectors.push import PushChannel
from ..collectors.tree_api import TreeApiClient
from ..data.cache import CacheLayer
from ..data.models import NotificationEntry
from ..data.persistence import DataStore
from ..view.expansion import ExpansionController
from ..view.notifications import NotificationEngine
from ..view.visibility import visible_rows
from .config import MIN_POLL_INTERVAL, Config
from .engine import SyncEngine, TreeSnapshot
from .workers import PollWorker, PushWorker, TickWorker, WorkerManager

STATUS_MARKERS = {"idle": "○", "inactive": "●", "active": "◉"}


@dataclass
class Session:
    """Everything wired together for one running client."""

    config: Config
    engine: SyncEngine
    expansion: ExpansionController
    notifications: NotificationEngine
    workers: WorkerManager
    channel: Optional[PushChannel] = None

    def start(self) -> None:
        self.workers.start_all()

    def stop(self) -> None:
        self.workers.stop_all()


def create_session(
    config: Config,
    source: Optional[Any] = None,
    channel: Optional[PushChannel] = None,
) -> Session:
    """Wire the engine, view state and workers from ``config``.

    ``source`` and ``channel`` default to the HTTP client and WebSocket
    channel described by the config.
    """
    if source is None:
        source = TreeApiClient(
            base_url=config.source.base_url,
            timeout=config.source.timeout,
            verify=config.source.verify,
            ca_bundle=config.source.ca_bundle,
            children_path=config.source.children_path,
        )

    store = None
    if config.cache.persist:
        store = DataStore(Path(config.data_dir) if config.data_dir else None)
    cache = CacheLayer(ttl=config.cache.ttl, max_entries=config.cache.max_entries, store=store)
    engine = SyncEngine(source, cache=cache)

    if channel is None and config.push.enabled:
        channel = PushChannel(
            url=config.push.url,
            on_event=engine.on_push_event,
            open_timeout=config.push.open_timeout,
        )

    expansion = ExpansionController(
        forest_provider=lambda: engine.forest,
        fetch_children=engine.schedule_fetch_children,
        on_active_change=channel.follow if channel is not None else None,
    )
    engine.state.subscribe(lambda previous, current: expansion.prune(current.forest))

    notifications = NotificationEngine(
        ttl=config.notifications.ttl,
        max_entries=config.notifications.max_entries,
    )
    notifications.attach(engine.state, expansion)

    workers = WorkerManager(engine)
    workers.register(
        "poll",
        PollWorker(
            engine,
            interval_seconds=config.sync.poll_interval,
            failure_threshold=config.sync.failure_threshold,
            pause_duration=config.sync.pause_duration,
        ),
        closer=source if hasattr(source, "close") else None,
    )
    if channel is not None:
        workers.register("push", PushWorker(channel, engine, retry_backoff=config.push.retry_backoff))
    workers.register("tick", TickWorker(notifications, tick_interval=config.notifications.tick_interval))

    return Session(
        config=config,
        engine=engine,
        expansion=expansion,
        notifications=notifications,
        workers=workers,
        channel=channel,
    )


def render_outline(session: Session) -> str:
    """Plain-text outline of the visible rows."""
    lines = []
    for depth, node in visible_rows(session.engine.forest, session.expansion.expanded):
        marker = STATUS_MARKERS.get(node.status.value, "?")
        arrow = "▾" if session.expansion.is_expanded(node.id) else ("▸" if node.has_children else " ")
        lines.append(f"{'  ' * depth}{arrow} {marker} {node.label} [{node.id}]")
    return "\n".join(lines) if lines else "(tree is empty)"


def outline_printer(session: Session) -> Callable[[TreeSnapshot, TreeSnapshot], None]:
    """Tree-state subscriber that prints the outline whenever its text changes."""
    last_outline: Optional[str] = None

    def _on_tree_change(previous: TreeSnapshot, current: TreeSnapshot) -> None:
        nonlocal last_outline
        outline = render_outline(session)
        if outline != last_outline:
            last_outline = outline
            print(outline, flush=True)

    return _on_tree_change


def run(args) -> None:
    """Run the sync client until interrupted."""
    config = Config.load(args.config)
    if args.base_url:
        config.source.base_url = args.base_url
    if args.push_url:
        config.push.url = args.push_url
    if args.no_push or args.once:
        config.push.enabled = False
    if args.poll_interval:
        config.sync.poll_interval = max(MIN_POLL_INTERVAL, args.poll_interval)
    if args.insecure:
        config.source.verify = False

    session = create_session(config)
    print(f"[config] Loaded: source={config.source.base_url!r}, push={config.push.enabled}")

    if args.once:
        ok, detail = session.engine.refresh_top_level()
        print(f"[navtree] {detail}")
        print(render_outline(session))
        session.stop()
        return

    def _on_notification(entry: NotificationEntry) -> None:
        print(f"[notify] {entry.message}", flush=True)

    session.engine.state.subscribe(outline_printer(session))
    session.notifications.subscribe(_on_notification)
    session.start()

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        print("\n[navtree] Shutting down...")
    finally:
        session.stop()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Navigation tree sync client",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", type=str, help="Path to config YAML file")
    parser.add_argument("--base-url", type=str, help="Override the tree API base URL")
    parser.add_argument("--push-url", type=str, help="Override the push channel URL")
    parser.add_argument("--no-push", action="store_true", help="Poll only; do not open the push channel")
    parser.add_argument("--poll-interval", type=float, help="Top-level refresh interval in seconds (min 0.5)")
    parser.add_argument("--insecure", action="store_true", help="Skip TLS verification")
    parser.add_argument("--once", action="store_true", help="Refresh once, print the tree and exit")
    return parser.parse_args(argv)


def main():
    """Entry point for the navtree-sync command."""
    run(parse_args())


if __name__ == "__main__":
    main()

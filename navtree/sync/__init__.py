"""Sync layer - configuration, engine and background workers."""

from .config import Config
from .engine import SyncEngine, TreeSnapshot, TreeState, VersionClock
from .workers import PollWorker, PushWorker, TickWorker, WorkerManager

__all__ = [
    "Config",
    "SyncEngine",
    "TreeSnapshot",
    "TreeState",
    "VersionClock",
    "PollWorker",
    "PushWorker",
    "TickWorker",
    "WorkerManager",
]

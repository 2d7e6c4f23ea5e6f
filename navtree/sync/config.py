"""Configuration management for the tree sync client.

Supports YAML-based configuration with dataclass sections.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..collectors.push import DEFAULT_PUSH_URL
from ..collectors.tree_api import DEFAULT_BASE_URL, DEFAULT_CHILDREN_PATH

MIN_POLL_INTERVAL = 0.5  # seconds


@dataclass
class SourceConfig:
    """Remote tree API configuration."""

    base_url: str = DEFAULT_BASE_URL
    children_path: str = DEFAULT_CHILDREN_PATH
    timeout: float = 10
    verify: bool = True
    ca_bundle: Optional[str] = None


@dataclass
class PushConfig:
    """Push channel configuration."""

    enabled: bool = True
    url: str = DEFAULT_PUSH_URL
    open_timeout: float = 10
    retry_backoff: List[float] = field(default_factory=lambda: [1, 5, 15, 60])


@dataclass
class SyncConfig:
    """Polling configuration."""

    poll_interval: float = 5.0  # seconds
    failure_threshold: int = 3
    pause_duration: float = 30.0  # seconds


@dataclass
class CacheConfig:
    """Cache configuration."""

    ttl: float = 60.0  # seconds
    max_entries: int = 512
    persist: bool = False


@dataclass
class NotificationConfig:
    """Notification configuration."""

    ttl: float = 30.0  # seconds
    tick_interval: float = 1.0  # seconds
    max_entries: Optional[int] = None


@dataclass
class Config:
    """Main configuration container."""

    source: SourceConfig = field(default_factory=SourceConfig)
    push: PushConfig = field(default_factory=PushConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)

    # Data directory override
    data_dir: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create config from dictionary."""
        src = data.get("source", {}) or {}
        source = SourceConfig(
            base_url=src.get("base_url", DEFAULT_BASE_URL),
            children_path=src.get("children_path", DEFAULT_CHILDREN_PATH),
            timeout=src.get("timeout", 10),
            verify=src.get("verify", True),
            ca_bundle=src.get("ca_bundle"),
        )

        push_data = data.get("push", {}) or {}
        push = PushConfig(
            enabled=push_data.get("enabled", True),
            url=push_data.get("url", DEFAULT_PUSH_URL),
            open_timeout=push_data.get("open_timeout", 10),
            retry_backoff=push_data.get("retry_backoff", [1, 5, 15, 60]),
        )

        sync_data = data.get("sync", {}) or {}
        circuit = sync_data.get("circuit_breaker", {}) or {}
        sync = SyncConfig(
            poll_interval=max(MIN_POLL_INTERVAL, float(sync_data.get("poll_interval", 5.0))),
            failure_threshold=circuit.get("failure_threshold", sync_data.get("failure_threshold", 3)),
            pause_duration=circuit.get("pause_duration", sync_data.get("pause_duration", 30.0)),
        )

        cache_data = data.get("cache", {}) or {}
        cache = CacheConfig(
            ttl=cache_data.get("ttl", 60.0),
            max_entries=cache_data.get("max_entries", 512),
            persist=cache_data.get("persist", False),
        )

        notif_data = data.get("notifications", {}) or {}
        notifications = NotificationConfig(
            ttl=notif_data.get("ttl", 30.0),
            tick_interval=notif_data.get("tick_interval", 1.0),
            max_entries=notif_data.get("max_entries"),
        )

        return cls(
            source=source,
            push=push,
            sync=sync,
            cache=cache,
            notifications=notifications,
            data_dir=data.get("data_dir"),
        )

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load config from YAML file."""
        if not path.exists():
            return cls()
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return cls.from_dict(data)

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """Load config from path or defaults.

        Checks in order:
        1. Provided path
        2. NAVTREE_CONFIG env var
        3. ./configs/config.yaml
        4. ./config.yaml
        5. ~/.navtree/config.yaml
        6. Default config
        """
        paths_to_try = []

        if config_path:
            paths_to_try.append(Path(config_path))

        if env_path := os.environ.get("NAVTREE_CONFIG"):
            paths_to_try.append(Path(env_path))

        paths_to_try.extend([
            Path("./configs/config.yaml"),
            Path("./config.yaml"),
            Path.home() / ".navtree" / "config.yaml",
        ])

        for path in paths_to_try:
            if path.exists():
                return cls.from_yaml(path)

        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "source": {
                "base_url": self.source.base_url,
                "children_path": self.source.children_path,
                "timeout": self.source.timeout,
                "verify": self.source.verify,
                "ca_bundle": self.source.ca_bundle,
            },
            "push": {
                "enabled": self.push.enabled,
                "url": self.push.url,
                "open_timeout": self.push.open_timeout,
                "retry_backoff": list(self.push.retry_backoff),
            },
            "sync": {
                "poll_interval": self.sync.poll_interval,
                "failure_threshold": self.sync.failure_threshold,
                "pause_duration": self.sync.pause_duration,
            },
            "cache": {
                "ttl": self.cache.ttl,
                "max_entries": self.cache.max_entries,
                "persist": self.cache.persist,
            },
            "notifications": {
                "ttl": self.notifications.ttl,
                "tick_interval": self.notifications.tick_interval,
                "max_entries": self.notifications.max_entries,
            },
            "data_dir": self.data_dir,
        }

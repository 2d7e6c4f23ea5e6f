"""Local persistence for cached tree data.

Stores cache entries as JSON files so the optimistic first render survives
restarts. All data is stored in ~/.navtree/ unless overridden.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional


def get_data_dir() -> Path:
    """Get user-persistent data directory.

    Returns ~/.navtree/ by default, or NAVTREE_DATA_DIR env var.
    Creates subdirectories if they don't exist.
    """
    data_dir = Path(os.environ.get("NAVTREE_DATA_DIR", Path.home() / ".navtree"))

    for subdir in ["cache", "logs"]:
        (data_dir / subdir).mkdir(parents=True, exist_ok=True)

    return data_dir


def _safe_name(key: str) -> str:
    """Map a cache key to a filename-safe stem."""
    return re.sub(r"[^A-Za-z0-9_.-]", "_", key)


class DataStore:
    """JSON cache files, one per key.

    Each file holds ``{"timestamp": epoch_millis, "data": payload}``. Expiry
    is not decided here; readers compare the timestamp against their TTL.
    """

    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = data_dir or get_data_dir()
        self.cache_dir = self.data_dir / "cache"
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, name: str) -> Path:
        return self.cache_dir / f"{_safe_name(name)}.json"

    def save_cache(self, name: str, data: Dict[str, Any]) -> None:
        """Save data to JSON cache file.

        Args:
            name: Cache key (e.g., 'tree_top_level', 'children_42')
            data: Entry to cache
        """
        self._path(name).write_text(json.dumps(data, default=str), encoding="utf-8")

    def load_cache(self, name: str) -> Optional[Dict[str, Any]]:
        """Load data from JSON cache file.

        Returns:
            Cached entry, or None if missing or unparseable
        """
        cache_file = self._path(name)
        if not cache_file.exists():
            return None
        try:
            data = json.loads(cache_file.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError, OSError):
            return None
        return data if isinstance(data, dict) else None

    def clear_cache(self, name: Optional[str] = None) -> None:
        """Clear cache file(s).

        Args:
            name: Specific cache to clear, or None for all
        """
        if name:
            cache_file = self._path(name)
            if cache_file.exists():
                cache_file.unlink()
        else:
            for cache_file in self.cache_dir.glob("*.json"):
                cache_file.unlink()

    def list_cache_keys(self) -> List[str]:
        """List stems of the cache files on disk."""
        return sorted(f.stem for f in self.cache_dir.glob("*.json"))

"""Data layer - models, normalization, tree store and caching."""

from .cache import CacheLayer, TOP_LEVEL_KEY, children_key
from .models import CacheEntry, Forest, Node, NodeStatus, NotificationEntry
from .normalization import RecordError, normalize_record, normalize_records, normalize_status
from .persistence import DataStore, get_data_dir
from .tree import (
    attach_children,
    build_tree,
    find_by_id,
    flatten,
    merge_update,
    replace_roots,
)

__all__ = [
    "CacheLayer",
    "TOP_LEVEL_KEY",
    "children_key",
    "CacheEntry",
    "Forest",
    "Node",
    "NodeStatus",
    "NotificationEntry",
    "RecordError",
    "normalize_record",
    "normalize_records",
    "normalize_status",
    "DataStore",
    "get_data_dir",
    "attach_children",
    "build_tree",
    "find_by_id",
    "flatten",
    "merge_update",
    "replace_roots",
]

"""View state - expansion, visibility and notifications."""

from .expansion import ExpansionController, is_expandable
from .notifications import NotificationEngine
from .visibility import status_tree, visible_ids, visible_rows

__all__ = [
    "ExpansionController",
    "is_expandable",
    "NotificationEngine",
    "status_tree",
    "visible_ids",
    "visible_rows",
]

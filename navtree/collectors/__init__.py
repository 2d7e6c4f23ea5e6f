"""Remote sources - tree REST API and push channel."""

from .base import BaseSource, SourceError
from .push import PushChannel, decode_frame
from .tree_api import TreeApiClient

__all__ = [
    "BaseSource",
    "SourceError",
    "PushChannel",
    "decode_frame",
    "TreeApiClient",
]

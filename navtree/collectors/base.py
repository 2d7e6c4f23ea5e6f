"""Base interface for remote tree sources."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional


class BaseSource(ABC):
    """Abstract base class for remote data sources.

    Both the polling API client and the push channel implement this
    interface so the sync layer can report on them uniformly.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this source.

        Returns:
            A short, lowercase identifier (e.g., 'tree_api', 'push')
        """
        pass

    @property
    @abstractmethod
    def display_name(self) -> str:
        """Human-readable name for logs and status output."""
        pass

    @abstractmethod
    def is_available(self) -> bool:
        """Check if this source can currently be reached.

        Returns:
            True if the source can operate, False otherwise.
        """
        pass

    def get_status(self) -> Dict[str, Any]:
        """Get source status information."""
        return {
            "name": self.name,
            "display_name": self.display_name,
            "available": self.is_available(),
        }


class SourceError(Exception):
    """Exception raised when a source fails to deliver data."""

    def __init__(self, source_name: str, message: str, cause: Optional[Exception] = None):
        self.source_name = source_name
        self.cause = cause
        super().__init__(f"[{source_name}] {message}")

"""navtree - client-side navigation tree kept in sync with a remote source."""

__version__ = "1.0.0"

"""deepsearch - local relevance ranking for browsing history and bookmarks."""

__version__ = "0.3.0"

"""Core data model for ranking browsing items."""

import time
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit


class MatchType(IntEnum):
    """
    Graduated match classes, ordered weakest to strongest.
    Integer ordering allows max() to pick the strongest match.
    """
    NONE = 0
    SUBSTRING = 1
    PREFIX = 2
    EXACT = 3

    @property
    def weight(self) -> float:
        return MATCH_WEIGHTS[self]


MATCH_WEIGHTS: Dict[MatchType, float] = {
    MatchType.NONE: 0.0,
    MatchType.SUBSTRING: 0.4,
    MatchType.PREFIX: 0.75,
    MatchType.EXACT: 1.0,
}


def hostname_of(url: str) -> str:
    try:
        return urlsplit(url).hostname or ""
    except ValueError:
        return ""


def _first(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


@dataclass
class IndexedItem:
    """
    One browsing history or bookmark entry.

    Owned by the external indexer; read-only inside the engine.
    `last_visit` is a POSIX timestamp in seconds.
    """
    url: str
    title: str = ""
    hostname: str = ""
    bookmark_title: Optional[str] = None
    meta_description: Optional[str] = None
    meta_keywords: List[str] = field(default_factory=list)
    bookmark_folders: Optional[List[str]] = None
    visit_count: int = 1
    last_visit: float = 0.0
    tokens: List[str] = field(default_factory=list)
    embedding: Optional[List[float]] = None

    @property
    def display_title(self) -> str:
        return self.bookmark_title or self.title or ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IndexedItem":
        """
        Build an item from a loosely-typed mapping.

        Accepts camelCase (store export) or snake_case keys. Missing or
        malformed optional fields fall back to empty values.
        """
        url = str(data.get("url") or "")
        hostname = _first(data, "hostname", default="") or hostname_of(url)

        try:
            visit_count = max(1, int(_first(data, "visit_count", "visitCount", default=1)))
        except (TypeError, ValueError):
            visit_count = 1

        try:
            last_visit = float(_first(data, "last_visit", "lastVisit", default=0.0))
        except (TypeError, ValueError):
            last_visit = 0.0
        # Millisecond timestamps from browser exports
        if last_visit > 1e11:
            last_visit /= 1000.0

        keywords = _first(data, "meta_keywords", "metaKeywords", default=[])
        if isinstance(keywords, str):
            keywords = [keywords]
        folders = _first(data, "bookmark_folders", "bookmarkFolders")
        embedding = data.get("embedding")

        return cls(
            url=url,
            title=str(data.get("title") or ""),
            hostname=str(hostname),
            bookmark_title=_first(data, "bookmark_title", "bookmarkTitle"),
            meta_description=_first(data, "meta_description", "metaDescription"),
            meta_keywords=[str(k) for k in keywords if k],
            bookmark_folders=[str(f) for f in folders] if isinstance(folders, list) else None,
            visit_count=visit_count,
            last_visit=last_visit,
            tokens=list(data.get("tokens") or []),
            embedding=list(embedding) if isinstance(embedding, (list, tuple)) else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "title": self.title,
            "hostname": self.hostname,
            "bookmark_title": self.bookmark_title,
            "meta_description": self.meta_description,
            "meta_keywords": list(self.meta_keywords),
            "bookmark_folders": self.bookmark_folders,
            "visit_count": self.visit_count,
            "last_visit": self.last_visit,
        }


@dataclass
class ScorerContext:
    """
    Per-search state shared by every scorer call.
    Created once per search and discarded after scoring.
    """
    expanded_tokens: Optional[List[str]] = None
    ai_expanded: bool = False
    query_embedding: Optional[List[float]] = None
    now: float = field(default_factory=time.time)
    # Hostname -> total visits, precomputed by the pipeline
    domain_visits: Optional[Dict[str, int]] = None


@dataclass
class ScoredItem:
    """An item paired with its final pipeline score."""
    item: IndexedItem
    score: float

    def sort_key(self):
        # Descending score, then most recent visit, then url ascending
        return (-self.score, -(self.item.last_visit or 0.0), self.item.url)

"""Duplicate-URL filtering for result variety."""

from typing import List, Sequence, TypeVar
from urllib.parse import urlsplit

from loguru import logger

from .models import ScoredItem

S = TypeVar("S", bound=ScoredItem)


def normalize_url(url: str) -> str:
    """
    Reduce a URL to scheme://host/path, lowercased, with no query,
    fragment or trailing slash (the root path keeps its slash).

    "https://example.com/path/?utm_source=x#top" -> "https://example.com/path"
    """
    try:
        parts = urlsplit(url)
        if not parts.scheme or not parts.netloc:
            raise ValueError("not an absolute URL")
        path = parts.path or "/"
        if len(path) > 1 and path.endswith("/"):
            path = path[:-1]
        return f"{parts.scheme}://{parts.netloc}{path}".lower()
    except ValueError:
        return url.lower().split("?")[0].split("#")[0].rstrip("/")


def apply_diversity_filter(results: Sequence[S], enabled: bool = True) -> List[S]:
    """
    Keep the first (highest ranked) result per normalized URL.
    `results` must already be sorted best-first.
    """
    if not enabled:
        return list(results)

    seen = set()
    kept: List[S] = []
    for result in results:
        key = normalize_url(result.item.url)
        if key in seen:
            continue
        seen.add(key)
        kept.append(result)

    removed = len(results) - len(kept)
    if removed:
        logger.debug(f"Diversity filter removed {removed} duplicates ({len(results)} -> {len(kept)})")
    return kept

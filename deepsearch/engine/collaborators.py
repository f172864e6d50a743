"""
Interfaces to the engine's external collaborators.

The engine depends only on these protocols: the item store, the
browser-native history fallback, the settings source, and an optional
query embedder. Simple in-process implementations are provided for the
CLI and tests.
"""

import asyncio
import json
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from loguru import logger

from .config import SearchSettings
from .error_handling import StoreUnavailable
from .models import IndexedItem, hostname_of
from .tokenizer import tokenize


class ItemStore(Protocol):
    async def get_all_items(self) -> List[IndexedItem]:
        """Read-only snapshot of every indexed item."""
        ...


class HistorySource(Protocol):
    async def search(self, text: str, max_results: int) -> List[Dict[str, Any]]:
        """Platform history search: dicts with url, title?, visitCount?, lastVisitTime?"""
        ...


class SettingsProvider(Protocol):
    def snapshot(self) -> SearchSettings:
        ...


class QueryEmbedder(Protocol):
    async def embed(self, text: str, settings: SearchSettings) -> Optional[List[float]]:
        ...


def history_entry_to_item(entry: Dict[str, Any], now: Optional[float] = None) -> IndexedItem:
    """Map a history search hit into an IndexedItem with empty metadata."""
    url = str(entry.get("url") or "")
    title = str(entry.get("title") or "")

    try:
        visit_count = max(1, int(entry.get("visitCount") or entry.get("visit_count") or 1))
    except (TypeError, ValueError):
        visit_count = 1

    last_visit_ms = entry.get("lastVisitTime")
    if isinstance(last_visit_ms, (int, float)) and last_visit_ms > 0:
        last_visit = last_visit_ms / 1000.0
    else:
        last_visit = now if now is not None else time.time()

    return IndexedItem(
        url=url,
        title=title,
        hostname=hostname_of(url),
        meta_description="",
        meta_keywords=[],
        visit_count=visit_count,
        last_visit=last_visit,
        tokens=tokenize(f"{title} {url}"),
    )


class InMemoryItemStore:
    """Item store over a list held in memory."""

    def __init__(self, items: Iterable[IndexedItem] = ()):
        self._items: Dict[str, IndexedItem] = {}
        for item in items:
            self.upsert(item)

    def upsert(self, item: IndexedItem) -> None:
        self._items[item.url] = item

    def remove(self, url: str) -> None:
        self._items.pop(url, None)

    async def get_all_items(self) -> List[IndexedItem]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)


class JsonFileItemStore:
    """Item store backed by a JSON export (a list of item objects)."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> List[IndexedItem]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreUnavailable(f"Cannot read items from {self.path}: {e}") from e

        if isinstance(data, dict):
            data = data.get("items", [])
        items = []
        for raw in data:
            if isinstance(raw, dict) and raw.get("url"):
                items.append(IndexedItem.from_dict(raw))
        logger.debug(f"Loaded {len(items)} items from {self.path}")
        return items

    async def get_all_items(self) -> List[IndexedItem]:
        return await asyncio.to_thread(self._load)


class StaticHistorySource:
    """History fallback over a fixed list of history entries."""

    def __init__(self, entries: Sequence[Dict[str, Any]] = ()):
        self.entries = list(entries)

    async def search(self, text: str, max_results: int) -> List[Dict[str, Any]]:
        words = text.lower().split()
        hits = [
            e for e in self.entries
            if all(w in f"{e.get('title') or ''} {e.get('url') or ''}".lower() for w in words)
        ]
        return hits[:max_results]


class StaticSettingsProvider:
    """Settings provider holding one mutable reference to a frozen snapshot."""

    def __init__(self, settings: Optional[SearchSettings] = None):
        self._settings = settings or SearchSettings()

    def snapshot(self) -> SearchSettings:
        return self._settings

    def update(self, **changes) -> SearchSettings:
        self._settings = self._settings.model_copy(update=changes)
        logger.debug(f"Settings updated: {sorted(changes)}")
        return self._settings

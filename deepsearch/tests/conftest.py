"""Shared fixtures for deepsearch tests."""

import time

import pytest

from deepsearch.engine.collaborators import InMemoryItemStore, StaticSettingsProvider
from deepsearch.engine.config import SearchSettings
from deepsearch.engine.models import IndexedItem, hostname_of


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _make_item(url: str, title: str = "", **kwargs) -> IndexedItem:
    kwargs.setdefault("hostname", hostname_of(url))
    kwargs.setdefault("last_visit", time.time())
    return IndexedItem(url=url, title=title, **kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_item():
    return _make_item


@pytest.fixture
def sample_items():
    """A small mixed corpus of history and bookmark entries."""
    now = time.time()
    day = 86400
    return [
        _make_item(
            "https://docs.github.com/rest",
            "GitHub REST API Docs",
            visit_count=10,
            last_visit=now,
            meta_description="Reference for the GitHub REST API",
        ),
        _make_item(
            "https://github.com/trending",
            "Trending repositories on GitHub",
            visit_count=3,
            last_visit=now - 2 * day,
        ),
        _make_item(
            "https://developer.mozilla.org/en-US/docs/Web/JavaScript",
            "JavaScript | MDN",
            visit_count=7,
            last_visit=now - day,
            meta_keywords=["javascript", "js", "reference"],
        ),
        _make_item(
            "https://en.wikipedia.org/wiki/Battle_of_Hastings",
            "Battle of Hastings - Wikipedia",
            visit_count=1,
            last_visit=now - 40 * day,
        ),
        _make_item(
            "https://news.example.com/api-changes",
            "Upcoming API changes",
            visit_count=2,
            last_visit=now - 5 * day,
            bookmark_title="API changes to watch",
            bookmark_folders=["Work", "Reading"],
        ),
    ]


@pytest.fixture
def store(sample_items):
    return InMemoryItemStore(sample_items)


@pytest.fixture
def settings_provider():
    return StaticSettingsProvider(SearchSettings())

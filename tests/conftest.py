"""Pytest configuration and shared fixtures."""

import asyncio
import json

import pytest

from vibe_search.config import Settings
from vibe_search.services.llm.extractor import AnswerExtractor, SearchResult

from evaluation.dataset import DatasetItem
from evaluation.response_cache import ResponseCache


class FakeExtractor(AnswerExtractor):
    """Extractor returning canned answers and recording every call."""

    def __init__(self, answers=None, delay=0.0, fail_on=None, raw=""):
        super().__init__(model="fake-model")
        self.answers = answers if answers is not None else {}
        self.delay = delay
        self.fail_on = set(fail_on or [])
        self.raw = raw
        self.calls = []

    async def _search(self, corpus, query, k):
        self.calls.append((corpus, query, k))
        if self.delay:
            await asyncio.sleep(self.delay)
        if query in self.fail_on:
            raise RuntimeError(f"quota exceeded for {query}")
        return SearchResult(answers=list(self.answers.get(query, [])), raw=self.raw)


@pytest.fixture
def mock_settings():
    """Create a Settings instance with no API keys for testing."""
    return Settings(
        groq_api_key=None,
        gemini_api_key=None,
        cache_enabled=False,  # Disable caching in tests
    )


@pytest.fixture
def make_extractor():
    """Factory for FakeExtractor instances."""
    return FakeExtractor


@pytest.fixture
def cache(tmp_path):
    """Enabled response cache in a temporary directory."""
    return ResponseCache(tmp_path / "cache")


@pytest.fixture
def disabled_cache(tmp_path):
    """Response cache with caching turned off."""
    return ResponseCache(tmp_path / "nocache", enabled=False)


@pytest.fixture
def strawberry_item():
    """The duplicate-sensitive StrawbeRry case."""
    return DatasetItem(
        name="find Rs in StrawbeRry",
        content=["StrawbeRry"],
        query="R,r",
        truth=["r", "R", "r"],
    )


@pytest.fixture
def sample_items(strawberry_item):
    """Small dataset mixing string and list content."""
    return [
        strawberry_item,
        DatasetItem(name="letters", content="ABcabCB", query="B,c", truth=["B", "c", "B"]),
        DatasetItem(
            name="urls",
            content=["MDN Web Docs: https://developer.mozilla.org/", "W3C: https://www.w3.org/"],
            query="Where are the web standards?",
            truth=["https://developer.mozilla.org/", "https://www.w3.org/"],
        ),
    ]


@pytest.fixture
def dataset_file(tmp_path):
    """Write a small dataset JSON file and return its path."""
    path = tmp_path / "dataset.json"
    path.write_text(
        json.dumps([
            {"name": "strawberry", "content": ["StrawbeRry"], "query": "R,r", "truth": ["r", "R", "r"]},
            {"name": "letters", "content": "ABcabCB", "query": "B,c", "truth": ["B", "c", "B"]},
        ]),
        encoding="utf-8",
    )
    return path

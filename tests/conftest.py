"""
Pytest configuration for Trait Encounter backend tests.

Sets up the test environment and provides in-memory collaborators for the
encounter pipeline (trait store, product cache, result store, scripted
language generator, counting catalog adapter).
"""
import os

# Disable config validation during tests
# This allows tests to run without requiring real environment variables
os.environ["VALIDATE_CONFIG"] = "false"

# Set test environment variables
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("SUPABASE_URL", "http://localhost:54321")
os.environ.setdefault("SUPABASE_PUBLISHABLE_KEY", "test-publishable-key")
os.environ.setdefault("GOOGLE_API_KEY", "test-google-api-key")

import json
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple, Union
from unittest.mock import MagicMock

import pytest

from encounter.catalog.base import SourceResult
from encounter.schemas.encounter import (
    CatalogItem,
    CatalogQuery,
    HistoryEntry,
    RecommendedItem,
    TraitRecord,
    UserLatestResult,
)
from encounter.services.errors import PersistenceWriteError, SourceFetchError
from encounter.services.product_cache import make_cache_key

BASE_TIME = datetime(2026, 1, 15, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# BUILDERS
# =============================================================================

def build_traits(count: int, trait_category: str = "hobby") -> List[TraitRecord]:
    """`count` distinct traits with descending confidence."""
    return [
        TraitRecord(
            id=f"trait-{i}",
            label=f"trait-{i}",
            category=trait_category,
            description=f"description {i}",
            confidence=max(1.0 - i * 0.02, 0.0),
            extracted_at=BASE_TIME - timedelta(days=i),
        )
        for i in range(count)
    ]


def build_items(
    prefix: str,
    count: int,
    source: str = "marketplace",
    with_images: bool = True,
) -> List[CatalogItem]:
    return [
        CatalogItem(
            id=f"{source}:{prefix}-{i}",
            source=source,
            name=f"{prefix} item {i}",
            price=1000.0 + i,
            image_url=f"https://img.example.com/{prefix}-{i}.jpg" if with_images else None,
            action_url=f"https://shop.example.com/{prefix}-{i}?aff=1",
            reference_url=f"https://shop.example.com/{prefix}-{i}",
            rating=4.0,
        )
        for i in range(count)
    ]


def build_latest(
    category: str,
    count: int,
    with_images: bool = True,
    prefix: str = "stored",
) -> UserLatestResult:
    items = [
        RecommendedItem(**item.model_dump(), reason="stored reason", matched_trait_labels=["trait-0"])
        for item in build_items(prefix, count, with_images=with_images)
    ]
    return UserLatestResult(
        category=category,
        items=items,
        personality_context="stored context",
        traits_used_count=12,
        generated_at=BASE_TIME - timedelta(days=3),
    )


def intent_reply(keywords: Sequence[str], genre_hint: Optional[str] = None) -> str:
    """A well-formed intent reply, fenced the way models often send it."""
    payload = {
        "search_queries": [
            {
                "keyword": keyword,
                "genre_hint": genre_hint,
                "rationale": f"because of {keyword}",
                "matched_trait_labels": ["trait-0"],
            }
            for keyword in keywords
        ],
        "personality_context": "Curious and practical",
    }
    return f"```json\n{json.dumps(payload)}\n```"


def explain_reply(count: int, score: float = 0.9) -> str:
    return json.dumps({
        "reasons": [
            {
                "index": i,
                "reason": f"personal reason {i}",
                "matched_trait_labels": ["trait-1"],
                "score": score,
            }
            for i in range(count)
        ]
    })


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

class FakeTraitStore:
    def __init__(self, traits_by_user: Dict[str, List[TraitRecord]]):
        self.traits_by_user = traits_by_user
        self.calls = 0

    async def get_traits(self, user_id: str) -> List[TraitRecord]:
        self.calls += 1
        return list(self.traits_by_user.get(user_id, []))


class FakeProductCache:
    """Dict-backed global cache keyed exactly like the Supabase one."""

    def __init__(self):
        self.entries: Dict[str, List[CatalogItem]] = {}
        self.gets: List[str] = []
        self.puts: List[str] = []

    def seed(self, keyword: str, category: str, items: List[CatalogItem]) -> None:
        self.entries[make_cache_key(keyword, category)] = list(items)

    async def get(self, keyword: str, category: str) -> Optional[List[CatalogItem]]:
        key = make_cache_key(keyword, category)
        self.gets.append(key)
        items = self.entries.get(key)
        return list(items) if items else None

    async def put(self, keyword: str, category: str, items: List[CatalogItem]) -> None:
        key = make_cache_key(keyword, category)
        self.puts.append(key)
        self.entries[key] = list(items)


class FakeResultStore:
    def __init__(self):
        self.latest: Dict[Tuple[str, str], UserLatestResult] = {}
        self.history: List[Tuple[str, HistoryEntry]] = []
        self.saves = 0
        self.clicks: List[dict] = []
        self.fail_save = False
        self.fail_history = False
        self.fail_click = False

    @property
    def writes(self) -> int:
        return self.saves + len(self.history)

    async def get_latest(self, user_id: str, category: str) -> Optional[UserLatestResult]:
        return self.latest.get((user_id, category))

    async def save_latest(self, user_id: str, result: UserLatestResult) -> None:
        if self.fail_save:
            raise PersistenceWriteError("could not save latest result")
        self.saves += 1
        self.latest[(user_id, result.category)] = result

    async def append_history(self, user_id: str, result: UserLatestResult) -> None:
        if self.fail_history:
            raise PersistenceWriteError("could not append history entry")
        entry = HistoryEntry(id=f"h{len(self.history)}", archived_at=BASE_TIME, **result.model_dump())
        self.history.append((user_id, entry))

    async def get_history(self, user_id: str, category: str, limit: Optional[int] = 10) -> List[HistoryEntry]:
        entries = [e for uid, e in self.history if uid == user_id and e.category == category]
        return list(reversed(entries))[:limit]

    async def log_click(self, user_id, product_id, product_source, category, position) -> None:
        if self.fail_click:
            raise PersistenceWriteError("could not log click")
        self.clicks.append({
            "user_id": user_id,
            "product_id": product_id,
            "product_source": product_source,
            "category": category,
            "position": position,
        })


class ScriptedGenerator:
    """Returns scripted replies in order; an Exception entry is raised instead."""

    def __init__(self, replies: Sequence[Union[str, Exception]] = ()):
        self.replies = list(replies)
        self.prompts: List[str] = []

    async def generate_structured(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.replies:
            raise AssertionError("unexpected language generation call")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class CountingAdapter:
    """Catalog adapter returning canned items per keyword and counting calls."""

    def __init__(self, source: str = "marketplace", results: Optional[Dict[str, object]] = None):
        self.source = source
        self.results = results or {}
        self.calls: List[CatalogQuery] = []

    @property
    def keywords(self) -> List[str]:
        return [q.keyword for q in self.calls]

    async def search(self, query: CatalogQuery) -> SourceResult:
        self.calls.append(query)
        outcome = self.results.get(query.keyword, [])
        if isinstance(outcome, SourceFetchError):
            return SourceResult(source=self.source, items=[], error=outcome)
        return SourceResult(source=self.source, items=list(outcome))


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def supabase_client():
    """
    Mock Supabase client.
    Returns a MagicMock that simulates Supabase client behavior.
    """
    mock_client = MagicMock()
    return mock_client


@pytest.fixture
def product_cache():
    return FakeProductCache()


@pytest.fixture
def result_store():
    return FakeResultStore()


@pytest.fixture
def fixed_clock():
    return lambda: BASE_TIME

#!/usr/bin/env python3
"""
Encounter Pipeline Test Script

Runs the full recommendation pipeline locally against the real Gemini and
catalog APIs, without Supabase. Traits come from a JSON file (or a built-in
sample profile); the product cache and result store live in memory for the
duration of the run.

Usage:
    python scripts/try_encounter.py --category books
    python scripts/try_encounter.py --category movies --traits traits.json
    python scripts/try_encounter.py --category skills --twice

The traits file is a JSON list of objects with label, category,
description and confidence.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from encounter.catalog import build_catalog_adapters
from encounter.schemas.encounter import (
    CatalogItem,
    EncounterResult,
    HistoryEntry,
    TraitRecord,
    UserLatestResult,
)
from encounter.services.encounter_service import EncounterPipeline
from encounter.services.errors import EligibilityError, PipelineError
from encounter.services.llm_client import GeminiTextGenerator
from encounter.services.product_cache import make_cache_key
from encounter.utils.constants import ENCOUNTER_CATEGORIES

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

SAMPLE_TRAITS = [
    ("coffee lover", "hobby", "Roasts beans at home on weekends", 0.95),
    ("night owl", "lifestyle", "Most productive after 10pm", 0.9),
    ("curious", "personality", "Reads about unfamiliar topics for fun", 0.88),
    ("minimalist", "value", "Owns few things and prefers quality", 0.86),
    ("guitar beginner", "skill", "Started learning acoustic guitar last year", 0.84),
    ("remote worker", "work", "Works from home as a software engineer", 0.82),
    ("camping", "hobby", "Goes camping a few times a year", 0.8),
    ("sci-fi fan", "hobby", "Rewatches classic science fiction films", 0.78),
    ("careful planner", "personality", "Researches before every purchase", 0.76),
    ("eco conscious", "value", "Avoids single-use plastics", 0.74),
    ("home cook", "hobby", "Cooks dinner most evenings", 0.72),
    ("morning runner", "lifestyle", "Runs 5km before work", 0.7),
    ("history buff", "hobby", "Visits old castles when travelling", 0.68),
    ("introvert", "personality", "Recharges alone", 0.66),
    ("sketching", "skill", "Draws in a notebook on the train", 0.64),
    ("studied abroad", "experience", "Spent a year in Germany", 0.62),
    ("tea at night", "lifestyle", "Switches to herbal tea after dinner", 0.6),
    ("board games", "hobby", "Hosts board game nights monthly", 0.58),
    ("language learner", "skill", "Learning Spanish on an app", 0.56),
    ("photography", "hobby", "Shoots film on a second-hand camera", 0.54),
]


class FileTraitStore:
    def __init__(self, traits: List[TraitRecord]):
        self._traits = traits

    async def get_traits(self, user_id: str) -> List[TraitRecord]:
        return sorted(self._traits, key=lambda t: t.confidence, reverse=True)


class MemoryProductCache:
    def __init__(self):
        self.entries: Dict[str, List[CatalogItem]] = {}

    async def get(self, keyword: str, category: str) -> Optional[List[CatalogItem]]:
        return self.entries.get(make_cache_key(keyword, category))

    async def put(self, keyword: str, category: str, items: List[CatalogItem]) -> None:
        self.entries[make_cache_key(keyword, category)] = list(items)


class MemoryResultStore:
    def __init__(self):
        self.latest: Dict[Tuple[str, str], UserLatestResult] = {}
        self.history: List[Tuple[str, HistoryEntry]] = []

    async def get_latest(self, user_id, category):
        return self.latest.get((user_id, category))

    async def save_latest(self, user_id, result):
        self.latest[(user_id, result.category)] = result

    async def append_history(self, user_id, result):
        entry = HistoryEntry(id=str(uuid.uuid4()), **result.model_dump())
        self.history.append((user_id, entry))

    async def get_history(self, user_id, category, limit=10):
        entries = [e for uid, e in self.history if uid == user_id and e.category == category]
        return list(reversed(entries))[:limit]

    async def log_click(self, user_id, product_id, product_source, category, position):
        logger.info(f"click: {product_source} {product_id} at {position}")


def load_traits(path: Optional[str]) -> List[TraitRecord]:
    now = datetime.now(timezone.utc)
    if path is None:
        raw = [
            {"label": label, "category": cat, "description": desc, "confidence": conf}
            for label, cat, desc, conf in SAMPLE_TRAITS
        ]
    else:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)

    return [
        TraitRecord(
            id=str(entry.get("id") or i),
            label=entry["label"],
            category=entry.get("category", "hobby"),
            description=entry.get("description", ""),
            confidence=float(entry.get("confidence", 0.5)),
            extracted_at=now,
        )
        for i, entry in enumerate(raw)
    ]


def print_result(result: EncounterResult):
    """Pretty print the pipeline result."""
    print("\n" + "=" * 60)
    print(f"FROM CACHE: {result.from_cache}   PERSISTED: {result.persisted}")
    print(f"PERSONALITY: {result.personality_context}")
    print(f"TRAITS USED: {result.traits_used_count}")
    print("=" * 60)

    if not result.recommendations:
        print("\n❌ No recommendations generated\n")
        return

    print(f"\n✅ {len(result.recommendations)} recommendation(s):\n")
    for i, item in enumerate(result.recommendations, 1):
        print(f"--- #{i} [{item.source}] ---")
        print(f"  Name:    {item.name}")
        print(f"  Price:   {item.price}")
        print(f"  Rating:  {item.rating}")
        print(f"  Image:   {item.image_url or '-'}")
        print(f"  URL:     {item.action_url}")
        print(f"  Reason:  {item.reason}")
        print(f"  Traits:  {', '.join(item.matched_trait_labels)}")
        print(f"  Score:   {item.score:.2f}")
        print()


async def run(category: str, traits_path: Optional[str], twice: bool, force: bool):
    if not os.getenv("GOOGLE_API_KEY"):
        print("\n⚠️  ERROR: GOOGLE_API_KEY environment variable not set!")
        print("   Please set it in your .env file or export it.")
        return

    pipeline = EncounterPipeline(
        traits=FileTraitStore(load_traits(traits_path)),
        product_cache=MemoryProductCache(),
        result_store=MemoryResultStore(),
        generator=GeminiTextGenerator(),
        adapters=build_catalog_adapters(),
    )

    user_id = "local-user"
    runs = 2 if twice else 1
    for n in range(runs):
        print(f"\nRun {n + 1}/{runs}: category={category}, force_refresh={force}")
        try:
            result = await pipeline.generate(user_id, category, force_refresh=force)
        except EligibilityError as e:
            print(f"\n🔒 {e} ({e.missing} more needed)")
            return
        except PipelineError as e:
            print(f"\n💥 Generation failed: {e}")
            return
        print_result(result)


def main():
    parser = argparse.ArgumentParser(description="Run the encounter pipeline locally")
    parser.add_argument("--category", choices=ENCOUNTER_CATEGORIES, default="books")
    parser.add_argument("--traits", help="Path to a JSON list of traits")
    parser.add_argument("--twice", action="store_true", help="Run twice to exercise the stored result")
    parser.add_argument("--force", action="store_true", help="Force regeneration")
    args = parser.parse_args()

    asyncio.run(run(args.category, args.traits, args.twice, args.force))


if __name__ == "__main__":
    main()

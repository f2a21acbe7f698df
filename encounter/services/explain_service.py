"""
Explain Service - personalized reason and score per item

Second language-generation step of the encounter pipeline. Sends the top
traits and the first MAX_RECOMMENDATIONS candidates (index, name, source)
and merges the returned reasons back by index.

Any failure to obtain or parse a reply degrades to the first
MAX_RECOMMENDATIONS items with their query-level reasons; it is never
raised to the caller.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from pydantic import ValidationError

from encounter.agents.encounter.prompts import build_explain_prompt
from encounter.schemas.encounter import RecommendedItem, TraitRecord
from encounter.services.errors import GenerationUnavailableError, StructuredOutputError
from encounter.services.intent_service import TextGenerator
from encounter.services.llm_client import extract_json_payload
from encounter.utils.constants import EXPLAIN_TRAIT_LIMIT, MAX_RECOMMENDATIONS

logger = logging.getLogger(__name__)


@dataclass
class ExplainOutcome:
    """Explained items, or the unmodified candidates when `fallback` is set."""
    items: List[RecommendedItem] = field(default_factory=list)
    fallback: bool = False


def _clamp_score(value: Any, default: float) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return default
    if math.isnan(score):
        return default
    return min(max(score, 0.0), 1.0)


def _reasons_by_index(payload: Dict[str, Any]) -> Dict[int, Dict[str, Any]]:
    reasons = payload.get("reasons")
    if not isinstance(reasons, list):
        raise StructuredOutputError("'reasons' is missing or not a list")

    by_index: Dict[int, Dict[str, Any]] = {}
    for entry in reasons:
        if not isinstance(entry, dict):
            continue
        try:
            index = int(entry.get("index"))
        except (TypeError, ValueError):
            continue
        by_index.setdefault(index, entry)
    return by_index


def merge_explanations(
    items: Sequence[RecommendedItem],
    payload: Dict[str, Any],
) -> List[RecommendedItem]:
    """
    Apply reasons from a decoded reply to items by position.

    Items without a matching entry keep their query-level reason.

    Raises:
        StructuredOutputError: reply has no 'reasons' list.
    """
    by_index = _reasons_by_index(payload)

    merged: List[RecommendedItem] = []
    for index, item in enumerate(items):
        entry = by_index.get(index)
        if entry is None:
            merged.append(item)
            continue

        data = item.model_dump()
        data["reason"] = entry.get("reason") or item.reason
        labels = entry.get("matched_trait_labels")
        if not labels or not isinstance(labels, (list, tuple, str)):
            labels = item.matched_trait_labels
        data["matched_trait_labels"] = labels
        data["score"] = _clamp_score(entry.get("score"), item.score)
        try:
            merged.append(RecommendedItem.model_validate(data))
        except ValidationError as e:
            logger.warning(f"Ignoring invalid explanation for index {index}: {e.error_count()} error(s)")
            merged.append(item)

    return merged


async def explain_items(
    traits: Sequence[TraitRecord],
    items: Sequence[RecommendedItem],
    category: str,
    generator: TextGenerator,
) -> ExplainOutcome:
    """
    Personalize reasons and scores for the first MAX_RECOMMENDATIONS items.

    Returns:
        ExplainOutcome; `fallback=True` means the items are unchanged.
    """
    candidates = list(items)[:MAX_RECOMMENDATIONS]
    if not candidates:
        return ExplainOutcome(items=[], fallback=False)

    top_traits = list(traits)[:EXPLAIN_TRAIT_LIMIT]
    prompt = build_explain_prompt(top_traits, candidates, category)

    try:
        text = await generator.generate_structured(prompt)
        explained = merge_explanations(candidates, extract_json_payload(text))
    except GenerationUnavailableError as e:
        logger.warning(f"Explain step unavailable, using query-level reasons: {e}")
        return ExplainOutcome(items=candidates, fallback=True)
    except StructuredOutputError as e:
        logger.warning(f"Explain reply unparseable, using query-level reasons: {e}")
        return ExplainOutcome(items=candidates, fallback=True)

    logger.info(f"Explained {len(explained)} items for category={category}")
    return ExplainOutcome(items=explained, fallback=False)

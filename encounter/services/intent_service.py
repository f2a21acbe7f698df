"""
Intent Service - traits to catalog search queries

First language-generation step of the encounter pipeline. Turns the user's
top traits into a small set of search queries and a short personality
summary.

Failure policy:
- transport failure (GenerationUnavailableError) propagates immediately
- an unparseable or invalid reply is retried once, then UpstreamParseError
"""

import logging
from typing import Any, Dict, List, Protocol, Sequence

from pydantic import ValidationError

from encounter.agents.encounter.prompts import build_intent_prompt
from encounter.schemas.encounter import SearchIntent, SearchQuery, TraitRecord
from encounter.services.errors import StructuredOutputError, UpstreamParseError
from encounter.services.llm_client import extract_json_payload
from encounter.utils.constants import INTENT_TRAIT_LIMIT, MAX_SEARCH_QUERIES
from encounter.utils.logging import preview

logger = logging.getLogger(__name__)

MIN_EXPECTED_QUERIES = 5
INTENT_ATTEMPTS = 2


class TextGenerator(Protocol):
    async def generate_structured(self, prompt: str) -> str: ...


def parse_search_intent(payload: Dict[str, Any]) -> SearchIntent:
    """
    Validate a decoded reply into a SearchIntent.

    Queries that fail validation on their own (e.g. empty keyword) are
    dropped; at least one valid query must remain.

    Raises:
        StructuredOutputError: no usable query in the reply.
    """
    raw_queries = payload.get("search_queries")
    if not isinstance(raw_queries, list):
        raise StructuredOutputError("'search_queries' is missing or not a list")

    queries: List[SearchQuery] = []
    for raw in raw_queries:
        if not isinstance(raw, dict):
            continue
        try:
            queries.append(SearchQuery.model_validate(raw))
        except ValidationError as e:
            logger.debug(f"Dropping invalid search query: {e.error_count()} error(s)")
        if len(queries) >= MAX_SEARCH_QUERIES:
            break

    if not queries:
        raise StructuredOutputError("reply contained no valid search query")

    try:
        return SearchIntent(
            search_queries=queries,
            personality_context=payload.get("personality_context"),
        )
    except ValidationError as e:
        raise StructuredOutputError(f"invalid intent: {e.error_count()} error(s)") from e


async def derive_search_intent(
    traits: Sequence[TraitRecord],
    category: str,
    generator: TextGenerator,
) -> SearchIntent:
    """
    Derive catalog search queries for a category from the user's traits.

    Args:
        traits: Traits sorted by confidence descending (top 20 are used)
        category: Encounter category
        generator: Language generation client

    Returns:
        SearchIntent with 1-8 queries (5-8 are requested)

    Raises:
        GenerationUnavailableError: generation service unreachable
        UpstreamParseError: reply could not be parsed after one retry
    """
    top_traits = list(traits)[:INTENT_TRAIT_LIMIT]
    prompt = build_intent_prompt(top_traits, category)

    logger.info(
        f"Deriving search intent: category={category}, traits={len(top_traits)}"
    )

    last_error: StructuredOutputError | None = None
    for attempt in range(1, INTENT_ATTEMPTS + 1):
        text = await generator.generate_structured(prompt)
        try:
            intent = parse_search_intent(extract_json_payload(text))
        except StructuredOutputError as e:
            last_error = e
            logger.warning(
                f"Intent reply unparseable (attempt {attempt}/{INTENT_ATTEMPTS}): "
                f"{e} | reply={preview(text)}"
            )
            continue

        if len(intent.search_queries) < MIN_EXPECTED_QUERIES:
            logger.warning(
                f"Intent returned only {len(intent.search_queries)} queries "
                f"(expected {MIN_EXPECTED_QUERIES}-{MAX_SEARCH_QUERIES})"
            )

        logger.info(
            f"Search intent derived: {len(intent.search_queries)} queries, "
            f"keywords={[q.keyword for q in intent.search_queries]}"
        )
        return intent

    raise UpstreamParseError(
        f"search intent could not be parsed after {INTENT_ATTEMPTS} attempts"
    ) from last_error

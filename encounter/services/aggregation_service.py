"""
Aggregation Service - search queries to candidate items

For each of the first MAX_AGGREGATED_QUERIES queries, in order:
1. Global cache hit -> take up to ITEMS_PER_QUERY items, no external call
2. Miss -> call the category's catalog adapter; when it returned at least
   one item, cache the adapter's full list, then take up to ITEMS_PER_QUERY

Queries are processed sequentially so a cache entry written for one query
is visible to a later query with the same keyword. A failing source only
costs that query its items. The merged list is deduplicated by item id,
first occurrence wins.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Protocol, Sequence

from encounter.catalog.base import SourceResult
from encounter.schemas.encounter import (
    CatalogItem,
    CatalogQuery,
    RecommendedItem,
    SearchQuery,
)
from encounter.utils.constants import (
    CATEGORY_SOURCES,
    DEFAULT_ITEM_SCORE,
    ITEMS_PER_QUERY,
    MAX_AGGREGATED_QUERIES,
)

logger = logging.getLogger(__name__)


class ProductCache(Protocol):
    async def get(self, keyword: str, category: str) -> Optional[List[CatalogItem]]: ...

    async def put(self, keyword: str, category: str, items: List[CatalogItem]) -> None: ...


class CatalogSearcher(Protocol):
    source: str

    async def search(self, query: CatalogQuery) -> SourceResult: ...


@dataclass
class AggregationResult:
    """Merged candidates plus counters for logging."""
    items: List[RecommendedItem] = field(default_factory=list)
    queries_used: int = 0
    cache_hits: int = 0
    source_calls: int = 0
    failed_queries: int = 0


def tag_items(items: Sequence[CatalogItem], query: SearchQuery) -> List[RecommendedItem]:
    """Attach the query-level reason and matched traits to catalog items."""
    return [
        RecommendedItem(
            **item.model_dump(),
            reason=query.rationale,
            matched_trait_labels=list(query.matched_trait_labels),
            score=DEFAULT_ITEM_SCORE,
        )
        for item in items
    ]


def dedupe_by_id(items: Sequence[RecommendedItem]) -> List[RecommendedItem]:
    """Drop repeated ids, keeping the first occurrence and the original order."""
    seen = set()
    unique: List[RecommendedItem] = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)
    return unique


class Aggregator:
    """Fans search queries out to the global cache and catalog adapters."""

    def __init__(
        self,
        cache: ProductCache,
        adapters: Mapping[str, CatalogSearcher],
        max_queries: int = MAX_AGGREGATED_QUERIES,
        items_per_query: int = ITEMS_PER_QUERY,
    ):
        self.cache = cache
        self.adapters = adapters
        self.max_queries = max_queries
        self.items_per_query = items_per_query

    def adapter_for(self, category: str) -> Optional[CatalogSearcher]:
        source = CATEGORY_SOURCES.get(category)
        return self.adapters.get(source) if source else None

    async def aggregate(
        self,
        queries: Sequence[SearchQuery],
        category: str,
    ) -> AggregationResult:
        result = AggregationResult()
        working: List[RecommendedItem] = []
        adapter = self.adapter_for(category)

        for query in list(queries)[:self.max_queries]:
            result.queries_used += 1

            cached = await self.cache.get(query.keyword, category)
            if cached is not None:
                result.cache_hits += 1
                working.extend(tag_items(cached[:self.items_per_query], query))
                continue

            fetched = await self._fetch(adapter, query, category, result)
            if fetched:
                await self.cache.put(query.keyword, category, fetched)
                working.extend(tag_items(fetched[:self.items_per_query], query))

        result.items = dedupe_by_id(working)

        logger.info(
            f"Aggregated {len(result.items)} items for category={category} "
            f"(queries={result.queries_used}, cache_hits={result.cache_hits}, "
            f"source_calls={result.source_calls}, failed={result.failed_queries}, "
            f"before_dedup={len(working)})"
        )
        return result

    async def _fetch(
        self,
        adapter: Optional[CatalogSearcher],
        query: SearchQuery,
        category: str,
        result: AggregationResult,
    ) -> List[CatalogItem]:
        if adapter is None:
            logger.error(f"No catalog adapter registered for category={category}")
            result.failed_queries += 1
            return []

        result.source_calls += 1
        try:
            outcome = await adapter.search(
                CatalogQuery(keyword=query.keyword, genre_hint=query.genre_hint)
            )
        except Exception:
            logger.exception(f"Catalog adapter {adapter.source} raised for '{query.keyword}'")
            result.failed_queries += 1
            return []

        if not outcome.ok:
            logger.warning(f"Query '{query.keyword}' failed: {outcome.error}")
            result.failed_queries += 1
            return []

        return list(outcome.items)

"""
Global product search cache.

Cross-user cache of normalized catalog results keyed by (keyword, category).
Entries never expire; a `put` replaces the stored list as a whole (last
writer wins, no read-modify-write).

The cache is an optimisation: read failures behave as a miss and write
failures are logged and dropped. A list in which no item has an image is
never stored, and such a stored list is reported as a miss.
"""

import logging
import re
from datetime import datetime, timezone
from typing import Any, List, Optional

from pydantic import ValidationError
from supabase import Client

from encounter.schemas.encounter import CatalogItem, is_degenerate
from encounter.utils.constants import CACHE_KEY_MAX_CHARS

logger = logging.getLogger(__name__)

PRODUCT_CACHE_TABLE = "product_search_cache"

# \s covers the full-width space (U+3000) for str patterns
_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_keyword(keyword: str) -> str:
    """Lower-case, trim, collapse whitespace runs to '_' and cap the length."""
    normalized = _WHITESPACE_RUN.sub("_", keyword.strip().lower())
    return normalized[:CACHE_KEY_MAX_CHARS]


def make_cache_key(keyword: str, category: str) -> str:
    """
    Build the global cache key for a keyword search.

    Example:
        >>> make_cache_key("  Coffee  Grinder ", "goods")
        'goods_coffee_grinder'
    """
    return f"{category}_{normalize_keyword(keyword)}"


def _items_from_row(raw_items: Any) -> List[CatalogItem]:
    if not isinstance(raw_items, list):
        return []
    items: List[CatalogItem] = []
    for raw in raw_items:
        try:
            items.append(CatalogItem.model_validate(raw))
        except ValidationError:
            logger.debug("Skipping malformed cached item")
    return items


class SupabaseProductCache:
    """Global search cache backed by the `product_search_cache` table."""

    def __init__(self, supabase_client: Client):
        self._client = supabase_client

    async def get(self, keyword: str, category: str) -> Optional[List[CatalogItem]]:
        """Return the cached items for (keyword, category), or None on a miss."""
        cache_key = make_cache_key(keyword, category)

        try:
            response = (
                self._client.table(PRODUCT_CACHE_TABLE)
                .select("items")
                .eq("cache_key", cache_key)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.warning(f"Product cache read failed for key={cache_key}: {e}")
            return None

        if not response.data:
            logger.debug(f"Product cache miss: {cache_key}")
            return None

        items = _items_from_row(response.data[0].get("items"))
        if not items:
            logger.debug(f"Product cache entry empty: {cache_key}")
            return None

        if is_degenerate(items):
            logger.info(f"Product cache entry has no images, treating as miss: {cache_key}")
            return None

        logger.info(f"Product cache hit: {cache_key} ({len(items)} items)")
        return items

    async def put(self, keyword: str, category: str, items: List[CatalogItem]) -> None:
        """Store the full item list for (keyword, category), replacing any prior value."""
        cache_key = make_cache_key(keyword, category)

        if not items:
            return
        if is_degenerate(items):
            logger.info(f"Not caching image-less result set: {cache_key}")
            return

        row = {
            "cache_key": cache_key,
            "keyword": keyword.strip(),
            "category": category,
            "items": [item.model_dump(mode="json") for item in items],
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }

        try:
            self._client.table(PRODUCT_CACHE_TABLE).upsert(
                row, on_conflict="cache_key"
            ).execute()
            logger.info(f"Product cache stored: {cache_key} ({len(items)} items)")
        except Exception as e:
            logger.warning(f"Product cache write failed for key={cache_key}: {e}")

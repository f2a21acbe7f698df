"""
Catalog source adapters.

One adapter per external catalog, all producing `CatalogItem`s:
- marketplace        -> RakutenMarketplaceAdapter (goods, skills)
- book_marketplace   -> RakutenBooksAdapter (books)
- movie_metadata     -> TMDbMovieAdapter (movies)
"""

from typing import Dict, Optional

import httpx

from encounter.catalog.base import CatalogAdapter, SourceResult
from encounter.catalog.books import RakutenBooksAdapter
from encounter.catalog.marketplace import RakutenMarketplaceAdapter
from encounter.catalog.movies import TMDbMovieAdapter
from encounter.services.rate_limiter import RateLimiter


def build_catalog_adapters(
    limiter: Optional[RateLimiter] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Dict[str, CatalogAdapter]:
    """Production adapters keyed by catalog source name."""
    adapters = [
        RakutenMarketplaceAdapter(limiter=limiter, http_client=http_client),
        RakutenBooksAdapter(limiter=limiter, http_client=http_client),
        TMDbMovieAdapter(limiter=limiter, http_client=http_client),
    ]
    return {adapter.source: adapter for adapter in adapters}


__all__ = [
    "CatalogAdapter",
    "SourceResult",
    "RakutenMarketplaceAdapter",
    "RakutenBooksAdapter",
    "TMDbMovieAdapter",
    "build_catalog_adapters",
]

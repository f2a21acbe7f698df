"""
Domain constants for the encounter (recommendation) pipeline.

Category unlock thresholds, catalog source names, per-service rate
intervals, fan-out limits and the genre tables used by the catalog adapters.
"""

from typing import Any, Dict, List, Tuple

ENCOUNTER_CATEGORIES: List[str] = ['books', 'movies', 'goods', 'skills']

# Categories unlock progressively as the trait store grows
ENCOUNTER_UNLOCK_RULES: Dict[str, Dict[str, Any]] = {
    'books':  {'required_traits': 5,  'label': 'Books'},
    'movies': {'required_traits': 10, 'label': 'Movies'},
    'goods':  {'required_traits': 15, 'label': 'Goods'},
    'skills': {'required_traits': 20, 'label': 'Skill-building'},
}


def required_traits_for(category: str) -> int:
    return int(ENCOUNTER_UNLOCK_RULES[category]['required_traits'])


# Catalog sources (CatalogItem.source)
SOURCE_MARKETPLACE = 'marketplace'
SOURCE_BOOK_MARKETPLACE = 'book_marketplace'
SOURCE_MOVIE_METADATA = 'movie_metadata'

# Which catalog source serves which category
CATEGORY_SOURCES: Dict[str, str] = {
    'books': SOURCE_BOOK_MARKETPLACE,
    'movies': SOURCE_MOVIE_METADATA,
    'goods': SOURCE_MARKETPLACE,
    'skills': SOURCE_MARKETPLACE,
}

# Rate limiter service names and minimum intervals between calls (ms)
SERVICE_RAKUTEN = 'rakuten'
SERVICE_TMDB = 'tmdb'

RATE_LIMIT_INTERVALS_MS: Dict[str, int] = {
    SERVICE_RAKUTEN: 1100,  # 1 req/sec + buffer
    SERVICE_TMDB: 250,      # 4 req/sec
}
DEFAULT_RATE_LIMIT_INTERVAL_MS = 1000

# Pipeline limits
INTENT_TRAIT_LIMIT = 20
EXPLAIN_TRAIT_LIMIT = 15
MAX_SEARCH_QUERIES = 8
MAX_AGGREGATED_QUERIES = 4
ITEMS_PER_QUERY = 3
MAX_RECOMMENDATIONS = 8
DEFAULT_ITEM_SCORE = 0.7

REASON_MAX_CHARS = 50
PERSONALITY_CONTEXT_MAX_CHARS = 100

HISTORY_DEFAULT_LIMIT = 10
HISTORY_MAX_LIMIT = 20

# Product search cache key
CACHE_KEY_MAX_CHARS = 80

# Rakuten Ichiba book genres (the books API is not served by the new endpoint,
# so books are searched through Ichiba restricted to these genres)
RAKUTEN_BOOK_GENRE_IDS: Dict[str, str] = {
    'all': '200162',
    'business': '208948',
    'self_help': '208940',
    'science': '208956',
    'art': '208952',
    'novel': '208946',
    'manga': '208928',
    'kids': '208932',
}

# Genre ids identifying book listings inside the general marketplace
RAKUTEN_BOOK_GENRE_ROOT = 200162
RAKUTEN_BOOK_GENRE_RANGE: Tuple[int, int] = (208000, 210000)
RAKUTEN_BOOK_URL_MARKERS: Tuple[str, ...] = ('/book/', 'rakutenkobo-ebooks', 'rbooks.')

RAKUTEN_MARKETPLACE_HITS = 10
RAKUTEN_BOOK_HITS = 5
RAKUTEN_RATE_LIMIT_RETRY_SECONDS = 3.0

# TMDb genre ids
TMDB_GENRES: Dict[str, int] = {
    'action': 28,
    'adventure': 12,
    'animation': 16,
    'comedy': 35,
    'crime': 80,
    'documentary': 99,
    'drama': 18,
    'fantasy': 14,
    'horror': 27,
    'music': 10402,
    'mystery': 9648,
    'romance': 10749,
    'scifi': 878,
    'thriller': 53,
    'family': 10751,
    'history': 36,
}
TMDB_DISCOVER_MIN_RATING = 7.0
TMDB_DISCOVER_MIN_VOTES = 100
TMDB_LANGUAGE = 'ja-JP'

"""
TMDb movie metadata source.

Two mutually exclusive modes, decided per call from the query:
- genre discovery (`/discover/movie`) when the genre hint resolves to TMDb
  genre ids, filtered by a minimum vote average
- free-text search (`/search/movie`) otherwise
"""

import logging
from typing import Any, Dict, List, Optional

from encounter.catalog.base import CatalogAdapter, PreparedRequest
from encounter.catalog.images import tmdb_image_url
from encounter.config import settings
from encounter.schemas.encounter import CatalogItem, CatalogQuery
from encounter.utils.constants import (
    SERVICE_TMDB,
    SOURCE_MOVIE_METADATA,
    TMDB_DISCOVER_MIN_RATING,
    TMDB_DISCOVER_MIN_VOTES,
    TMDB_GENRES,
    TMDB_LANGUAGE,
)

logger = logging.getLogger(__name__)

TMDB_API_BASE = "https://api.themoviedb.org/3"
TMDB_SEARCH_URL = f"{TMDB_API_BASE}/search/movie"
TMDB_DISCOVER_URL = f"{TMDB_API_BASE}/discover/movie"
TMDB_MOVIE_PAGE = "https://www.themoviedb.org/movie/{movie_id}"

_KNOWN_GENRE_IDS = set(TMDB_GENRES.values())


def parse_genre_ids(hint: Optional[str]) -> List[int]:
    """
    Resolve a genre hint into TMDb genre ids.

    Accepts numeric ids ("878"), genre names ("scifi") or a comma separated
    mix of both. Unknown values are ignored.
    """
    if not hint:
        return []

    genre_ids: List[int] = []
    for part in str(hint).split(","):
        token = part.strip().lower()
        if not token:
            continue
        if token.isdigit():
            genre_id = int(token)
            if genre_id in _KNOWN_GENRE_IDS and genre_id not in genre_ids:
                genre_ids.append(genre_id)
        elif token in TMDB_GENRES and TMDB_GENRES[token] not in genre_ids:
            genre_ids.append(TMDB_GENRES[token])
    return genre_ids


class TMDbMovieAdapter(CatalogAdapter):
    """Movie search backed by the TMDb v3 API."""

    source = SOURCE_MOVIE_METADATA
    service_name = SERVICE_TMDB

    def __init__(
        self,
        bearer_token: Optional[str] = None,
        min_rating: float = TMDB_DISCOVER_MIN_RATING,
        language: str = TMDB_LANGUAGE,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.bearer_token = bearer_token if bearer_token is not None else settings.TMDB_BEARER_TOKEN
        self.min_rating = min_rating
        self.language = language

    def is_configured(self) -> bool:
        return bool(self.bearer_token)

    def build_request(self, query: CatalogQuery) -> PreparedRequest:
        headers = {
            "Authorization": f"Bearer {self.bearer_token}",
            "Content-Type": "application/json",
        }

        genre_ids = parse_genre_ids(query.genre_hint)
        if genre_ids:
            params: Dict[str, Any] = {
                "language": self.language,
                "sort_by": "vote_average.desc",
                "vote_count.gte": TMDB_DISCOVER_MIN_VOTES,
                "with_genres": ",".join(str(g) for g in genre_ids),
                "vote_average.gte": self.min_rating,
            }
            return TMDB_DISCOVER_URL, params, headers

        if not query.keyword.strip():
            raise ValueError("keyword is empty and no genre given")

        params = {
            "query": query.keyword.strip(),
            "language": self.language,
        }
        return TMDB_SEARCH_URL, params, headers

    def parse(self, payload: Any, query: CatalogQuery) -> List[CatalogItem]:
        if not isinstance(payload, dict) or not isinstance(payload.get("results"), list):
            raise ValueError("'results' is not a list")

        items: List[CatalogItem] = []
        for movie in payload["results"]:
            if not isinstance(movie, dict) or movie.get("id") is None:
                continue
            title = str(movie.get("title") or movie.get("original_title") or "").strip()
            if not title:
                continue

            page_url = TMDB_MOVIE_PAGE.format(movie_id=movie["id"])
            items.append(CatalogItem(
                id=f"{self.source}:{movie['id']}",
                source=self.source,
                name=title,
                price=None,
                image_url=tmdb_image_url(movie),
                action_url=page_url,
                reference_url=page_url,
                rating=float(movie.get("vote_average") or 0) or None,
            ))

        if query.limit:
            items = items[:query.limit]
        return items

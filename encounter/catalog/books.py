"""
Book marketplace source.

The Rakuten Books API is not served by the new openapi endpoint, so books
are searched through Ichiba restricted to the book genre tree. A genre hint
is honoured only when it names one of the known book genres.
"""

from typing import Any, Optional

from encounter.catalog.marketplace import RakutenMarketplaceAdapter, parse_genre_id
from encounter.schemas.encounter import CatalogQuery
from encounter.utils.constants import (
    RAKUTEN_BOOK_GENRE_IDS,
    RAKUTEN_BOOK_HITS,
    SOURCE_BOOK_MARKETPLACE,
)

_BOOK_GENRE_VALUES = {int(v) for v in RAKUTEN_BOOK_GENRE_IDS.values()}


class RakutenBooksAdapter(RakutenMarketplaceAdapter):
    """Book search backed by the Ichiba book genres."""

    source = SOURCE_BOOK_MARKETPLACE
    default_hits = RAKUTEN_BOOK_HITS

    def __init__(self, **kwargs: Any):
        kwargs.setdefault("exclude_books", False)
        super().__init__(**kwargs)

    def genre_id_for(self, query: CatalogQuery) -> Optional[int]:
        hint = query.genre_hint
        if hint and hint.strip().lower() in RAKUTEN_BOOK_GENRE_IDS:
            return int(RAKUTEN_BOOK_GENRE_IDS[hint.strip().lower()])

        genre_id = parse_genre_id(hint)
        if genre_id in _BOOK_GENRE_VALUES:
            return genre_id
        return int(RAKUTEN_BOOK_GENRE_IDS["all"])

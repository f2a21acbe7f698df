"""
Rakuten Ichiba item search (generic marketplace source).

The endpoint is chosen from the configured credentials:
  RAKUTEN_ACCESS_KEY set   -> openapi.rakuten.co.jp (needs Referer/Origin)
  RAKUTEN_ACCESS_KEY empty -> legacy app.rakuten.co.jp endpoint

Ichiba does not separate verticals cleanly, so for non-book categories the
adapter drops listings that are identifiable as books (book genre ids or
book-store URLs).
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from encounter.catalog.base import CatalogAdapter, PreparedRequest
from encounter.catalog.images import extract_image_url
from encounter.config import settings
from encounter.schemas.encounter import CatalogItem, CatalogQuery
from encounter.utils.constants import (
    RAKUTEN_BOOK_GENRE_RANGE,
    RAKUTEN_BOOK_GENRE_ROOT,
    RAKUTEN_BOOK_URL_MARKERS,
    RAKUTEN_MARKETPLACE_HITS,
    RAKUTEN_RATE_LIMIT_RETRY_SECONDS,
    SERVICE_RAKUTEN,
    SOURCE_MARKETPLACE,
)

logger = logging.getLogger(__name__)

RAKUTEN_SEARCH_URL = "https://openapi.rakuten.co.jp/ichibams/api/IchibaItem/Search/20220601"
RAKUTEN_LEGACY_SEARCH_URL = "https://app.rakuten.co.jp/services/api/IchibaItem/Search/20170706"


def parse_genre_id(value: Optional[str]) -> Optional[int]:
    """Rakuten genre ids are positive integers up to six digits."""
    if value is None:
        return None
    try:
        genre_id = int(str(value).strip())
    except ValueError:
        return None
    if 0 < genre_id <= 999999:
        return genre_id
    return None


def is_book_listing(item: Dict[str, Any]) -> bool:
    """True for Ichiba listings that are books, e-books or magazines."""
    genre_id = parse_genre_id(item.get("genreId"))
    if genre_id is not None:
        low, high = RAKUTEN_BOOK_GENRE_RANGE
        if genre_id == RAKUTEN_BOOK_GENRE_ROOT or low <= genre_id < high:
            return True

    url = str(item.get("itemUrl") or "")
    return any(marker in url for marker in RAKUTEN_BOOK_URL_MARKERS)


class RakutenMarketplaceAdapter(CatalogAdapter):
    """Generic marketplace search backed by Rakuten Ichiba."""

    source = SOURCE_MARKETPLACE
    service_name = SERVICE_RAKUTEN
    default_hits = RAKUTEN_MARKETPLACE_HITS

    def __init__(
        self,
        application_id: Optional[str] = None,
        access_key: Optional[str] = None,
        affiliate_id: Optional[str] = None,
        exclude_books: bool = True,
        retry_after_429_seconds: Optional[float] = RAKUTEN_RATE_LIMIT_RETRY_SECONDS,
        **kwargs: Any,
    ):
        super().__init__(retry_after_429_seconds=retry_after_429_seconds, **kwargs)
        self.application_id = application_id if application_id is not None else settings.RAKUTEN_APPLICATION_ID
        self.access_key = access_key if access_key is not None else settings.RAKUTEN_ACCESS_KEY
        self.affiliate_id = affiliate_id if affiliate_id is not None else settings.RAKUTEN_AFFILIATE_ID
        self.exclude_books = exclude_books

    @property
    def uses_new_api(self) -> bool:
        return bool(self.access_key)

    def is_configured(self) -> bool:
        return bool(self.application_id)

    def genre_id_for(self, query: CatalogQuery) -> Optional[int]:
        # Marketplace searches are keyword-only; genre hints from the
        # language model are not reliable Ichiba genre ids.
        return None

    def build_request(self, query: CatalogQuery) -> PreparedRequest:
        if not query.keyword.strip():
            raise ValueError("keyword is empty")

        params: Dict[str, Any] = {
            "applicationId": self.application_id,
            "keyword": query.keyword.strip(),
            "hits": query.limit or self.default_hits,
            "sort": "-reviewAverage",
            "formatVersion": 2,
        }
        if self.uses_new_api:
            params["accessKey"] = self.access_key
        if self.affiliate_id:
            params["affiliateId"] = self.affiliate_id

        genre_id = self.genre_id_for(query)
        if genre_id is not None:
            params["genreId"] = genre_id

        headers: Dict[str, str] = {}
        url = RAKUTEN_LEGACY_SEARCH_URL
        if self.uses_new_api:
            url = RAKUTEN_SEARCH_URL
            referer = settings.RAKUTEN_REFERER
            parsed = urlparse(referer)
            headers = {
                "Referer": referer,
                "Origin": f"{parsed.scheme}://{parsed.netloc}",
            }

        return url, params, headers

    def parse(self, payload: Any, query: CatalogQuery) -> List[CatalogItem]:
        if not isinstance(payload, dict) or not isinstance(payload.get("Items"), list):
            raise ValueError("'Items' is not a list")

        items: List[CatalogItem] = []
        skipped_books = 0
        for raw in payload["Items"]:
            # formatVersion=1 wraps each item as {"Item": {...}}
            if isinstance(raw, dict) and isinstance(raw.get("Item"), dict):
                raw = raw["Item"]
            if not isinstance(raw, dict):
                continue

            if self.exclude_books and is_book_listing(raw):
                skipped_books += 1
                continue

            item = self.normalize(raw)
            if item is not None:
                items.append(item)

        if skipped_books:
            logger.debug(f"[{self.source}] dropped {skipped_books} book listings for '{query.keyword}'")

        return items

    def normalize(self, raw: Dict[str, Any]) -> Optional[CatalogItem]:
        item_url = str(raw.get("itemUrl") or "").strip()
        name = str(raw.get("itemName") or "").strip()
        if not item_url or not name:
            return None

        image_url = extract_image_url(raw)
        if not image_url:
            logger.debug(f"[{self.source}] no image for '{name[:30]}'")

        return CatalogItem(
            id=f"{self.source}:{raw.get('itemCode') or item_url}",
            source=self.source,
            name=name,
            price=float(raw.get("itemPrice") or 0) or None,
            image_url=image_url,
            action_url=str(raw.get("affiliateUrl") or item_url),
            reference_url=item_url,
            rating=float(raw.get("reviewAverage") or 0) or None,
        )

"""
Image URL extraction for heterogeneous catalog payloads.

Sources disagree on how they ship image references:

    legacy Rakuten:  "mediumImageUrls": [{"imageUrl": "https://..."}]
    current Rakuten: "mediumImageUrls": ["https://..."]
    TMDb:            "poster_path": "/abc.jpg"   (relative to an image base)

Each field value is tried against a list of strategies (bare string, then
URL-object) and fields are tried in priority order, so "medium" wins over
"small" whenever it holds anything usable.
"""

from typing import Any, Callable, Dict, Optional, Sequence

MARKETPLACE_IMAGE_FIELDS = ("mediumImageUrls", "smallImageUrls")

TMDB_IMAGE_BASE = "https://image.tmdb.org/t/p/w500"
TMDB_IMAGE_FIELDS = ("poster_path", "backdrop_path")

_URL_OBJECT_KEYS = ("imageUrl", "url")


def _from_string(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _from_url_object(value: Any) -> Optional[str]:
    if not isinstance(value, dict):
        return None
    for key in _URL_OBJECT_KEYS:
        url = _from_string(value.get(key))
        if url:
            return url
    return None


IMAGE_URL_STRATEGIES: Sequence[Callable[[Any], Optional[str]]] = (
    _from_string,
    _from_url_object,
)


def first_image_url(value: Any) -> Optional[str]:
    """First usable URL in a single field value (list, string or URL-object)."""
    if isinstance(value, list):
        candidates = value
    elif value is None:
        return None
    else:
        candidates = [value]

    for candidate in candidates:
        for strategy in IMAGE_URL_STRATEGIES:
            url = strategy(candidate)
            if url:
                return url
    return None


def extract_image_url(item: Dict[str, Any], fields: Sequence[str] = MARKETPLACE_IMAGE_FIELDS) -> Optional[str]:
    """First usable URL across `fields`, in priority order."""
    for field_name in fields:
        url = first_image_url(item.get(field_name))
        if url:
            return url
    return None


def tmdb_image_url(movie: Dict[str, Any], base: str = TMDB_IMAGE_BASE) -> Optional[str]:
    """Absolute poster (or backdrop) URL for a TMDb movie record."""
    for field_name in TMDB_IMAGE_FIELDS:
        path = _from_string(movie.get(field_name))
        if path:
            if path.startswith("http"):
                return path
            return f"{base}{path}"
    return None
